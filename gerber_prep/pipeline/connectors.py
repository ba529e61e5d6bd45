"""Connector metadata supplied by the board model.

Descriptors are read-only inputs: the donut normalizer uses them to turn
ring-shaped pads back into circles. Lengths are in authoring units.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, Iterator, List, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConnectorDescriptor(BaseModel):
    """One connector of one part in one view/layer."""

    model_config = ConfigDict(frozen=True)

    attached_id: int = Field(..., description="ID of the part the connector belongs to")
    svg_id: str = Field(..., description="Element id of the connector in the layer SVG")
    is_path: bool = Field(False, description="Connector is drawn as a path")
    radius: float = Field(0.0, ge=0.0, description="Pad radius (authoring units)")
    stroke_width: float = Field(0.0, ge=0.0, description="Pad ring width (authoring units)")

    @field_validator('svg_id')
    @classmethod
    def validate_svg_id(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Connector svg_id must be non-empty")
        return v

    @property
    def is_circle_like(self) -> bool:
        """Path connectors with a radius are circles drawn as donuts."""
        return self.is_path and self.radius > 0


class ConnectorMap:
    """Multi-valued map ``attached_id -> [ConnectorDescriptor]``."""

    def __init__(self, descriptors: Iterable[ConnectorDescriptor] = ()):
        self._by_part: Dict[int, List[ConnectorDescriptor]] = defaultdict(list)
        for desc in descriptors:
            self.add(desc)

    def add(self, descriptor: ConnectorDescriptor) -> None:
        self._by_part[descriptor.attached_id].append(descriptor)

    def for_part(self, attached_id: int) -> List[ConnectorDescriptor]:
        return list(self._by_part.get(attached_id, ()))

    def circle_like_ids(self) -> Set[str]:
        """svg ids of every circle-like connector across all parts."""
        return {d.svg_id for d in self if d.is_circle_like}

    def __iter__(self) -> Iterator[ConnectorDescriptor]:
        for descs in self._by_part.values():
            yield from descs

    def __len__(self) -> int:
        return sum(len(d) for d in self._by_part.values())

    def __repr__(self) -> str:
        return f"ConnectorMap(parts={len(self._by_part)}, connectors={len(self)})"
