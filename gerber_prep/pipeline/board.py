"""Board rectangle in authoring and output units."""

from __future__ import annotations

from dataclasses import dataclass

from gerber_prep.svg.geometry import Rect, grow_rect, rect_within


@dataclass(frozen=True)
class BoardRect:
    """Axis-aligned board bounds, origin-normalized to (0, 0).

    Parameters
    ----------
    width, height : float
        Board size in the units of whoever built it (authoring units
        from the layout, output units after :meth:`to_device`)
    """

    width: float
    height: float

    def __post_init__(self):
        if self.width < 0 or self.height < 0:
            raise ValueError(f"Board size must be non-negative, got {self.width}x{self.height}")

    @classmethod
    def from_scene(cls, x: float, y: float, width: float, height: float) -> "BoardRect":
        """Drop the scene position; only the size matters once normalized."""
        return cls(width=float(width), height=float(height))

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def to_device(self, scale: float) -> "BoardRect":
        """Scale to output units (``output_dpi / authoring_dpi``)."""
        return BoardRect(self.width * scale, self.height * scale)

    def as_rect(self) -> Rect:
        return (0.0, 0.0, self.width, self.height)

    def grown(self, margin: float) -> Rect:
        return grow_rect(self.as_rect(), margin)

    def contains(self, rect: Rect, margin: float = 0.0) -> bool:
        """True if ``rect`` lies inside the board grown by ``margin``."""
        return rect_within(rect, self.grown(margin))
