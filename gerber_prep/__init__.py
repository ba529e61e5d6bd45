"""gerber_prep: SVG layer sanitizing and board clipping for Gerber export.

This package takes the SVG rendering of one PCB layer and reduces it to
the primitive set a Gerber emitter can translate: straight segments,
unrotated circles and simple closed paths. Whatever cannot be expressed
that way is clipped to the board, normalized, or pushed through a
raster round trip and re-traced as horizontal runs.

Architecture layers (strict one-way dependency):
    scripts/ → gerber_prep/export → gerber_prep/pipeline → gerber_prep/{render,svg} → gerber_prep/utils

Key invariants:
    - Documents are parsed once; the vector view and the raster view share
      stable leaf keys and are matched by key, never by position
    - Squashing an element (renaming it to <g>) is one-way
    - User units of a layer document are output-DPI units (1000 per inch)
    - Bitmaps are uint8 (H, W), 255 white / 0 black
"""

__version__ = "0.4.0"

__all__ = ["configs", "export", "pipeline", "render", "svg", "utils"]
