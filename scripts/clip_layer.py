#!/usr/bin/env python3
"""Sanitize and clip one layer SVG to the board.

Runs ``BoardClipper.clip_to_board`` on a single layer SVG, the same way
the exporter does for each Gerber layer, and writes the sanitized SVG.
Useful to inspect what the emitter will receive for a problem layer.

Board size is given in authoring units (90 DPI scene pixels); the layer
SVG is expected in output units (1000 DPI).

Usage:
    python scripts/clip_layer.py copper0.svg copper0_clipped.svg --width 900 --height 720

    # Silkscreen clipped against the already clipped solder mask
    python scripts/clip_layer.py silk1.svg out.svg --width 900 --height 720 \\
        --purpose silk --clip-mask mask1_clipped.svg

    # Also dump a render of the result for a quick look
    python scripts/clip_layer.py board.svg out.svg --width 900 --height 720 \\
        --purpose outline --dump-render out.png
"""
import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from gerber_prep.configs.loader import ConfigError, load_config
from gerber_prep.pipeline.board import BoardRect
from gerber_prep.pipeline.clipper import BoardClipper, ClipPurpose
from gerber_prep.render.rasterizer import RasterFrame, SvgRasterizer
from gerber_prep.svg.document import DocumentError
from gerber_prep.utils import fs, hashing
from gerber_prep.utils.logging_config import install_excepthook, log_context, setup_logging

logger = logging.getLogger("clip_layer")


def main() -> int:
    """CLI entrypoint for single-layer clipping."""
    parser = argparse.ArgumentParser(
        description="Sanitize a PCB layer SVG and clip it to the board",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("input", type=Path, help="Layer SVG (output units)")
    parser.add_argument("output", type=Path, help="Where to write the clipped SVG")
    parser.add_argument(
        "--width",
        type=float,
        required=True,
        help="Board width in authoring units",
    )
    parser.add_argument(
        "--height",
        type=float,
        required=True,
        help="Board height in authoring units",
    )
    parser.add_argument(
        "--purpose",
        choices=[p.value for p in ClipPurpose],
        default=ClipPurpose.COPPER.value,
        help="Layer purpose (default: copper)",
    )
    parser.add_argument(
        "--layer-name",
        default=None,
        help="Name used in logs and messages (default: input file stem)",
    )
    parser.add_argument(
        "--clip-mask",
        type=Path,
        default=None,
        help="Clipped mask SVG whose ink removes overlapping content",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="export.yaml to use instead of the shipped defaults",
    )
    parser.add_argument(
        "--dump-render",
        type=Path,
        default=None,
        help="Also write a PNG render of the clipped SVG",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    try:
        cfg = load_config(args.config)
    except (ConfigError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    log_level = "DEBUG" if args.verbose else cfg.logging.level
    setup_logging(
        log_level=log_level,
        log_file=cfg.logging.file,
        json=cfg.logging.json,
        color=cfg.logging.color,
        context={"app": "clip_layer"},
    )
    install_excepthook()

    if not args.input.exists():
        print(f"Error: Input file does not exist: {args.input}", file=sys.stderr)
        return 1

    svg = args.input.read_text(encoding="utf-8")
    clip_svg = ""
    if args.clip_mask is not None:
        if not args.clip_mask.exists():
            print(f"Error: Clip mask does not exist: {args.clip_mask}", file=sys.stderr)
            return 1
        clip_svg = args.clip_mask.read_text(encoding="utf-8")

    layer_name = args.layer_name or args.input.stem
    board = BoardRect(args.width, args.height)
    purpose = ClipPurpose(args.purpose)
    clipper = BoardClipper(cfg)

    with log_context(layer=layer_name):
        result = clipper.clip_to_board(svg, board, layer_name, purpose, clip_svg=clip_svg)

    for message in result.diagnostics:
        print(message, file=sys.stderr)
    if result.empty:
        print(f"Error: {layer_name} export failure", file=sys.stderr)
        return 1

    try:
        fs.atomic_write_text(args.output, result.svg)
    except RuntimeError as e:
        print(f"Error: {layer_name} layer: unable to save to '{args.output}': {e}",
              file=sys.stderr)
        return 1
    logger.info("Wrote %s (raster fallback: %s, clipped: %d) sha256=%s",
                args.output, result.used_raster, result.clipped,
                hashing.sha256_file(args.output))

    if args.dump_render is not None:
        device = board.to_device(cfg.resolution.scale)
        frame = RasterFrame.for_rect(device.as_rect(), padding=cfg.clipping.grid_padding_px)
        try:
            bitmap = SvgRasterizer.from_config(cfg.raster).render_string(result.svg, frame)
            fs.save_bitmap(bitmap, args.dump_render)
        except (DocumentError, RuntimeError) as e:
            print(f"Error: Unable to dump render: {e}", file=sys.stderr)
            return 1
        logger.info("Render written to %s", args.dump_render)

    return 0


if __name__ == "__main__":
    sys.exit(main())
