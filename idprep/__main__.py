"""idprep command line.

Preprocesses an identity-document photo for OCR, or prints its quality
analysis.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from idprep.config import PRESETS, configure_logging, get_preset, settings
from idprep.preprocessing import PreprocessingError, PreprocessingPipeline, ProgressEvent


logger = logging.getLogger("idprep")

FORMAT_CHOICES = ("png", "webp", "jpeg")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="idprep",
        description="Identity-document image preprocessing for OCR",
        epilog="Example: python -m idprep --preset identity-document card.jpg card.png",
    )

    parser.add_argument("input", metavar="INPUT", help="Input image file")
    parser.add_argument(
        "output",
        metavar="OUTPUT",
        nargs="?",
        help="Output image file (not needed with --analyze-only)",
    )

    parser.add_argument(
        "--preset",
        choices=tuple(PRESETS),
        default=None,
        help=f"Configuration preset (default: {settings.default_preset})",
    )
    parser.add_argument(
        "--format",
        dest="output_format",
        choices=FORMAT_CHOICES,
        default=None,
        help=f"Output format (default: {settings.output_format})",
    )
    parser.add_argument(
        "--quality",
        type=float,
        default=None,
        help=f"Lossy output quality between 0 and 1 (default: {settings.output_quality})",
    )
    parser.add_argument("--max-width", type=int, default=None, help="Downscale input to this width")
    parser.add_argument("--max-height", type=int, default=None, help="Downscale input to this height")
    parser.add_argument(
        "--analyze-only",
        action="store_true",
        help="Print the quality analysis as JSON instead of writing an image",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    return parser


def _max_dimensions(args: argparse.Namespace) -> Optional[tuple[int, int]]:
    if args.max_width is None and args.max_height is None:
        return settings.max_dimensions
    max_width = args.max_width or args.max_height
    max_height = args.max_height or args.max_width
    return (max_width, max_height)


def _log_progress(event: ProgressEvent) -> None:
    logger.debug(f"[{event.progress:5.1f}%] {event.stage}: {event.message}")


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point. Returns 0 on success, 1 on failure."""
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging("DEBUG" if args.verbose else None)

    if not args.analyze_only and not args.output:
        parser.error("OUTPUT is required unless --analyze-only is given")

    input_path = Path(args.input)
    try:
        content = input_path.read_bytes()
    except OSError as e:
        print(f"Error: cannot read {input_path}: {e}", file=sys.stderr)
        return 1

    config = get_preset(args.preset) if args.preset else settings.get_default_config()
    pipeline = PreprocessingPipeline(config, on_progress=_log_progress)
    max_dimensions = _max_dimensions(args)

    if args.analyze_only:
        try:
            analysis = pipeline.analyze(content, max_dimensions)
        except PreprocessingError as e:
            print(f"Error: {e.message}", file=sys.stderr)
            return 1
        print(json.dumps(analysis.to_dict(), indent=2))
        return 0

    result = pipeline.run(
        content,
        max_dimensions=max_dimensions,
        output_format=args.output_format,
        output_quality=args.quality,
    )
    if not result.success:
        for message in result.errors or ():
            print(f"Error: {message}", file=sys.stderr)
        return 1

    output_path = Path(args.output)
    try:
        output_path.write_bytes(result.processed_image.data)
    except OSError as e:
        print(f"Error: cannot write {output_path}: {e}", file=sys.stderr)
        return 1

    operations = ", ".join(op.value for op in result.operations) or "none"
    print(
        f"{input_path} -> {output_path} "
        f"({result.processed_image.width}x{result.processed_image.height}, "
        f"{result.processing_time_ms:.0f}ms, operations: {operations}, "
        f"quality {result.quality_metrics.overall:.2f})",
        file=sys.stderr,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
