"""Inspect command: header metadata for image files without decoding them."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from config import MAX_IMAGE_SIZE
from preprocessing import LazyImageHandle, PreprocessingError

from .report import ImageInfo

logger = logging.getLogger(__name__)


def add_inspect_subparser(subparsers: argparse._SubParsersAction) -> None:
    inspect_parser = subparsers.add_parser(
        "inspect",
        help="Show image dimensions and memory estimates (header only)",
    )
    inspect_parser.add_argument(
        "files",
        nargs="+",
        help="Image files to inspect",
    )
    inspect_parser.add_argument(
        "--max-dimension",
        type=int,
        default=MAX_IMAGE_SIZE,
        help=f"Longest side before downsampling is needed (default: {MAX_IMAGE_SIZE})",
    )
    inspect_parser.add_argument(
        "--json",
        action="store_true",
        help="Print metadata as JSON to stdout",
    )
    inspect_parser.set_defaults(_cmd=cmd_inspect)


def cmd_inspect(args: argparse.Namespace) -> int:
    infos: list[ImageInfo] = []
    failures = 0

    for file_name in args.files:
        path = Path(file_name)
        try:
            handle = LazyImageHandle(path.read_bytes(), name=path.name)
            metadata = handle.metadata()
        except OSError as exc:
            logger.error("Cannot read %s: %s", path, exc)
            failures += 1
            continue
        except PreprocessingError as exc:
            logger.error("%s: %s", path, exc)
            failures += 1
            continue

        infos.append(ImageInfo.from_metadata(path.name, metadata, args.max_dimension))

    if args.json:
        print(json.dumps([info.model_dump() for info in infos], indent=2))
    else:
        logger.info("%-30s %-12s %-10s %-8s %s", "File", "Size", "Est. MiB", "Large", "Downsample")
        logger.info("%s", "-" * 75)
        for info in infos:
            logger.info(
                "%-30s %-12s %-10.1f %-8s %s",
                info.name,
                f"{info.width}x{info.height}",
                info.estimated_bytes / (1024 * 1024),
                "yes" if info.is_large else "no",
                "yes" if info.needs_downsampling else "no",
            )

    return 1 if failures else 0
