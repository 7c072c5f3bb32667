"""Process command: run the preprocessing batch over image files."""

from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path

import numpy as np
from PIL import Image

from config import DEFAULT_CONTRAST_FACTOR, MAX_IMAGE_SIZE
from preprocessing import (
    BatchScheduler,
    LazyImageHandle,
    PixelBuffer,
    PreprocessingError,
    ProcessingOptions,
    WorkerPool,
    expand_palette,
    measure_contrast,
)

from .report import BatchReport, ItemReport

logger = logging.getLogger(__name__)

MIB = 1024 * 1024


def add_process_subparser(subparsers: argparse._SubParsersAction) -> None:
    process_parser = subparsers.add_parser(
        "process",
        help="Preprocess image files for barcode detection",
    )
    process_parser.add_argument(
        "files",
        nargs="+",
        help="Image files to process",
    )
    process_parser.add_argument(
        "-o", "--output-dir",
        required=True,
        help="Directory for processed PNG files",
    )
    process_parser.add_argument(
        "--max-dimension",
        type=int,
        default=MAX_IMAGE_SIZE,
        help=f"Longest side after resizing (default: {MAX_IMAGE_SIZE})",
    )
    process_parser.add_argument(
        "--contrast-factor",
        type=float,
        default=DEFAULT_CONTRAST_FACTOR,
        help=f"Contrast stretch factor, 0.1-10.0 (default: {DEFAULT_CONTRAST_FACTOR})",
    )
    process_parser.add_argument(
        "--no-contrast",
        action="store_true",
        help="Skip contrast enhancement",
    )
    process_parser.add_argument(
        "--no-denoise",
        action="store_true",
        help="Skip median noise reduction",
    )
    process_parser.add_argument(
        "--no-resize",
        action="store_true",
        help="Never downsample large images",
    )
    process_parser.add_argument(
        "--fast-resize",
        action="store_true",
        help="Single-pass resize even for large downscale ratios",
    )
    process_parser.add_argument(
        "--workers", "-j",
        type=int,
        default=None,
        help="Worker threads (default: CPU count)",
    )
    process_parser.add_argument(
        "--memory-budget-mb",
        type=int,
        default=None,
        metavar="MB",
        help="Plan batches against this much memory instead of what is available",
    )
    process_parser.add_argument(
        "--report",
        metavar="PATH",
        help="Write a JSON report of the run to PATH",
    )
    process_parser.add_argument(
        "--progress",
        action="store_true",
        help="Show a progress bar",
    )
    process_parser.set_defaults(_cmd=cmd_process)


def options_from_args(args: argparse.Namespace) -> ProcessingOptions:
    return ProcessingOptions(
        enhance_contrast=not args.no_contrast,
        contrast_factor=args.contrast_factor,
        reduce_noise=not args.no_denoise,
        resize_if_large=not args.no_resize,
        max_dimension=args.max_dimension,
        high_quality_resize=not args.fast_resize,
    )


def output_path_for(source: Path, output_dir: Path, taken: set[str]) -> Path:
    """PNG path in output_dir named after source, unique within this run."""
    stem = source.stem
    candidate = f"{stem}.png"
    counter = 1
    while candidate in taken:
        candidate = f"{stem}_{counter}.png"
        counter += 1
    taken.add(candidate)
    return output_dir / candidate


def save_buffer(buffer: PixelBuffer, path: Path) -> None:
    """Write a processed buffer as PNG."""
    if buffer.is_indexed:
        buffer = expand_palette(buffer)
    Image.fromarray(np.ascontiguousarray(buffer.pixels)).save(path, format="PNG")


def cmd_process(args: argparse.Namespace) -> int:
    options = options_from_args(args)
    try:
        options.validate()
    except PreprocessingError as exc:
        logger.error("%s", exc)
        return 1

    paths = [Path(name) for name in args.files]
    handles: list[LazyImageHandle] = []
    for path in paths:
        try:
            handles.append(LazyImageHandle(path.read_bytes(), name=path.name))
        except OSError as exc:
            logger.error("Cannot read %s: %s", path, exc)
            return 1
        except PreprocessingError as exc:
            logger.error("%s: %s", path, exc)
            return 1

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    memory_budget = args.memory_budget_mb * MIB if args.memory_budget_mb else None
    start = time.perf_counter()
    try:
        with WorkerPool(args.workers) as pool:
            scheduler = BatchScheduler(
                pool,
                memory_budget=memory_budget,
                show_progress=args.progress,
            )
            results = scheduler.process_batch(handles, options)
            workers = pool.size
    except PreprocessingError as exc:
        logger.error("Processing failed: %s", exc)
        logger.error(
            "%d of %d images completed before the failure",
            len(exc.completed_results), len(handles),
        )
        return 1
    except ValueError as exc:
        logger.error("%s", exc)
        return 1
    total_ms = (time.perf_counter() - start) * 1000.0

    taken: set[str] = set()
    items: list[ItemReport] = []
    for path, result in zip(paths, results):
        out_path = output_path_for(path, output_dir, taken)
        save_buffer(result.buffer, out_path)
        contrast = measure_contrast(result.buffer)
        logger.info(
            "%s: %dx%d -> %dx%d [%s] %.1f ms, contrast %.2f",
            path.name,
            *result.original_size,
            *result.processed_size,
            ", ".join(result.operations_applied) or "unchanged",
            result.elapsed_ms,
            contrast,
        )
        items.append(
            ItemReport.from_result(path.name, result, output_path=str(out_path), contrast=contrast)
        )

    logger.info("Processed %d images in %.1f ms -> %s", len(results), total_ms, output_dir)

    if args.report:
        report = BatchReport(
            options=BatchReport.options_dict(options),
            workers=workers,
            total_elapsed_ms=total_ms,
            items=items,
        )
        report_path = Path(args.report)
        report_path.parent.mkdir(parents=True, exist_ok=True)
        report_path.write_text(report.model_dump_json(indent=2))
        logger.info("Report written to %s", report_path)

    return 0
