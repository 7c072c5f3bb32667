"""
Image preprocessing for barcode and QR code detection.

This package conditions decoded raster images before they are handed to a
barcode decoder: adaptive downsampling, 3x3 median noise reduction and
linear contrast enhancement, plus a memory-aware scheduler for batches.
All stages are pure: every transformation allocates a new buffer and the
input is never mutated.

Key components:
- buffer: PixelBuffer and ColorModel, the unit of work
- config: ProcessingOptions and ProcessingResult
- resize / denoise / contrast: the individual stages
- steps: Class-based steps with a common PreprocessStep interface
- pipeline: process() applying the stages in their fixed order
- lazy: LazyImageHandle for header-only metadata and deferred decoding
- batch: BatchScheduler, WorkerPool and chunk planning

Two APIs are available:
1. Function-based: process(buffer, options) -> ProcessingResult
2. Class-based: Pipeline(steps=[...]).process(buffer) -> ProcessingResult
"""

from .buffer import ColorModel, PixelBuffer
from .config import ProcessingOptions, ProcessingResult
from .errors import (
    PreprocessingError,
    InvalidDimensions,
    InvalidOptions,
    UnsupportedColorModel,
    OutOfMemory,
    ImageDecodeError,
    Cancelled,
)
from .normalization import expand_palette, to_grayscale, measure_contrast
from .resize import ResizeStrategy, choose_resize_strategy, target_dimensions, resize
from .contrast import EnhancementPath, choose_enhancement_path, enhance
from .denoise import denoise
from .steps import (
    PreprocessStep,
    ResizeStep,
    NoiseReductionStep,
    ContrastStep,
    Pipeline,
)
from .pipeline import build_pipeline, process
from .lazy import ImageMetadata, LazyImageHandle
from .batch import (
    BatchScheduler,
    CancellationToken,
    ChunkArena,
    WorkerPool,
    calculate_chunk_size,
    estimate_item_memory,
    process_batch,
)

__all__ = [
    # Data model
    "ColorModel",
    "PixelBuffer",
    "ProcessingOptions",
    "ProcessingResult",
    "ImageMetadata",
    "LazyImageHandle",
    # Errors
    "PreprocessingError",
    "InvalidDimensions",
    "InvalidOptions",
    "UnsupportedColorModel",
    "OutOfMemory",
    "ImageDecodeError",
    "Cancelled",
    # Stages
    "ResizeStrategy",
    "choose_resize_strategy",
    "target_dimensions",
    "resize",
    "EnhancementPath",
    "choose_enhancement_path",
    "enhance",
    "denoise",
    "expand_palette",
    "to_grayscale",
    "measure_contrast",
    # Function API
    "build_pipeline",
    "process",
    # Class-based API
    "PreprocessStep",
    "ResizeStep",
    "NoiseReductionStep",
    "ContrastStep",
    "Pipeline",
    # Batches
    "BatchScheduler",
    "CancellationToken",
    "ChunkArena",
    "WorkerPool",
    "calculate_chunk_size",
    "estimate_item_memory",
    "process_batch",
]
