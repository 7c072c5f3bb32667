"""
Exception hierarchy for the preprocessing pipeline.

Every error raised by a pipeline stage derives from PreprocessingError and
carries enough context (stage name, input dimensions) for a caller to log it
and decide whether to retry with different options, e.g. a smaller
max_dimension. The pipeline itself never retries.

Errors that also match a builtin category inherit from it, so callers that
already catch ValueError or MemoryError keep working.
"""

from __future__ import annotations

from typing import Any


class PreprocessingError(Exception):
    """Base class for all preprocessing failures.

    Attributes:
        stage: Name of the pipeline stage that failed, if known.
        dimensions: (width, height) of the buffer the stage received.
        completed_results: Results that finished before a batch was aborted.
            Always empty for single-image calls.
    """

    def __init__(
        self,
        message: str,
        *,
        stage: str | None = None,
        dimensions: tuple[int, int] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.dimensions = dimensions
        self.completed_results: list[Any] = []

    def with_context(
        self,
        stage: str | None = None,
        dimensions: tuple[int, int] | None = None,
    ) -> "PreprocessingError":
        """Fill in stage and dimensions unless a more specific site already did."""
        if self.stage is None:
            self.stage = stage
        if self.dimensions is None:
            self.dimensions = dimensions
        return self

    def __str__(self) -> str:
        parts = []
        if self.stage:
            parts.append(f"stage={self.stage}")
        if self.dimensions:
            parts.append(f"size={self.dimensions[0]}x{self.dimensions[1]}")
        if not parts:
            return self.message
        return f"{self.message} ({', '.join(parts)})"


class InvalidDimensions(PreprocessingError, ValueError):
    """A source or target dimension is not a positive integer."""


class InvalidOptions(PreprocessingError, ValueError):
    """ProcessingOptions failed validation."""


class UnsupportedColorModel(PreprocessingError, TypeError):
    """A stage received a color model it cannot interpret."""


class OutOfMemory(PreprocessingError, MemoryError):
    """Allocation failed while processing an image or planning a batch."""


class ImageDecodeError(PreprocessingError):
    """Encoded bytes behind a lazy handle could not be read."""


class Cancelled(PreprocessingError):
    """A batch was cancelled between chunks through its cancellation token."""
