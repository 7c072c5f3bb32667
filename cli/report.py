"""JSON report models for the qrprep CLI."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_serializer

from preprocessing import ImageMetadata, ProcessingOptions, ProcessingResult


class ImageInfo(BaseModel):
    """Header metadata of one input file."""
    name: str
    width: int
    height: int
    estimated_bytes: int
    is_large: bool
    format: str | None = None
    needs_downsampling: bool

    @classmethod
    def from_metadata(cls, name: str, metadata: ImageMetadata, max_dimension: int) -> "ImageInfo":
        return cls(
            name=name,
            width=metadata.width,
            height=metadata.height,
            estimated_bytes=metadata.estimated_bytes,
            is_large=metadata.is_large,
            format=metadata.format,
            needs_downsampling=metadata.width > max_dimension or metadata.height > max_dimension,
        )


class ItemReport(BaseModel):
    """Outcome for one processed image."""
    name: str
    output_path: str | None = None
    original_size: tuple[int, int]
    processed_size: tuple[int, int]
    color_model: str
    elapsed_ms: float
    memory_delta_bytes: int
    operations_applied: list[str] = Field(default_factory=list)
    contrast: float | None = None

    @field_serializer("original_size", "processed_size")
    def _serialize_size(self, v: tuple[int, int]) -> list[int]:
        """Emit as list for JSON compatibility (JSON has no tuple type)."""
        return list(v)

    @classmethod
    def from_result(
        cls,
        name: str,
        result: ProcessingResult,
        output_path: str | None = None,
        contrast: float | None = None,
    ) -> "ItemReport":
        summary = result.to_dict()
        return cls(
            name=name,
            output_path=output_path,
            original_size=result.original_size,
            processed_size=result.processed_size,
            color_model=summary["color_model"],
            elapsed_ms=summary["elapsed_ms"],
            memory_delta_bytes=result.memory_delta_bytes,
            operations_applied=summary["operations_applied"],
            contrast=contrast,
        )


class BatchReport(BaseModel):
    """Summary of a `qrprep process` run."""
    created_at: datetime = Field(default_factory=datetime.now)
    options: dict[str, Any]
    workers: int
    total_elapsed_ms: float
    items: list[ItemReport] = Field(default_factory=list)

    @staticmethod
    def options_dict(options: ProcessingOptions) -> dict[str, Any]:
        return {
            "enhance_contrast": options.enhance_contrast,
            "contrast_factor": options.contrast_factor,
            "reduce_noise": options.reduce_noise,
            "resize_if_large": options.resize_if_large,
            "max_dimension": options.max_dimension,
            "high_quality_resize": options.high_quality_resize,
        }
