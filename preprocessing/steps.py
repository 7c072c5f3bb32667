"""
Pipeline step classes with a common interface.

Each step is a frozen dataclass implementing PreprocessStep. Steps are pure:
they take a PixelBuffer and return a new PixelBuffer without touching the
input samples.

Usage:
    from preprocessing.steps import ResizeStep, NoiseReductionStep, Pipeline

    pipeline = Pipeline(steps=[
        ResizeStep(max_dimension=1024),
        NoiseReductionStep(),
    ])
    result = pipeline.process(buffer)
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import cv2
import psutil

from config import DEFAULT_CONTRAST_FACTOR, MAX_IMAGE_SIZE
from .buffer import PixelBuffer
from .config import (
    OP_CONTRAST_ENHANCEMENT,
    OP_NOISE_REDUCTION,
    OP_RESIZE,
    ProcessingResult,
)
from .contrast import enhance
from .denoise import denoise
from .errors import OutOfMemory, PreprocessingError
from .resize import resize

logger = logging.getLogger(__name__)

_PROCESS = psutil.Process()


def _resident_bytes() -> int:
    return int(_PROCESS.memory_info().rss)


class PreprocessStep(ABC):
    """Base class for pipeline steps.

    Steps must never mutate the buffer they receive; each returns a newly
    allocated buffer (or the input itself when it decides not to run).
    """

    @abstractmethod
    def apply(self, buffer: PixelBuffer) -> PixelBuffer:
        """Apply this step to a buffer.

        Args:
            buffer: Input buffer, owned by the caller.

        Returns:
            Processed buffer.
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Operation name recorded in ProcessingResult.operations_applied."""
        pass

    def applies_to(self, buffer: PixelBuffer) -> bool:
        """Whether the step has any work to do for this buffer.

        Steps that return False are skipped and not recorded.
        """
        return True


@dataclass(frozen=True)
class ResizeStep(PreprocessStep):
    """Downscale buffers whose width or height exceeds max_dimension.

    Attributes:
        max_dimension: Longest side allowed.
        high_quality: Use multi-step halving for ratios above 2x.
    """

    max_dimension: int = MAX_IMAGE_SIZE
    high_quality: bool = True

    def apply(self, buffer: PixelBuffer) -> PixelBuffer:
        return resize(buffer, self.max_dimension, self.high_quality)

    def applies_to(self, buffer: PixelBuffer) -> bool:
        return buffer.width > self.max_dimension or buffer.height > self.max_dimension

    @property
    def name(self) -> str:
        return OP_RESIZE


@dataclass(frozen=True)
class NoiseReductionStep(PreprocessStep):
    """3x3 per-channel median filter with untouched borders."""

    def apply(self, buffer: PixelBuffer) -> PixelBuffer:
        return denoise(buffer)

    @property
    def name(self) -> str:
        return OP_NOISE_REDUCTION


@dataclass(frozen=True)
class ContrastStep(PreprocessStep):
    """Linear contrast stretch around the intensity midpoint.

    Attributes:
        factor: Stretch factor; 1.0 leaves samples unchanged.
    """

    factor: float = DEFAULT_CONTRAST_FACTOR

    def apply(self, buffer: PixelBuffer) -> PixelBuffer:
        return enhance(buffer, self.factor)

    @property
    def name(self) -> str:
        return OP_CONTRAST_ENHANCEMENT


@dataclass
class Pipeline:
    """A sequence of steps applied to one buffer at a time.

    The output of each step is the input of the next. Steps run strictly in
    list order; a failing step aborts the run and nothing is retried.

    Attributes:
        steps: PreprocessStep instances to apply in order.
    """

    steps: list[PreprocessStep] = field(default_factory=list)

    def process(self, buffer: PixelBuffer) -> ProcessingResult:
        """Run every applicable step on `buffer`.

        Returns:
            ProcessingResult with the final buffer, sizes, end-to-end timing,
            approximate memory delta and the names of the steps that ran.

        Raises:
            PreprocessingError: If a step fails. The error names the step and
                the dimensions of the buffer it received.
        """
        start = time.perf_counter()
        initial_memory = _resident_bytes()

        applied: list[str] = []
        current = buffer
        for step in self.steps:
            if not step.applies_to(current):
                logger.debug("Skipping %s for %dx%d", step.name, current.width, current.height)
                continue
            logger.debug("Running %s on %dx%d", step.name, current.width, current.height)
            current = self._run_step(step, current)
            applied.append(step.name)

        elapsed_ms = (time.perf_counter() - start) * 1000.0
        memory_delta = _resident_bytes() - initial_memory

        logger.debug(
            "Processed %dx%d -> %dx%d in %.1f ms [%s]",
            buffer.width, buffer.height, current.width, current.height,
            elapsed_ms, ", ".join(applied) or "no-op",
        )

        return ProcessingResult(
            buffer=current,
            original_size=buffer.dimensions,
            processed_size=current.dimensions,
            elapsed_ms=elapsed_ms,
            memory_delta_bytes=memory_delta,
            operations_applied=tuple(applied),
        )

    @staticmethod
    def _run_step(step: PreprocessStep, buffer: PixelBuffer) -> PixelBuffer:
        dimensions = buffer.dimensions
        try:
            return step.apply(buffer)
        except PreprocessingError as exc:
            raise exc.with_context(step.name, dimensions)
        except MemoryError as exc:
            raise OutOfMemory(
                f"Out of memory in {step.name}",
                stage=step.name,
                dimensions=dimensions,
            ) from exc
        except cv2.error as exc:
            raise PreprocessingError(
                f"OpenCV failed in {step.name}: {exc}",
                stage=step.name,
                dimensions=dimensions,
            ) from exc

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self):
        return iter(self.steps)
