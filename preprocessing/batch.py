"""
Memory-aware batch scheduling of pipeline runs.

A batch is split into chunks sized so that the estimated memory of one chunk
fits in half of the available memory, and never more than twice the worker
count. Chunks run one after another; inside a chunk, items fan out to a
bounded WorkerPool (one pipeline call per item) when there is more than one
item and more than one worker.

Each chunk gets a ChunkArena that owns everything decoded for it. When the
chunk is done the arena is reset, dropping those buffers in one step before
the next chunk starts. Results are always returned in input order.
"""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, Iterable, Sequence, Union

import psutil
from tqdm import tqdm

from config import (
    BYTES_PER_PIXEL,
    MEMORY_BUDGET_FRACTION,
    MEMORY_SAFETY_MULTIPLIER,
    PARALLELISM_CHUNK_FACTOR,
)
from .buffer import PixelBuffer
from .config import ProcessingOptions, ProcessingResult
from .errors import Cancelled, OutOfMemory, PreprocessingError
from .lazy import LazyImageHandle, estimate_decoded_bytes
from .pipeline import process

logger = logging.getLogger(__name__)

BatchItem = Union[PixelBuffer, LazyImageHandle]
ProcessFn = Callable[[PixelBuffer, ProcessingOptions], ProcessingResult]

MIB = 1024 * 1024


class WorkerPool:
    """Bounded pool of worker threads for independent pipeline calls.

    OpenCV and numpy release the GIL in their inner loops, so threads give
    real parallelism for this workload.

    Usage:
        with WorkerPool(max_workers=4) as pool:
            scheduler = BatchScheduler(pool)
            results = scheduler.process_batch(buffers, options)
    """

    def __init__(self, max_workers: int | None = None):
        if max_workers is None:
            max_workers = os.cpu_count() or 1
        if max_workers <= 0:
            raise ValueError(f"max_workers must be positive, got {max_workers}")
        self.size = max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="preprocess",
        )
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, fn, *args, **kwargs) -> Future:
        if self._closed:
            raise RuntimeError("WorkerPool has been shut down")
        return self._executor.submit(fn, *args, **kwargs)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work; with wait=True, block until running tasks finish."""
        self._closed = True
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True)

    def __repr__(self) -> str:
        return f"WorkerPool(size={self.size}, closed={self._closed})"


class CancellationToken:
    """Cooperative cancellation flag checked by the scheduler between chunks."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


class ChunkArena:
    """Owner of all memory decoded for a single chunk.

    Pixel buffers passed in by the caller are used as-is and never owned.
    Buffers decoded from lazy handles belong to the arena and are released
    together by reset().
    """

    def __init__(self):
        self._owned: list[PixelBuffer] = []
        self._reserved = 0
        self._lock = threading.Lock()

    @property
    def bytes_in_use(self) -> int:
        return self._reserved

    def __len__(self) -> int:
        return len(self._owned)

    def adopt(self, item: BatchItem) -> PixelBuffer:
        """Return pixel data for an item, decoding lazy handles into the arena."""
        if isinstance(item, PixelBuffer):
            return item
        if not isinstance(item, LazyImageHandle):
            raise TypeError(
                f"Batch items must be PixelBuffer or LazyImageHandle, got {type(item).__name__}"
            )

        if item.is_loaded:
            return item.materialize()

        buffer = item.decode()
        with self._lock:
            self._owned.append(buffer)
            self._reserved += buffer.nbytes
        return buffer

    def reset(self) -> int:
        """Release everything the arena owns; returns the bytes released."""
        with self._lock:
            released = self._reserved
            self._owned.clear()
            self._reserved = 0
        return released


def item_dimensions(item: BatchItem) -> tuple[int, int]:
    """(width, height) of a batch item without decoding lazy handles."""
    if isinstance(item, PixelBuffer):
        return item.dimensions
    if isinstance(item, LazyImageHandle):
        try:
            metadata = item.metadata()
        except PreprocessingError as exc:
            raise exc.with_context(stage="decode")
        return metadata.width, metadata.height
    raise TypeError(
        f"Batch items must be PixelBuffer or LazyImageHandle, got {type(item).__name__}"
    )


def estimate_item_memory(width: int, height: int, options: ProcessingOptions) -> int:
    """Worst-case bytes needed to process one image of the given size.

    Counts the decoded image plus a full-size resize intermediate, doubled
    as a safety margin for the per-pixel passes.
    """
    estimate = estimate_decoded_bytes(width, height)
    if options.resize_if_large:
        estimate += options.max_dimension * options.max_dimension * BYTES_PER_PIXEL
    return estimate * MEMORY_SAFETY_MULTIPLIER


def calculate_chunk_size(
    items: Sequence[BatchItem],
    options: ProcessingOptions,
    available_bytes: int,
    parallelism: int,
) -> int:
    """Number of items to process per chunk.

    Plans against the largest item in the batch and half of the available
    memory; at least 1, at most PARALLELISM_CHUNK_FACTOR x parallelism.
    """
    if not items:
        return 1

    per_item = max(
        estimate_item_memory(*item_dimensions(item), options) for item in items
    )
    safe_bytes = int(available_bytes * MEMORY_BUDGET_FRACTION)
    chunk_size = max(1, safe_bytes // per_item)
    return min(chunk_size, max(1, parallelism) * PARALLELISM_CHUNK_FACTOR)


def available_memory() -> int:
    """Bytes of memory currently available to the process."""
    return int(psutil.virtual_memory().available)


class BatchScheduler:
    """Applies the pipeline to batches of images within a memory budget.

    Attributes:
        pool: WorkerPool used for fan-out within a chunk.
        memory_budget: Fixed number of bytes to plan against. When None the
            currently available system memory is queried for every batch.
        show_progress: Display a tqdm progress bar while processing.
    """

    def __init__(
        self,
        pool: WorkerPool | None = None,
        memory_budget: int | None = None,
        show_progress: bool = False,
        process_fn: ProcessFn = process,
    ):
        if memory_budget is not None and memory_budget <= 0:
            raise ValueError(f"memory_budget must be positive, got {memory_budget}")
        self._owns_pool = pool is None
        self.pool = pool if pool is not None else WorkerPool()
        self.memory_budget = memory_budget
        self.show_progress = show_progress
        self._process_fn = process_fn

    def close(self) -> None:
        """Shut down the pool if this scheduler created it."""
        if self._owns_pool:
            self.pool.shutdown(wait=True)

    def __enter__(self) -> "BatchScheduler":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def plan_chunks(
        self,
        items: Sequence[BatchItem],
        options: ProcessingOptions,
    ) -> list[list[BatchItem]]:
        """Split items into consecutive chunks that fit the memory budget."""
        budget = self.memory_budget if self.memory_budget is not None else available_memory()
        chunk_size = calculate_chunk_size(items, options, budget, self.pool.size)
        logger.info(
            "Planning %d images in chunks of up to %d (budget %.1f MiB, %d workers)",
            len(items), chunk_size, budget / MIB, self.pool.size,
        )
        return [list(items[i:i + chunk_size]) for i in range(0, len(items), chunk_size)]

    def process_batch(
        self,
        items: Iterable[BatchItem],
        options: ProcessingOptions | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[ProcessingResult]:
        """Process every item exactly once and return results in input order.

        Args:
            items: PixelBuffers and/or LazyImageHandles.
            options: Options shared by every item. Defaults if None.
            cancel_token: Optional token checked before each chunk starts.

        Returns:
            One ProcessingResult per item, at the item's index.

        Raises:
            InvalidOptions: If the options are invalid.
            Cancelled: If the token was cancelled before all chunks ran.
            PreprocessingError: If an item fails. The chunk is aborted and
                `completed_results` holds the results of earlier chunks.
        """
        if options is None:
            options = ProcessingOptions()
        options.validate()

        items = list(items)
        if not items:
            return []

        chunks = self.plan_chunks(items, options)
        results: list[ProcessingResult] = []

        with tqdm(total=len(items), desc="Preprocessing", disable=not self.show_progress) as progress:
            for index, chunk in enumerate(chunks):
                if cancel_token is not None and cancel_token.is_cancelled:
                    error = Cancelled(
                        f"Batch cancelled after {len(results)} of {len(items)} images"
                    )
                    error.completed_results = list(results)
                    raise error

                arena = ChunkArena()
                try:
                    results.extend(self._process_chunk(chunk, options, arena))
                except PreprocessingError as exc:
                    exc.completed_results = list(results)
                    raise
                except MemoryError as exc:
                    error = OutOfMemory(f"Out of memory in chunk {index + 1}/{len(chunks)}")
                    error.completed_results = list(results)
                    raise error from exc
                finally:
                    released = arena.reset()

                if len(chunks) > 1:
                    logger.debug(
                        "Chunk %d/%d done; released %.1f MiB of decoded input",
                        index + 1, len(chunks), released / MIB,
                    )
                progress.update(len(chunk))

        return results

    def _process_item(
        self,
        item: BatchItem,
        options: ProcessingOptions,
        arena: ChunkArena,
    ) -> ProcessingResult:
        try:
            buffer = arena.adopt(item)
        except PreprocessingError as exc:
            raise exc.with_context(stage="decode")
        return self._process_fn(buffer, options)

    def _process_chunk(
        self,
        chunk: list[BatchItem],
        options: ProcessingOptions,
        arena: ChunkArena,
    ) -> list[ProcessingResult]:
        if len(chunk) <= 1 or self.pool.size <= 1:
            return [self._process_item(item, options, arena) for item in chunk]

        futures = [
            self.pool.submit(self._process_item, item, options, arena)
            for item in chunk
        ]
        try:
            # Collected positionally, not in completion order
            return [future.result() for future in futures]
        except BaseException:
            for future in futures:
                future.cancel()
            # Work already running finishes before the error surfaces
            wait(futures)
            raise


def process_batch(
    items: Iterable[BatchItem],
    options: ProcessingOptions | None = None,
    *,
    max_workers: int | None = None,
    memory_budget: int | None = None,
    show_progress: bool = False,
) -> list[ProcessingResult]:
    """Process a batch with a temporary WorkerPool.

    Convenience wrapper around BatchScheduler for one-off batches.
    """
    with WorkerPool(max_workers) as pool:
        scheduler = BatchScheduler(
            pool,
            memory_budget=memory_budget,
            show_progress=show_progress,
        )
        return scheduler.process_batch(items, options)
