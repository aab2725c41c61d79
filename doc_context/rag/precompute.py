from __future__ import annotations

"""Background precomputation of chunk embeddings."""

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Sequence

from doc_context.rag.cache import TTLCache
from doc_context.rag.embedding_service import EmbeddingService
from doc_context.rag.types import DocumentChunk, EmbeddingVector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrecomputeTask:
    key: str
    chunks: tuple[DocumentChunk, ...]
    priority: int = 0


class EmbeddingPrecomputeQueue:
    """Bounded priority queue drained by a single worker task.

    The worker embeds each task's chunks in small batches and stores the
    embedded chunk list in the document-embedding cache. A task is skipped
    when its key is already queued or cached; a full queue rejects new tasks.
    """

    def __init__(
        self,
        service: EmbeddingService,
        cache: TTLCache[tuple[DocumentChunk, ...]],
        maxsize: int = 32,
        batch_size: int = 4,
        batch_delay: float = 0.1,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be greater than zero")
        self.service = service
        self.cache = cache
        self.maxsize = maxsize
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self._queue: asyncio.PriorityQueue[tuple[int, int, PrecomputeTask]] | None = None
        self._worker: asyncio.Task[None] | None = None
        self._pending: set[str] = set()
        self._counter = itertools.count()
        self._completed = 0
        self._failed = 0
        self._rejected = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def start(self) -> None:
        """Start the worker on the running event loop."""
        if self.running:
            return
        self._queue = asyncio.PriorityQueue(maxsize=self.maxsize)
        self._pending.clear()
        self._worker = asyncio.create_task(self._run(), name="embedding-precompute")
        logger.info("embedding_queue_started", extra={"maxsize": self.maxsize})

    async def stop(self) -> None:
        worker = self._worker
        self._worker = None
        if worker is None:
            return
        worker.cancel()
        try:
            await worker
        except asyncio.CancelledError:
            pass
        self._pending.clear()
        logger.info("embedding_queue_stopped", extra={"completed": self._completed})

    async def join(self) -> None:
        """Wait until every queued task has been processed."""
        if self._queue is not None and self.running:
            await self._queue.join()

    def enqueue(self, key: str, chunks: Sequence[DocumentChunk], priority: int = 0) -> bool:
        """Queue chunks for embedding; returns False when the task is not queued."""
        if self._queue is None or not self.running:
            return False
        if key in self._pending or key in self.cache or not chunks:
            return False
        task = PrecomputeTask(key=key, chunks=tuple(chunks), priority=priority)
        try:
            self._queue.put_nowait((-priority, next(self._counter), task))
        except asyncio.QueueFull:
            self._rejected += 1
            logger.warning("embedding_queue_full", extra={"key": key, "maxsize": self.maxsize})
            return False
        self._pending.add(key)
        return True

    async def _run(self) -> None:
        queue = self._queue
        if queue is None:
            return
        while True:
            _, _, task = await queue.get()
            try:
                await self._process(task)
            finally:
                self._pending.discard(task.key)
                queue.task_done()

    async def _process(self, task: PrecomputeTask) -> None:
        embedded: list[DocumentChunk] = []
        for offset in range(0, len(task.chunks), self.batch_size):
            batch = task.chunks[offset : offset + self.batch_size]
            results = await self.service.embed_many([chunk.content for chunk in batch])
            for chunk, result in zip(batch, results):
                if not isinstance(result, EmbeddingVector):
                    self._failed += 1
                    logger.warning(
                        "embedding_precompute_aborted",
                        extra={"key": task.key, "reason": result.reason},
                    )
                    return
                embedded.append(chunk.with_embedding(result.values))
            if offset + self.batch_size < len(task.chunks):
                await asyncio.sleep(self.batch_delay)
        self.cache.set(task.key, tuple(embedded))
        self._completed += 1
        logger.info(
            "embedding_precompute_complete",
            extra={"key": task.key, "chunks": len(embedded)},
        )

    def get_stats(self) -> dict[str, int | bool]:
        return {
            "running": self.running,
            "pending": self.pending,
            "maxsize": self.maxsize,
            "completed": self._completed,
            "failed": self._failed,
            "rejected": self._rejected,
        }
