"""Batched, fire-and-forget document writer.

Callers hand documents to :meth:`BatchedWriter.enqueue` and return
immediately; a fixed pool of worker tasks drains the shared request queue,
groups documents per destination collection and bulk-inserts them.

Backpressure: the request queue is bounded and ``enqueue`` blocks the
submitter while it is full.  Failed flushes are logged and dropped.
"""

import asyncio
import logging
from typing import Any

from pydantic import BaseModel

from jaeger_docstore.models import WriteRequest
from jaeger_docstore.store.base import DocumentStore

logger = logging.getLogger(__name__)

_STOP = object()

Destination = tuple[str, str]


class WriterStats(BaseModel):
    flushes: int = 0
    documents_written: int = 0
    documents_failed: int = 0


class BatchedWriter:
    """Fixed-size asyncio worker pool flushing on batch size or interval.

    Each worker owns its buffers.  A worker's buffers are flushed
    ``flush_interval`` seconds after the first document entered them, or
    per destination as soon as one holds ``batch_size`` documents.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        workers: int = 3,
        flush_interval: float = 1.0,
        batch_size: int = 500,
        queue_size: int = 1000,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be positive")
        self.store = store
        self.workers = workers
        self.flush_interval = flush_interval
        self.batch_size = batch_size
        self.stats = WriterStats()
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=queue_size)
        self._tasks: list[asyncio.Task[None]] = []
        self._stopped = False

    @property
    def running(self) -> bool:
        return bool(self._tasks) and not self._stopped

    def start(self) -> None:
        if self._stopped:
            raise RuntimeError("writer is stopped")
        if self._tasks:
            return
        self._tasks = [asyncio.create_task(self._run(i)) for i in range(self.workers)]
        logger.info("Started %d writer workers", self.workers)

    async def enqueue(self, request: WriteRequest) -> None:
        """Queue ``request`` for writing.  Blocks while the queue is full."""
        if self._stopped:
            raise RuntimeError("writer is stopped")
        if not self._tasks:
            self.start()
        await self._queue.put(request)

    async def stop(self) -> None:
        """Drain the queue, flush every buffer and wait for the workers to exit."""
        if self._stopped:
            return
        self._stopped = True
        if not self._tasks:
            return
        logger.info("Stopping writer, %d requests pending", self._queue.qsize())
        for _ in self._tasks:
            await self._queue.put(_STOP)
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    async def _run(self, index: int) -> None:
        loop = asyncio.get_running_loop()
        buffers: dict[Destination, list[dict[str, Any]]] = {}
        deadline: float | None = None

        while True:
            timeout = None if deadline is None else max(0.0, deadline - loop.time())
            try:
                item = await asyncio.wait_for(self._queue.get(), timeout)
            except asyncio.TimeoutError:
                await self._flush_all(buffers)
                deadline = None
                continue

            if item is _STOP:
                await self._flush_all(buffers)
                logger.debug("Writer worker %d exited", index)
                return

            key = (item.workspace, item.collection)
            buffer = buffers.setdefault(key, [])
            buffer.append(item.document)
            if deadline is None:
                deadline = loop.time() + self.flush_interval

            if len(buffer) >= self.batch_size:
                await self._flush(key, buffers.pop(key))
                if not buffers:
                    deadline = None

    async def _flush_all(self, buffers: dict[Destination, list[dict[str, Any]]]) -> None:
        for key in list(buffers):
            await self._flush(key, buffers.pop(key))

    async def _flush(self, key: Destination, documents: list[dict[str, Any]]) -> None:
        if not documents:
            return
        workspace, collection = key
        self.stats.flushes += 1
        try:
            statuses = await self.store.add_documents(workspace, collection, documents)
        except Exception:
            self.stats.documents_failed += len(documents)
            logger.exception(
                "Failed to write %d documents to %s.%s",
                len(documents),
                workspace,
                collection,
            )
            return

        failed = [s for s in statuses if s.error or s.status.upper() == "ERROR"]
        for status in failed:
            logger.warning(
                "Document %s rejected by %s.%s: %s",
                status.id,
                workspace,
                collection,
                status.error,
            )
        self.stats.documents_failed += len(failed)
        self.stats.documents_written += len(documents) - len(failed)
        logger.debug("Flushed %d documents to %s.%s", len(documents), workspace, collection)
