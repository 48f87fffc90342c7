"""Cursor-driven streaming of large query results.

A background producer task walks the pages of a query and hands rows to the
consumer through a bounded queue, so at most ``buffer_size`` rows are held in
memory regardless of the result size.
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from typing import Any

from jaeger_docstore.models import Page, Query
from jaeger_docstore.store.base import DocumentStore

logger = logging.getLogger(__name__)

_DONE = object()


class _Failure:
    def __init__(self, exc: BaseException) -> None:
        self.exc = exc


class PaginatedReader:
    """Streams the rows of a paginated query.

    Each call to :meth:`rows` issues a new query; the returned iterator is
    single-use.
    """

    def __init__(self, store: DocumentStore, page_size: int = 1000, buffer_size: int | None = None) -> None:
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self.store = store
        self.page_size = page_size
        self.buffer_size = buffer_size or page_size

    async def rows(self, query: Query, cancel: asyncio.Event | None = None) -> AsyncIterator[dict[str, Any]]:
        """Yield every row of ``query``.

        Setting ``cancel`` stops further page requests and ends the iteration.
        Store failures are re-raised here unchanged.
        """
        queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=self.buffer_size)
        producer = asyncio.create_task(self._produce(query, queue))
        try:
            while True:
                item = await self._next(queue, cancel)
                if item is _DONE:
                    return
                if item is None:
                    logger.debug("%s query cancelled", query.name)
                    return
                if isinstance(item, _Failure):
                    raise item.exc
                yield item
        finally:
            if not producer.done():
                producer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await producer

    async def _produce(self, query: Query, queue: asyncio.Queue[Any]) -> None:
        pages = 0
        try:
            page = await self.store.query_page(query, self.page_size)
            while True:
                pages += 1
                for row in page.rows:
                    await queue.put(row)
                if not self._has_more(page):
                    break
                assert page.cursor is not None
                page = await self.store.next_page(page.query_id, page.cursor, self.page_size)
        except Exception as exc:
            await queue.put(_Failure(exc))
            return
        logger.debug("%s query read %d pages", query.name, pages)
        await queue.put(_DONE)

    def _has_more(self, page: Page) -> bool:
        return bool(page.cursor) and len(page.rows) >= self.page_size

    @staticmethod
    async def _next(queue: asyncio.Queue[Any], cancel: asyncio.Event | None) -> Any:
        """Next queue item, or ``None`` once ``cancel`` is set."""
        if cancel is None:
            return await queue.get()
        if cancel.is_set():
            return None

        getter = asyncio.ensure_future(queue.get())
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({getter, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (getter, waiter):
                if not task.done():
                    task.cancel()
        if getter.done() and not getter.cancelled():
            return getter.result()
        return None
