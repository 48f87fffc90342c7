"""DocumentStore protocol: the interface to the analytical document store."""

from typing import Any, Protocol

from jaeger_docstore.models import DocumentStatus, Page, Query


class DocumentStore(Protocol):
    """Client for a schema-less document store queried with SQL.

    Implementations must be async and safe for concurrent use by independent
    reads and the writer pool.  Every failure is reported as
    :class:`~jaeger_docstore.errors.UpstreamError`, with ``status_code`` set
    when the store returned one.
    """

    async def query(self, query: Query) -> list[dict[str, Any]]:
        """Execute a query and return all result rows."""
        ...

    async def query_page(self, query: Query, page_size: int) -> Page:
        """Execute a paginated query and return its first page."""
        ...

    async def next_page(self, query_id: str, cursor: str, page_size: int) -> Page:
        """Fetch the page at ``cursor`` of a previously started query."""
        ...

    async def add_documents(
        self,
        workspace: str,
        collection: str,
        documents: list[dict[str, Any]],
    ) -> list[DocumentStatus]:
        """Bulk-insert documents.  Documents with an existing ``_id`` are replaced."""
        ...

    async def get_workspace(self, workspace: str) -> dict[str, Any]: ...

    async def create_workspace(self, workspace: str) -> dict[str, Any]: ...

    async def get_collection(self, workspace: str, collection: str) -> dict[str, Any]: ...

    async def create_collection(
        self,
        workspace: str,
        collection: str,
        retention_secs: int,
    ) -> dict[str, Any]: ...

    async def close(self) -> None:
        """Release any resources held by the client."""
        ...
