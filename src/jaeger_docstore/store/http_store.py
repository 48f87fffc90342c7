"""httpx-based DocumentStore talking to the store's REST API."""

import logging
from typing import Any

import httpx

from jaeger_docstore.errors import UpstreamError
from jaeger_docstore.models import DocumentStatus, Page, Query

logger = logging.getLogger(__name__)

_BASE = "/v1/orgs/self"


class HttpDocumentStore:
    """Async REST client for the analytical document store.

    One ``httpx.AsyncClient`` is shared by every caller; it is created on
    construction and released by :meth:`close`.
    """

    def __init__(
        self,
        api_server: str,
        api_key: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_server:
            raise ValueError("api_server is required")
        if "://" not in api_server:
            api_server = f"https://{api_server}"
        self.api_server = api_server.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self.api_server,
            headers={"Authorization": f"ApiKey {api_key}"},
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def query(self, query: Query) -> list[dict[str, Any]]:
        body = await self._request("POST", f"{_BASE}/queries", json={"sql": self._sql(query)})
        return list(body.get("results") or [])

    async def query_page(self, query: Query, page_size: int) -> Page:
        sql = self._sql(query)
        sql["paginate"] = True
        sql["initial_paginate_response_doc_count"] = page_size
        body = await self._request("POST", f"{_BASE}/queries", json={"sql": sql})
        return self._page(body, body.get("query_id") or "")

    async def next_page(self, query_id: str, cursor: str, page_size: int) -> Page:
        body = await self._request(
            "GET",
            f"{_BASE}/queries/{query_id}/pages",
            params={"cursor": cursor, "docs": page_size},
        )
        return self._page(body, query_id)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def add_documents(
        self,
        workspace: str,
        collection: str,
        documents: list[dict[str, Any]],
    ) -> list[DocumentStatus]:
        body = await self._request(
            "POST",
            f"{_BASE}/ws/{workspace}/collections/{collection}/docs",
            json={"data": documents},
        )
        statuses: list[DocumentStatus] = []
        for item in body.get("data") or []:
            error = item.get("error")
            if isinstance(error, dict):
                error = error.get("message") or str(error)
            statuses.append(DocumentStatus(id=item.get("_id"), status=item.get("status") or "", error=error))
        return statuses

    # ------------------------------------------------------------------
    # Workspaces and collections
    # ------------------------------------------------------------------

    async def get_workspace(self, workspace: str) -> dict[str, Any]:
        body = await self._request("GET", f"{_BASE}/ws/{workspace}")
        return body.get("data") or {}

    async def create_workspace(self, workspace: str) -> dict[str, Any]:
        body = await self._request("POST", f"{_BASE}/ws", json={"name": workspace})
        return body.get("data") or {}

    async def get_collection(self, workspace: str, collection: str) -> dict[str, Any]:
        body = await self._request("GET", f"{_BASE}/ws/{workspace}/collections/{collection}")
        return body.get("data") or {}

    async def create_collection(
        self,
        workspace: str,
        collection: str,
        retention_secs: int,
    ) -> dict[str, Any]:
        body = await self._request(
            "POST",
            f"{_BASE}/ws/{workspace}/collections",
            json={"name": collection, "retention_secs": retention_secs},
        )
        return body.get("data") or {}

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            resp = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"{method} {path} failed: {exc}") from exc

        if resp.status_code >= 400:
            raise UpstreamError(
                f"{method} {path} returned {resp.status_code}: {self._error_message(resp)}",
                status_code=resp.status_code,
            )
        try:
            body = resp.json()
        except ValueError as exc:
            raise UpstreamError(f"{method} {path} returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise UpstreamError(f"{method} {path} returned {type(body).__name__}, expected an object")
        return body

    @staticmethod
    def _sql(query: Query) -> dict[str, Any]:
        return {
            "query": query.sql,
            "parameters": [p.model_dump() for p in query.parameters],
        }

    @staticmethod
    def _page(body: dict[str, Any], query_id: str) -> Page:
        pagination = body.get("pagination") or {}
        return Page(
            rows=list(body.get("results") or []),
            query_id=query_id,
            cursor=pagination.get("next_cursor") or None,
        )

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return resp.text
        if isinstance(body, dict):
            return str(body.get("message") or body)
        return str(body)
