"""Shared fixtures for jaeger-docstore tests."""

import re
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from jaeger_docstore.errors import UpstreamError
from jaeger_docstore.mapping import parse_timestamp
from jaeger_docstore.models import (
    DocumentStatus,
    KeyValue,
    Page,
    Process,
    Query,
    Span,
    StoreConfig,
)

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

_TAG_CLAUSE_RE = re.compile(r'spans\.kv\."((?:[^"]|"")*)" = :(tag_\d+)')
_LIMIT_RE = re.compile(r"LIMIT (\d+)$")

# ------------------------------------------------------------------
# In-memory document store
# ------------------------------------------------------------------


class FakeDocumentStore:
    """In-memory stand-in for the document store.

    Evaluates the named queries built by ``QueryBuilder`` in Python, so reads
    see exactly what the writer flushed.  Records every call for assertions.
    """

    def __init__(self, config: StoreConfig) -> None:
        self.config = config
        self.documents: dict[tuple[str, str], dict[str, dict[str, Any]]] = defaultdict(dict)
        self.workspaces: set[str] = set()
        self.collections: dict[tuple[str, str], int] = {}
        self.queries: list[Query] = []
        self.insert_calls: list[tuple[str, str, int]] = []
        self.page_requests: list[tuple[str, str]] = []
        self.closed = False
        self._results: dict[str, list[dict[str, Any]]] = {}
        self._seq = 0

    # -- Queries -----------------------------------------------------------

    async def query(self, query: Query) -> list[dict[str, Any]]:
        self.queries.append(query)
        return self._evaluate(query)

    async def query_page(self, query: Query, page_size: int) -> Page:
        self.queries.append(query)
        query_id = f"q{len(self.queries)}"
        self._results[query_id] = self._evaluate(query)
        return self._slice(query_id, 0, page_size)

    async def next_page(self, query_id: str, cursor: str, page_size: int) -> Page:
        self.page_requests.append((query_id, cursor))
        return self._slice(query_id, int(cursor), page_size)

    def _slice(self, query_id: str, offset: int, page_size: int) -> Page:
        rows = self._results[query_id]
        end = offset + page_size
        return Page(
            rows=rows[offset:end],
            query_id=query_id,
            cursor=str(end) if end < len(rows) else None,
        )

    # -- Documents ---------------------------------------------------------

    async def add_documents(
        self,
        workspace: str,
        collection: str,
        documents: list[dict[str, Any]],
    ) -> list[DocumentStatus]:
        self.insert_calls.append((workspace, collection, len(documents)))
        target = self.documents[(workspace, collection)]
        statuses = []
        for doc in documents:
            doc_id = doc.get("_id")
            if doc_id is None:
                self._seq += 1
                doc_id = f"doc-{self._seq}"
            target[doc_id] = {**doc, "_id": doc_id}
            statuses.append(DocumentStatus(id=doc_id, status="ADDED"))
        return statuses

    def spans(self) -> list[dict[str, Any]]:
        return list(self.documents[(self.config.workspace, self.config.spans)].values())

    def operations(self) -> list[dict[str, Any]]:
        return list(self.documents[(self.config.workspace, self.config.operations)].values())

    # -- Workspaces and collections ---------------------------------------

    async def get_workspace(self, workspace: str) -> dict[str, Any]:
        if workspace not in self.workspaces:
            raise UpstreamError(f"workspace {workspace} not found", status_code=404)
        return {"name": workspace}

    async def create_workspace(self, workspace: str) -> dict[str, Any]:
        if workspace in self.workspaces:
            raise UpstreamError(f"workspace {workspace} already exists", status_code=409)
        self.workspaces.add(workspace)
        return {"name": workspace}

    async def get_collection(self, workspace: str, collection: str) -> dict[str, Any]:
        if (workspace, collection) not in self.collections:
            raise UpstreamError(f"collection {collection} not found", status_code=404)
        return {"name": collection, "retention_secs": self.collections[(workspace, collection)]}

    async def create_collection(self, workspace: str, collection: str, retention_secs: int) -> dict[str, Any]:
        if (workspace, collection) in self.collections:
            raise UpstreamError(f"collection {collection} already exists", status_code=409)
        self.collections[(workspace, collection)] = retention_secs
        return {"name": collection, "retention_secs": retention_secs}

    async def close(self) -> None:
        self.closed = True

    # -- Query evaluation --------------------------------------------------

    def _evaluate(self, query: Query) -> list[dict[str, Any]]:
        params = {p.name: p.value for p in query.parameters}

        if query.name == "services":
            return [{"service": s} for s in sorted({op["service"] for op in self.operations()})]

        if query.name == "operations":
            pairs = {
                (op["operation"], op["span_kind"])
                for op in self.operations()
                if op["service"] == params["service"] and ("span_kind" not in params or op["span_kind"] == params["span_kind"])
            }
            return [{"operation": name, "span_kind": kind} for name, kind in sorted(pairs)]

        if query.name == "trace_by_id":
            return [s for s in self.spans() if s["trace_id"] == params["trace_id"]]

        if query.name == "traces_by_ids":
            wanted = set(params.values())
            return [s for s in self.spans() if s["trace_id"] in wanted]

        if query.name == "trace_ids":
            return self._trace_ids(query, params)

        raise AssertionError(f"unexpected query {query.name}")

    def _trace_ids(self, query: Query, params: dict[str, str]) -> list[dict[str, Any]]:
        tags = {key.replace('""', '"'): params[name] for key, name in _TAG_CLAUSE_RE.findall(query.sql)}
        start_min = parse_timestamp(params["start_time_min"])
        start_max = parse_timestamp(params["start_time_max"]) if "start_time_max" in params else None

        # MIN and ORDER BY run on the stored strings, not on parsed times
        earliest: dict[str, str] = {}
        for s in self.spans():
            start = parse_timestamp(s["start_time"])
            if "service" in params and s["process"]["service_name"] != params["service"]:
                continue
            if "operation" in params and s["operation_name"] != params["operation"]:
                continue
            if start < start_min or (start_max is not None and start > start_max):
                continue
            if "duration_min" in params and s["duration"] < int(params["duration_min"]):
                continue
            if "duration_max" in params and s["duration"] > int(params["duration_max"]):
                continue
            if any(s.get("kv", {}).get(k) != v for k, v in tags.items()):
                continue
            tid = s["trace_id"]
            earliest[tid] = min(s["start_time"], earliest.get(tid, s["start_time"]))

        ordered = sorted(earliest.items(), key=lambda item: item[0])
        ordered.sort(key=lambda item: item[1], reverse=True)
        limit = _LIMIT_RE.search(query.sql)
        if limit:
            ordered = ordered[: int(limit.group(1))]
        return [{"trace_id": tid, "start_time": start} for tid, start in ordered]


# ------------------------------------------------------------------
# Fixtures
# ------------------------------------------------------------------


@pytest.fixture
def store_config() -> StoreConfig:
    return StoreConfig(flush_interval=0.05)


@pytest.fixture
def fake_store(store_config: StoreConfig) -> FakeDocumentStore:
    return FakeDocumentStore(store_config)


@pytest.fixture
def make_span():
    """Factory for spans with sensible defaults."""

    def _make(
        trace_id: str = "1",
        span_id: str = "a",
        operation: str = "op",
        service: str = "svc",
        tags: list[KeyValue] | None = None,
        process_tags: list[KeyValue] | None = None,
        start_time: datetime = T0,
        duration: timedelta = timedelta(milliseconds=5),
    ) -> Span:
        return Span(
            trace_id=trace_id,
            span_id=span_id,
            operation_name=operation,
            start_time=start_time,
            duration=duration,
            tags=tags or [],
            process=Process(service_name=service, tags=process_tags or []),
        )

    return _make
