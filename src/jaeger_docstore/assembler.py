"""Rebuild traces from flat span rows."""

import logging
from collections.abc import Iterable
from typing import Any

from jaeger_docstore.errors import MappingError, NotFound
from jaeger_docstore.mapping import document_to_span
from jaeger_docstore.models import Span, Trace
from jaeger_docstore.query import QueryBuilder
from jaeger_docstore.store.base import DocumentStore

logger = logging.getLogger(__name__)


def group_spans(rows: Iterable[dict[str, Any]], order: Iterable[str] = ()) -> list[Trace]:
    """Group decodable rows into traces.

    Traces whose ID appears in ``order`` come first, in that order; any
    others follow in order of first appearance.  Rows that fail to decode are
    logged and skipped.
    """
    grouped: dict[str, list[Span]] = {tid: [] for tid in order}
    for row in rows:
        try:
            span = document_to_span(row)
        except MappingError as exc:
            logger.warning("Skipping undecodable span row: %s", exc)
            continue
        grouped.setdefault(span.trace_id, []).append(span)
    return [Trace(trace_id=tid, spans=spans) for tid, spans in grouped.items() if spans]


class TraceAssembler:
    """Fetches spans for trace IDs and assembles them into traces."""

    def __init__(self, store: DocumentStore, builder: QueryBuilder) -> None:
        self.store = store
        self.builder = builder

    async def get_trace(self, trace_id: str) -> Trace:
        query = self.builder.trace_by_id(trace_id)
        logger.debug("%s query: %s", query.name, query.sql)
        rows = await self.store.query(query)
        logger.debug("Trace %s matched %d spans", trace_id, len(rows))
        if not rows:
            raise NotFound(f"trace {trace_id} not found")
        return Trace(trace_id=trace_id, spans=[document_to_span(row) for row in rows])

    async def find_traces(self, trace_ids: Iterable[str]) -> list[Trace]:
        ids = list(dict.fromkeys(trace_ids))
        if not ids:
            return []

        query = self.builder.traces_by_ids(ids)
        logger.debug("%s query: %s", query.name, query.sql)
        rows = await self.store.query(query)
        traces = group_spans(rows, order=ids)
        logger.debug("Fetched %d spans in %d traces for %d IDs", len(rows), len(traces), len(ids))
        return traces
