"""Span store: the read and write operations exposed to the tracing host."""

import asyncio
import contextlib
import logging

from jaeger_docstore.assembler import TraceAssembler
from jaeger_docstore.mapping import operation_document, span_to_document
from jaeger_docstore.models import (
    Operation,
    OperationQueryParameters,
    PluginConfig,
    Span,
    StoreConfig,
    Trace,
    TraceQueryParameters,
    WriteRequest,
)
from jaeger_docstore.pagination import PaginatedReader
from jaeger_docstore.provisioner import SchemaProvisioner
from jaeger_docstore.query import QueryBuilder
from jaeger_docstore.store.base import DocumentStore
from jaeger_docstore.writer import BatchedWriter

logger = logging.getLogger(__name__)


class SpanStore:
    """Jaeger span reader and writer backed by a :class:`DocumentStore`.

    The store holds no per-request state; every operation builds its own
    query and may run concurrently with any other.  Writes are handed to a
    :class:`BatchedWriter` and are not confirmed to the caller.
    """

    def __init__(self, store: DocumentStore, config: StoreConfig | None = None) -> None:
        self.store = store
        self.config = config or StoreConfig()
        self.builder = QueryBuilder(self.config)
        self.reader = PaginatedReader(store, page_size=self.config.page_size)
        self.assembler = TraceAssembler(store, self.builder)
        self.provisioner = SchemaProvisioner(store, self.config)
        self.writer = BatchedWriter(
            store,
            workers=self.config.workers,
            flush_interval=self.config.flush_interval,
            batch_size=self.config.batch_size,
            queue_size=self.config.queue_size,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def setup(self) -> None:
        """Provision the workspace and collections (when enabled) and start writing."""
        await self.provisioner.provision()
        self.writer.start()

    async def close(self) -> None:
        """Flush pending writes and release the document store."""
        await self.writer.stop()
        await self.store.close()

    async def __aenter__(self):
        await self.setup()
        return self

    async def __aexit__(self, *exc):
        await self.close()

    # The same store serves live and archive storage.

    def span_reader(self) -> "SpanStore":
        return self

    def span_writer(self) -> "SpanStore":
        return self

    def archive_span_reader(self) -> "SpanStore":
        return self

    def archive_span_writer(self) -> "SpanStore":
        return self

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def write_span(self, span: Span) -> None:
        """Queue the span document and its operation summary."""
        await self.writer.enqueue(
            WriteRequest(
                workspace=self.config.workspace,
                collection=self.config.spans,
                document=span_to_document(span, index_tags=self.config.index_tags),
            )
        )
        await self.writer.enqueue(
            WriteRequest(
                workspace=self.config.workspace,
                collection=self.config.operations,
                document=operation_document(span),
            )
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_services(self) -> list[str]:
        query = self.builder.services()
        rows = await self.store.query(query)

        services: list[str] = []
        for row in rows:
            service = row.get("service")
            if not isinstance(service, str):
                logger.warning("Ignoring service row %s", row)
                continue
            services.append(service)
        logger.debug("Found %d services", len(services))
        return services

    async def get_operations(self, params: OperationQueryParameters) -> list[Operation]:
        query = self.builder.operations(params)
        logger.debug("%s query for service=%s kind=%r", query.name, params.service_name, params.span_kind)
        rows = await self.store.query(query)

        operations: list[Operation] = []
        for row in rows:
            name = row.get("operation")
            kind = row.get("span_kind") or ""
            if not isinstance(name, str) or not isinstance(kind, str):
                logger.warning("Ignoring operation row %s", row)
                continue
            operations.append(Operation(name=name, span_kind=kind))
        logger.debug("Found %d operations", len(operations))
        return operations

    async def get_trace(self, trace_id: str) -> Trace:
        return await self.assembler.get_trace(trace_id)

    async def find_trace_ids(
        self,
        params: TraceQueryParameters,
        cancel: asyncio.Event | None = None,
    ) -> list[str]:
        query = self.builder.trace_ids(params)
        logger.debug("%s query: %s", query.name, query.sql)

        trace_ids: list[str] = []
        async with contextlib.aclosing(self.reader.rows(query, cancel)) as rows:
            async for row in rows:
                trace_id = row.get("trace_id")
                if not isinstance(trace_id, str) or not trace_id:
                    logger.warning("Ignoring trace ID row %s", row)
                    continue
                trace_ids.append(trace_id)
        logger.debug("Found %d trace IDs", len(trace_ids))
        return trace_ids

    async def find_traces(self, params: TraceQueryParameters) -> list[Trace]:
        trace_ids = await self.find_trace_ids(params)
        return await self.assembler.find_traces(trace_ids)


# ------------------------------------------------------------------
# Factory
# ------------------------------------------------------------------


def create_span_store(config: PluginConfig) -> SpanStore:
    """Build a :class:`SpanStore` talking to the configured API server."""
    from jaeger_docstore.store.http_store import HttpDocumentStore

    store = HttpDocumentStore(api_server=config.api_server, api_key=config.api_key)
    logger.info(
        "Store configuration: workspace=%s spans=%s operations=%s apiserver=%s create=%s retention_secs=%d",
        config.config.workspace,
        config.config.spans,
        config.config.operations,
        store.api_server,
        config.config.create,
        config.config.retention_secs,
    )
    return SpanStore(store, config.config)
