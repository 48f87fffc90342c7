"""jaeger-docstore: Jaeger span storage on a SQL-queryable document store."""

from jaeger_docstore._version import __version__
from jaeger_docstore.config import configure_logging, load_config
from jaeger_docstore.errors import (
    InputError,
    MappingError,
    NotFound,
    StoreError,
    UpstreamError,
)
from jaeger_docstore.models import (
    KeyValue,
    Operation,
    OperationQueryParameters,
    PluginConfig,
    Process,
    Span,
    StoreConfig,
    Trace,
    TraceQueryParameters,
    ValueType,
)
from jaeger_docstore.spanstore import SpanStore, create_span_store

__all__ = [
    "__version__",
    "create_span_store",
    "load_config",
    "configure_logging",
    "SpanStore",
    "StoreConfig",
    "PluginConfig",
    "Span",
    "Process",
    "KeyValue",
    "ValueType",
    "Trace",
    "Operation",
    "OperationQueryParameters",
    "TraceQueryParameters",
    "StoreError",
    "InputError",
    "NotFound",
    "UpstreamError",
    "MappingError",
]
