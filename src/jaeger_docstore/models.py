"""Pydantic data models for jaeger-docstore."""

import re
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")

DEFAULT_RETENTION_SECS = 7 * 24 * 60 * 60  # 7 days


# ------------------------------------------------------------------
# Span model
# ------------------------------------------------------------------


class ValueType(str, Enum):
    STRING = "string"
    BOOL = "bool"
    INT64 = "int64"
    FLOAT64 = "float64"
    BINARY = "binary"


class KeyValue(BaseModel):
    """A typed tag.  Only the field matching ``v_type`` is meaningful."""

    key: str
    v_type: ValueType = ValueType.STRING
    v_str: str = ""
    v_bool: bool = False
    v_int64: int = 0
    v_float64: float = 0.0
    v_binary: bytes = b""


class Process(BaseModel):
    service_name: str
    tags: list[KeyValue] = Field(default_factory=list)


class SpanRefType(str, Enum):
    CHILD_OF = "child_of"
    FOLLOWS_FROM = "follows_from"


class SpanRef(BaseModel):
    trace_id: str
    span_id: str
    ref_type: SpanRefType = SpanRefType.CHILD_OF


class Log(BaseModel):
    timestamp: datetime
    fields: list[KeyValue] = Field(default_factory=list)


class Span(BaseModel):
    """A single timed unit of work, as produced by the tracing system."""

    trace_id: str
    span_id: str
    operation_name: str
    references: list[SpanRef] = Field(default_factory=list)
    flags: int = 0
    start_time: datetime
    duration: timedelta = timedelta(0)
    tags: list[KeyValue] = Field(default_factory=list)
    logs: list[Log] = Field(default_factory=list)
    process: Process
    warnings: list[str] = Field(default_factory=list)


class Trace(BaseModel):
    """Read-time aggregate of all spans sharing a trace ID."""

    trace_id: str
    spans: list[Span] = Field(default_factory=list)


class Operation(BaseModel):
    name: str
    span_kind: str = ""


# ------------------------------------------------------------------
# Query parameters
# ------------------------------------------------------------------


class OperationQueryParameters(BaseModel):
    service_name: str
    span_kind: str = ""


class TraceQueryParameters(BaseModel):
    service_name: str = ""
    operation_name: str = ""
    tags: dict[str, str] = Field(default_factory=dict)
    start_time_min: datetime | None = None
    start_time_max: datetime | None = None
    duration_min: timedelta = timedelta(0)
    duration_max: timedelta = timedelta(0)
    num_traces: int = 0


# ------------------------------------------------------------------
# Store-facing types
# ------------------------------------------------------------------


class QueryParameter(BaseModel):
    """A typed query parameter.  Values travel as strings on the wire."""

    name: str
    type: str = "string"
    value: str


class Query(BaseModel):
    """Query text plus the parameters it references by ``:name``."""

    name: str
    sql: str
    parameters: list[QueryParameter] = Field(default_factory=list)


class Page(BaseModel):
    """One page of a paginated query.  ``cursor`` is ``None`` on the last page."""

    rows: list[dict[str, Any]] = Field(default_factory=list)
    query_id: str = ""
    cursor: str | None = None


class DocumentStatus(BaseModel):
    id: str | None = None
    status: str = ""
    error: str | None = None


class WriteRequest(BaseModel):
    workspace: str
    collection: str
    document: dict[str, Any]


# ------------------------------------------------------------------
# Configuration
# ------------------------------------------------------------------


class StoreConfig(BaseModel):
    """Span store configuration."""

    workspace: str = "tracing"
    spans: str = "spans"
    operations: str = "operations"
    workers: int = Field(default=3, gt=0)
    create: bool = False
    retention_secs: int = Field(default=DEFAULT_RETENTION_SECS, gt=0)
    flush_interval: float = Field(default=1.0, gt=0)
    batch_size: int = Field(default=500, gt=0)
    queue_size: int = Field(default=1000, gt=0)
    page_size: int = Field(default=1000, gt=0)
    index_tags: bool = True

    @field_validator("workspace", "spans", "operations")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not _NAME_RE.match(value):
            raise ValueError(f"invalid workspace or collection name: {value!r}")
        return value


class PluginConfig(BaseModel):
    """Top-level plugin configuration."""

    api_server: str = ""
    api_key: str = ""
    config: StoreConfig = Field(default_factory=StoreConfig)
    log_level: str = "INFO"
