"""Span <-> document conversion.

Writing produces two documents per span: the span itself (optionally with a
flattened ``kv`` map of every tag, which is what the UI searches on) and an
operation summary keyed by ``service:operation``.

Reading goes through :func:`document_to_span`, which decodes a row field by
field.  Required fields that are missing or of the wrong type raise
:class:`MappingError`; unknown fields are ignored.
"""

import base64
import binascii
import math
import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from jaeger_docstore.errors import MappingError
from jaeger_docstore.models import (
    KeyValue,
    Log,
    Process,
    Span,
    SpanRef,
    SpanRefType,
    ValueType,
)

SPAN_KIND_TAG = "span.kind"
UNSPECIFIED_KIND = "unspecified"

_FRACTION_RE = re.compile(r"\.(\d+)")


# ------------------------------------------------------------------
# Tag values
# ------------------------------------------------------------------


def format_float(value: float) -> str:
    """Shortest round-trip digits, positional notation, no trailing ``.0``."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def tag_value_string(tag: KeyValue) -> str:
    """Canonical string form of a tag value."""
    if tag.v_type == ValueType.STRING:
        return tag.v_str
    if tag.v_type == ValueType.BOOL:
        return "true" if tag.v_bool else "false"
    if tag.v_type == ValueType.INT64:
        return str(tag.v_int64)
    if tag.v_type == ValueType.FLOAT64:
        return format_float(tag.v_float64)
    if tag.v_type == ValueType.BINARY:
        return tag.v_binary.decode("utf-8", errors="replace")
    return ""


def flatten_tags(span: Span) -> dict[str, str]:
    """Merge span tags and process tags into one map; process tags win."""
    kv: dict[str, str] = {}
    for tag in span.tags:
        kv[tag.key] = tag_value_string(tag)
    for tag in span.process.tags:
        kv[tag.key] = tag_value_string(tag)
    return kv


def span_kind(span: Span) -> str:
    kind = UNSPECIFIED_KIND
    for tag in span.tags:
        if tag.key == SPAN_KIND_TAG:
            kind = tag_value_string(tag)
    return kind


# ------------------------------------------------------------------
# Encoding
# ------------------------------------------------------------------


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    # fixed width so string order matches time order
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def duration_micros(value: timedelta) -> int:
    return value // timedelta(microseconds=1)


def _tag_document(tag: KeyValue) -> dict[str, Any]:
    doc: dict[str, Any] = {"key": tag.key, "v_type": tag.v_type.value}
    if tag.v_type == ValueType.STRING:
        doc["v_str"] = tag.v_str
    elif tag.v_type == ValueType.BOOL:
        doc["v_bool"] = tag.v_bool
    elif tag.v_type == ValueType.INT64:
        doc["v_int64"] = tag.v_int64
    elif tag.v_type == ValueType.FLOAT64:
        doc["v_float64"] = tag.v_float64
    elif tag.v_type == ValueType.BINARY:
        doc["v_binary"] = base64.b64encode(tag.v_binary).decode("ascii")
    return doc


def span_to_document(span: Span, index_tags: bool = True) -> dict[str, Any]:
    """Build the span document stored in the spans collection."""
    doc: dict[str, Any] = {
        "trace_id": span.trace_id,
        "span_id": span.span_id,
        "operation_name": span.operation_name,
        "references": [
            {"trace_id": ref.trace_id, "span_id": ref.span_id, "ref_type": ref.ref_type.value}
            for ref in span.references
        ],
        "flags": span.flags,
        "start_time": format_timestamp(span.start_time),
        "duration": duration_micros(span.duration),
        "tags": [_tag_document(t) for t in span.tags],
        "logs": [
            {"timestamp": format_timestamp(log.timestamp), "fields": [_tag_document(f) for f in log.fields]}
            for log in span.logs
        ],
        "process": {
            "service_name": span.process.service_name,
            "tags": [_tag_document(t) for t in span.process.tags],
        },
        "warnings": list(span.warnings),
    }
    if index_tags:
        doc["kv"] = flatten_tags(span)
    return doc


def operation_id(service: str, operation: str) -> str:
    return f"{service}:{operation}"


def operation_document(span: Span) -> dict[str, Any]:
    """Build the operation summary upserted into the operations collection."""
    service = span.process.service_name
    return {
        "_id": operation_id(service, span.operation_name),
        "service": service,
        "operation": span.operation_name,
        "span_kind": span_kind(span),
    }


# ------------------------------------------------------------------
# Decoding
# ------------------------------------------------------------------


def _require(row: dict[str, Any], field: str, kind: type | tuple[type, ...]) -> Any:
    if field not in row or row[field] is None:
        raise MappingError(f"missing field {field!r}")
    value = row[field]
    # bool is an int subclass; never accept it where a number is expected
    if isinstance(value, bool) and bool not in (kind if isinstance(kind, tuple) else (kind,)):
        raise MappingError(f"field {field!r} has type bool")
    if not isinstance(value, kind):
        raise MappingError(f"field {field!r} has type {type(value).__name__}")
    return value


def _optional_list(row: dict[str, Any], field: str) -> list[Any]:
    value = row.get(field)
    if value is None:
        return []
    if not isinstance(value, list):
        raise MappingError(f"field {field!r} has type {type(value).__name__}")
    return value


def _six_digit_fraction(match: re.Match[str]) -> str:
    return "." + match.group(1)[:6].ljust(6, "0")


def parse_timestamp(value: Any, field: str = "timestamp") -> datetime:
    if not isinstance(value, str):
        raise MappingError(f"field {field!r} is not a timestamp string")
    text = _FRACTION_RE.sub(_six_digit_fraction, value.strip(), count=1).replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise MappingError(f"field {field!r}: invalid timestamp {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _decode_tag(raw: Any) -> KeyValue:
    if not isinstance(raw, dict):
        raise MappingError(f"tag is not an object: {raw!r}")
    key = _require(raw, "key", str)
    try:
        v_type = ValueType(raw.get("v_type") or ValueType.STRING.value)
    except ValueError as exc:
        raise MappingError(f"tag {key!r}: unknown value type {raw.get('v_type')!r}") from exc

    if v_type == ValueType.STRING:
        return KeyValue(key=key, v_type=v_type, v_str=_require(raw, "v_str", str))
    if v_type == ValueType.BOOL:
        return KeyValue(key=key, v_type=v_type, v_bool=_require(raw, "v_bool", bool))
    if v_type == ValueType.INT64:
        return KeyValue(key=key, v_type=v_type, v_int64=_require(raw, "v_int64", int))
    if v_type == ValueType.FLOAT64:
        return KeyValue(key=key, v_type=v_type, v_float64=float(_require(raw, "v_float64", (int, float))))
    encoded = _require(raw, "v_binary", str)
    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MappingError(f"tag {key!r}: invalid base64 payload") from exc
    return KeyValue(key=key, v_type=v_type, v_binary=data)


def _decode_ref(raw: Any) -> SpanRef:
    if not isinstance(raw, dict):
        raise MappingError(f"reference is not an object: {raw!r}")
    try:
        ref_type = SpanRefType(raw.get("ref_type") or SpanRefType.CHILD_OF.value)
    except ValueError as exc:
        raise MappingError(f"unknown reference type {raw.get('ref_type')!r}") from exc
    return SpanRef(
        trace_id=_require(raw, "trace_id", str),
        span_id=_require(raw, "span_id", str),
        ref_type=ref_type,
    )


def _decode_log(raw: Any) -> Log:
    if not isinstance(raw, dict):
        raise MappingError(f"log is not an object: {raw!r}")
    return Log(
        timestamp=parse_timestamp(raw.get("timestamp"), "logs.timestamp"),
        fields=[_decode_tag(f) for f in _optional_list(raw, "fields")],
    )


def document_to_span(row: dict[str, Any]) -> Span:
    """Decode a stored span row."""
    if not isinstance(row, dict):
        raise MappingError(f"row is not an object: {type(row).__name__}")

    process = _require(row, "process", dict)
    flags = row.get("flags") or 0
    if isinstance(flags, bool) or not isinstance(flags, int):
        raise MappingError("field 'flags' is not an integer")
    warnings = _optional_list(row, "warnings")
    if not all(isinstance(w, str) for w in warnings):
        raise MappingError("field 'warnings' must contain strings")

    return Span(
        trace_id=_require(row, "trace_id", str),
        span_id=_require(row, "span_id", str),
        operation_name=_require(row, "operation_name", str),
        references=[_decode_ref(r) for r in _optional_list(row, "references")],
        flags=flags,
        start_time=parse_timestamp(row.get("start_time"), "start_time"),
        duration=timedelta(microseconds=_require(row, "duration", int)),
        tags=[_decode_tag(t) for t in _optional_list(row, "tags")],
        logs=[_decode_log(entry) for entry in _optional_list(row, "logs")],
        process=Process(
            service_name=_require(process, "service_name", str),
            tags=[_decode_tag(t) for t in _optional_list(process, "tags")],
        ),
        warnings=warnings,
    )
