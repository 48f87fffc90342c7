"""SQL builders for the read operations.

Every literal supplied by a caller travels as a query parameter.  The only
text spliced into the SQL is identifiers (validated workspace/collection
names and tag keys, always double-quoted with embedded quotes doubled) and
the integer row limit.
"""

from collections.abc import Iterable

from jaeger_docstore.errors import InputError
from jaeger_docstore.mapping import duration_micros, format_timestamp
from jaeger_docstore.models import (
    OperationQueryParameters,
    Query,
    QueryParameter,
    StoreConfig,
    TraceQueryParameters,
)


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


class QueryBuilder:
    """Builds the queries issued against the spans and operations collections."""

    def __init__(self, config: StoreConfig) -> None:
        self.config = config
        workspace = quote_identifier(config.workspace)
        self._spans = f"{workspace}.{quote_identifier(config.spans)}"
        self._operations = f"{workspace}.{quote_identifier(config.operations)}"

    def services(self) -> Query:
        sql = (
            "SELECT operations.service AS service"
            f" FROM {self._operations} operations"
            " GROUP BY operations.service"
            " ORDER BY service"
        )
        return Query(name="services", sql=sql)

    def operations(self, params: OperationQueryParameters) -> Query:
        where = ["operations.service = :service"]
        parameters = [QueryParameter(name="service", value=params.service_name)]
        if params.span_kind:
            where.append("operations.span_kind = :span_kind")
            parameters.append(QueryParameter(name="span_kind", value=params.span_kind))

        sql = (
            "SELECT operations.operation AS operation, operations.span_kind AS span_kind"
            f" FROM {self._operations} operations"
            f" WHERE {' AND '.join(where)}"
            " GROUP BY operations.operation, operations.span_kind"
            " ORDER BY operation, span_kind"
        )
        return Query(name="operations", sql=sql, parameters=parameters)

    def trace_by_id(self, trace_id: str) -> Query:
        sql = f"SELECT * FROM {self._spans} spans WHERE spans.trace_id = :trace_id"
        return Query(
            name="trace_by_id",
            sql=sql,
            parameters=[QueryParameter(name="trace_id", value=trace_id)],
        )

    def traces_by_ids(self, trace_ids: Iterable[str]) -> Query:
        parameters = [QueryParameter(name=f"trace_id_{i}", value=tid) for i, tid in enumerate(trace_ids)]
        if not parameters:
            raise InputError("at least one trace ID is required")
        placeholders = ", ".join(f":{p.name}" for p in parameters)
        sql = f"SELECT * FROM {self._spans} spans WHERE spans.trace_id IN ({placeholders})"
        return Query(name="traces_by_ids", sql=sql, parameters=parameters)

    def trace_ids(self, params: TraceQueryParameters) -> Query:
        """Distinct trace IDs matching ``params``, most recent first."""
        if params.start_time_min is None:
            raise InputError("start time required")

        where: list[str] = []
        parameters: list[QueryParameter] = []

        if params.service_name:
            where.append("spans.process.service_name = :service")
            parameters.append(QueryParameter(name="service", value=params.service_name))
        if params.operation_name:
            where.append("spans.operation_name = :operation")
            parameters.append(QueryParameter(name="operation", value=params.operation_name))

        # TODO store start_time as a native timestamp at ingest to drop the per-row parse
        where.append("PARSE_TIMESTAMP_ISO8601(spans.start_time) >= PARSE_TIMESTAMP_ISO8601(:start_time_min)")
        parameters.append(QueryParameter(name="start_time_min", value=format_timestamp(params.start_time_min)))
        if params.start_time_max is not None:
            where.append("PARSE_TIMESTAMP_ISO8601(spans.start_time) <= PARSE_TIMESTAMP_ISO8601(:start_time_max)")
            parameters.append(QueryParameter(name="start_time_max", value=format_timestamp(params.start_time_max)))

        duration_min = duration_micros(params.duration_min)
        if duration_min > 0:
            where.append("spans.duration >= :duration_min")
            parameters.append(QueryParameter(name="duration_min", type="int", value=str(duration_min)))
        duration_max = duration_micros(params.duration_max)
        if duration_max > 0:
            where.append("spans.duration <= :duration_max")
            parameters.append(QueryParameter(name="duration_max", type="int", value=str(duration_max)))

        for i, (key, value) in enumerate(params.tags.items()):
            where.append(f"spans.kv.{quote_identifier(key)} = :tag_{i}")
            parameters.append(QueryParameter(name=f"tag_{i}", value=value))

        sql = (
            "SELECT spans.trace_id AS trace_id, MIN(spans.start_time) AS start_time"
            f" FROM {self._spans} spans"
            f" WHERE {' AND '.join(where)}"
            " GROUP BY spans.trace_id"
            " ORDER BY start_time DESC, trace_id"
        )
        if params.num_traces > 0:
            sql += f" LIMIT {int(params.num_traces)}"

        return Query(name="trace_ids", sql=sql, parameters=parameters)
