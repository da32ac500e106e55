"""
Automatic spans for database round trips.

Attached to a SQLAlchemy engine through its cursor events:

  before_cursor_execute  -> begin(): CLIENT span named for the operation kind
  after_cursor_execute   -> end(): row count, duration metric, close
  handle_error           -> end(error=...): exception recorded, status Error

Statement text and parameter details are only captured when
capture_statements is on. Listener failures are logged and never propagate
into the query.
"""

import logging
import time
from collections.abc import Sequence
from typing import Any

from opentelemetry.trace import Span, SpanKind
from sqlalchemy import event
from sqlalchemy.engine import Engine

from ..instruments import DB_CLIENT_DURATION
from ..telemetry.provider import Telemetry
from ..telemetry.spans import SpanScope, set_error

logger = logging.getLogger(__name__)

_SPAN_STACK_KEY = "catalog.db_spans"


def operation_kind(statement: str) -> str:
    """First SQL keyword, upper-cased ("SELECT", "INSERT", ...)."""
    parts = statement.strip().split(None, 1)
    return parts[0].upper() if parts else "QUERY"


class DatabaseInstrumentation:
    """Database-boundary span adapter."""

    def __init__(
        self,
        telemetry: Telemetry,
        db_system: str = "sqlite",
        db_name: str | None = None,
        capture_statements: bool = True,
        record_exceptions: bool = True,
    ):
        self._telemetry = telemetry
        self.db_system = db_system
        self.db_name = db_name
        self.capture_statements = capture_statements
        self._record_exceptions = record_exceptions
        self._engines: list[Engine] = []

    def begin(
        self, statement: str, parameters: Any = None, executemany: bool = False
    ) -> SpanScope:
        operation = operation_kind(statement)
        name = f"{operation} {self.db_name}" if self.db_name else operation
        scope = self._telemetry.tracer.begin(name, kind=SpanKind.CLIENT)
        try:
            self.enrich(scope.span, statement, parameters, executemany)
        except Exception:
            scope.end()
            raise
        return scope

    def enrich(
        self,
        span: Span,
        statement: str,
        parameters: Any = None,
        executemany: bool = False,
    ) -> None:
        span.set_attribute("db.system", self.db_system)
        if self.db_name:
            span.set_attribute("db.name", self.db_name)
        span.set_attribute("db.operation", operation_kind(statement))
        if not self.capture_statements:
            return
        span.set_attribute("db.statement", statement)
        span.set_attribute("db.statement.type", "batch" if executemany else "text")
        span.set_attribute(
            "db.statement.parameter_count", _parameter_count(parameters, executemany)
        )

    def end(
        self,
        scope: SpanScope,
        operation: str,
        duration_s: float,
        rowcount: int | None = None,
        error: BaseException | None = None,
    ) -> None:
        span = scope.span
        if rowcount is not None and rowcount >= 0:
            span.set_attribute("db.response.rows", rowcount)
        dimensions = {"db.system": self.db_system, "db.operation": operation}
        if error is not None:
            if self._record_exceptions:
                span.record_exception(error)
            set_error(span, error)
            dimensions["error.type"] = type(error).__name__
        self._telemetry.metrics.record(DB_CLIENT_DURATION, duration_s, dimensions)
        scope.end()

    def instrument_engine(self, engine: Engine) -> None:
        """Register the cursor listeners on engine (idempotent)."""
        if engine in self._engines:
            return
        event.listen(engine, "before_cursor_execute", self._before_cursor_execute)
        event.listen(engine, "after_cursor_execute", self._after_cursor_execute)
        event.listen(engine, "handle_error", self._handle_error)
        self._engines.append(engine)

    def uninstrument_engine(self, engine: Engine) -> None:
        if engine not in self._engines:
            return
        event.remove(engine, "before_cursor_execute", self._before_cursor_execute)
        event.remove(engine, "after_cursor_execute", self._after_cursor_execute)
        event.remove(engine, "handle_error", self._handle_error)
        self._engines.remove(engine)

    def _before_cursor_execute(self, conn, cursor, statement, parameters, context, executemany):
        try:
            scope = self.begin(statement, parameters, executemany)
        except Exception:
            logger.exception("Database instrumentation failed to start span")
            return
        stack = conn.info.setdefault(_SPAN_STACK_KEY, [])
        stack.append((scope, operation_kind(statement), time.perf_counter()))

    def _after_cursor_execute(self, conn, cursor, statement, parameters, context, executemany):
        entry = _pop_span(conn)
        if entry is None:
            return
        scope, operation, started = entry
        try:
            self.end(scope, operation, time.perf_counter() - started, rowcount=cursor.rowcount)
        except Exception:
            logger.exception("Database instrumentation failed to end span")
            scope.end()

    def _handle_error(self, exception_context) -> None:
        conn = exception_context.connection
        if conn is None:
            return
        entry = _pop_span(conn)
        if entry is None:
            return
        scope, operation, started = entry
        try:
            self.end(
                scope,
                operation,
                time.perf_counter() - started,
                error=exception_context.original_exception,
            )
        except Exception:
            logger.exception("Database instrumentation failed to record error")
            scope.end()


def _pop_span(conn) -> tuple[SpanScope, str, float] | None:
    stack = conn.info.get(_SPAN_STACK_KEY)
    if not stack:
        return None
    return stack.pop()


def _parameter_count(parameters: Any, executemany: bool) -> int:
    if parameters is None:
        return 0
    if executemany and isinstance(parameters, Sequence):
        return len(parameters)
    if isinstance(parameters, (Sequence, dict)) and not isinstance(parameters, str):
        return len(parameters)
    return 1
