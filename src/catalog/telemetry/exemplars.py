"""Link metric observations to the span that was active when they were recorded."""

from opentelemetry.sdk.metrics import Exemplar
from opentelemetry.trace import Span


def correlate(active_span: Span, value: float, time_unix_nano: int) -> Exemplar | None:
    """
    Return the exemplar the SDK attaches for this observation, or None.

    Mirrors TraceBasedExemplarFilter: only a recording span with a valid,
    sampled context is linked. An ended span or INVALID_SPAN yields None.
    """
    if not active_span.is_recording():
        return None
    context = active_span.get_span_context()
    if not context.is_valid or not context.trace_flags.sampled:
        return None
    return Exemplar(
        filtered_attributes=None,
        value=value,
        time_unix_nano=time_unix_nano,
        span_id=context.span_id,
        trace_id=context.trace_id,
    )
