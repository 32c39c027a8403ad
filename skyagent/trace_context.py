"""The context that carries the active span, and accessors for trace data."""

from __future__ import annotations

from dataclasses import dataclass

from skyagent.segment import SegmentSpan
from skyagent.span import Span

EMPTY_SERVICE_NAME = ""
EMPTY_SERVICE_INSTANCE_NAME = ""
EMPTY_TRACE_ID = "N/A"
EMPTY_TRACE_SEGMENT_ID = "N/A"
EMPTY_SPAN_ID = -1


@dataclass(frozen=True)
class Context:
    """An immutable context holding the currently active span, if any."""

    span: Span | None = None

    def with_span(self, span: Span | None) -> Context:
        """Return a new context whose active span is ``span``."""
        return Context(span=span)


_BACKGROUND = Context()


def background() -> Context:
    """Return the empty root context."""
    return _BACKGROUND


def _segment_span(ctx: Context) -> SegmentSpan | None:
    span = ctx.span
    return span if isinstance(span, SegmentSpan) else None


def service_name(ctx: Context) -> str:
    """Service of the tracer that recorded the active span."""
    span = _segment_span(ctx)
    return span.tracer.service if span is not None else EMPTY_SERVICE_NAME


def service_instance_name(ctx: Context) -> str:
    """Service instance of the tracer that recorded the active span."""
    span = _segment_span(ctx)
    return span.tracer.instance if span is not None else EMPTY_SERVICE_INSTANCE_NAME


def trace_id(ctx: Context) -> str:
    """Trace id of the active span."""
    span = _segment_span(ctx)
    return span.context.trace_id if span is not None else EMPTY_TRACE_ID


def trace_segment_id(ctx: Context) -> str:
    """Segment id of the active span."""
    span = _segment_span(ctx)
    return span.context.segment_id if span is not None else EMPTY_TRACE_SEGMENT_ID


def span_id(ctx: Context) -> int:
    """Span id of the active span."""
    span = _segment_span(ctx)
    return span.context.span_id if span is not None else EMPTY_SPAN_ID


def active_span(ctx: Context) -> Span | None:
    """The active span, or ``None``."""
    return ctx.span


def with_span(ctx: Context, span: Span | None) -> Context:
    """Return a copy of ``ctx`` whose active span is ``span``."""
    return ctx.with_span(span)