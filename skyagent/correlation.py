"""Correlation data carried along a trace alongside the span context."""

from __future__ import annotations

from dataclasses import dataclass

from skyagent.segment import SegmentSpan
from skyagent.trace_context import Context


@dataclass
class CorrelationConfig:
    """Limits on the correlation context of a trace."""

    max_key_count: int = 3
    max_value_size: int = 128


def _segment_span(ctx: Context) -> SegmentSpan | None:
    span = ctx.span
    return span if isinstance(span, SegmentSpan) else None


def put_correlation(ctx: Context, key: str, value: str) -> bool:
    """Set, replace or (with an empty value) remove a correlation entry.

    Returns whether the change was accepted: the key must be non-empty, the
    context must hold a recorded span, the value must fit the size limit and
    a new key must fit the key count limit.
    """
    if not key:
        return False
    span = _segment_span(ctx)
    if span is None:
        return False

    correlation = span.context.correlation_context
    if not value:
        correlation.pop(key, None)
        return True

    config: CorrelationConfig = span.tracer.correlation
    if len(value.encode("utf-8")) > config.max_value_size:
        return False
    if key in correlation:
        correlation[key] = value
        return True
    if len(correlation) >= config.max_key_count:
        return False
    correlation[key] = value
    return True


def get_correlation(ctx: Context, key: str) -> str:
    """Return the correlation value for ``key``, or an empty string."""
    span = _segment_span(ctx)
    if span is None:
        return ""
    return span.context.correlation_context.get(key, "")