"""Trace data of a context, shaped for inclusion in log lines."""

from __future__ import annotations

from dataclasses import dataclass

from skyagent import trace_context
from skyagent.trace_context import Context


@dataclass(frozen=True)
class SkyWalkingContext:
    """Service, instance and trace identifiers of the active span."""

    service_name: str
    service_instance_name: str
    trace_id: str
    trace_segment_id: str
    span_id: int

    def __str__(self) -> str:
        return (
            f"[{self.service_name},{self.service_instance_name},"
            f"{self.trace_id},{self.trace_segment_id},{self.span_id:d}]"
        )


def from_context(ctx: Context) -> SkyWalkingContext:
    """Collect the trace data of ``ctx`` for logging."""
    return SkyWalkingContext(
        service_name=trace_context.service_name(ctx),
        service_instance_name=trace_context.service_instance_name(ctx),
        trace_id=trace_context.trace_id(ctx),
        trace_segment_id=trace_context.trace_segment_id(ctx),
        span_id=trace_context.span_id(ctx),
    )