"""A reporter that writes finished segments to a log as JSON."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from typing import TYPE_CHECKING, Any, Sequence

from skyagent.tracer import Reporter

if TYPE_CHECKING:
    from skyagent.config_discovery import AgentConfigChangeWatcher
    from skyagent.segment import ReportedSpan


def _span_to_dict(span: ReportedSpan) -> dict[str, Any]:
    context = span.context
    return {
        "Refs": [asdict(ref) for ref in span.refs],
        "StartTime": span.start_time_ms(),
        "EndTime": span.end_time_ms(),
        "OperationName": span.operation_name,
        "Peer": span.peer,
        "Layer": int(span.layer),
        "ComponentID": span.component_id,
        "Tags": [asdict(tag) for tag in span.tags],
        "Logs": [asdict(record) for record in span.logs],
        "IsError": span.is_error,
        "SpanType": int(span.span_type),
        "TraceID": context.trace_id,
        "SegmentID": context.segment_id,
        "SpanID": context.span_id,
        "ParentSpanID": context.parent_span_id,
        "ParentSegmentID": context.parent_segment_id,
        "CorrelationContext": dict(context.correlation_context),
    }


class LogReporter(Reporter):
    """Logs each finished segment; meant for development, not production."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger if logger is not None else logging.getLogger("skyagent.log_reporter")

    def boot(
        self,
        service: str,
        service_instance: str,
        cds_watchers: Sequence[AgentConfigChangeWatcher],
    ) -> None:
        """Nothing needs starting."""

    def send(self, spans: Sequence[ReportedSpan] | None) -> None:
        """Log the segment, whose root span comes last, as one JSON line."""
        if not spans:
            return
        try:
            payload = json.dumps([_span_to_dict(span) for span in spans], separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            self.logger.info("Error: %s", exc)
            return
        root = spans[-1]
        self.logger.info("Segment-%s: %s", root.context.segment_id, payload)

    def close(self) -> None:
        self.logger.info("Close log reporter")