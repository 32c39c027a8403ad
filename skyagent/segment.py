"""Segments: the spans of one trace made within one unit of work, reported together."""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, Any, Protocol

from skyagent.idgen import generate_global_id
from skyagent.span import DefaultSpan, Span
from skyagent.tool import millisecond

if TYPE_CHECKING:
    from skyagent.propagation import SpanContext
    from skyagent.span import KeyStringValuePair, LogRecord, SpanLayer, SpanType


class _Collector:
    """Gathers the finished spans of one segment and reports them once complete.

    The segment is complete when its root has ended and every child span
    registered before that has ended too.
    """

    def __init__(self, root: RootSegmentSpan) -> None:
        self._lock = threading.Lock()
        self._root = root
        self._ref_num = 0
        self._last_span_id = 0
        self._spans: list[SegmentSpan] = []
        self._total = -1
        self._sent = False

    def register(self) -> bool:
        with self._lock:
            if self._ref_num < 0:
                return False
            self._ref_num += 1
            return True

    def next_span_id(self) -> int:
        with self._lock:
            self._last_span_id += 1
            return self._last_span_id

    def collect(self, span: SegmentSpan) -> None:
        with self._lock:
            self._spans.append(span)
            ready = self._take_if_complete()
        self._report(ready)

    def finish(self) -> None:
        with self._lock:
            self._total = self._ref_num
            self._ref_num = -1
            ready = self._take_if_complete()
        self._report(ready)

    def _take_if_complete(self) -> list[SegmentSpan] | None:
        if self._sent or self._total != len(self._spans):
            return None
        self._sent = True
        return [*self._spans, self._root]

    def _report(self, spans: list[SegmentSpan] | None) -> None:
        if spans is None:
            return
        reporter = getattr(self._root.tracer, "reporter", None)
        if reporter is not None:
            reporter.send(spans)


@dataclass
class SegmentContext:
    """Identifiers and shared state of a span within its segment."""

    trace_id: str = ""
    segment_id: str = ""
    span_id: int = 0
    parent_span_id: int = 0
    parent_segment_id: str = ""
    first_span: Span | None = field(default=None, repr=False, compare=False)
    correlation_context: dict[str, str] = field(default_factory=dict)
    collector: _Collector | None = field(default=None, repr=False, compare=False)


class ReportedSpan(Protocol):
    """What a reporter reads from a finished span."""

    context: SegmentContext
    refs: list[SpanContext]
    operation_name: str
    peer: str
    span_type: SpanType
    layer: SpanLayer
    is_error: bool
    tags: list[KeyStringValuePair]
    logs: list[LogRecord]
    component_id: int

    def start_time_ms(self) -> int: ...

    def end_time_ms(self) -> int: ...


@dataclass(eq=False)
class SegmentSpan(DefaultSpan):
    """A recorded span that belongs to a segment.

    The span's ``tracer`` is expected to offer ``service``, ``instance``,
    ``reporter`` and ``correlation`` attributes.
    """

    context: SegmentContext = field(default_factory=SegmentContext)

    @classmethod
    def _from_default(cls, span: DefaultSpan) -> SegmentSpan:
        return cls(**{f.name: getattr(span, f.name) for f in fields(DefaultSpan)})

    def end(self) -> None:
        """Finish the span and hand it to its segment; later calls do nothing."""
        if not self.is_valid():
            return
        super().end()
        collector = self.context.collector
        if collector is not None:
            collector.collect(self)

    def start_time_ms(self) -> int:
        """Start time in milliseconds since the Unix epoch."""
        return millisecond(self.start_time)

    def end_time_ms(self) -> int:
        """End time in milliseconds since the Unix epoch; 0 while the span is open."""
        return millisecond(self.end_time) if self.end_time is not None else 0

    def segment_register(self) -> bool:
        """Register one more child span in this segment.

        Returns ``False`` once the segment's root has ended.
        """
        collector = self.context.collector
        return collector is not None and collector.register()

    def _create_segment_context(self, parent: SegmentSpan | None) -> None:
        if parent is None:
            context = SegmentContext()
            if self.refs:
                ref = self.refs[0]
                context.trace_id = ref.trace_id
                context.correlation_context = ref.correlation_context
            else:
                context.trace_id = generate_global_id()
        else:
            context = copy.copy(parent.context)
            context.parent_segment_id = context.segment_id
            context.parent_span_id = context.span_id
            if context.collector is not None:
                context.span_id = context.collector.next_span_id()
        if context.first_span is None:
            context.first_span = self
        if context.correlation_context is None:
            context.correlation_context = {}
        self.context = context


class RootSegmentSpan(SegmentSpan):
    """The first span of a segment; its end closes the segment."""

    def end(self) -> None:
        """Finish the root span; the segment is reported once all children end."""
        if not self.is_valid():
            return
        DefaultSpan.end(self)
        collector = self.context.collector
        if collector is not None:
            collector.finish()

    def _create_root_segment_context(self) -> None:
        self.context.segment_id = generate_global_id()
        self.context.collector = _Collector(self)
        self.context.span_id = 0
        self.context.parent_span_id = -1


def new_segment_span(
    default_span: DefaultSpan, parent_span: SegmentSpan | None = None
) -> SegmentSpan:
    """Turn ``default_span`` into a span of a segment.

    The span joins the segment of ``parent_span`` while that segment is still
    open; otherwise it becomes the root of a new segment.
    """
    registered = parent_span is not None and parent_span.segment_register()
    if registered:
        span = SegmentSpan._from_default(default_span)
        span._create_segment_context(parent_span)
        return span
    root = RootSegmentSpan._from_default(default_span)
    root._create_segment_context(parent_span)
    root._create_root_segment_context()
    return root


__all__ = [
    "ReportedSpan",
    "RootSegmentSpan",
    "SegmentContext",
    "SegmentSpan",
    "new_segment_span",
]

_: Any = None