"""The tracer: creates entry, local and exit spans and hands segments to a reporter."""

from __future__ import annotations

import os
import re
import threading
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Sequence

from skyagent.config_discovery import AgentConfigChangeWatcher
from skyagent.correlation import CorrelationConfig
from skyagent.idgen import uuid
from skyagent.propagation import Extractor, Injector, SpanContext
from skyagent.sampler import DynamicSampler, Sampler
from skyagent.segment import SegmentSpan, new_segment_span
from skyagent.span import (
    DefaultSpan,
    NoopSpan,
    Span,
    SpanOption,
    SpanType,
    with_context,
    with_operation_name,
    with_span_type,
)
from skyagent.tool import AgentError, ipv4

if TYPE_CHECKING:
    from skyagent.segment import ReportedSpan
    from skyagent.trace_context import Context

SW_AGENT_NAME = "SW_AGENT_NAME"
SW_AGENT_INSTANCE_NAME = "SW_AGENT_INSTANCE_NAME"
SW_AGENT_SAMPLE = "SW_AGENT_SAMPLE"

_ERR_PARAMETER = "parameter are nil"

_FLOAT = re.compile(
    r"[+-]?(?:(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|inf(?:inity)?|nan)",
    re.IGNORECASE,
)


class Reporter(ABC):
    """Transports finished segments to a backend."""

    @abstractmethod
    def boot(
        self,
        service: str,
        service_instance: str,
        cds_watchers: Sequence[AgentConfigChangeWatcher],
    ) -> None: ...

    @abstractmethod
    def send(self, spans: Sequence[ReportedSpan]) -> None: ...

    @abstractmethod
    def close(self) -> None: ...


def _sample_rate_from_env() -> float | None:
    value = os.environ.get(SW_AGENT_SAMPLE, "")
    if not value:
        return None
    if not _FLOAT.fullmatch(value):
        raise AgentError(f"{SW_AGENT_SAMPLE}={value}: invalid syntax")
    return float(value)


class Tracer:
    """Creates spans for one service instance.

    Without a reporter every span it creates is a :class:`NoopSpan`.
    Environment variables ``SW_AGENT_NAME``, ``SW_AGENT_INSTANCE_NAME`` and
    ``SW_AGENT_SAMPLE`` override the corresponding arguments.
    """

    def __init__(
        self,
        service: str,
        *,
        reporter: Reporter | None = None,
        instance: str = "",
        sampling_rate: float | None = None,
        sampler: Sampler | None = None,
        correlation: CorrelationConfig | None = None,
    ) -> None:
        service = os.environ.get(SW_AGENT_NAME) or service
        if not service:
            raise AgentError(_ERR_PARAMETER)
        env_instance = os.environ.get(SW_AGENT_INSTANCE_NAME, "")
        env_rate = _sample_rate_from_env()

        self.service = service
        self.instance = instance
        self.reporter = reporter
        self.correlation = correlation if correlation is not None else CorrelationConfig()
        self.cds_watchers: list[AgentConfigChangeWatcher] = []
        self.sampler: Sampler | None = None

        if sampling_rate is not None:
            self.sampler = self._dynamic_sampler(sampling_rate)
        if sampler is not None:
            self.sampler = sampler
        if env_instance:
            self.instance = env_instance
        if env_rate is not None:
            self.sampler = self._dynamic_sampler(env_rate)
        if self.sampler is None:
            self.sampler = self._dynamic_sampler(1)

        self._initialized = False
        if reporter is not None:
            if not self.instance:
                self.instance = f"{uuid()}@{ipv4()}"
            reporter.boot(self.service, self.instance, self.cds_watchers)
            self._initialized = True

    def _dynamic_sampler(self, rate: float) -> DynamicSampler:
        sampler = DynamicSampler(rate)
        self.cds_watchers.append(sampler)
        return sampler

    def create_entry_span(
        self, ctx: Context, operation_name: str, extractor: Extractor
    ) -> tuple[Span, Context]:
        """Start an entry span for an incoming request, continuing any trace in its headers."""
        if ctx is None or not operation_name or extractor is None:
            raise AgentError(_ERR_PARAMETER)
        noop = self._create_noop(ctx)
        if noop is not None:
            return noop
        ref: SpanContext | None = SpanContext()
        ref.decode(extractor)
        if not ref.valid:
            ref = None
        return self.create_local_span(
            ctx,
            with_context(ref),
            with_span_type(SpanType.ENTRY),
            with_operation_name(operation_name),
        )

    def create_local_span(self, ctx: Context, *args: SpanOption) -> tuple[Span, Context]:
        """Start a span, as a child of the active span in ``ctx`` if there is one."""
        if ctx is None:
            raise AgentError(_ERR_PARAMETER)
        noop = self._create_noop(ctx)
        if noop is not None:
            return noop
        span = DefaultSpan(tracer=self)
        for option in args:
            option(span)
        parent = ctx.span if isinstance(ctx.span, SegmentSpan) else None
        forced = bool(span.refs)
        if parent is None and not forced and not self.sampler.is_sampled(span.operation_name):
            skipped = NoopSpan()
            return skipped, ctx.with_span(skipped)
        created = new_segment_span(span, parent)
        return created, ctx.with_span(created)

    def create_exit_span(
        self, ctx: Context, operation_name: str, peer: str, injector: Injector
    ) -> Span:
        """Start an exit span for an outgoing call and inject the trace headers."""
        span, _ = self.create_exit_span_with_context(ctx, operation_name, peer, injector)
        return span

    def create_exit_span_with_context(
        self, ctx: Context, operation_name: str, peer: str, injector: Injector
    ) -> tuple[Span, Context]:
        """Like :meth:`create_exit_span`, also returning the context holding the span."""
        if ctx is None or not operation_name or not peer or injector is None:
            raise AgentError(_ERR_PARAMETER)
        noop = self._create_noop(ctx)
        if noop is not None:
            return noop
        span, new_ctx = self.create_local_span(
            ctx, with_span_type(SpanType.EXIT), with_operation_name(operation_name)
        )
        if isinstance(span, NoopSpan):
            return span, new_ctx
        if not isinstance(span, SegmentSpan):
            raise AgentError("span type is wrong")
        span.set_peer(peer)
        context = span.context
        first_span = context.first_span
        carrier = SpanContext(
            sample=1,
            trace_id=context.trace_id,
            parent_segment_id=context.segment_id,
            parent_span_id=context.span_id,
            parent_service=self.service,
            parent_service_instance=self.instance,
            parent_endpoint=first_span.get_operation_name() if first_span else "",
            address_used_at_client=peer,
            correlation_context=context.correlation_context,
        )
        carrier.encode(injector)
        return span, new_ctx

    def _create_noop(self, ctx: Context) -> tuple[Span, Context] | None:
        if isinstance(ctx.span, NoopSpan):
            return ctx.span, ctx
        if not self._initialized:
            span = NoopSpan()
            return span, ctx.with_span(span)
        return None


_global_lock = threading.Lock()
_global_tracer: Tracer | None = None


def set_global_tracer(tracer: Tracer | None) -> None:
    """Register ``tracer`` as the process-wide tracer."""
    global _global_tracer
    with _global_lock:
        _global_tracer = tracer


def get_global_tracer() -> Tracer | None:
    """Return the process-wide tracer, or ``None`` if none is registered."""
    with _global_lock:
        return _global_tracer