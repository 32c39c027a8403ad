"""Spans: the unit of work recorded by the tracer, plus span options."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Any, Callable

from skyagent.tool import millisecond

if TYPE_CHECKING:
    from skyagent.propagation import SpanContext


class SpanType(IntEnum):
    """Kind of a span."""

    ENTRY = 0
    """An entry span, e.g. an HTTP server handling a request."""
    EXIT = 1
    """An exit span, e.g. an HTTP client call."""
    LOCAL = 2
    """A local span, e.g. a local method invocation."""


class SpanLayer(IntEnum):
    """Technology layer a span belongs to."""

    UNKNOWN = 0
    DATABASE = 1
    RPC_FRAMEWORK = 2
    HTTP = 3
    MQ = 4
    CACHE = 5
    FAAS = 6


class Tag(str, Enum):
    """Tag keys with a particular meaning to the backend.

    Any other string may be used as a tag key as well.
    """

    URL = "url"
    STATUS_CODE = "status_code"
    HTTP_METHOD = "http.method"
    DB_TYPE = "db.type"
    DB_INSTANCE = "db.instance"
    DB_STATEMENT = "db.statement"
    DB_SQL_PARAMETERS = "db.sql.parameters"
    MQ_QUEUE = "mq.queue"
    MQ_BROKER = "mq.broker"
    MQ_TOPIC = "mq.topic"


COMPONENT_ID_HTTP_SERVER = 49


@dataclass
class KeyStringValuePair:
    """A key and its string value."""

    key: str = ""
    value: str = ""


@dataclass
class LogRecord:
    """A timed group of key/value pairs attached to a span."""

    time: int
    data: list[KeyStringValuePair] = field(default_factory=list)


def _tag_key(key: str | Tag) -> str:
    return key.value if isinstance(key, Enum) else str(key)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Span(ABC):
    """What every span offers to instrumented code."""

    @abstractmethod
    def set_operation_name(self, name: str) -> None: ...

    @abstractmethod
    def get_operation_name(self) -> str: ...

    @abstractmethod
    def set_peer(self, peer: str) -> None: ...

    @abstractmethod
    def set_span_layer(self, layer: SpanLayer) -> None: ...

    @abstractmethod
    def set_component(self, component_id: int) -> None: ...

    @abstractmethod
    def tag(self, key: str | Tag, value: str) -> None: ...

    @abstractmethod
    def log(self, time: datetime, *args: str) -> None: ...

    @abstractmethod
    def error(self, time: datetime, *args: str) -> None: ...

    @abstractmethod
    def end(self) -> None: ...

    @abstractmethod
    def is_entry(self) -> bool: ...

    @abstractmethod
    def is_exit(self) -> bool: ...

    @abstractmethod
    def is_valid(self) -> bool: ...


@dataclass(eq=False)
class DefaultSpan(Span):
    """A span holding its own recorded data; it starts as a local span."""

    tracer: Any = None
    refs: list[SpanContext] = field(default_factory=list)
    start_time: datetime = field(default_factory=_now)
    end_time: datetime | None = None
    operation_name: str = ""
    peer: str = ""
    layer: SpanLayer = SpanLayer.UNKNOWN
    component_id: int = 0
    tags: list[KeyStringValuePair] = field(default_factory=list)
    logs: list[LogRecord] = field(default_factory=list)
    is_error: bool = False
    span_type: SpanType = SpanType.LOCAL

    def set_operation_name(self, name: str) -> None:
        self.operation_name = name

    def get_operation_name(self) -> str:
        return self.operation_name

    def set_peer(self, peer: str) -> None:
        self.peer = peer

    def set_span_layer(self, layer: SpanLayer) -> None:
        self.layer = layer

    def set_component(self, component_id: int) -> None:
        self.component_id = component_id

    def tag(self, key: str | Tag, value: str) -> None:
        self.tags.append(KeyStringValuePair(key=_tag_key(key), value=value))

    def log(self, time: datetime, *args: str) -> None:
        """Record ``args`` as alternating keys and values; a lone last key gets ``""``."""
        keys = args[0::2]
        values = args[1::2]
        data = [
            KeyStringValuePair(key=key, value=values[i] if i < len(values) else "")
            for i, key in enumerate(keys)
        ]
        self.logs.append(LogRecord(time=millisecond(time), data=data))

    def error(self, time: datetime, *args: str) -> None:
        self.is_error = True
        self.log(time, *args)

    def end(self) -> None:
        self.end_time = _now()

    def is_entry(self) -> bool:
        return self.span_type == SpanType.ENTRY

    def is_exit(self) -> bool:
        return self.span_type == SpanType.EXIT

    def is_valid(self) -> bool:
        return self.end_time is None


class NoopSpan(Span):
    """A span that records nothing; used when a trace is not sampled."""

    def set_operation_name(self, name: str) -> None:
        pass

    def get_operation_name(self) -> str:
        return ""

    def set_peer(self, peer: str) -> None:
        pass

    def set_span_layer(self, layer: SpanLayer) -> None:
        pass

    def set_component(self, component_id: int) -> None:
        pass

    def tag(self, key: str | Tag, value: str) -> None:
        pass

    def log(self, time: datetime, *args: str) -> None:
        pass

    def error(self, time: datetime, *args: str) -> None:
        pass

    def end(self) -> None:
        pass

    def is_entry(self) -> bool:
        return False

    def is_exit(self) -> bool:
        return False

    def is_valid(self) -> bool:
        return True


SpanOption = Callable[[DefaultSpan], None]
"""Adjusts a span while it is being created."""


def with_context(sc: SpanContext | None) -> SpanOption:
    """Add ``sc`` as a reference of the span, unless it is ``None``."""

    def apply(span: DefaultSpan) -> None:
        if sc is not None:
            span.refs.append(sc)

    return apply


def with_span_type(span_type: SpanType) -> SpanOption:
    """Set the span type."""

    def apply(span: DefaultSpan) -> None:
        span.span_type = span_type

    return apply


def with_operation_name(operation_name: str) -> SpanOption:
    """Set the operation name."""

    def apply(span: DefaultSpan) -> None:
        span.operation_name = operation_name

    return apply