from dataclasses import dataclass, field
from typing import Any

from skyagent.correlation import CorrelationConfig, get_correlation, put_correlation
from skyagent.propagation import SpanContext
from skyagent.segment import new_segment_span
from skyagent.span import DefaultSpan, NoopSpan
from skyagent.trace_context import background

TEST_KEY = "test-key"
TEST_VALUE = "test-value"


class SilentReporter:
    def send(self, spans):
        self.spans = spans


@dataclass
class FakeTracer:
    service: str = "correlationTest"
    instance: str = "instance"
    reporter: Any = field(default_factory=SilentReporter)
    correlation: CorrelationConfig = field(
        default_factory=lambda: CorrelationConfig(max_key_count=3, max_value_size=10)
    )


def traced_context(refs=None):
    tracer = FakeTracer()
    span = new_segment_span(DefaultSpan(tracer=tracer, refs=refs or []), None)
    return background().with_span(span), tracer


def test_default_limits():
    config = CorrelationConfig()
    assert (config.max_key_count, config.max_value_size) == (3, 128)


def test_put_and_get_without_reference():
    ctx, _ = traced_context()
    assert put_correlation(ctx, TEST_KEY, TEST_VALUE) is True
    assert get_correlation(ctx, TEST_KEY) == TEST_VALUE


def test_existing_correlation_from_reference():
    ref = SpanContext()
    ref.decode_sw8_correlation("dGVzdDE=:dDE=")
    ctx, _ = traced_context([ref])
    assert get_correlation(ctx, "test1") == "t1"
    assert put_correlation(ctx, TEST_KEY, TEST_VALUE) is True
    assert get_correlation(ctx, TEST_KEY) == TEST_VALUE
    assert get_correlation(ctx, "test1") == "t1"


def test_correlation_visible_in_child_span():
    ctx, tracer = traced_context()
    put_correlation(ctx, TEST_KEY, TEST_VALUE)
    child = new_segment_span(DefaultSpan(tracer=tracer), ctx.span)
    child_ctx = ctx.with_span(child)
    assert get_correlation(child_ctx, TEST_KEY) == TEST_VALUE


def test_put_bound_judge():
    ctx, _ = traced_context()
    assert put_correlation(ctx, "", "123") is False

    assert put_correlation(ctx, TEST_KEY, TEST_VALUE) is True
    assert put_correlation(ctx, TEST_KEY, "") is True
    assert get_correlation(ctx, TEST_KEY) == ""

    assert put_correlation(ctx, "test-key", "1234567890123456") is False

    assert put_correlation(ctx, "test-key1", "123") is True
    assert put_correlation(ctx, "test-key2", "123") is True
    assert put_correlation(ctx, "test-key3", "123") is True
    assert put_correlation(ctx, "test-key4", "123") is False

    assert put_correlation(ctx, "test-key1", "123456") is True

    assert ctx.span.context.correlation_context == {
        "test-key1": "123456",
        "test-key2": "123",
        "test-key3": "123",
    }


def test_empty_context():
    assert get_correlation(background(), "empty-key") == ""
    assert put_correlation(background(), "empty-key", "empty-value") is False
    assert get_correlation(background(), "empty-key") == ""


def test_noop_span_context():
    ctx = background().with_span(NoopSpan())
    assert put_correlation(ctx, TEST_KEY, TEST_VALUE) is False
    assert get_correlation(ctx, TEST_KEY) == ""