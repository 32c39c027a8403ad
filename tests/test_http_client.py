import pytest
import requests
import responses
from requests.adapters import BaseAdapter

from skyagent.plugins.http_client import TracingAdapter, new_client
from skyagent.propagation import HEADER, SpanContext
from skyagent.span import SpanLayer
from skyagent.tool import AgentError
from skyagent.tracer import Reporter, Tracer


class CollectingReporter(Reporter):
    def __init__(self):
        self.segments = []

    def boot(self, service, service_instance, cds_watchers):
        pass

    def send(self, spans):
        self.segments.append(list(spans))

    def close(self):
        pass


class FakeAdapter(BaseAdapter):
    def __init__(self, status=200, exc=None):
        super().__init__()
        self.status = status
        self.exc = exc
        self.requests = []

    def send(self, request, **kwargs):
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        response = requests.Response()
        response.status_code = self.status
        response.request = request
        response.url = request.url
        response._content = b"ok"
        return response

    def close(self):
        pass


@pytest.fixture
def reporter():
    return CollectingReporter()


@pytest.fixture
def tracer(reporter, monkeypatch):
    for name in ("SW_AGENT_NAME", "SW_AGENT_INSTANCE_NAME", "SW_AGENT_SAMPLE"):
        monkeypatch.delenv(name, raising=False)
    return Tracer("example", reporter=reporter, instance="instance")


def _session(tracer, adapter, **options):
    session = requests.Session()
    session.mount("http://", adapter)
    return new_client(tracer, session=session, **options)


def _tags(span):
    return {tag.key: tag.value for tag in span.tags}


def test_new_client_rejects_missing_tracer():
    with pytest.raises(AgentError, match="invalid tracer"):
        new_client(None)


def test_new_client_wraps_every_adapter(tracer):
    session = new_client(tracer)
    assert set(session.adapters) == {"http://", "https://"}
    assert all(isinstance(a, TracingAdapter) for a in session.adapters.values())


def test_request_records_exit_span(tracer, reporter):
    adapter = FakeAdapter()
    session = _session(tracer, adapter)
    response = session.post("http://example.com/end")
    assert response.status_code == 200

    assert len(reporter.segments) == 1
    (span,) = reporter.segments[0]
    assert span.operation_name == "/POST/end"
    assert span.peer == "example.com"
    assert span.is_exit()
    assert span.component_id == 5005
    assert span.layer == SpanLayer.HTTP
    assert not span.is_error
    tags = _tags(span)
    assert tags["http.method"] == "POST"
    assert tags["url"] == "http://example.com/end"
    assert tags["status_code"] == "200"


def test_request_injects_sw8_header(tracer, reporter):
    adapter = FakeAdapter()
    session = _session(tracer, adapter)
    session.get("http://example.com/end")

    sent = adapter.requests[0]
    decoded = SpanContext()
    decoded.decode_sw8(sent.headers[HEADER])
    span = reporter.segments[0][0]
    assert decoded.trace_id == span.context.trace_id
    assert decoded.parent_segment_id == span.context.segment_id
    assert decoded.parent_service == "example"
    assert decoded.parent_service_instance == "instance"
    assert decoded.address_used_at_client == "example.com"


def test_custom_name_and_extra_tags(tracer, reporter):
    session = _session(
        tracer, FakeAdapter(), name="call", extra_tags={"kind": "outer"}
    )
    response = session.get("http://example.com/end")
    assert response.status_code == 200
    assert response.content == b"ok"
    span = reporter.segments[0][0]
    assert span.operation_name == "call"
    assert _tags(span)["kind"] == "outer"
    assert span.tags[0].key == "kind"


def test_error_status_marks_span(tracer, reporter):
    session = _session(tracer, FakeAdapter(status=404))
    response = session.get("http://example.com/missing")
    assert response.status_code == 404
    span = reporter.segments[0][0]
    assert span.is_error
    assert _tags(span)["status_code"] == "404"
    assert span.logs[-1].data[0].key == "Errors on handling client"


def test_transport_failure_is_recorded_and_raised(tracer, reporter):
    failure = requests.ConnectionError("refused")
    session = _session(tracer, FakeAdapter(exc=failure))
    with pytest.raises(requests.ConnectionError):
        session.get("http://example.com/end")
    span = reporter.segments[0][0]
    assert span.is_error
    assert span.logs[0].data[0].key == "refused"
    assert "status_code" not in _tags(span)


def test_untraced_tracer_passes_through(monkeypatch):
    for name in ("SW_AGENT_NAME", "SW_AGENT_INSTANCE_NAME", "SW_AGENT_SAMPLE"):
        monkeypatch.delenv(name, raising=False)
    adapter = FakeAdapter()
    session = _session(Tracer("example"), adapter)
    response = session.get("http://example.com/end")
    assert response.status_code == 200
    assert HEADER not in adapter.requests[0].headers


def test_through_real_http_adapter(tracer, reporter):
    with responses.RequestsMock() as mocked:
        mocked.add(responses.GET, "http://example.com/end", body="done", status=200)
        session = new_client(tracer)
        response = session.get("http://example.com/end")
        assert response.text == "done"
        sent_header = mocked.calls[0].request.headers[HEADER]
    decoded = SpanContext()
    decoded.decode_sw8(sent_header)
    assert decoded.trace_id == reporter.segments[0][0].context.trace_id