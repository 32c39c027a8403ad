"""WSGI middleware that records an entry span for every request it serves."""

from __future__ import annotations

from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Iterator, Mapping

from skyagent.propagation import PropagationError
from skyagent.span import Span, SpanLayer, Tag
from skyagent.tool import AgentError
from skyagent.trace_context import Context, background

COMPONENT_ID_GO_HTTP_SERVER = 5004
CONTEXT_ENVIRON_KEY = "skyagent.context"
"""Environ key under which the middleware stores the context holding its span."""

current_context: ContextVar[Context] = ContextVar(
    "skyagent_current_context", default=background()
)
"""The trace context of the request being handled by the current thread or task."""

_ERR_INVALID_TRACER = "invalid tracer"

WSGIApp = Callable[[dict, Callable[..., Any]], Iterable[bytes]]


def get_operation_name(name: str, method: str, path: str) -> str:
    """Return ``name``, or ``/<METHOD><path>`` when no name is configured."""
    if not name:
        return f"/{method}{path}"
    return name


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _header_key(key: str) -> str:
    return "HTTP_" + key.upper().replace("-", "_")


class _TracedBody:
    """Passes the application's body through and finishes the span once done."""

    def __init__(self, body: Iterable[bytes], finish: Callable[[], None]) -> None:
        self._body = body
        self._finish = finish
        self._finished = False

    def __iter__(self) -> Iterator[bytes]:
        yield from self._body
        self._done()

    def close(self) -> None:
        try:
            close = getattr(self._body, "close", None)
            if close is not None:
                close()
        finally:
            self._done()

    def _done(self) -> None:
        if not self._finished:
            self._finished = True
            self._finish()


class TracingMiddleware:
    """Wraps a WSGI application and traces each request as an entry span."""

    def __init__(
        self,
        tracer: Any,
        app: WSGIApp | None,
        *,
        name: str = "",
        extra_tags: Mapping[str, str] | None = None,
    ) -> None:
        self.tracer = tracer
        self.app = app
        self.name = name
        self.extra_tags = dict(extra_tags or {})

    def _call_app(self, environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
        if self.app is None:
            start_response("200 OK", [])
            return []
        return self.app(environ, start_response)

    def __call__(self, environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
        method = environ.get("REQUEST_METHOD", "GET")
        path = environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", "")
        ctx = environ.get(CONTEXT_ENVIRON_KEY) or current_context.get()
        try:
            span, new_ctx = self.tracer.create_entry_span(
                ctx,
                get_operation_name(self.name, method, path),
                lambda key: environ.get(_header_key(key), ""),
            )
        except (AgentError, PropagationError):
            return self._call_app(environ, start_response)

        span.set_component(COMPONENT_ID_GO_HTTP_SERVER)
        for key, value in self.extra_tags.items():
            span.tag(key, value)
        span.tag(Tag.HTTP_METHOD, method)
        host = environ.get("HTTP_HOST") or environ.get("SERVER_NAME", "")
        span.tag(Tag.URL, f"{host}{path}")
        span.set_span_layer(SpanLayer.HTTP)

        status = {"code": 200}

        def traced_start_response(status_line: str, headers: list, exc_info: Any = None) -> Any:
            try:
                status["code"] = int(status_line.split(" ", 1)[0])
            except ValueError:
                pass
            if exc_info is not None:
                return start_response(status_line, headers, exc_info)
            return start_response(status_line, headers)

        def finish() -> None:
            self._finish_span(span, status["code"])

        environ[CONTEXT_ENVIRON_KEY] = new_ctx
        token = current_context.set(new_ctx)
        try:
            body = self._call_app(environ, traced_start_response)
        except BaseException:
            finish()
            raise
        finally:
            current_context.reset(token)
        return _TracedBody(body, finish)

    @staticmethod
    def _finish_span(span: Span, code: int) -> None:
        if code >= 400:
            span.error(_now(), "Error on handling request")
        span.tag(Tag.STATUS_CODE, str(code))
        span.end()


def new_server_middleware(
    tracer: Any,
    *,
    name: str = "",
    extra_tags: Mapping[str, str] | None = None,
) -> Callable[[WSGIApp | None], TracingMiddleware]:
    """Return a function that wraps a WSGI application with tracing."""
    if tracer is None:
        raise AgentError(_ERR_INVALID_TRACER)

    def wrap(app: WSGIApp | None) -> TracingMiddleware:
        return TracingMiddleware(tracer, app, name=name, extra_tags=extra_tags)

    return wrap