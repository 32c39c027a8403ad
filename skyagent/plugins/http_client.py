"""A ``requests`` transport adapter that records an exit span for every call."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping
from urllib.parse import unquote, urlsplit

import requests
from requests.adapters import BaseAdapter, HTTPAdapter

from skyagent.plugins.wsgi_server import current_context, get_operation_name
from skyagent.span import SpanLayer, Tag
from skyagent.tool import AgentError

COMPONENT_ID_GO_HTTP_CLIENT = 5005

_ERR_INVALID_TRACER = "invalid tracer"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TracingAdapter(BaseAdapter):
    """Traces requests and hands them on to another adapter."""

    def __init__(
        self,
        tracer: Any,
        delegated: BaseAdapter | None = None,
        *,
        name: str = "",
        extra_tags: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__()
        self.tracer = tracer
        self.delegated = delegated if delegated is not None else HTTPAdapter()
        self.name = name
        self.extra_tags = dict(extra_tags or {})

    def send(self, request: requests.PreparedRequest, **kwargs: Any) -> requests.Response:
        """Send ``request`` inside an exit span, injecting the trace headers."""
        parts = urlsplit(request.url or "")
        host = parts.netloc.rpartition("@")[2]
        method = request.method or "GET"

        def inject(key: str, value: str) -> None:
            request.headers[key] = value

        try:
            span = self.tracer.create_exit_span(
                current_context.get(),
                get_operation_name(self.name, method, unquote(parts.path)),
                host,
                inject,
            )
        except AgentError:
            return self.delegated.send(request, **kwargs)

        try:
            span.set_component(COMPONENT_ID_GO_HTTP_CLIENT)
            for key, value in self.extra_tags.items():
                span.tag(key, value)
            span.tag(Tag.HTTP_METHOD, method)
            span.tag(Tag.URL, request.url or "")
            span.set_span_layer(SpanLayer.HTTP)
            try:
                response = self.delegated.send(request, **kwargs)
            except Exception as exc:
                span.error(_now(), str(exc))
                raise
            span.tag(Tag.STATUS_CODE, str(response.status_code))
            if response.status_code >= 400:
                span.error(_now(), "Errors on handling client")
            return response
        finally:
            span.end()

    def close(self) -> None:
        self.delegated.close()


def new_client(
    tracer: Any,
    *,
    name: str = "",
    session: requests.Session | None = None,
    extra_tags: Mapping[str, str] | None = None,
) -> requests.Session:
    """Return ``session`` (or a new one) with every adapter wrapped for tracing."""
    if tracer is None:
        raise AgentError(_ERR_INVALID_TRACER)
    if session is None:
        session = requests.Session()
    for prefix, adapter in list(session.adapters.items()):
        session.mount(
            prefix,
            TracingAdapter(tracer, adapter, name=name, extra_tags=extra_tags),
        )
    return session