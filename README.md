# skyagent

A tracing agent library. It creates entry, exit and local spans, groups the
spans of one unit of work into a segment, propagates trace context between
processes through the `sw8` and `sw8-correlation` headers, and hands finished
segments to a reporter.

## Concepts

- **Tracer** (`skyagent.tracer.Tracer`) – creates spans and decides, through a
  sampler, whether a new trace is recorded at all. A tracer without a reporter
  creates only `NoopSpan`s. An empty service name raises `AgentError`.
- **Context** (`skyagent.trace_context.Context`) – an immutable carrier of the
  active span. Start from `background()`; every span-creating call returns a
  new context holding the new span.
- **Segment** – all spans created under one root span in one process. When the
  root span and every child span registered before it ended have ended, the
  whole segment is passed to the reporter's `send`, root span last.
- **Reporter** (`skyagent.tracer.Reporter`) – receives finished segments.
  `skyagent.log_reporter.LogReporter` writes each one as a JSON line at INFO
  level to a standard `logging` logger; subclass `Reporter` (`boot`, `send`,
  `close`) to ship them elsewhere.

## Creating spans

```python
import datetime
import logging

from skyagent.log_reporter import LogReporter
from skyagent.span import Tag, with_operation_name
from skyagent.trace_context import background
from skyagent.tracer import Tracer

logging.basicConfig(level=logging.INFO)

reporter = LogReporter()
tracer = Tracer("checkout", reporter=reporter)

span, ctx = tracer.create_local_span(background(), with_operation_name("invoke data"))
span.tag(Tag.URL, "/orders/42")

sub_span, _ = tracer.create_local_span(ctx, with_operation_name("invoke inner"))
sub_span.log(datetime.datetime.now(), "inner", "this is right")
sub_span.end()

span.end()
reporter.close()
```

A span's `log(time, *pairs)` records alternating keys and values (a lone last
key gets an empty value); `error(time, *pairs)` does the same and marks the
span as failed. Ending a span twice does nothing.

## Propagating context between services

An incoming request is picked up with an *extractor*, a callable that returns
the value of a header by name (an empty string when absent):

```python
entry, ctx = tracer.create_entry_span(
    background(), "/rest/api", lambda key: incoming_headers.get(key, "")
)
```

A malformed `sw8` header raises `skyagent.propagation.PropagationError`.

An outgoing call is recorded with an *injector*, a callable that stores a
header on the request being sent:

```python
outgoing_headers = {}
exit_span = tracer.create_exit_span(
    ctx, "/foo/bar", "foo.svc:8787", outgoing_headers.__setitem__
)
exit_span.end()
entry.end()
```

`create_exit_span_with_context` does the same and also returns the new
context. Missing arguments raise `AgentError`. The header format itself is
available through `skyagent.propagation.SpanContext` (`encode_sw8`,
`decode_sw8`, `encode_sw8_correlation`, `decode_sw8_correlation`).

## Correlation values

Small key/value pairs travel with the trace to downstream services:

```python
from skyagent.correlation import get_correlation, put_correlation

put_correlation(ctx, "tenant", "blue")
get_correlation(ctx, "tenant")   # "blue"
```

By default a trace carries at most 3 keys, each value at most 128 bytes in
UTF-8; pass `correlation=CorrelationConfig(max_key_count=..., max_value_size=...)`
to `Tracer` to change that. An empty value removes the key. `put_correlation`
returns `False` when a change is refused, including when the context holds no
recorded span.

## Sampling

`Tracer(..., sampling_rate=0.5)` samples about half of new traces. A rate of
0 or less records nothing, 1 or more records everything; the default is 1.
Traces continued from an incoming `sw8` header are always recorded. The rate
can be changed at run time through
`skyagent.config_discovery.ConfigDiscoveryService.handle_command`, which
notifies the `DynamicSampler` bound under the key `agent.sample_rate`; a
deleted key restores the initial rate. A custom `skyagent.sampler.Sampler`
is passed as `sampler=`.

## Environment variables

| Variable                 | Effect                                                       |
|--------------------------|--------------------------------------------------------------|
| `SW_AGENT_NAME`          | overrides the service name                                   |
| `SW_AGENT_INSTANCE_NAME` | overrides the instance name                                  |
| `SW_AGENT_SAMPLE`        | overrides the sampling rate; a non-number raises `AgentError` |

Without an instance name, a tracer with a reporter uses `<uuid>@<ipv4>`.

## Trace data in log lines

```python
from skyagent.logcontext import from_context

print(from_context(ctx))   # [service,instance,traceId,segmentId,spanId]
```

Outside a trace the ids read `N/A`, the names are empty and the span id is `-1`.

## HTTP instrumentation

Incoming requests to a WSGI application:

```python
from skyagent.plugins.wsgi_server import new_server_middleware

middleware = new_server_middleware(tracer)
application = middleware(wsgi_app)
```

Each request becomes an entry span named `/<METHOD><path>` unless a `name` is
given, tagged with method, URL, status code and any `extra_tags`; a status of
400 or above marks the span as failed. The span ends when the response body
has been consumed or closed. While the application runs, the new context is
available as `environ["skyagent.context"]` and through the context variable
`skyagent.plugins.wsgi_server.current_context`.

Outgoing requests made through a `requests` session:

```python
from skyagent.plugins.http_client import new_client

session = new_client(tracer)
```

Every adapter of the session is wrapped in a `TracingAdapter`. Each request
becomes an exit span, a child of the span in `current_context`, tagged with
method, URL and status code, and carries the `sw8` headers to the server.

## Global tracer

`set_global_tracer(tracer)` and `get_global_tracer()` in `skyagent.tracer`
keep one tracer reachable from anywhere in the process.

## What this package does not do

It has no reporter that sends segments to a tracing backend over the network,
and it does not fetch dynamic configuration or send heartbeats by itself:
`ConfigDiscoveryService` only applies commands that are handed to it. Segments
go only where a `Reporter` you provide (or `LogReporter`) puts them.