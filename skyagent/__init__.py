"""Distributed tracing agent: spans, segments, sw8 context propagation, samplers and reporters."""

__version__ = "0.1.0"