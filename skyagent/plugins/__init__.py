"""Tracing instrumentation for ``requests`` clients and WSGI applications."""