"""Encoding and decoding of the sw8 trace propagation headers."""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass, field
from typing import Callable

HEADER = "sw8"
HEADER_CORRELATION = "sw8-correlation"

_HEADER_LEN = 8
_SPLIT_TOKEN = "-"
_CORRELATION_SPLIT_TOKEN = ","
_CORRELATION_KEY_VALUE_SPLIT_TOKEN = ":"

_DECIMAL = re.compile(r"[+-]?[0-9]+")

Extractor = Callable[[str], str]
"""Returns the value of a header given its key; an empty string if absent."""

Injector = Callable[[str, str], None]
"""Stores a header value under a header key."""


class PropagationError(ValueError):
    """Raised when a propagation header cannot be decoded."""


def _parse_int8(text: str) -> int:
    if not _DECIMAL.fullmatch(text):
        raise ValueError(f"invalid syntax: {text!r}")
    value = int(text)
    if not -(2**7) <= value < 2**7:
        raise ValueError(f"value out of range: {text!r}")
    return value


def _parse_int32(text: str) -> int:
    """Parse an integer with an optional base prefix (0x, 0o, 0b, or leading 0 for octal)."""
    sign, body = "", text
    if body.startswith(("+", "-")):
        sign, body = body[0], body[1:]
    if not body or not body.isascii() or body != body.strip():
        raise ValueError(f"invalid syntax: {text!r}")
    if len(body) > 1 and body[0] == "0" and body[1] not in "xXoObB":
        body = "0o" + body[1:]
    value = int(sign + body, 0)
    if not -(2**31) <= value < 2**31:
        raise ValueError(f"value out of range: {text!r}")
    return value


def _decode_base64(text: str) -> str:
    raw = base64.b64decode(text, validate=True)
    return raw.decode("utf-8", errors="surrogateescape")


def _encode_base64(text: str) -> str:
    raw = text.encode("utf-8", errors="surrogateescape")
    return base64.b64encode(raw).decode("ascii")


@dataclass
class SpanContext:
    """Trace context carried between processes."""

    trace_id: str = ""
    parent_segment_id: str = ""
    parent_service: str = ""
    parent_service_instance: str = ""
    parent_endpoint: str = ""
    address_used_at_client: str = ""
    parent_span_id: int = 0
    sample: int = 0
    valid: bool = False
    correlation_context: dict[str, str] = field(default_factory=dict)

    def decode(self, extractor: Extractor) -> None:
        """Fill this context from the headers returned by ``extractor``."""
        self.valid = False
        header = extractor(HEADER)
        if header:
            self.decode_sw8(header)
        correlation = extractor(HEADER_CORRELATION)
        if correlation:
            self.decode_sw8_correlation(correlation)

    def encode(self, injector: Injector) -> None:
        """Write this context as headers through ``injector``."""
        injector(HEADER, self.encode_sw8())
        injector(HEADER_CORRELATION, self.encode_sw8_correlation())

    def decode_sw8(self, header: str) -> None:
        """Parse an sw8 header string into this context."""
        if not header:
            raise PropagationError("empty header")
        parts = header.split(_SPLIT_TOKEN)
        if len(parts) < _HEADER_LEN:
            raise PropagationError(
                f"header string: {header}: insufficient header entities"
            )
        try:
            self.sample = _parse_int8(parts[0])
        except ValueError as exc:
            raise PropagationError(f"str to int8 error {parts[0]}") from exc

        self.trace_id = self._decode_field(parts[1], "trace id parse error")
        self.parent_segment_id = self._decode_field(
            parts[2], "parent segment id parse error"
        )
        try:
            self.parent_span_id = _parse_int32(parts[3])
        except ValueError as exc:
            raise PropagationError(f"parent span id parse error: {exc}") from exc
        self.parent_service = self._decode_field(parts[4], "parent service parse error")
        self.parent_service_instance = self._decode_field(
            parts[5], "parent service instance parse error"
        )
        self.parent_endpoint = self._decode_field(
            parts[6], "parent endpoint parse error"
        )
        self.address_used_at_client = self._decode_field(
            parts[7], "network address parse error"
        )
        self.valid = True

    def encode_sw8(self) -> str:
        """Render this context as an sw8 header string."""
        return _SPLIT_TOKEN.join(
            [
                str(self.sample),
                _encode_base64(self.trace_id),
                _encode_base64(self.parent_segment_id),
                str(self.parent_span_id),
                _encode_base64(self.parent_service),
                _encode_base64(self.parent_service_instance),
                _encode_base64(self.parent_endpoint),
                _encode_base64(self.address_used_at_client),
            ]
        )

    def decode_sw8_correlation(self, header: str) -> None:
        """Parse an sw8-correlation header; malformed entries are skipped."""
        self.correlation_context = {}
        if not header:
            return
        for entry in header.split(_CORRELATION_SPLIT_TOKEN):
            key_value = entry.split(_CORRELATION_KEY_VALUE_SPLIT_TOKEN)
            if len(key_value) != 2:
                continue
            try:
                key = _decode_base64(key_value[0])
                value = _decode_base64(key_value[1])
            except (binascii.Error, ValueError):
                continue
            self.correlation_context[key] = value

    def encode_sw8_correlation(self) -> str:
        """Render the correlation context as an sw8-correlation header."""
        if not self.correlation_context:
            return ""
        return _CORRELATION_SPLIT_TOKEN.join(
            f"{_encode_base64(key)}{_CORRELATION_KEY_VALUE_SPLIT_TOKEN}{_encode_base64(value)}"
            for key, value in self.correlation_context.items()
        )

    @staticmethod
    def _decode_field(text: str, message: str) -> str:
        try:
            return _decode_base64(text)
        except (binascii.Error, ValueError) as exc:
            raise PropagationError(f"{message}: {exc}") from exc