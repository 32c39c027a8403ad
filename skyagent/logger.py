"""Logging interface used by the agent and a default implementation."""

from __future__ import annotations

import logging
import re
from typing import Any, Protocol

_VERB = re.compile(r"%(%|[-+# 0]*\d*(?:\.\d+)?[a-zA-Z])")
_VERB_MAP = {"v": "s", "t": "s", "q": "r"}


class Log(Protocol):
    """What the agent needs from a logger."""

    def info(self, *args: Any) -> None: ...

    def infof(self, format: str, *args: Any) -> None: ...

    def warn(self, *args: Any) -> None: ...

    def warnf(self, format: str, *args: Any) -> None: ...

    def error(self, *args: Any) -> None: ...

    def errorf(self, format: str, *args: Any) -> None: ...


def _sprint(args: tuple[Any, ...]) -> str:
    """Concatenate operands, adding a space between two adjacent non-strings."""
    pieces: list[str] = []
    previous: Any = None
    for index, arg in enumerate(args):
        if index and not isinstance(arg, str) and not isinstance(previous, str):
            pieces.append(" ")
        pieces.append(str(arg))
        previous = arg
    return "".join(pieces)


def _convert_verb(match: re.Match[str]) -> str:
    spec = match.group(1)
    if spec == "%":
        return "%%"
    verb = spec[-1]
    return "%" + spec[:-1] + _VERB_MAP.get(verb, verb)


def _sprintf(format: str, args: tuple[Any, ...]) -> str:
    converted = _VERB.sub(_convert_verb, format)
    try:
        return converted % args
    except (TypeError, ValueError, KeyError):
        extra = " ".join(str(arg) for arg in args)
        return f"{format} {extra}" if extra else format


class DefaultLogger:
    """A :class:`Log` that writes to a standard :class:`logging.Logger`."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger if logger is not None else logging.getLogger("skyagent")

    def info(self, *args: Any) -> None:
        self.logger.info("%s", _sprint(args))

    def infof(self, format: str, *args: Any) -> None:
        self.logger.info("%s", _sprintf(format, args))

    def warn(self, *args: Any) -> None:
        self.logger.warning("%s", _sprint(args))

    def warnf(self, format: str, *args: Any) -> None:
        self.logger.warning("%s", _sprintf(format, args))

    def error(self, *args: Any) -> None:
        self.logger.error("%s", _sprint(args))

    def errorf(self, format: str, *args: Any) -> None:
        self.logger.error("%s", _sprintf(format, args))