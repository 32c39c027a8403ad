"""Dynamic agent configuration pushed by the backend."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Iterable, Protocol

from skyagent.span import KeyStringValuePair

_SERIAL_NUMBER_KEY = "SerialNumber"
_UUID_KEY = "UUID"


class AgentConfigEventType(IntEnum):
    """How a configuration entry changed."""

    MODIFY = 0
    DELETED = 1


class AgentConfigChangeWatcher(Protocol):
    """Something that reacts to changes of one configuration key."""

    def key(self) -> str: ...

    def notify(self, event_type: AgentConfigEventType, new_value: str) -> None: ...

    def value(self) -> str: ...


@dataclass
class Command:
    """A command sent by the backend, with its arguments."""

    command: str = ""
    args: list[KeyStringValuePair] = field(default_factory=list)


class ConfigDiscoveryService:
    """Dispatches configuration commands to the watchers bound to their keys."""

    def __init__(self) -> None:
        self.uuid = ""
        self.watchers: dict[str, AgentConfigChangeWatcher] = {}

    def bind_watchers(self, watchers: Iterable[AgentConfigChangeWatcher]) -> None:
        """Replace the bound watchers, indexed by their keys."""
        self.watchers = {watcher.key(): watcher for watcher in watchers}

    def handle_command(self, command: Command) -> None:
        """Apply a configuration command unless it carries the current UUID."""
        uuid = ""
        new_configs: dict[str, str] = {}
        for pair in command.args:
            if pair.key == _SERIAL_NUMBER_KEY:
                continue
            if pair.key == _UUID_KEY:
                uuid = pair.value
            else:
                new_configs[pair.key] = pair.value

        if self.uuid == uuid:
            return

        for key, watcher in self.watchers.items():
            value = new_configs.get(key, "")
            if not value:
                watcher.notify(AgentConfigEventType.DELETED, "")
            elif value != watcher.value():
                watcher.notify(AgentConfigEventType.MODIFY, value)

        self.uuid = uuid