"""Decisions on whether a new trace is recorded."""

from __future__ import annotations

import math
import random
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from skyagent.config_discovery import AgentConfigEventType

_FLOAT = re.compile(
    r"[+-]?(?:(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|inf(?:inity)?|nan)",
    re.IGNORECASE,
)


def _parse_float(text: str) -> float:
    if not _FLOAT.fullmatch(text):
        raise ValueError(f"invalid syntax: {text!r}")
    return float(text)


class Sampler(ABC):
    """Decides whether an operation is sampled."""

    @abstractmethod
    def is_sampled(self, operation: str) -> bool: ...


@dataclass(frozen=True)
class ConstSampler(Sampler):
    """Always returns the same decision."""

    decision: bool

    def is_sampled(self, operation: str) -> bool:
        return self.decision


@dataclass
class RandomSampler(Sampler):
    """Samples a percentage of operations at random."""

    sampling_rate: float
    threshold: int = field(init=False)
    _random: random.Random = field(
        init=False, repr=False, compare=False, default_factory=random.Random
    )

    def __post_init__(self) -> None:
        scaled = self.sampling_rate * 100
        self.threshold = 0 if math.isnan(scaled) else int(scaled)

    def is_sampled(self, operation: str) -> bool:
        return self.threshold > self._random.randrange(100)


@dataclass(init=False)
class DynamicSampler(Sampler):
    """A sampler whose rate can be changed by configuration discovery."""

    current_rate: float
    default_rate: float
    sampler: Sampler

    def __init__(self, sampling_rate: float) -> None:
        self.current_rate = sampling_rate
        self.default_rate = sampling_rate
        self.sampler = ConstSampler(True)
        self.notify(AgentConfigEventType.MODIFY, f"{sampling_rate:f}")

    def is_sampled(self, operation: str) -> bool:
        return self.sampler.is_sampled(operation)

    def key(self) -> str:
        return "agent.sample_rate"

    def notify(self, event_type: AgentConfigEventType, new_value: str) -> None:
        """Switch to the rate in ``new_value``; a deletion restores the default rate."""
        if event_type == AgentConfigEventType.DELETED:
            new_value = f"{self.default_rate:f}"
        try:
            rate = _parse_float(new_value)
        except ValueError:
            return
        if rate <= 0:
            self.sampler = ConstSampler(False)
        elif rate >= 1.0:
            self.sampler = ConstSampler(True)
        else:
            self.sampler = RandomSampler(rate)
        self.current_rate = rate

    def value(self) -> str:
        return f"{self.current_rate:f}"