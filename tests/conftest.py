from __future__ import annotations

from typing import Iterable, Optional, Sequence, Tuple

import pytest

from tracelab.errors import SamplingUnavailable
from tracelab.telemetry import ResourceSampler


class FakeClock:
    """Returns start, start+step, start+2*step, ... on successive calls."""

    def __init__(self, start: int = 0, step: int = 100):
        self.now = start
        self.step = step
        self.calls = 0

    def __call__(self) -> int:
        value = self.now
        self.now += self.step
        self.calls += 1
        return value


class FakeSampler(ResourceSampler):
    """Counts its samples; fails on the sample numbers listed in ``fail_on``."""

    def __init__(self, columns: Sequence[str] = ("probe",), fail_on: Iterable[int] = ()):
        self.columns = tuple(columns)
        self.fail_on = set(fail_on)
        self.calls = 0
        self.primed = 0
        self.marks = 0

    def prime(self) -> None:
        self.primed += 1

    def mark(self) -> None:
        self.marks += 1

    def sample(self) -> Tuple[int, ...]:
        n = self.calls
        self.calls += 1
        if n in self.fail_on:
            raise SamplingUnavailable(f"probe {n} unavailable")
        return tuple(n for _ in self.columns)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def probe():
    return FakeSampler()
