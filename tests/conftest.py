"""Shared fixtures: a scripted process whose counters the probe reads."""

from __future__ import annotations

import pytest

from noleaks.errors import ProbeUnavailableError
from noleaks.probe import ResourceProbe

PAGE = 4096


class FakeProcess:
    """Counters that units of work under test mutate directly."""

    def __init__(self, memory: int = 256 * PAGE, handles: int = 5) -> None:
        self.memory = memory
        self.handles = handles
        self.calls = 0

    def noop(self) -> None:
        self.calls += 1

    def open_handle(self) -> None:
        self.calls += 1
        self.handles += 1

    def allocate(self, size: int = PAGE) -> None:
        self.calls += 1
        self.memory += size


class FakeProbe(ResourceProbe):
    name = "fake"

    def __init__(self, process: FakeProcess, memory: bool = True, handles: bool = True) -> None:
        super().__init__()
        self.process = process
        self.memory_available = memory
        self.handles_available = handles
        self.reads: list[str] = []
        self.closed = False

    def _open_memory(self) -> None:
        if not self.memory_available:
            raise ProbeUnavailableError("memory", "fake process has no memory counter")

    def _open_handles(self) -> None:
        if not self.handles_available:
            raise ProbeUnavailableError("handles", "fake process has no handle counter")

    def _read_memory(self) -> int:
        self.reads.append("memory")
        return self.process.memory

    def _read_handles(self) -> int:
        self.reads.append("handles")
        return self.process.handles

    def _release(self) -> None:
        self.closed = True


@pytest.fixture
def fake_process() -> FakeProcess:
    return FakeProcess()


@pytest.fixture
def fake_probe(fake_process: FakeProcess) -> FakeProbe:
    return FakeProbe(fake_process)


@pytest.fixture
def make_fake_probe(fake_process: FakeProcess):
    def make(**kwargs: bool) -> FakeProbe:
        return FakeProbe(fake_process, **kwargs)

    return make
