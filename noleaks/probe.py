"""
Per-process resource counters.

A probe answers two questions about the *current* process: how much
resident memory it holds (bytes) and how many OS handles it has open. The
values only mean something when compared with a later reading from the same
probe, so probes keep whatever OS state they need open between samples:
reopening ``/proc/self/fd`` on every call would itself show up as handle
churn.

Facilities are opened lazily by ``prepare()``. A missing facility raises
``ProbeUnavailableError`` there, before any measurement, instead of
reporting zero.
"""

from __future__ import annotations

import enum
import os
import sys
import threading
from collections.abc import Callable, Iterable
from typing import IO

import psutil

from noleaks.errors import ConfigurationError, ProbeUnavailableError

PROBE_NAMES = ("auto", "procfs", "psutil")


class ResourceKind(str, enum.Enum):
    MEMORY = "memory"
    HANDLES = "handles"


class ResourceProbe:
    """Base class: thread-confined, lazily initialised counter source."""

    name = "base"

    def __init__(self) -> None:
        self._owner: int | None = None
        self._prepared: set[ResourceKind] = set()

    # ── lifecycle ───────────────────────────────────────────────────────────
    def prepare(self, kinds: Iterable[ResourceKind | str]) -> None:
        """Open the facilities needed for *kinds*."""
        self._check_thread()
        for kind in map(ResourceKind, kinds):
            if kind in self._prepared:
                continue
            if kind is ResourceKind.MEMORY:
                self._open_memory()
            else:
                self._open_handles()
            self._prepared.add(kind)

    def close(self) -> None:
        self._release()
        self._prepared.clear()
        self._owner = None

    def __enter__(self) -> ResourceProbe:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ── queries ─────────────────────────────────────────────────────────────
    def sample(self, kind: ResourceKind | str) -> int:
        if ResourceKind(kind) is ResourceKind.MEMORY:
            return self.current_memory_bytes()
        return self.current_handle_count()

    def current_memory_bytes(self) -> int:
        self._ensure(ResourceKind.MEMORY)
        return self._read_memory()

    def current_handle_count(self) -> int:
        self._ensure(ResourceKind.HANDLES)
        return self._read_handles()

    # ── helpers ─────────────────────────────────────────────────────────────
    def _ensure(self, kind: ResourceKind) -> None:
        self._check_thread()
        if kind not in self._prepared:
            self.prepare((kind,))

    def _check_thread(self) -> None:
        ident = threading.get_ident()
        if self._owner is None:
            self._owner = ident
        elif self._owner != ident:
            raise RuntimeError(f"{type(self).__name__} is confined to the thread that prepared it")

    # ── subclass hooks ──────────────────────────────────────────────────────
    def _open_memory(self) -> None:
        raise NotImplementedError

    def _open_handles(self) -> None:
        raise NotImplementedError

    def _read_memory(self) -> int:
        raise NotImplementedError

    def _read_handles(self) -> int:
        raise NotImplementedError

    def _release(self) -> None:
        pass


class ProcfsProbe(ResourceProbe):
    """Linux probe reading ``/proc/self`` through descriptors held open."""

    name = "procfs"

    STATM_PATH = "/proc/self/statm"
    FD_DIR = "/proc/self/fd"

    def __init__(self) -> None:
        super().__init__()
        self._page_size = 0
        self._statm: IO[bytes] | None = None
        self._fd_dir: int | None = None

    @property
    def page_size(self) -> int:
        return self._page_size

    def _open_memory(self) -> None:
        try:
            page_size = os.sysconf("SC_PAGE_SIZE")
        except (AttributeError, ValueError, OSError) as e:
            raise ProbeUnavailableError("memory", f"page size cannot be determined: {e}") from e
        if page_size <= 0:
            raise ProbeUnavailableError("memory", f"page size cannot be determined (got {page_size})")
        try:
            statm = open(self.STATM_PATH, "rb", buffering=0)  # noqa: SIM115
        except OSError as e:
            raise ProbeUnavailableError("memory", f"couldn't access {self.STATM_PATH}: {e}") from e
        self._page_size = page_size
        self._statm = statm

    def _read_memory(self) -> int:
        assert self._statm is not None
        self._statm.seek(0)
        # statm: size resident shared text lib data dt (all in pages)
        resident_pages = int(self._statm.read(256).split()[1])
        return resident_pages * self._page_size

    def _open_handles(self) -> None:
        if os.listdir not in os.supports_fd:
            raise ProbeUnavailableError("handles", "os.listdir() cannot list an open directory descriptor")
        flags = os.O_RDONLY | getattr(os, "O_DIRECTORY", 0)
        try:
            fd = os.open(self.FD_DIR, flags)
        except OSError as e:
            raise ProbeUnavailableError("handles", f"can't open {self.FD_DIR}: {e}") from e
        self._fd_dir = fd

    def _read_handles(self) -> int:
        # Listing via the held descriptor rewinds it in place. The count includes
        # our own descriptors, which stay constant between samples.
        assert self._fd_dir is not None
        return len(os.listdir(self._fd_dir))

    def _release(self) -> None:
        if self._statm is not None:
            self._statm.close()
            self._statm = None
        if self._fd_dir is not None:
            os.close(self._fd_dir)
            self._fd_dir = None


class PsutilProbe(ResourceProbe):
    """Portable probe backed by ``psutil.Process`` for the current process."""

    name = "psutil"

    def __init__(self) -> None:
        super().__init__()
        self._proc: psutil.Process | None = None
        self._count_handles: Callable[[], int] | None = None

    def _process(self) -> psutil.Process:
        if self._proc is None:
            self._proc = psutil.Process()
        return self._proc

    def _open_memory(self) -> None:
        try:
            self._process().memory_info()
        except psutil.Error as e:
            raise ProbeUnavailableError("memory", f"psutil cannot read memory info: {e}") from e

    def _read_memory(self) -> int:
        return self._process().memory_info().rss

    def _open_handles(self) -> None:
        proc = self._process()
        # num_fds() is POSIX only, num_handles() Windows only
        counter = getattr(proc, "num_fds", None) or getattr(proc, "num_handles", None)
        if counter is None:
            raise ProbeUnavailableError("handles", "psutil exposes neither num_fds() nor num_handles() here")
        try:
            counter()
        except psutil.Error as e:
            raise ProbeUnavailableError("handles", f"psutil cannot count handles: {e}") from e
        self._count_handles = counter

    def _read_handles(self) -> int:
        assert self._count_handles is not None
        return self._count_handles()

    def _release(self) -> None:
        self._proc = None
        self._count_handles = None


def default_probe() -> ResourceProbe:
    """Return the best probe for this platform."""
    if sys.platform.startswith("linux") and os.path.isdir("/proc/self"):
        return ProcfsProbe()
    return PsutilProbe()


def make_probe(name: str = "auto") -> ResourceProbe:
    if name == "auto":
        return default_probe()
    if name == "procfs":
        return ProcfsProbe()
    if name == "psutil":
        return PsutilProbe()
    raise ConfigurationError(f"unknown probe {name!r} (expected one of: {', '.join(PROBE_NAMES)})")
