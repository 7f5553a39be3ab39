from __future__ import annotations

import os
import sys
import threading
from types import SimpleNamespace

import psutil
import pytest

from noleaks.errors import ConfigurationError, ProbeUnavailableError
from noleaks.probe import ProcfsProbe, PsutilProbe, ResourceKind, default_probe, make_probe

linux_only = pytest.mark.skipif(not sys.platform.startswith("linux"), reason="needs /proc/self")
posix_only = pytest.mark.skipif(os.name != "posix", reason="file descriptors are POSIX")


@pytest.fixture
def procfs_probe():
    with ProcfsProbe() as probe:
        yield probe


@pytest.fixture
def psutil_probe():
    with PsutilProbe() as probe:
        yield probe


@linux_only
class TestProcfsProbe:
    def test_memory_is_whole_pages(self, procfs_probe):
        mem = procfs_probe.current_memory_bytes()
        assert mem > 0
        assert procfs_probe.page_size == os.sysconf("SC_PAGE_SIZE")
        assert mem % procfs_probe.page_size == 0

    def test_sampling_does_not_change_handle_count(self, procfs_probe):
        counts = {procfs_probe.current_handle_count() for _ in range(50)}
        assert len(counts) == 1

    def test_tracks_open_and_close(self, procfs_probe, tmp_path):
        before = procfs_probe.current_handle_count()
        fp = open(tmp_path / "held.txt", "w")
        try:
            assert procfs_probe.current_handle_count() == before + 1
        finally:
            fp.close()
        assert procfs_probe.current_handle_count() == before

    def test_sample_by_kind_name(self, procfs_probe):
        assert procfs_probe.sample("handles") == procfs_probe.sample(ResourceKind.HANDLES)
        assert procfs_probe.sample("memory") > 0

    def test_unknown_kind(self, procfs_probe):
        with pytest.raises(ValueError):
            procfs_probe.sample("threads")

    def test_close_releases_descriptors(self):
        with ProcfsProbe() as watcher:
            baseline = watcher.current_handle_count()
            probe = ProcfsProbe()
            probe.prepare([ResourceKind.MEMORY, ResourceKind.HANDLES])
            assert watcher.current_handle_count() == baseline + 2
            probe.close()
            assert watcher.current_handle_count() == baseline

    def test_missing_statm(self, monkeypatch, tmp_path):
        monkeypatch.setattr(ProcfsProbe, "STATM_PATH", str(tmp_path / "no-statm"))
        with pytest.raises(ProbeUnavailableError, match="couldn't access") as exc_info:
            ProcfsProbe().prepare(["memory"])
        assert exc_info.value.kind == "memory"

    def test_bad_page_size(self, monkeypatch):
        monkeypatch.setattr(os, "sysconf", lambda name: -1)
        with pytest.raises(ProbeUnavailableError, match="page size"):
            ProcfsProbe().current_memory_bytes()


def test_missing_fd_dir_fails_loudly(monkeypatch, tmp_path):
    monkeypatch.setattr(ProcfsProbe, "FD_DIR", str(tmp_path / "no-fd"))
    probe = ProcfsProbe()
    with pytest.raises(ProbeUnavailableError) as exc_info:
        probe.current_handle_count()
    assert exc_info.value.kind == "handles"
    assert "handles" in str(exc_info.value)


class TestPsutilProbe:
    def test_memory_matches_rss_scale(self, psutil_probe):
        assert psutil_probe.current_memory_bytes() > 0

    @posix_only
    def test_counts_descriptors(self, psutil_probe, tmp_path):
        before = psutil_probe.current_handle_count()
        with open(tmp_path / "held.txt", "w"):
            assert psutil_probe.current_handle_count() == before + 1
        assert psutil_probe.current_handle_count() == before

    def test_access_denied_is_unavailable(self, monkeypatch):
        def denied(self):
            raise psutil.AccessDenied(os.getpid())

        monkeypatch.setattr(psutil.Process, "memory_info", denied)
        with pytest.raises(ProbeUnavailableError) as exc_info:
            PsutilProbe().prepare(["memory"])
        assert exc_info.value.kind == "memory"

    def test_no_handle_counter(self):
        probe = PsutilProbe()
        probe._proc = SimpleNamespace(memory_info=lambda: SimpleNamespace(rss=1))
        with pytest.raises(ProbeUnavailableError, match="neither num_fds"):
            probe.prepare(["handles"])


class TestThreadConfinement:
    def test_other_thread_rejected(self, make_fake_probe):
        probe = make_fake_probe()
        probe.prepare(["memory"])
        errors = []

        def sample():
            try:
                probe.current_memory_bytes()
            except RuntimeError as e:
                errors.append(e)

        t = threading.Thread(target=sample)
        t.start()
        t.join()
        assert len(errors) == 1
        assert "confined" in str(errors[0])

    def test_close_frees_for_another_thread(self, make_fake_probe):
        probe = make_fake_probe()
        probe.prepare(["memory"])
        probe.close()
        assert probe.closed
        values = []
        t = threading.Thread(target=lambda: values.append(probe.current_memory_bytes()))
        t.start()
        t.join()
        assert len(values) == 1

    def test_lazy_prepare(self, fake_probe):
        assert fake_probe.current_handle_count() == fake_probe.process.handles
        assert fake_probe.reads == ["handles"]


class TestFactory:
    def test_named(self):
        assert isinstance(make_probe("procfs"), ProcfsProbe)
        assert isinstance(make_probe("psutil"), PsutilProbe)

    def test_unknown(self):
        with pytest.raises(ConfigurationError, match="unknown probe"):
            make_probe("dtrace")

    @linux_only
    def test_default_on_linux(self):
        assert isinstance(default_probe(), ProcfsProbe)
        assert isinstance(make_probe(), ProcfsProbe)
