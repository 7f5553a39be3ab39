"""pytest plugin exposing the ``leak_check`` fixture.

    def test_client_closes_sockets(leak_check):
        leak_check(lambda: fetch("http://localhost"), track_handles=True)

Defaults come from ini options (``noleaks_passes`` ...) or the matching
``--noleaks-*`` command line flags; keyword arguments win over both.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator

import pytest

from noleaks.api import assert_noleaks
from noleaks.log import set_log_file
from noleaks.probe import ResourceProbe, make_probe
from noleaks.trial import DEF_PASSES, DEF_TOLERATED_HITS, DEF_WARMUP_PASSES, TrialResult

LeakCheck = Callable[..., TrialResult]


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("noleaks", "resource leak trials")
    group.addoption("--noleaks-passes", type=int, default=None, help=f"Measured passes per leak_check trial (default: ini noleaks_passes or {DEF_PASSES})")
    group.addoption("--noleaks-warmup-passes", type=int, default=None, help=f"Warm-up passes per leak_check trial (default: ini noleaks_warmup_passes or {DEF_WARMUP_PASSES})")
    parser.addini("noleaks_passes", "Measured passes per leak_check trial", default=str(DEF_PASSES))
    parser.addini("noleaks_warmup_passes", "Warm-up passes per leak_check trial", default=str(DEF_WARMUP_PASSES))
    parser.addini("noleaks_tolerated_hits", "Memory-growing passes tolerated per trial", default=str(DEF_TOLERATED_HITS))
    parser.addini("noleaks_probe", "Resource probe: auto, procfs or psutil", default="auto")
    parser.addini("noleaks_log_file", "Append trial diagnostics to this file", default="")


def pytest_configure(config: pytest.Config) -> None:
    for ini in ("noleaks_passes", "noleaks_warmup_passes", "noleaks_tolerated_hits"):
        _int_option(config, ini)
    log_file = config.getini("noleaks_log_file")
    if log_file:
        set_log_file(config.rootpath / log_file)


def _int_option(config: pytest.Config, ini: str, flag: str | None = None) -> int:
    if flag is not None and config.getoption(flag) is not None:
        return config.getoption(flag)
    raw = config.getini(ini)
    try:
        return int(raw)
    except ValueError:
        raise pytest.UsageError(f"ini option {ini} must be an integer (got {raw!r})") from None


@pytest.fixture
def noleaks_probe(pytestconfig: pytest.Config) -> Iterator[ResourceProbe]:
    """Fresh resource probe for the test, closed on teardown."""
    probe = make_probe(pytestconfig.getini("noleaks_probe"))
    try:
        yield probe
    finally:
        probe.close()


@pytest.fixture
def leak_check(pytestconfig: pytest.Config, noleaks_probe: ResourceProbe) -> LeakCheck:
    defaults = {
        "passes": _int_option(pytestconfig, "noleaks_passes", "noleaks_passes"),
        "warmup_passes": _int_option(pytestconfig, "noleaks_warmup_passes", "noleaks_warmup_passes"),
        "tolerated_hits": _int_option(pytestconfig, "noleaks_tolerated_hits"),
    }

    def check(unit_of_work: Callable[[], object], **options: object) -> TrialResult:
        __tracebackhide__ = True
        kwargs = {**defaults, "probe": noleaks_probe, **options}
        return assert_noleaks(unit_of_work, **kwargs)

    return check
