"""
noleaks
=======

Empirical memory and handle leak detector for test suites.

Instead of inspecting interpreter internals, a suspicious function is run
many times while the process's resident memory and open handle count are
sampled around every call. Growth that does not settle means a leak. This
can only *detect* leaks (including ones in C extensions and external
libraries), it cannot point at them.

    from noleaks import assert_noleaks, noleaks

    assert noleaks(lambda: parse(sample), track_memory=True, warmup_passes=5)
    assert_noleaks(client.fetch_once, track_handles=True, passes=20)

Handles are counted exactly; memory moves in whole pages, so a leak of a
few bytes per call only shows up after enough passes (4 bytes/call needs
about 1024 passes with 4 KiB pages).
"""

from noleaks._version import __version__
from noleaks.api import assert_noleaks, check, noleaks
from noleaks.errors import ConfigurationError, LeakDetectedError, NoLeaksError, ProbeUnavailableError
from noleaks.probe import ProcfsProbe, PsutilProbe, ResourceKind, ResourceProbe, default_probe, make_probe
from noleaks.trial import (
    LeakTrial,
    PassDelta,
    TrialConfig,
    TrialResult,
    TrialState,
    Verdict,
    evaluate,
    judge,
    render_report,
    run_trial,
)

__all__ = [
    "ConfigurationError",
    "LeakDetectedError",
    "LeakTrial",
    "NoLeaksError",
    "PassDelta",
    "ProbeUnavailableError",
    "ProcfsProbe",
    "PsutilProbe",
    "ResourceKind",
    "ResourceProbe",
    "TrialConfig",
    "TrialResult",
    "TrialState",
    "Verdict",
    "__version__",
    "assert_noleaks",
    "check",
    "default_probe",
    "evaluate",
    "judge",
    "make_probe",
    "noleaks",
    "render_report",
    "run_trial",
]
