"""Public entry points: a boolean check and an asserting check.

Both build a ``TrialConfig`` from keyword options and share ``evaluate``;
they only differ in how the verdict reaches the caller.
"""

from __future__ import annotations

from collections.abc import Callable

from noleaks.errors import LeakDetectedError
from noleaks.log import log
from noleaks.probe import ResourceProbe
from noleaks.trial import (
    DEF_PASSES,
    DEF_TOLERATED_HITS,
    DEF_WARMUP_PASSES,
    TrialConfig,
    TrialResult,
    Verdict,
    evaluate,
    render_report,
)


def check(
    unit_of_work: Callable[[], object],
    *,
    track_memory: bool = False,
    track_handles: bool = False,
    passes: int = DEF_PASSES,
    warmup_passes: int = DEF_WARMUP_PASSES,
    tolerated_hits: int = DEF_TOLERATED_HITS,
    probe: ResourceProbe | None = None,
) -> tuple[TrialConfig, Verdict, TrialResult]:
    config = TrialConfig(
        unit_of_work=unit_of_work,
        track_memory=track_memory,
        track_handles=track_handles,
        passes=passes,
        warmup_passes=warmup_passes,
        tolerated_hits=tolerated_hits,
    )
    verdict, result = evaluate(config, probe)
    return config, verdict, result


def noleaks(unit_of_work: Callable[[], object], **options: object) -> bool:
    """Return True when *unit_of_work* shows no leak.

    Options are those of ``TrialConfig`` plus ``probe``. Meant for
    ``assert noleaks(fn, track_handles=True)``.
    """
    _, verdict, _ = check(unit_of_work, **options)  # type: ignore[arg-type]
    return not verdict.leaked


def assert_noleaks(unit_of_work: Callable[[], object], **options: object) -> TrialResult:
    """Run a trial and raise ``LeakDetectedError`` with the report on a leak."""
    config, verdict, result = check(unit_of_work, **options)  # type: ignore[arg-type]
    if verdict.leaked:
        report = render_report(config, result, verdict)
        log(f"Leak detected in {getattr(unit_of_work, '__qualname__', unit_of_work)!s}:\n{report}")
        raise LeakDetectedError(verdict, result, report)
    return result
