"""Exception types raised by noleaks.

A detected leak is a normal trial outcome and is never raised by the
engine; only the assertion helpers turn it into ``LeakDetectedError``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from noleaks.trial import TrialResult, Verdict


class NoLeaksError(Exception):
    """Base class for noleaks errors."""


class ConfigurationError(NoLeaksError, ValueError):
    """Raised for an invalid trial configuration (a bad test, not a leak)."""


class ProbeUnavailableError(NoLeaksError, RuntimeError):
    """Raised when the host cannot supply a requested resource counter."""

    def __init__(self, kind: str, reason: str) -> None:
        self.kind = kind
        self.reason = reason
        super().__init__(f"cannot track {kind} on this platform: {reason}")


class LeakDetectedError(AssertionError):
    """Raised by ``assert_noleaks`` when a trial is judged leaking."""

    def __init__(self, verdict: Verdict, result: TrialResult, report: str) -> None:
        self.verdict = verdict
        self.result = result
        self.report = report
        super().__init__(report)
