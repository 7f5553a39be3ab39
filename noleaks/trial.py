"""
Leak trial engine.

A trial calls a unit of work many times and brackets every call with
resource samples. Per-pass growth is clamped at zero and summed; the
verdict then looks at the totals:

* handles leak when any net handle growth remains (handles are exact);
* memory leaks when it grew at all *and* more passes grew than
  ``tolerated_hits`` allows (allocators may legitimately grab a page now
  and then).

Warm-up passes run before measuring so caches, pools and other first-call
allocations settle first.
"""

from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass

from noleaks.errors import ConfigurationError
from noleaks.log import log
from noleaks.probe import ResourceKind, ResourceProbe, default_probe

# ──────────────────────────── Trial defaults ────────────────────────────────
DEF_PASSES = 100  # measured passes
DEF_WARMUP_PASSES = 0  # unmeasured passes before measuring
DEF_TOLERATED_HITS = 0  # growing memory passes forgiven
MIN_PASSES = 2

NO_LEAKS_MESSAGE = "no leaks have been found"


# ──────────────────────────────  Data structures  ───────────────────────────
@dataclass(frozen=True)
class TrialConfig:
    """What to run and what to watch. Validated on construction."""

    unit_of_work: Callable[[], object]
    track_memory: bool = False
    track_handles: bool = False
    passes: int = DEF_PASSES
    warmup_passes: int = DEF_WARMUP_PASSES
    tolerated_hits: int = DEF_TOLERATED_HITS

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if not callable(self.unit_of_work):
            raise ConfigurationError(f"unit_of_work must be callable (got {type(self.unit_of_work).__name__})")
        if not self.track_memory and not self.track_handles:
            raise ConfigurationError("don't know what to track (neither track_memory nor track_handles is set)")
        for name in ("passes", "warmup_passes", "tolerated_hits"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{name} must be an integer (got {value!r})")
        if self.passes < MIN_PASSES:
            raise ConfigurationError(f"passes count too small (should be at least {MIN_PASSES}, got {self.passes})")
        if self.warmup_passes < 0:
            raise ConfigurationError(f"warmup_passes count too small (should be non-negative, got {self.warmup_passes})")
        if self.tolerated_hits < 0:
            raise ConfigurationError(f"tolerated_hits must be non-negative (got {self.tolerated_hits})")

    @property
    def kinds(self) -> tuple[ResourceKind, ...]:
        kinds = []
        if self.track_memory:
            kinds.append(ResourceKind.MEMORY)
        if self.track_handles:
            kinds.append(ResourceKind.HANDLES)
        return tuple(kinds)


@dataclass(frozen=True)
class PassDelta:
    index: int  # 1-based
    memory: int = 0
    handles: int = 0

    @property
    def is_zero(self) -> bool:
        return not self.memory and not self.handles


@dataclass(frozen=True)
class TrialResult:
    deltas: tuple[PassDelta, ...] = ()
    total_memory: int = 0
    total_handles: int = 0
    memory_hits: int = 0


@dataclass(frozen=True)
class Verdict:
    memory_leak: bool = False
    handle_leak: bool = False

    @property
    def leaked(self) -> bool:
        return self.memory_leak or self.handle_leak


class TrialState(enum.Enum):
    CONFIGURING = "configuring"
    WARMING_UP = "warming-up"
    MEASURING = "measuring"
    DONE = "done"


# ───────────────────────────────── Engine ───────────────────────────────────
@dataclass
class LeakTrial:
    """One run of the warm-up/measure protocol. Runs at most once."""

    config: TrialConfig
    probe: ResourceProbe
    state: TrialState = TrialState.CONFIGURING

    def run(self) -> TrialResult:
        if self.state is not TrialState.CONFIGURING:
            raise RuntimeError(f"trial already {self.state.value}; create a new LeakTrial to run again")

        cfg = self.config
        cfg.validate()
        kinds = cfg.kinds
        self.probe.prepare(kinds)
        log(f"Trial start: {_qualname(cfg.unit_of_work)} tracking {'+'.join(k.value for k in kinds)}, passes={cfg.passes}, warmup={cfg.warmup_passes}, probe={self.probe.name}")

        self.state = TrialState.WARMING_UP
        work = cfg.unit_of_work
        for _ in range(cfg.warmup_passes):
            work()
        # throwaway samples so first-use costs of the probe itself land here
        for kind in kinds:
            self.probe.sample(kind)

        self.state = TrialState.MEASURING
        track_memory = cfg.track_memory
        track_handles = cfg.track_handles
        sample_memory = self.probe.current_memory_bytes
        sample_handles = self.probe.current_handle_count
        deltas = []
        total_memory = total_handles = memory_hits = 0
        mem_t0 = fds_t0 = mem_t1 = fds_t1 = 0

        for index in range(1, cfg.passes + 1):
            if track_memory:
                mem_t0 = sample_memory()
            if track_handles:
                fds_t0 = sample_handles()
            work()
            if track_memory:
                mem_t1 = sample_memory()
            if track_handles:
                fds_t1 = sample_handles()

            leaked_mem = max(0, mem_t1 - mem_t0)
            leaked_fds = max(0, fds_t1 - fds_t0)
            deltas.append(PassDelta(index, leaked_mem, leaked_fds))
            total_memory += leaked_mem
            total_handles += leaked_fds
            if leaked_mem > 0:
                memory_hits += 1

        self.state = TrialState.DONE
        result = TrialResult(tuple(deltas), total_memory, total_handles, memory_hits)
        log(f"Trial done: {_qualname(work)} memory={total_memory}B ({memory_hits} hits) handles={total_handles}")
        return result


def _qualname(obj: object) -> str:
    return getattr(obj, "__qualname__", getattr(obj, "__name__", repr(obj)))


# ──────────────────────────────── Verdicts ──────────────────────────────────
def run_trial(config: TrialConfig, probe: ResourceProbe | None = None) -> TrialResult:
    """Run *config* once and return the raw measurements.

    Without a *probe*, a fresh platform probe is used and closed afterwards.
    """
    if probe is not None:
        return LeakTrial(config, probe).run()
    with default_probe() as owned:
        return LeakTrial(config, owned).run()


def judge(config: TrialConfig, result: TrialResult) -> Verdict:
    """Apply the leak rule to a finished trial."""
    handle_leak = config.track_handles and result.total_handles > 0
    memory_leak = config.track_memory and result.total_memory > 0 and result.memory_hits > config.tolerated_hits
    return Verdict(memory_leak=memory_leak, handle_leak=handle_leak)


def evaluate(config: TrialConfig, probe: ResourceProbe | None = None) -> tuple[Verdict, TrialResult]:
    result = run_trial(config, probe)
    return judge(config, result), result


def summary_line(config: TrialConfig, result: TrialResult) -> str:
    parts = []
    if config.track_memory:
        parts.append(f"{result.total_memory} bytes ({result.memory_hits} hits)")
    if config.track_handles:
        parts.append(f"{result.total_handles} handles")
    return "Leaked " + " ".join(parts)


def detail_lines(config: TrialConfig, result: TrialResult) -> list[str]:
    """One line per pass that grew any tracked counter."""
    lines = []
    for delta in result.deltas:
        if delta.is_zero:
            continue
        parts = []
        if config.track_memory:
            parts.append(f"{delta.memory} bytes")
        if config.track_handles:
            parts.append(f"{delta.handles} handles")
        lines.append(f"pass {delta.index}, leaked: " + " ".join(parts))
    return lines


def render_report(config: TrialConfig, result: TrialResult, verdict: Verdict | None = None) -> str:
    if verdict is None:
        verdict = judge(config, result)
    if not verdict.leaked:
        return NO_LEAKS_MESSAGE
    return "\n".join([summary_line(config, result), *detail_lines(config, result)])
