"""Command line: run a leak trial against an importable callable."""

from __future__ import annotations

import argparse
import importlib
import sys
from collections.abc import Callable, Sequence

from noleaks._version import __version__
from noleaks.errors import ConfigurationError, ProbeUnavailableError
from noleaks.log import log, set_log_file
from noleaks.probe import PROBE_NAMES, make_probe
from noleaks.trial import DEF_PASSES, DEF_TOLERATED_HITS, DEF_WARMUP_PASSES, TrialConfig, evaluate, render_report

EXIT_OK = 0
EXIT_LEAK = 1
EXIT_USAGE = 2
EXIT_UNSUPPORTED = 3


def load_target(spec: str) -> Callable[[], object]:
    """Resolve ``package.module:attr.path`` to a callable."""
    module_name, sep, attr_path = spec.partition(":")
    if not sep or not module_name or not attr_path:
        raise ConfigurationError(f"target must look like 'package.module:callable' (got {spec!r})")
    try:
        obj: object = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"cannot import {module_name!r}: {e}") from e
    for attr in attr_path.split("."):
        try:
            obj = getattr(obj, attr)
        except AttributeError:
            raise ConfigurationError(f"{module_name!r} has no attribute {attr_path!r}") from None
    if not callable(obj):
        raise ConfigurationError(f"{spec!r} is not callable")
    return obj  # type: ignore[return-value]


def build_parser() -> argparse.ArgumentParser:
    epilog = """
LEAK DETECTION:
TARGET is called --warmup-passes times unmeasured, then --passes times with
resident memory and/or open handle count sampled around every call. Growth
is counted per pass (shrinkage counts as zero).

- Handles leak when any net growth remains after all passes.
- Memory leaks when it grew and more than --tolerate-hits passes grew.

EXIT STATUS:
  0 no leak, 1 leak detected, 2 bad usage or configuration,
  3 the platform cannot supply a requested counter

EXAMPLES:
  # Check that a client closes its sockets
  noleaks myproject.client:fetch_once --track-handles

  # Memory check with a cache warm-up and some allocator noise allowed
  noleaks myproject.parse:parse_sample -m --warmup-passes 5 --tolerate-hits 2 --passes 1000
"""
    p = argparse.ArgumentParser(
        prog="noleaks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="Detect memory and handle leaks by calling a function repeatedly.",
        epilog=epilog,
    )
    p.add_argument("--version", action="version", version=f"noleaks v{__version__}")
    p.add_argument("target", metavar="TARGET", help="Zero-argument callable to test, as package.module:callable")

    p.add_argument("-m", "--track-memory", action="store_true", help="Track resident memory growth")
    p.add_argument("-f", "--track-handles", action="store_true", help="Track open file descriptor / handle growth (sockets included)")
    p.add_argument(
        "--passes",
        type=int,
        default=DEF_PASSES,
        help=f"Measured calls. Small leaks need enough passes to spill into a new page. (default: {DEF_PASSES})",
    )
    p.add_argument(
        "--warmup-passes",
        type=int,
        default=DEF_WARMUP_PASSES,
        help=f"Unmeasured calls first, to fill caches and pools. (default: {DEF_WARMUP_PASSES})",
    )
    p.add_argument(
        "--tolerate-hits",
        type=int,
        default=DEF_TOLERATED_HITS,
        help=f"Memory-growing passes to forgive as allocator noise. (default: {DEF_TOLERATED_HITS})",
    )
    p.add_argument("--probe", choices=PROBE_NAMES, default="auto", help="Resource probe implementation (default: auto)")
    p.add_argument("--log-file", default=None, help="Append trial diagnostics to this file")
    return p


# ───────────────────────────── entry-point ──────────────────────────────────
def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.log_file:
        set_log_file(args.log_file)

    try:
        config = TrialConfig(
            unit_of_work=load_target(args.target),
            track_memory=args.track_memory,
            track_handles=args.track_handles,
            passes=args.passes,
            warmup_passes=args.warmup_passes,
            tolerated_hits=args.tolerate_hits,
        )
    except ConfigurationError as e:
        parser.print_usage(sys.stderr)
        print(f"noleaks: error: {e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        with make_probe(args.probe) as probe:
            verdict, result = evaluate(config, probe)
    except ProbeUnavailableError as e:
        print(f"Error: {e}", file=sys.stderr)
        log(f"Probe unavailable: {e}")
        return EXIT_UNSUPPORTED

    print(render_report(config, result, verdict))
    return EXIT_LEAK if verdict.leaked else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
