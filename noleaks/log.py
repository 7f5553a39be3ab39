"""Append-only diagnostic log shared by the engine, CLI and pytest plugin."""

from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path

# ───────────────────────────────  Files / paths ─────────────────────────────
LOG_ENV_VAR = "NOLEAKS_LOG_FILE"
ROTATE_BYTES = 50 * 1024 * 1024

_log_file: Path | None = Path(os.environ[LOG_ENV_VAR]) if os.environ.get(LOG_ENV_VAR) else None


def set_log_file(path: str | os.PathLike[str] | None) -> None:
    """Direct ``log`` output to *path*; ``None`` turns logging off."""
    global _log_file
    _log_file = Path(path) if path else None


def get_log_file() -> Path | None:
    return _log_file


def log(msg: str) -> None:
    """Log message with automatic rotation at 50MB."""
    log_file = _log_file
    if log_file is None:
        return

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        if log_file.exists() and log_file.stat().st_size > ROTATE_BYTES:
            backup = log_file.with_suffix(".old")
            if backup.exists():
                backup.unlink()
            log_file.rename(backup)
    except OSError:
        pass  # Continue logging even if rotation fails

    try:
        with log_file.open("a") as fp:
            fp.write(f"[{datetime.now():%Y-%m-%d %H:%M:%S}] {msg}\n")
    except OSError:
        pass  # Never let diagnostics fail a trial
