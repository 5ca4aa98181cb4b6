#!/usr/bin/env python3
"""
Production startup: migrate (scripts/release.py), then exec gunicorn.

Usage:
    python scripts/start.py

Environment:
    PORT (default 8080), WEB_CONCURRENCY (default 2), GUNICORN_TIMEOUT (default 60)
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _int_env(name: str, default: int, *, low: int, high: int) -> int:
    raw = (os.environ.get(name) or "").strip() or str(default)
    try:
        value = int(raw)
    except ValueError:
        value = low - 1
    if value < low or value > high:
        raise ValueError(f"Invalid {name} value '{raw}'. Must be integer {low}-{high}.")
    return value


def gunicorn_argv() -> list[str]:
    port = _int_env("PORT", 8080, low=1, high=65535)
    workers = _int_env("WEB_CONCURRENCY", 2, low=1, high=64)
    timeout = _int_env("GUNICORN_TIMEOUT", 60, low=1, high=3600)
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", str(workers),
        "--timeout", str(timeout),
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    try:
        argv = gunicorn_argv()
    except ValueError as e:
        print(f"ERROR: {e}", flush=True)
        sys.exit(1)

    from scripts.release import run_release
    try:
        run_release()
    except Exception as e:
        print(f"Release failed: {e}", flush=True)
        sys.exit(1)

    print(f"=== Starting {' '.join(argv)} ===", flush=True)
    # gunicorn replaces this process and receives signals directly
    os.execvp(argv[0], argv)


if __name__ == "__main__":
    main()
