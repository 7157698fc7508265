# utils/worker_utils.py
from __future__ import annotations

import os
import sys
from pathlib import Path

# third-party
import requests
from requests.adapters import HTTPAdapter
from urllib3.util import Retry


def supports_unicode() -> bool:
    """True when stdout can render the box-drawing glyphs the logger uses."""
    if os.environ.get("PEAKJOB_ASCII", "").strip().lower() in ("1", "true", "yes", "on"):
        return False
    encoding = getattr(sys.stdout, "encoding", "") or ""
    return "utf" in encoding.lower()


def format_size(num_bytes: int) -> str:
    size = float(max(int(num_bytes or 0), 0))
    for unit in ("B", "KiB", "MiB", "GiB"):
        if size < 1024.0 or unit == "GiB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024.0
    return f"{size:.1f} GiB"


def shorten_path(path: str) -> str:
    """
    Return a version of `path` no longer than 64 characters,
    inserting "..." in the middle if it's longer. Preserves both ends.
    """
    max_len = 64
    dots = "..."
    path = str(path)
    if len(path) <= max_len:
        return path
    keep = max_len - len(dots)
    left = keep // 2
    right = keep - left
    return f"{path[:left]}{dots}{path[-right:]}"


def user_data_dir() -> Path:
    """Per-user directory for settings and the cached transfer tool."""
    override = os.environ.get("PEAKJOB_HOME", "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".peakjob"


# robust HTTP sessions
def requests_retry_session(
    *,
    retries: int = 5,
    backoff_factor: float = 0.5,
    status_forcelist: tuple[int, ...] = (429, 500, 502, 503, 504, 522, 524),
    allowed_methods: tuple[str, ...] = ("HEAD", "GET", "OPTIONS"),
    session: requests.Session | None = None,
) -> requests.Session:
    """
    Return a requests.Session pre-configured to retry automatically.

    Only idempotent methods are retried by default. Pass ``retries=0`` for a
    session that surfaces every failure on the first attempt.
    """
    session = session or requests.Session()

    retry = Retry(
        total=retries,
        connect=retries,
        read=retries,
        status=retries,
        allowed_methods=frozenset(allowed_methods),
        status_forcelist=status_forcelist,
        backoff_factor=backoff_factor,
        raise_on_status=False,
        respect_retry_after_header=True,
    )

    adapter = HTTPAdapter(max_retries=retry, pool_connections=4, pool_maxsize=8)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session
