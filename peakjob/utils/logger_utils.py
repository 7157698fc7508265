"""
logger_utils.py: Rich setup for the peakjob console logger.

Contains:
- Unicode glyph constants with ASCII fallbacks
- The terminal theme
- Console factory function

Kept apart from JobLogger so presentation setup stays out of the
workflow code.
"""

from __future__ import annotations

import os
import sys
from typing import Any, Dict

from rich import box
from rich.console import Console
from rich.theme import Theme

from .worker_utils import supports_unicode

_UNICODE = supports_unicode()

GLYPH_STAGE = "▸" if _UNICODE else ">"
GLYPH_OK = "✓" if _UNICODE else "OK"
GLYPH_FAIL = "✕" if _UNICODE else "X"
GLYPH_WARN = "!"
GLYPH_INFO = "ⓘ" if _UNICODE else "i"
GLYPH_DEBUG = "┆" if _UNICODE else "|"


PEAKJOB_THEME = Theme(
    {
        "pj.fg": "#D8DEEC",
        "pj.muted": "#A2A6AF",
        "pj.dim": "#7E828B",
        "pj.accent": "#2F9E8F",
        "pj.ok": "#1EA138",
        "pj.warn": "#E17100",
        "pj.err": "#FF2056",
        "pj.stroke": "#454A56",
        "pj.title": "bold #D8DEEC",
        "pj.stage": "bold #2F9E8F",
        "pj.ok_b": "bold #1EA138",
        "pj.warn_b": "bold #E17100",
        "pj.err_b": "bold #FF2056",
    }
)

PANEL_BOX = box.SQUARE
TABLE_BOX = box.SIMPLE_HEAD
PANEL_PADDING = (0, 2)


def get_console(**overrides: Any) -> Console:
    """
    Build the shared rich Console.

    Windows note: legacy_windows collapses hex colours into the 16-colour
    palette; modern terminals handle truecolor, so it is off unless
    PEAKJOB_LEGACY_WINDOWS asks for it.
    """
    kwargs: Dict[str, Any] = dict(
        highlight=False,
        emoji=False,
        theme=PEAKJOB_THEME,
    )
    if sys.platform == "win32":
        legacy_env = os.environ.get("PEAKJOB_LEGACY_WINDOWS", "").strip().lower()
        kwargs["legacy_windows"] = legacy_env in ("1", "true", "yes", "on")
    kwargs.update(overrides)
    return Console(**kwargs)
