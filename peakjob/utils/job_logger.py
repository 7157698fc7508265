"""
job_logger.py: Rich-based transcript logger for submit/fetch runs.

Design: a scrolling transcript with short stage headers and panels for the
few things worth framing (the cost quote, the final summary). Every
message goes through one Console so tests can capture it with
``Console(file=io.StringIO())``.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional, Tuple

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .logger_utils import (
    GLYPH_DEBUG,
    GLYPH_FAIL,
    GLYPH_INFO,
    GLYPH_OK,
    GLYPH_STAGE,
    GLYPH_WARN,
    PANEL_BOX,
    PANEL_PADDING,
    TABLE_BOX,
    get_console,
)


class JobLogger:
    """Scrolling transcript logger shared by the orchestrator and transfers."""

    def __init__(self, console: Optional[Console] = None, debug: bool = False):
        self.console = console or get_console()
        self.debug_enabled = bool(debug)
        self._stage = 0

    # ─────────────────────── Stages ───────────────────────

    def stage(self, title: str) -> None:
        self._stage += 1
        self.console.print()
        self.console.print(f"[pj.stage]{GLYPH_STAGE} {self._stage:>2}[/] [pj.title]{escape(str(title))}[/]")

    # ─────────────────────── Messages ───────────────────────

    def info(self, msg: str) -> None:
        self.console.print(f"  [pj.dim]{GLYPH_INFO}[/] [pj.muted]{escape(str(msg))}[/]")

    def success(self, msg: str) -> None:
        self.console.print(f"  [pj.ok_b]{GLYPH_OK}[/] [pj.fg]{escape(str(msg))}[/]")

    def warning(self, msg: str) -> None:
        self.console.print(f"  [pj.warn_b]{GLYPH_WARN}[/] [pj.warn]{escape(str(msg))}[/]")

    def error(self, msg: str) -> None:
        self.console.print(f"  [pj.err_b]{GLYPH_FAIL}[/] [pj.err]{escape(str(msg))}[/]")

    def debug(self, msg: str) -> None:
        if self.debug_enabled:
            self.console.print(f"  [pj.dim]{GLYPH_DEBUG} {escape(str(msg))}[/]")

    def __call__(self, msg: str) -> None:
        self.info(msg)

    # ─────────────────────── Panels ───────────────────────

    def cost_table(self, costs, funds: float, title: str = "Estimated cost (USD)") -> None:
        """Render an EstimatedCosts table: one row per instrument, one column per RTO."""
        table = Table(box=TABLE_BOX, show_edge=False, header_style="pj.title")
        table.add_column("Instrument", style="pj.fg")
        for rto in costs.rtos:
            table.add_column(rto, justify="right", style="pj.muted")
        for instrument, row in costs.items():
            table.add_row(instrument, *(f"{row[rto]:.2f}" for rto in costs.rtos))

        body = Table.grid(padding=(0, 0))
        body.add_row(table)
        body.add_row(Text(f"Available funds: {funds:.2f}", style="pj.dim"))
        self.console.print(
            Panel(
                body,
                title=Text(title, style="pj.title"),
                title_align="left",
                border_style="pj.stroke",
                box=PANEL_BOX,
                padding=PANEL_PADDING,
            )
        )

    def summary(self, title: str, rows: Iterable[Tuple[str, Any]], ok: bool = True) -> None:
        grid = Table.grid(padding=(0, 2))
        grid.add_column(style="pj.dim")
        grid.add_column(style="pj.fg")
        for key, value in rows:
            grid.add_row(str(key), str(value))
        self.console.print()
        self.console.print(
            Panel(
                grid,
                title=Text(title, style="pj.ok_b" if ok else "pj.warn_b"),
                title_align="left",
                border_style="pj.ok" if ok else "pj.warn",
                box=PANEL_BOX,
                padding=PANEL_PADDING,
            )
        )
