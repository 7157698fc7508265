"""Progress sink capability and the two sinks shipped with the client."""

from __future__ import annotations

import time
from typing import Optional, Protocol

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    MofNCompleteColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)


class ProgressSink(Protocol):
    def start(self, total: int, label: str) -> None: ...

    def update(self, current: int) -> None: ...

    def finish(self) -> None: ...


class NullProgress:
    def start(self, total: int, label: str) -> None:
        pass

    def update(self, current: int) -> None:
        pass

    def finish(self) -> None:
        pass


class RichProgress:
    """Progress bar on the shared console.

    ``unit="bytes"`` shows sizes and transfer speed, anything else shows a
    plain ``n/total`` counter. Redraws are throttled to ``min_interval``.
    """

    def __init__(self, console: Optional[Console] = None, unit: str = "bytes", min_interval: float = 0.1):
        self.console = console
        self.unit = unit
        self.min_interval = float(min_interval)
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None
        self._last_draw = 0.0

    def _columns(self):
        if self.unit == "bytes":
            return (
                TextColumn("  [pj.muted]{task.description}"),
                BarColumn(),
                DownloadColumn(binary_units=True),
                TransferSpeedColumn(),
                TimeRemainingColumn(),
            )
        return (
            TextColumn("  [pj.muted]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
        )

    def start(self, total: int, label: str) -> None:
        self.finish()
        self._progress = Progress(*self._columns(), console=self.console, transient=False)
        self._progress.start()
        self._task = self._progress.add_task(label, total=max(int(total or 0), 0) or None)
        self._last_draw = 0.0

    def update(self, current: int) -> None:
        if self._progress is None or self._task is None:
            return
        now = time.monotonic()
        if now - self._last_draw < self.min_interval:
            return
        self._last_draw = now
        task = self._progress.tasks[0]
        if task.total is not None and current > task.total:
            self._progress.update(self._task, total=current)
        self._progress.update(self._task, completed=current)

    def finish(self) -> None:
        if self._progress is None:
            return
        if self._task is not None:
            task = self._progress.tasks[0]
            if task.total is not None:
                self._progress.update(self._task, completed=task.total)
        self._progress.stop()
        self._progress = None
        self._task = None
