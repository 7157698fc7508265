"""Selection collaborators: version, RTO quote and password.

Every ``choose``/``ask_password`` returns None to mean "the user cancelled".
The fixed variants answer from configuration; the console variants ask on
the terminal with rich prompts.
"""

from __future__ import annotations

from typing import List, Optional, Protocol, Sequence

from rich.console import Console
from rich.markup import escape
from rich.prompt import IntPrompt, Prompt

from .constants import VERSION_CURRENT, VERSION_LAST
from .utils.logger_utils import get_console


class VersionSelector(Protocol):
    def choose(self, candidates: Sequence[str], current: str, last_used: str) -> Optional[str]: ...


class QuoteSelector(Protocol):
    def choose(self, costs, funds: float) -> Optional[str]: ...


class CredentialPrompt(Protocol):
    def ask_password(self) -> Optional[str]: ...


# ─────────────────────── fixed answers ───────────────────────


class FixedVersionSelector:
    """``"current"``, ``"last"`` or an explicit label from the candidates."""

    def __init__(self, choice: str):
        self.choice = choice

    def choose(self, candidates, current, last_used):
        if self.choice == VERSION_CURRENT:
            return current or None
        if self.choice == VERSION_LAST:
            return last_used or current or None
        return self.choice if self.choice in candidates else None


class FixedQuoteSelector:
    def __init__(self, rto: str):
        self.rto = rto

    def choose(self, costs, funds):
        if self.rto not in costs.rtos:
            return None
        if costs.max_cost(self.rto) > funds:
            return None
        return self.rto


class FixedCredentialPrompt:
    def __init__(self, password: Optional[str]):
        self.password = password

    def ask_password(self):
        return self.password or None


# ─────────────────────── console ───────────────────────


def version_labels(candidates: Sequence[str], current: str, last_used: str) -> List[str]:
    labels = []
    for version in candidates:
        tags = []
        if version == current:
            tags.append("current")
        if version == last_used:
            tags.append("last used")
        labels.append(f"{version} ({', '.join(tags)})" if tags else version)
    return labels


def _ask_index(console: Console, title: str, labels: Sequence[str], default: int) -> Optional[int]:
    """Numbered menu; 0 cancels. Returns the 0-based index or None."""
    console.print(f"[pj.title]{title}[/]")
    for number, label in enumerate(labels, start=1):
        console.print(f"  [pj.accent]({number})[/] {escape(label)}")
    console.print("  [pj.dim](0) cancel[/]")
    choices = [str(n) for n in range(len(labels) + 1)]
    answer = IntPrompt.ask("Select", console=console, choices=choices, default=default, show_choices=False)
    if not answer:
        return None
    return int(answer) - 1


class ConsoleVersionSelector:
    def __init__(self, console: Optional[Console] = None):
        self.console = console or get_console()

    def choose(self, candidates, current, last_used):
        if not candidates:
            return None
        default = candidates.index(current) + 1 if current in candidates else 1
        index = _ask_index(
            self.console,
            "Processing version",
            version_labels(candidates, current, last_used),
            default,
        )
        return None if index is None else candidates[index]


class ConsoleQuoteSelector:
    """Shows the RTOs the account can afford. The cost table itself is
    rendered by the logger before this is asked."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or get_console()

    def choose(self, costs, funds):
        affordable = [rto for rto in costs.rtos if costs.max_cost(rto) <= funds]
        if not affordable:
            self.console.print("[pj.warn]Available funds do not cover any response time objective.[/]")
            return None
        labels = [f"{rto} (up to {costs.max_cost(rto):.2f})" for rto in affordable]
        index = _ask_index(self.console, "Response time objective", labels, 1)
        return None if index is None else affordable[index]


class ConsoleCredentialPrompt:
    def __init__(self, username: str = "", console: Optional[Console] = None):
        self.username = username
        self.console = console or get_console()

    def ask_password(self):
        who = f" for {self.username}" if self.username else ""
        answer = Prompt.ask(f"Password{who}", console=self.console, password=True, default="", show_default=False)
        return answer or None
