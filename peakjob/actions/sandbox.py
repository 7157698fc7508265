"""Sandbox decorator: run an action without contacting the live service."""

from __future__ import annotations

import json
from typing import Optional

from .base import BaseAction


class SandboxAction:
    """Wrap an action so that ``perform`` fabricates its response locally.

    ``forced`` of None means "synthesise a minimal successful response";
    any other value overrides the operation's sandbox field (the job
    status for STATUS, for instance). Everything else, including
    ``build_query`` and the typed accessors, is delegated to the wrapped
    action, so callers cannot tell the two apart.
    """

    def __init__(self, action: BaseAction, forced: Optional[str] = None):
        self._action = action
        self._forced = forced
        if forced is not None and not action.SANDBOX_FIELD:
            raise ValueError(f"{action.ACTION} has no field a sandbox value can override")

    @property
    def wrapped(self) -> BaseAction:
        return self._action

    @property
    def forced(self) -> Optional[str]:
        return self._forced

    def build_query(self) -> str:
        return self._action.build_query()

    def process_response(self, raw: str) -> None:
        self._action.process_response(raw)

    def sandbox_raw_response(self) -> str:
        response = self._action.sandbox_response()
        if self._forced is not None:
            response = self._action.apply_sandbox_override(response, self._forced)
        return json.dumps(response)

    def perform(self, service=None) -> "SandboxAction":
        self._action.process_response(self.sandbox_raw_response())
        return self

    def __getattr__(self, name):
        # Only reached for attributes not defined on the wrapper.
        return getattr(self._action, name)

    def __repr__(self) -> str:
        return f"<SandboxAction {self._action!r} forced={self._forced!r}>"
