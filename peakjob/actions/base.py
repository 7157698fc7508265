"""Shared request/response capability for every remote operation.

Each operation is a small class that knows how to serialise its query
(``build_query``) and how to read the service's JSON answer
(``process_response``). Service-side failures and malformed answers are
recorded on the error channel (``has_error``/``error_code``/
``error_message``) instead of being raised.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

from ..constants import API_VERSION, ERROR_PARSE

JsonMap = Dict[str, Any]
QueryParams = List[Tuple[str, str]]


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str = field(repr=False)
    project: int = 0


class ResponseFormatError(ValueError):
    """Raised by ``_parse`` implementations for missing or malformed fields."""


def require(data: JsonMap, key: str) -> Any:
    try:
        value = data[key]
    except KeyError:
        raise ResponseFormatError(f"Missing field '{key}'") from None
    if value is None:
        raise ResponseFormatError(f"Field '{key}' is empty")
    return value


def require_number(data: JsonMap, key: str) -> float:
    value = require(data, key)
    if isinstance(value, bool):
        raise ResponseFormatError(f"Field '{key}' is not numeric: {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ResponseFormatError(f"Field '{key}' is not numeric: {value!r}") from None


class BaseAction:
    ACTION = ""
    # Field a sandbox ``forced`` value overrides.
    SANDBOX_FIELD: Optional[str] = None

    def __init__(self, credentials: Credentials, version: str = API_VERSION):
        self.credentials = credentials
        self.version = version
        self._error_code: Optional[int] = None
        self._error_message = ""
        self._processed = False

    # ── query ───────────────────────────────────────────────────────
    def parameters(self) -> QueryParams:
        """Operation-specific parameters, in the order the service expects."""
        return []

    def _base_parameters(self, password: str) -> QueryParams:
        return [
            ("Version", self.version),
            ("User", self.credentials.username),
            ("Code", password),
            ("Action", self.ACTION),
        ]

    def build_query(self) -> str:
        return urlencode(self._base_parameters(self.credentials.password) + self.parameters())

    def redacted_query(self) -> str:
        """Same as build_query() with the password masked, for debug output."""
        return urlencode(self._base_parameters("********") + self.parameters())

    # ── response ────────────────────────────────────────────────────
    def process_response(self, raw: str) -> None:
        self._error_code = None
        self._error_message = ""
        self._processed = True

        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            self._set_error(ERROR_PARSE, "Response is not valid JSON")
            return

        if not isinstance(data, dict):
            self._set_error(ERROR_PARSE, "Response is not a JSON object")
            return

        if "Error" in data:
            try:
                code = int(data["Error"])
            except (TypeError, ValueError):
                code = ERROR_PARSE
            self._set_error(code, str(data.get("Message") or "Unknown service error"))
            return

        if data.get("Action") != self.ACTION:
            self._set_error(
                ERROR_PARSE,
                f"Expected a {self.ACTION} response, got {data.get('Action')!r}",
            )
            return

        try:
            self._parse(data)
        except ResponseFormatError as exc:
            self._set_error(ERROR_PARSE, f"Malformed {self.ACTION} response: {exc}")

    def _parse(self, data: JsonMap) -> None:
        """Populate typed accessors from a successful response."""

    def _set_error(self, code: int, message: str) -> None:
        self._error_code = int(code)
        self._error_message = message

    def has_error(self) -> bool:
        return self._error_code is not None

    @property
    def error_code(self) -> Optional[int]:
        return self._error_code

    @property
    def error_message(self) -> str:
        return self._error_message

    @property
    def processed(self) -> bool:
        return self._processed

    # ── execution ───────────────────────────────────────────────────
    def perform(self, service) -> "BaseAction":
        """Execute over ``service`` and parse the answer. Returns self."""
        self.process_response(service.execute(self))
        return self

    def sandbox_response(self) -> JsonMap:
        """Minimal successful response, used by the sandbox decorator."""
        return {"Action": self.ACTION}

    def apply_sandbox_override(self, response: JsonMap, forced: str) -> JsonMap:
        if not self.SANDBOX_FIELD:
            raise ValueError(f"{self.ACTION} has no field a sandbox value can override")
        response[self.SANDBOX_FIELD] = forced
        return response

    def __repr__(self) -> str:
        return f"<{type(self).__name__} user={self.credentials.username!r}>"
