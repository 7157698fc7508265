from __future__ import annotations

from typing import List

from .base import BaseAction, JsonMap, ResponseFormatError, require


class PiVersionsAction(BaseAction):
    """List the processing versions available to the account."""

    ACTION = "PI_VERSIONS"
    SANDBOX_FIELD = "Current"

    def __init__(self, credentials, **kwargs):
        super().__init__(credentials, **kwargs)
        self.current_version = ""
        self.last_used_version = ""
        self.versions: List[str] = []

    def _parse(self, data: JsonMap) -> None:
        versions = require(data, "Versions")
        if not isinstance(versions, list):
            raise ResponseFormatError("Field 'Versions' is not a list")
        self.versions = [str(v) for v in versions]
        self.current_version = str(require(data, "Current"))
        self.last_used_version = str(data.get("LastUsed") or "")

    def sandbox_response(self) -> JsonMap:
        return {
            "Action": self.ACTION,
            "Current": "1.3",
            "LastUsed": "",
            "Count": 2,
            "Versions": ["1.3", "1.2"],
        }

    def apply_sandbox_override(self, response: JsonMap, forced: str) -> JsonMap:
        response["Current"] = forced
        if forced not in response["Versions"]:
            response["Versions"].insert(0, forced)
        return response
