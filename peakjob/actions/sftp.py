from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from .base import BaseAction, JsonMap, QueryParams, require, require_number


@dataclass(frozen=True)
class TransferCredentials:
    host: str
    port: int
    directory: str
    username: str
    password: str = field(repr=False)

    def remote_path(self, filename: str) -> str:
        return f"{self.directory.rstrip('/')}/{filename}"


class SftpAction(BaseAction):
    """Fetch fresh credentials for the bulk file-transfer host."""

    ACTION = "SFTP"
    SANDBOX_FIELD = "Host"

    def __init__(self, credentials, **kwargs):
        super().__init__(credentials, **kwargs)
        self.transfer: Optional[TransferCredentials] = None

    def parameters(self) -> QueryParams:
        return [("ID", str(self.credentials.project))]

    def _parse(self, data: JsonMap) -> None:
        self.transfer = TransferCredentials(
            host=str(require(data, "Host")),
            port=int(require_number(data, "Port")),
            directory=str(require(data, "Directory")),
            username=str(require(data, "Login")),
            password=str(require(data, "Password")),
        )

    def sandbox_response(self) -> JsonMap:
        return {
            "Action": self.ACTION,
            "Host": "peakinvestigator.veritomyx.com",
            "Port": 22022,
            "Directory": "/files",
            "Login": f"V{self.credentials.project}",
            "Password": "sandbox",
        }
