"""Local stand-in for bulk transfers while the run is sandboxed."""

from __future__ import annotations

from pathlib import Path

from ..archive import ArchiveWriter
from ..errors import TransportError
from ..utils.worker_utils import format_size, shorten_path


class SandboxTransfers:
    """Same upload/download surface as PeakJobService, no network.

    Uploads only check that the packed archive exists. Downloads write an
    empty results archive (or an empty text file for anything else) so
    the merge stage has something to read.
    """

    def __init__(self, logger=None):
        self.logger = logger
        self.uploads = []
        self.downloads = []

    def _info(self, msg: str) -> None:
        if self.logger is not None:
            self.logger.info(msg)

    def upload_file(self, transfer, local_path, remote_path: str, progress=None) -> None:
        local_path = Path(local_path)
        if not local_path.is_file():
            raise TransportError(f"Nothing to upload at {local_path}", "upload")
        self.uploads.append(remote_path)
        self._info(f"Sandbox: kept {local_path.name} ({format_size(local_path.stat().st_size)}) locally")

    def download_file(self, transfer, remote_path: str, local_path, progress=None) -> Path:
        local_path = Path(local_path)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        if local_path.name.endswith(".tar.gz"):
            with ArchiveWriter(local_path):
                pass
        else:
            local_path.write_text("", encoding="utf-8")
        self.downloads.append(remote_path)
        self._info(f"Sandbox: wrote placeholder {shorten_path(str(local_path))}")
        return local_path
