"""Transport/Service: API requests over HTTPS, bulk files over SFTP."""

from __future__ import annotations

import re
import tempfile
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import requests

from ..constants import API_PATH, DEFAULT_SERVER, HOST_FINGERPRINT
from ..errors import TransportError
from ..utils.worker_utils import format_size, requests_retry_session, shorten_path
from . import fingerprint as fp
from . import rclone

FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}

# JSON "Password" members, masked before responses are logged
_PASSWORD_RE = re.compile(r'("Password"\s*:\s*)"(?:[^"\\]|\\.)*"')

# Transfer flags shared by upload and download.
COMMON_RCLONE_FLAGS = [
    "--retries", "1",
    "--low-level-retries", "3",
    "--contimeout", "30s",
    "--timeout", "5m",
    "--sftp-set-modtime=false",
]


def redact_response(text: str) -> str:
    return _PASSWORD_RE.sub(r'\1"********"', text)


class PeakJobService:
    """Executes actions against one server.

    ``execute`` never retries: INIT and RUN are not idempotent. Transfers
    verify the host key before any credential leaves the machine.
    """

    def __init__(
        self,
        server: str = DEFAULT_SERVER,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 60.0,
        debug: bool = False,
        logger=None,
        expected_fingerprint: str = HOST_FINGERPRINT,
        rclone_bin: Optional[Path] = None,
        ensure_rclone_fn: Callable[..., Path] = rclone.ensure_rclone,
        run_rclone_fn: Callable[..., None] = rclone.run_rclone,
        obscure_fn: Callable[..., str] = rclone.obscure_password,
        verify_host_fn: Callable[..., fp.HostKey] = fp.verify_host,
    ):
        self.server = server
        self.session = session or requests_retry_session(retries=0)
        self.timeout = float(timeout)
        self.debug = bool(debug)
        self.logger = logger
        self.expected_fingerprint = expected_fingerprint
        self._rclone_bin = rclone_bin
        self._ensure_rclone = ensure_rclone_fn
        self._run_rclone = run_rclone_fn
        self._obscure = obscure_fn
        self._verify_host = verify_host_fn

    @property
    def url(self) -> str:
        server = self.server.rstrip("/")
        if "://" not in server:
            server = f"https://{server}"
        return server + API_PATH

    def _debug(self, msg: str) -> None:
        if self.debug and self.logger is not None:
            self.logger.debug(msg)

    # ─────────────────────── API ───────────────────────

    def execute(self, action) -> str:
        """POST the action's query and return the raw response text."""
        self._debug(f"POST {self.url} {action.redacted_query()}")
        try:
            resp = self.session.post(
                self.url,
                data=action.build_query(),
                headers=FORM_HEADERS,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(f"Request to {self.url} failed: {exc}", action.ACTION) from exc

        if not 200 <= resp.status_code < 300:
            raise TransportError(
                f"Server answered HTTP {resp.status_code}",
                action.ACTION,
                status_code=resp.status_code,
            )
        self._debug(f"Response: {redact_response(resp.text)}")
        return resp.text

    # ─────────────────────── bulk transfer ───────────────────────

    @property
    def rclone_bin(self) -> Path:
        if self._rclone_bin is None:
            self._rclone_bin = self._ensure_rclone(logger=self.logger)
        return self._rclone_bin

    def _build_base(self, transfer, known_hosts: Path) -> Tuple[List[str], Dict[str, str]]:
        base = [
            str(self.rclone_bin),
            "--sftp-host", transfer.host,
            "--sftp-port", str(int(transfer.port)),
            "--sftp-user", transfer.username,
            "--sftp-known-hosts-file", str(known_hosts),
            *COMMON_RCLONE_FLAGS,
        ]
        env = {"RCLONE_SFTP_PASS": self._obscure(self.rclone_bin, transfer.password)}
        return base, env

    def _transfer(self, transfer, src: str, dst: str, progress, label: str, operation: str) -> None:
        key = self._verify_host(transfer.host, transfer.port, self.expected_fingerprint)
        self._debug(f"Host key verified for {transfer.host}:{transfer.port} ({key.key_type})")

        with tempfile.TemporaryDirectory(prefix="peakjob_") as tmp:
            known_hosts = fp.write_known_hosts(key, Path(tmp) / "known_hosts")
            base, env = self._build_base(transfer, known_hosts)
            try:
                self._run_rclone(
                    base,
                    "copyto",
                    src,
                    dst,
                    env=env,
                    logger=self.logger,
                    progress=progress,
                    label=label,
                )
            except TransportError as exc:
                raise TransportError(exc.message, operation) from exc

    def upload_file(self, transfer, local_path, remote_path: str, progress=None) -> None:
        local_path = Path(local_path)
        if not local_path.is_file():
            raise TransportError(f"Nothing to upload at {local_path}", "upload")
        if self.logger is not None:
            self.logger.info(
                f"Uploading {local_path.name} ({format_size(local_path.stat().st_size)}) to {transfer.host}"
            )
        self._transfer(transfer, str(local_path), f":sftp:{remote_path}", progress, local_path.name, "upload")

    def download_file(self, transfer, remote_path: str, local_path, progress=None) -> Path:
        local_path = Path(local_path)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        if self.logger is not None:
            self.logger.info(f"Downloading {remote_path} to {shorten_path(str(local_path))}")
        self._transfer(
            transfer, f":sftp:{remote_path}", str(local_path), progress, Path(remote_path).name, "download"
        )
        return local_path
