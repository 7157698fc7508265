"""Host identity check for the transfer host.

The host key is scanned with ``ssh-keyscan``, its fingerprint compared with
the expected one, and the verified key written to a private known_hosts
file so the transfer itself refuses any other key.
"""

import base64
import hashlib
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..errors import TransportError


@dataclass(frozen=True)
class HostKey:
    host: str
    key_type: str
    key_b64: str

    @property
    def blob(self) -> bytes:
        return base64.b64decode(self.key_b64)

    def known_hosts_line(self) -> str:
        return f"{self.host} {self.key_type} {self.key_b64}"


def md5_fingerprint(blob: bytes) -> str:
    digest = hashlib.md5(blob).hexdigest().upper()
    return ":".join(digest[i:i + 2] for i in range(0, len(digest), 2))


def sha256_fingerprint(blob: bytes) -> str:
    digest = base64.b64encode(hashlib.sha256(blob).digest()).decode("ascii")
    return "SHA256:" + digest.rstrip("=")


def fingerprint_matches(key: HostKey, expected: str) -> bool:
    expected = expected.strip()
    if expected.upper().startswith("SHA256:"):
        return sha256_fingerprint(key.blob)[7:] == expected[7:].rstrip("=")
    normalized = expected.upper().replace("MD5:", "", 1)
    return md5_fingerprint(key.blob) == normalized


def known_hosts_name(host: str, port: int) -> str:
    return host if int(port) == 22 else f"[{host}]:{int(port)}"


def parse_keyscan(output: str) -> List[HostKey]:
    keys = []
    for line in output.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split()
        if len(parts) < 3:
            continue
        try:
            base64.b64decode(parts[2], validate=True)
        except ValueError:
            continue
        keys.append(HostKey(parts[0], parts[1], parts[2]))
    return keys


def scan_host_keys(host: str, port: int, timeout: int = 10) -> List[HostKey]:
    cmd = ["ssh-keyscan", "-p", str(int(port)), "-T", str(int(timeout)), host]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=False, timeout=timeout + 5)
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise TransportError(f"Could not scan host key of {host}: {exc}", "fingerprint") from exc
    keys = parse_keyscan(result.stdout)
    if not keys:
        raise TransportError(f"No host key received from {host}:{port}", "fingerprint")
    return keys


def verify_host(host: str, port: int, expected: str, keys: Optional[List[HostKey]] = None) -> HostKey:
    """Return the scanned key whose fingerprint equals ``expected``.

    Fails closed with TransportError when no key matches.
    """
    keys = scan_host_keys(host, port) if keys is None else keys
    for key in keys:
        if fingerprint_matches(key, expected):
            return key
    seen = ", ".join(f"{k.key_type} {md5_fingerprint(k.blob)}" for k in keys) or "none"
    raise TransportError(
        f"Host key fingerprint mismatch for {host}:{port} (expected {expected}, got {seen})",
        "fingerprint",
    )


def write_known_hosts(key: HostKey, path: Path) -> Path:
    path = Path(path)
    path.write_text(key.known_hosts_line() + "\n", encoding="utf-8")
    return path
