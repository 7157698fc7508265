"""rclone bootstrap and runner used for the bulk file-transfer channel."""

import json
import os
import platform
import shutil
import subprocess
import tempfile
import uuid
import zipfile
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..errors import TransportError
from ..utils.worker_utils import requests_retry_session, user_data_dir


def _log(logger, msg: str) -> None:
    if logger is not None:
        logger.info(msg)


# Map (normalized_os, normalized_arch) -> rclone's "os-arch" string
SUPPORTED_PLATFORMS = {
    ("windows", "386"): "windows-386",
    ("windows", "amd64"): "windows-amd64",
    ("windows", "arm64"): "windows-arm64",
    ("osx", "amd64"): "osx-amd64",
    ("osx", "arm64"): "osx-arm64",
    ("linux", "386"): "linux-386",
    ("linux", "amd64"): "linux-amd64",
    ("linux", "arm"): "linux-arm",
    ("linux", "armv6"): "linux-arm-v6",
    ("linux", "armv7"): "linux-arm-v7",
    ("linux", "arm64"): "linux-arm64",
    ("freebsd", "amd64"): "freebsd-amd64",
    ("openbsd", "amd64"): "openbsd-amd64",
}

STATS_INTERVAL = "0.5s"


def normalize_os(os_name: str) -> str:
    os_name = os_name.lower()
    if os_name.startswith("win"):
        return "windows"
    if os_name.startswith("linux"):
        return "linux"
    if os_name.startswith("darwin"):
        return "osx"
    return os_name


def normalize_arch(arch_name: str) -> str:
    arch_name = arch_name.lower()
    if arch_name in ("x86_64", "amd64"):
        return "amd64"
    if arch_name in ("i386", "i686", "x86", "386"):
        return "386"
    if arch_name in ("aarch64", "arm64"):
        return "arm64"
    return arch_name


def get_platform_suffix() -> str:
    """
    Return the 'os-arch' string rclone uses (e.g. 'windows-amd64').
    Raises TransportError if the current platform is unsupported.
    """
    key = (normalize_os(platform.system()), normalize_arch(platform.machine()))
    if key not in SUPPORTED_PLATFORMS:
        raise TransportError(f"No rclone build for {key[0]}/{key[1]}; install rclone on PATH")
    return SUPPORTED_PLATFORMS[key]


def get_rclone_url(suffix: str) -> str:
    return f"https://downloads.rclone.org/rclone-current-{suffix}.zip"


def rclone_install_directory() -> Path:
    return user_data_dir() / "rclone"


def _download(url: str, dest: Path, logger=None) -> None:
    session = requests_retry_session(retries=3, backoff_factor=0.4)
    _log(logger, "Downloading rclone…")
    with session.get(url, stream=True, timeout=600) as resp:
        resp.raise_for_status()
        with dest.open("wb") as fp:
            for chunk in resp.iter_content(1024 * 64):
                if chunk:
                    fp.write(chunk)


def ensure_rclone(logger=None) -> Path:
    """Return an rclone executable, downloading it into the user cache if needed."""
    found = shutil.which("rclone")
    if found:
        return Path(found)

    suffix = get_platform_suffix()
    bin_name = "rclone.exe" if suffix.startswith("windows") else "rclone"
    rclone_bin = rclone_install_directory() / suffix / bin_name
    if rclone_bin.exists():
        return rclone_bin

    rclone_bin.parent.mkdir(parents=True, exist_ok=True)
    tmp_zip = Path(tempfile.gettempdir()) / f"rclone_{uuid.uuid4()}.zip"
    try:
        try:
            _download(get_rclone_url(suffix), tmp_zip, logger=logger)
        except Exception as exc:
            raise TransportError(f"Could not download rclone: {exc}", "rclone") from exc

        # Many zips nest the binary under a top-level folder; flatten it.
        written = False
        with zipfile.ZipFile(tmp_zip) as zf:
            for member in zf.infolist():
                if member.is_dir() or os.path.basename(member.filename) != bin_name:
                    continue
                with zf.open(member) as src, open(rclone_bin, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                written = True
                break
    finally:
        tmp_zip.unlink(missing_ok=True)

    if not written:
        raise TransportError("Failed to extract rclone binary", "rclone")

    if not suffix.startswith("windows"):
        rclone_bin.chmod(rclone_bin.stat().st_mode | 0o111)

    _log(logger, "rclone installed")
    return rclone_bin


def obscure_password(rclone_bin, password: str) -> str:
    """Obscure a password the way rclone's config expects (stdin, never argv)."""
    try:
        result = subprocess.run(
            [str(rclone_bin), "obscure", "-"],
            input=password,
            capture_output=True,
            text=True,
            encoding="utf-8",
            check=False,
        )
    except OSError as exc:
        raise TransportError(f"Could not run rclone: {exc}", "rclone") from exc
    if result.returncode != 0:
        raise TransportError(
            f"rclone obscure failed: {result.stderr.strip() or result.returncode}", "rclone"
        )
    return result.stdout.strip()


def _bytes_from_stats(obj):
    """
    Extract (current_bytes, total_bytes) from rclone --use-json-log stats objects.
    Returns None if no stats are present yet.
    """
    s = obj.get("stats")
    if not s:
        return None
    cur = s.get("bytes")
    tot = s.get("totalBytes") or 0
    if cur is None:
        return None
    return int(cur), int(tot)


# ────────────────────────── main runner ──────────────────────────

def run_rclone(
    base: Sequence[str],
    verb: str,
    src: str,
    dst: str,
    extra: Optional[List[str]] = None,
    *,
    env: Optional[Dict[str, str]] = None,
    logger=None,
    progress=None,
    label: str = "Transferred",
) -> None:
    """
    Execute rclone and forward its JSON stats to ``progress``.

    - base: list like [rclone_bin, *global_flags]
    - verb: 'copyto', 'copy', ...
    - env: extra environment variables (credentials go here, never in argv)
    Raises TransportError on failure.
    """
    if not isinstance(base, (list, tuple)) or not base:
        raise TransportError("Invalid rclone base command", "rclone")

    src = str(src).replace("\\", "/")
    dst = str(dst).replace("\\", "/")
    cmd = [
        str(base[0]), verb, src, dst, *(extra or []),
        f"--stats={STATS_INTERVAL}", "--use-json-log", "--stats-log-level", "NOTICE",
        *base[1:],
    ]

    proc_env = dict(os.environ)
    proc_env.update(env or {})

    if logger is not None:
        logger.debug(f"{verb} {src} -> {dst}")

    started = False
    last_error = ""
    try:
        proc = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1,
            encoding="utf-8",
            env=proc_env,
        )
    except OSError as exc:
        raise TransportError(f"Could not run rclone: {exc}", verb) from exc

    with proc:
        for raw in proc.stdout:
            # rclone mixes \r updates; split them out
            for frag in raw.rstrip("\n").split("\r"):
                line = frag.strip()
                if not line:
                    continue
                try:
                    obj = json.loads(line)
                except json.JSONDecodeError:
                    last_error = line
                    continue
                if not isinstance(obj, dict):
                    continue

                out = _bytes_from_stats(obj)
                if out is None:
                    if obj.get("level") == "error":
                        last_error = str(obj.get("msg", "")).strip()
                        if logger is not None:
                            logger.debug(f"rclone: {last_error}")
                    continue

                cur, tot = out
                if progress is not None:
                    if not started:
                        progress.start(tot, label)
                        started = True
                    progress.update(cur)

        code = proc.wait()

    if progress is not None and started:
        progress.finish()

    if code:
        detail = f": {last_error}" if last_error else ""
        raise TransportError(f"rclone exited with code {code}{detail}", verb)
