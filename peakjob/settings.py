"""User settings stored as JSON next to the cached transfer tool.

Loading only picks up known keys; a corrupt file is replaced by defaults.
Writes go through a temp file and ``os.replace`` so a crash never leaves a
half-written settings file behind.
"""

from __future__ import annotations

import json
import os
import threading
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .constants import ASK, DEFAULT_SERVER, HOST_FINGERPRINT
from .errors import ValidationError
from .utils.worker_utils import user_data_dir

PASSWORD_ENV = "PEAKJOB_PASSWORD"


@dataclass
class Settings:
    server: str = DEFAULT_SERVER
    username: str = ""
    password: str = ""
    project: int = 0
    version: str = ASK
    last_version: str = ""
    rto: str = ASK
    mass_range: str = "[min]:[max]"
    sandbox: Optional[str] = None
    debug: bool = False
    timeout: float = 60.0
    poll_attempts: int = 1
    poll_interval: float = 30.0
    poll_max_interval: float = 600.0
    log_dir: str = ""
    host_fingerprint: str = HOST_FINGERPRINT

    _lock = threading.Lock()

    @property
    def sandboxed(self) -> bool:
        return self.sandbox is not None

    @property
    def sandbox_forced(self) -> Optional[str]:
        """None for "no override", otherwise the forced value."""
        return self.sandbox or None

    def parsed_mass_range(self) -> Tuple[Optional[int], Optional[int]]:
        return parse_mass_range(self.mass_range)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("password", None)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        settings = cls()
        known = {f.name: f for f in fields(cls)}
        for key, value in data.items():
            if key not in known:
                continue
            default = getattr(settings, key)
            if isinstance(default, bool):
                value = bool(value)
            elif isinstance(default, int) and value is not None:
                value = int(value)
            elif isinstance(default, float) and value is not None:
                value = float(value)
            setattr(settings, key, value)
        return settings

    def apply_environment(self, environ=None) -> "Settings":
        environ = os.environ if environ is None else environ
        password = environ.get(PASSWORD_ENV, "")
        if password:
            self.password = password
        return self

    # ── persistence ─────────────────────────────────────────────────
    @classmethod
    def _atomic_write(cls, path: Path, payload: Dict[str, Any]) -> None:
        tmp = path.with_name(path.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)

    def save(self, path: Optional[os.PathLike] = None) -> Path:
        """Persist everything except the password."""
        path = Path(path) if path else default_settings_path()
        with self._lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._atomic_write(path, self.to_dict())
        return path

    @classmethod
    def load(cls, path: Optional[os.PathLike] = None) -> "Settings":
        path = Path(path) if path else default_settings_path()
        with cls._lock:
            if not path.exists():
                return cls()
            try:
                with open(path, "r", encoding="utf-8") as f:
                    loaded = json.load(f)
                if not isinstance(loaded, dict):
                    raise ValueError("settings file is not a JSON object")
                return cls.from_dict(loaded)
            except (OSError, TypeError, ValueError):
                # corrupted/partial file: reset to safe defaults
                settings = cls()
                path.parent.mkdir(parents=True, exist_ok=True)
                cls._atomic_write(path, settings.to_dict())
                return settings


def default_settings_path() -> Path:
    return user_data_dir() / "settings.json"


def parse_mass_range(text: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
    """Parse ``"<min>:<max>"``; ``[min]``/``[max]`` or blanks leave a side open."""
    value = str(text or "").strip()
    if not value:
        return None, None
    if value.count(":") != 1:
        raise ValidationError(f"Mass range must look like '<min>:<max>', got {value!r}")
    bounds = []
    for part, placeholder in zip(value.split(":"), ("[min]", "[max]")):
        part = part.strip()
        if not part or part == placeholder:
            bounds.append(None)
            continue
        try:
            bounds.append(int(float(part)))
        except ValueError:
            raise ValidationError(f"Mass range bound {part!r} is not a number") from None
    low, high = bounds
    if low is not None and high is not None and low >= high:
        raise ValidationError(f"Mass range minimum {low} must be below maximum {high}")
    return low, high
