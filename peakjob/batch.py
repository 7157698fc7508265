"""Batch container: ordered records plus a small metadata store.

The orchestrator only relies on the ``BatchContainer`` protocol. ``Batch``
is the JSON-file backed implementation used by the command line tool and
the tests.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Protocol, Sequence, Tuple

from .errors import ValidationError

Point = Tuple[float, float]


class BatchContainer(Protocol):
    records: Sequence[Any]

    def __len__(self) -> int: ...

    def is_centroided(self) -> bool: ...

    def get_meta(self, key: str, default: Any = None) -> Any: ...

    def set_meta(self, key: str, value: Any) -> None: ...

    def remove_meta(self, key: str) -> None: ...

    def merge_results(self, index: int, rows: Sequence[Sequence[float]], processing: Dict[str, Any]) -> None: ...

    def drop_data(self) -> None: ...


@dataclass
class Record:
    points: List[Point] = field(default_factory=list)
    uncertainties: List[Point] = field(default_factory=list)
    centroided: bool = False
    meta: Dict[str, Any] = field(default_factory=dict)
    processing: List[Dict[str, Any]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.points)

    def sort_by_position(self) -> None:
        if self.uncertainties and len(self.uncertainties) == len(self.points):
            pairs = sorted(zip(self.points, self.uncertainties), key=lambda pair: pair[0][0])
            self.points = [p for p, _ in pairs]
            self.uncertainties = [u for _, u in pairs]
        else:
            self.points.sort(key=lambda p: p[0])

    def clear(self) -> None:
        self.points = []
        self.uncertainties = []

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "points": [list(p) for p in self.points],
            "centroided": self.centroided,
        }
        if self.uncertainties:
            data["uncertainties"] = [list(u) for u in self.uncertainties]
        if self.meta:
            data["meta"] = dict(self.meta)
        if self.processing:
            data["processing"] = list(self.processing)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Record":
        return cls(
            points=[(float(p[0]), float(p[1])) for p in data.get("points", [])],
            uncertainties=[(float(u[0]), float(u[1])) for u in data.get("uncertainties", [])],
            centroided=bool(data.get("centroided", False)),
            meta=dict(data.get("meta", {})),
            processing=list(data.get("processing", [])),
        )


@dataclass
class Batch:
    records: List[Record] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[Record]:
        return iter(self.records)

    def __getitem__(self, index: int) -> Record:
        return self.records[index]

    def is_centroided(self) -> bool:
        return any(record.centroided for record in self.records)

    def get_meta(self, key: str, default: Any = None) -> Any:
        return self.meta.get(key, default)

    def set_meta(self, key: str, value: Any) -> None:
        self.meta[key] = value

    def remove_meta(self, key: str) -> None:
        self.meta.pop(key, None)

    def drop_data(self) -> None:
        for record in self.records:
            record.clear()

    def merge_results(self, index: int, rows: Sequence[Sequence[float]], processing: Dict[str, Any]) -> None:
        if not 0 <= index < len(self.records):
            raise ValidationError(
                f"Result for record {index} does not match the batch ({len(self.records)} records)"
            )
        record = self.records[index]
        record.points = [(float(r[0]), float(r[1])) for r in rows]
        record.uncertainties = [(float(r[2]), float(r[3])) for r in rows if len(r) >= 4]
        record.centroided = True
        record.processing.append(dict(processing))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "meta": dict(self.meta),
            "records": [record.to_dict() for record in self.records],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Batch":
        return cls(
            records=[Record.from_dict(r) for r in data.get("records", [])],
            meta=dict(data.get("meta", {})),
        )

    @classmethod
    def from_points(cls, records: Sequence[Sequence[Sequence[float]]]) -> "Batch":
        return cls(records=[Record(points=[(float(p[0]), float(p[1])) for p in r]) for r in records])


def _atomic_write(path: Path, payload: Dict[str, Any]) -> None:
    tmp = path.with_name(path.name + ".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=1)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp, path)


def load_batch(path: os.PathLike | str) -> Batch:
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        raise ValidationError(f"Cannot read batch file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValidationError(f"Batch file {path} does not hold a JSON object")
    try:
        return Batch.from_dict(data)
    except (TypeError, ValueError, IndexError, KeyError) as exc:
        raise ValidationError(f"Batch file {path} is malformed: {exc}") from exc


def save_batch(batch: Batch, path: os.PathLike | str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    _atomic_write(path, batch.to_dict())
    return path
