"""Archive codec for bulk transfer.

One gzip-compressed tar per upload, one entry per record. Entry payloads
are plain text: whitespace-separated numeric columns, one data point per
line, ``#`` comments and blank lines ignored.
"""

from __future__ import annotations

import io
import os
import re
import tarfile
import time
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Callable, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from .constants import RECORD_ENTRY_FMT, RECORD_ENTRY_RE, RESULT_ENTRY_RE
from .errors import ValidationError

PathLike = Union[str, os.PathLike]
Row = Tuple[float, ...]

INPUT_COLUMNS = 2
RESULT_COLUMNS = 4


class ArchiveMode(Enum):
    CREATE = "create"
    READ = "read"


# ─────────────────────────── entry names ───────────────────────────

def record_entry_name(index: int) -> str:
    return RECORD_ENTRY_FMT.format(index=int(index))


def parse_record_index(name: str, pattern: str = RESULT_ENTRY_RE) -> int:
    match = re.search(pattern, name)
    if not match:
        raise ValidationError(f"Unexpected archive entry name: {name!r}")
    return int(match.group(1))


def parse_input_index(name: str) -> int:
    return parse_record_index(name, RECORD_ENTRY_RE)


# ─────────────────────────── line codec ────────────────────────────

def encode_points(points: Iterable[Sequence[float]]) -> bytes:
    # repr() keeps full float precision so decoding is exact.
    lines = ["\t".join(repr(float(v)) for v in point) for point in points]
    return ("\n".join(lines) + "\n").encode("utf-8") if lines else b""


def decode_points(
    stream: Union[BinaryIO, bytes],
    columns: int = INPUT_COLUMNS,
    *,
    strict: bool = True,
    entry_name: str = "",
    on_warning: Optional[Callable[[str], None]] = None,
) -> List[Row]:
    """Parse one payload into rows of ``columns`` floats.

    A line that does not hold exactly ``columns`` numbers raises
    ValidationError when ``strict``; otherwise it is dropped and reported
    through ``on_warning``.
    """
    if isinstance(stream, (bytes, bytearray)):
        stream = io.BytesIO(stream)

    rows: List[Row] = []
    for lineno, raw in enumerate(stream, start=1):
        line = raw.decode("utf-8", errors="replace").strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split()
        problem = None
        if len(parts) != columns:
            problem = f"expected {columns} columns, found {len(parts)}"
        else:
            try:
                rows.append(tuple(float(p) for p in parts))
            except ValueError:
                problem = "non-numeric value"
        if problem:
            message = f"{entry_name or 'entry'} line {lineno}: {problem} ({line!r})"
            if strict:
                raise ValidationError(message)
            if on_warning:
                on_warning(f"Skipped {message}")
    return rows


# ──────────────────────────── writer ───────────────────────────────

class ArchiveWriter:
    """Write named payloads into a new archive.

    Data goes to ``<path>.part`` and is renamed into place by ``close()``;
    ``abort()`` (or leaving the ``with`` block by an exception) removes
    the partial file, so a truncated archive never sits at ``path``.
    """

    def __init__(self, path: PathLike):
        self.path = Path(path)
        self._part = self.path.with_name(self.path.name + ".part")
        self._tar: Optional[tarfile.TarFile] = None
        self.entry_count = 0

    def open(self) -> "ArchiveWriter":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._tar = tarfile.open(self._part, mode="w:gz")
        return self

    def write_entry(self, name: str, payload: bytes) -> None:
        if self._tar is None:
            raise ValueError("Archive is not open for writing")
        info = tarfile.TarInfo(name=name)
        info.size = len(payload)
        info.mtime = int(time.time())
        info.mode = 0o644
        self._tar.addfile(info, io.BytesIO(payload))
        self.entry_count += 1

    def close(self) -> None:
        if self._tar is None:
            return
        self._tar.close()
        self._tar = None
        os.replace(self._part, self.path)

    def abort(self) -> None:
        if self._tar is not None:
            try:
                self._tar.close()
            finally:
                self._tar = None
        self._part.unlink(missing_ok=True)

    def __enter__(self) -> "ArchiveWriter":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
        else:
            self.abort()


# ──────────────────────────── reader ───────────────────────────────

class ArchiveReader:
    """Forward-only iteration over the file entries of an existing archive.

    Directory markers (``./`` and friends) are skipped. ``next_entry()``
    returns ``("", None)`` once the archive is exhausted.
    """

    def __init__(self, path: PathLike):
        self.path = Path(path)
        self._tar: Optional[tarfile.TarFile] = None

    def open(self) -> "ArchiveReader":
        try:
            self._tar = tarfile.open(self.path, mode="r:*")
        except (tarfile.TarError, OSError) as exc:
            raise ValidationError(f"Cannot read archive {self.path.name}: {exc}") from exc
        return self

    def next_entry(self) -> Tuple[str, Optional[BinaryIO]]:
        if self._tar is None:
            raise ValueError("Archive is not open for reading")
        while True:
            member = self._tar.next()
            if member is None:
                return "", None
            if member.isdir() or member.name.endswith("/") or not member.isfile():
                continue
            return member.name, self._tar.extractfile(member)

    def __iter__(self) -> Iterator[Tuple[str, BinaryIO]]:
        while True:
            name, stream = self.next_entry()
            if not name:
                return
            yield name, stream

    def close(self) -> None:
        if self._tar is not None:
            self._tar.close()
            self._tar = None

    def __enter__(self) -> "ArchiveReader":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def open_archive(path: PathLike, mode: ArchiveMode = ArchiveMode.READ):
    if mode is ArchiveMode.CREATE:
        return ArchiveWriter(path)
    return ArchiveReader(path)


# ─────────────────────────── batch helpers ─────────────────────────

def pack_records(path: PathLike, records: Sequence, progress=None) -> int:
    """Write one ``record#####.txt`` entry per record. Returns the entry count."""
    if progress is not None:
        progress.start(len(records), f"Packing {Path(path).name}")
    try:
        with ArchiveWriter(path) as writer:
            for index, record in enumerate(records):
                writer.write_entry(record_entry_name(index), encode_points(record.points))
                if progress is not None:
                    progress.update(index + 1)
            return writer.entry_count
    finally:
        if progress is not None:
            progress.finish()


def iter_results(
    path: PathLike,
    *,
    columns: int = RESULT_COLUMNS,
    strict: bool = True,
    on_warning: Optional[Callable[[str], None]] = None,
) -> Iterator[Tuple[int, List[Row]]]:
    """Yield ``(record_index, rows)`` for every result entry in the archive."""
    with ArchiveReader(path) as reader:
        for name, stream in reader:
            index = parse_record_index(name)
            rows = decode_points(
                stream,
                columns,
                strict=strict,
                entry_name=name,
                on_warning=on_warning,
            )
            yield index, rows
