"""Durable record of shrunk files, used to make repeated runs idempotent."""

from __future__ import annotations

import json
import logging
import tempfile
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from vidshrink.failures import Failure, FailureKind, FatalError

logger = logging.getLogger(__name__)

LEDGER_FILENAME = "compression_log.json"


@dataclass(frozen=True)
class FileRecord:
    """One successfully shrunk file."""

    size_before: int
    size_after: int
    marked_at: int


@dataclass(frozen=True)
class SkipEntry:
    """A file that was not shrunk during this run, and why."""

    path: str
    failure: Failure


@dataclass
class RunSummary:
    """What a run added to the ledger and what it skipped."""

    added: dict[str, FileRecord] = field(default_factory=dict)
    skipped: list[SkipEntry] = field(default_factory=list)

    def totals(self) -> tuple[int, int]:
        """Return (bytes before, bytes after) summed over the added records."""
        before = sum(r.size_before for r in self.added.values())
        after = sum(r.size_after for r in self.added.values())
        return before, after


def wall_clock_stamp(path: Path) -> int:
    """Return the current time in epoch seconds. ``path`` is ignored."""
    try:
        now = datetime.now(timezone.utc)
    except (OSError, OverflowError, ValueError) as e:
        raise FatalError(FailureKind.CLOCK, str(e)) from e
    stamp = int(now.timestamp())
    if stamp < 0:
        raise FatalError(FailureKind.CLOCK, "system clock is before the Unix epoch")
    return stamp


def mtime_stamp(path: Path) -> int:
    """Return the modification time of ``path`` in epoch seconds."""
    return int(path.stat().st_mtime)


# Records are stamped with the wall clock at the moment of success while the
# walker compares them against the file's mtime. A file restored with an mtime
# older than its last success is therefore still treated as processed.
# Switching this to mtime_stamp compares like with like.
FRESHNESS_STAMP: Callable[[Path], int] = wall_clock_stamp


class Ledger:
    """Maps path keys to FileRecords and collects this run's results.

    Keys are paths relative to the ledger's directory in POSIX form, so the
    ledger stays valid when the whole tree is moved.
    """

    def __init__(
        self,
        path: Path,
        records: dict[str, FileRecord] | None = None,
        stamp: Callable[[Path], int] | None = None,
    ) -> None:
        self.path = path
        self._records: dict[str, FileRecord] = dict(records or {})
        self._stamp = stamp or FRESHNESS_STAMP
        self._added: dict[str, FileRecord] = {}
        self._skipped: list[SkipEntry] = []
        self._dirty = False

    @classmethod
    def load(cls, directory: Path, stamp: Callable[[Path], int] | None = None) -> Ledger:
        """Load the ledger stored in ``directory``; never raises.

        Anything that cannot be read or parsed yields an empty ledger.
        """
        path = directory / LEDGER_FILENAME
        data = _read_json(path)
        if data is None:
            return cls(path, stamp=stamp)
        if not isinstance(data, dict):
            logger.debug("Ledger %s is not a JSON object, starting empty", path)
            return cls(path, stamp=stamp)

        records: dict[str, FileRecord] = {}
        for key, raw in data.items():
            record = _parse_record(raw)
            if record is None:
                logger.debug("Dropping malformed ledger entry %r", key)
                continue
            records[key] = record
        logger.debug("Loaded %d ledger records from %s", len(records), path)
        return cls(path, records, stamp=stamp)

    @property
    def directory(self) -> Path:
        return self.path.parent

    @property
    def dirty(self) -> bool:
        """True if records changed since the ledger was loaded or last persisted."""
        return self._dirty

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, Path) and self.key_for(path) in self._records

    def key_for(self, path: Path) -> str:
        absolute = path.absolute()
        try:
            return absolute.relative_to(self.directory.absolute()).as_posix()
        except ValueError:
            return str(absolute)

    def get(self, path: Path) -> FileRecord | None:
        return self._records.get(self.key_for(path))

    def is_processed(self, path: Path, freshness: int) -> bool:
        """True if ``path`` was shrunk at or after ``freshness``."""
        record = self._records.get(self.key_for(path))
        return record is not None and record.marked_at >= freshness

    def mark_processed(self, path: Path, size_before: int, size_after: int) -> FileRecord:
        record = FileRecord(
            size_before=size_before,
            size_after=size_after,
            marked_at=self._stamp(path),
        )
        key = self.key_for(path)
        self._records[key] = record
        self._added[key] = record
        self._dirty = True
        return record

    def mark_skipped(self, path: Path, failure: Failure) -> None:
        self._skipped.append(SkipEntry(self.key_for(path), failure))

    def persist(self) -> None:
        """Rewrite the ledger file atomically (temp file, then rename).

        Raises FatalError if the file cannot be written.
        """
        document = {key: asdict(record) for key, record in self._records.items()}
        try:
            fd, tmp_path_str = tempfile.mkstemp(
                dir=self.path.parent, prefix=".compression_log.", suffix=".tmp"
            )
        except OSError as e:
            raise FatalError(FailureKind.PERSIST, f"{self.path}: {e}") from e

        tmp_path = Path(tmp_path_str)
        try:
            with open(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, ensure_ascii=False)
            tmp_path.replace(self.path)
            self._dirty = False
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise FatalError(FailureKind.PERSIST, f"{self.path}: {e}") from e
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

    def drain(self) -> RunSummary:
        """Return this run's additions and skips, then forget them."""
        summary = RunSummary(added=dict(self._added), skipped=list(self._skipped))
        self._added.clear()
        self._skipped.clear()
        return summary


def _read_json(path: Path) -> Any:
    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        logger.debug("No ledger at %s, starting empty", path)
        return None
    # ValueError covers JSONDecodeError, bad UTF-8 and over-long integers
    except (OSError, ValueError, RecursionError) as e:
        logger.debug("Ignoring unreadable ledger %s: %s", path, e)
        return None


def _parse_record(raw: Any) -> FileRecord | None:
    if not isinstance(raw, dict):
        return None
    try:
        values = [raw["size_before"], raw["size_after"], raw["marked_at"]]
    except KeyError:
        return None
    if not all(isinstance(v, int) and not isinstance(v, bool) for v in values):
        return None
    return FileRecord(*values)
