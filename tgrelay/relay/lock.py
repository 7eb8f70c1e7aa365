"""File-based poll lock so only one process drains the Telegram update queue.

The record is a small JSON document ``{"owner": <pid>, "timestamp": <ms>}``.
It is valid while it is younger than the TTL and its owner pid is alive;
anything else may be reclaimed. Creating a missing record is atomic
(``O_EXCL``); reclaiming a stale one is read-check-then-replace and can race,
which is accepted: exclusion is advisory.
"""

from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

DEFAULT_TTL_MS = 30_000


def pid_alive(pid: int) -> bool:
    """Return True if a process with this pid exists."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)  # signal 0 = check existence
    except PermissionError:
        return True  # exists, owned by someone else
    except OSError:
        return False
    return True


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class LockRecord:
    owner: int
    timestamp: int  # epoch milliseconds of acquisition or last heartbeat

    def age_ms(self, now_ms: int) -> int:
        return now_ms - self.timestamp

    def to_json(self) -> str:
        return json.dumps({"owner": self.owner, "timestamp": self.timestamp})


class LockStateUnknown(OSError):
    """The lock file exists but could not be read."""


class PollLock:
    """TTL + heartbeat lock backed by a shared file path."""

    def __init__(self, path: Path, ttl_ms: int = DEFAULT_TTL_MS):
        self.path = Path(path).expanduser()
        self.ttl_ms = ttl_ms

    # ── record I/O ──

    def read(self) -> LockRecord | None:
        """Read the current record.

        Returns None when there is no file or its content is unusable (an
        unparseable record can never be valid). Raises LockStateUnknown on
        any other I/O error.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise LockStateUnknown(f"Cannot read lock {self.path}: {e}") from e
        try:
            data = json.loads(raw)
            return LockRecord(owner=int(data["owner"]), timestamp=int(data["timestamp"]))
        except (ValueError, KeyError, TypeError):
            logger.warning(f"Poll lock {self.path} holds an unreadable record; treating as stale")
            return None

    def _create_exclusive(self, record: LockRecord) -> bool:
        """Create the file only if it does not exist yet."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(str(self.path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(record.to_json())
        return True

    def _replace(self, record: LockRecord) -> None:
        """Overwrite the record via a temp file + rename."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(f"{self.path.name}.{os.getpid()}.tmp")
        tmp.write_text(record.to_json(), encoding="utf-8")
        os.replace(tmp, self.path)

    # ── state ──

    def is_valid(self, record: LockRecord, now_ms: int | None = None) -> bool:
        now = _now_ms() if now_ms is None else now_ms
        return record.age_ms(now) < self.ttl_ms and pid_alive(record.owner)

    def holder(self) -> LockRecord | None:
        """Return the record if it is currently valid, else None."""
        try:
            record = self.read()
        except LockStateUnknown:
            return None
        if record is None or not self.is_valid(record):
            return None
        return record

    # ── operations ──

    def try_acquire(self, owner_id: int) -> bool:
        """Take the lock unless a live, fresh record belongs to someone else."""
        try:
            record = self.read()
            now = _now_ms()
            mine = LockRecord(owner=owner_id, timestamp=now)

            if record is None and not self.path.exists():
                if self._create_exclusive(mine):
                    logger.info(f"Poll lock acquired by {owner_id}")
                    return True
                # Someone created it between our read and our create.
                record = self.read()
                if record is not None and record.owner != owner_id and self.is_valid(record, now):
                    return False

            if record is not None and record.owner != owner_id and self.is_valid(record, now):
                logger.debug(f"Poll lock held by {record.owner} ({record.age_ms(now)}ms old)")
                return False

            if record is not None and record.owner != owner_id:
                logger.info(f"Reclaiming stale poll lock from {record.owner}")
            self._replace(mine)
            return True
        except OSError as e:
            logger.error(f"Poll lock state unknown, refusing to acquire: {e}")
            return False

    def heartbeat(self, owner_id: int) -> bool:
        """Refresh the timestamp if we still own the lock.

        Returns False only when the record is gone or names another owner.
        An I/O error is logged and does not count as losing the lock; the
        next heartbeat retries.
        """
        try:
            record = self.read()
            if record is None or record.owner != owner_id:
                return False
            self._replace(LockRecord(owner=owner_id, timestamp=_now_ms()))
            return True
        except OSError as e:
            logger.warning(f"Poll lock heartbeat failed: {e}")
            return True

    def release(self, owner_id: int) -> bool:
        """Delete the record if it is ours."""
        try:
            record = self.read()
            if record is None or record.owner != owner_id:
                return False
            self.path.unlink(missing_ok=True)
            logger.info(f"Poll lock released by {owner_id}")
            return True
        except OSError as e:
            logger.warning(f"Poll lock release failed: {e}")
            return False
