"""
Audit Log

Architectural Intent:
- Append-only, newline-delimited record of one fleet run, one file per UTC day
- Shared by every host task of the run; writes are serialized by a lock and
  each event is a single write() of a complete line

Security:
- Refuses to write through a symbolic link: checked before opening and the
  open itself uses O_NOFOLLOW
- Creation is exclusive; an existing file (an earlier or concurrent run on the
  same day) is appended to, never truncated
"""

import logging
import os
import threading
from datetime import datetime, UTC
from pathlib import Path
from typing import Callable, Optional

from forumfleet.domain.errors import AuditLogError

logger = logging.getLogger(__name__)

AUDIT_LOG_PREFIX = "forumfleet-update"


def audit_log_path(directory: Path, now: Optional[datetime] = None) -> Path:
    day = (now or datetime.now(UTC)).strftime("%Y-%m-%d")
    return Path(directory) / f"{AUDIT_LOG_PREFIX}-{day}.log"


def format_entry(
    timestamp: datetime, event: str, host: str, detail: Optional[str] = None
) -> str:
    line = f"{timestamp.isoformat(timespec='seconds')} {event} {host}"
    if detail:
        line += f": {detail}"
    # One event, one line.
    return line.replace("\r", " ").replace("\n", " ") + "\n"


class FileAuditLog:
    def __init__(
        self,
        path: Path,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.path = Path(path)
        self._clock = clock
        self._lock = threading.Lock()
        self._fd: Optional[int] = None

    @classmethod
    def for_today(cls, directory: Path) -> "FileAuditLog":
        Path(directory).mkdir(parents=True, exist_ok=True)
        return cls(audit_log_path(directory))

    def _open(self) -> int:
        if self.path.is_symlink():
            raise AuditLogError(f"refusing to write audit log through symlink: {self.path}")
        flags = os.O_WRONLY | os.O_APPEND | getattr(os, "O_NOFOLLOW", 0)
        try:
            return os.open(self.path, flags | os.O_CREAT | os.O_EXCL, 0o640)
        except FileExistsError:
            pass
        except OSError as e:
            raise AuditLogError(f"cannot create audit log {self.path}: {e}") from e
        try:
            return os.open(self.path, flags)
        except OSError as e:
            raise AuditLogError(f"cannot open audit log {self.path}: {e}") from e

    def record(self, event: str, host: str, detail: Optional[str] = None) -> None:
        entry = format_entry(self._clock(), event, host, detail).encode("utf-8")
        with self._lock:
            if self._fd is None:
                self._fd = self._open()
                logger.debug("Audit log opened: %s", self.path)
            os.write(self._fd, entry)

    def close(self) -> None:
        with self._lock:
            if self._fd is not None:
                os.fsync(self._fd)
                os.close(self._fd)
                self._fd = None

    def __enter__(self) -> "FileAuditLog":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
