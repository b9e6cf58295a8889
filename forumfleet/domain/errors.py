"""
Domain Errors

Architectural Intent:
- Typed error kinds raised by the upgrade orchestrator and its collaborators
- Per-host upgrade errors carry the host name and the failing step so the
  CLI can report both without parsing messages
- Best-effort lookups (versions, OS facts) have no error kind: they return None
"""

from __future__ import annotations
from typing import Mapping, Optional


class ForumFleetError(Exception):
    """Base class for all forumfleet errors."""


class ConfigError(ForumFleetError):
    pass


class InvalidTargetError(ForumFleetError, ValueError):
    """Raised when an SSH target could be mistaken for a command-line option."""

    def __init__(self, target: str, reason: str) -> None:
        super().__init__(f"invalid ssh target {target!r}: {reason}")
        self.target = target
        self.reason = reason


class CommandFailedError(ForumFleetError):
    """A remote command exited non-zero or the connection could not be made."""

    def __init__(
        self,
        target: str,
        command: str,
        stderr: str = "",
        exit_status: Optional[int] = None,
    ) -> None:
        detail = stderr.strip() or f"exit status {exit_status}"
        super().__init__(f"ssh command failed for {target}: {detail}")
        self.target = target
        self.command = command
        self.stderr = stderr
        self.exit_status = exit_status


class UpgradeError(ForumFleetError):
    """Fatal failure of one host's upgrade sequence."""

    step = "upgrade"

    def __init__(self, host: str, message: str) -> None:
        super().__init__(f"{self.step} failed for {host}: {message}")
        self.host = host


class OsUpdateFailedError(UpgradeError):
    step = "os-update"


class HostUnreachableAfterRebootError(UpgradeError):
    step = "await-online"


class AppUpgradeFailedError(UpgradeError):
    step = "app-upgrade"


class CleanupFailedError(UpgradeError):
    step = "cleanup"


class ForumApiError(ForumFleetError):
    pass


class ReportPublishError(ForumFleetError):
    """Posting the changelog failed. The upgrade itself still stands."""

    def __init__(self, host: str, message: str) -> None:
        super().__init__(f"changelog post failed for {host}: {message}")
        self.host = host


class AuditLogError(ForumFleetError):
    pass


class FleetUpgradeError(ForumFleetError):
    """One or more hosts of a fleet run failed."""

    def __init__(self, errors: Mapping[str, Exception]) -> None:
        self.errors = dict(errors)
        hosts = ", ".join(sorted(self.errors))
        super().__init__(f"{len(self.errors)} host(s) failed: {hosts}")
