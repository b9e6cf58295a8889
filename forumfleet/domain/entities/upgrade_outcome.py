"""
Upgrade Outcome Module

Architectural Intent:
- UpgradeOutcome is the immutable fact record of one completed host upgrade
- It is only ever built at the end of a successful sequence; aborted runs
  raise instead of returning a partial record
- UpgradeStep names the sequencer states for progress and error reporting
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class UpgradeStep(Enum):
    COLLECT_BEFORE = "collect-before"
    OS_UPDATE = "os-update"
    REBOOT = "reboot"
    AWAIT_ONLINE = "await-online"
    APP_UPGRADE = "app-upgrade"
    COLLECT_AFTER = "collect-after"
    CLEANUP = "cleanup"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class UpgradeOutcome:
    host: str
    before_app_version: Optional[str] = None
    after_app_version: Optional[str] = None
    before_os_version: Optional[str] = None
    after_os_version: Optional[str] = None
    reclaimed_space: Optional[str] = None
    os_updated: bool = False
    server_rebooted: bool = False

    @property
    def app_version(self) -> Optional[str]:
        return self.after_app_version or self.before_app_version

    def summary(self) -> str:
        return (
            f"version={self.app_version or 'unknown'} "
            f"rebooted={'yes' if self.server_rebooted else 'no'} "
            f"reclaimed={self.reclaimed_space or 'unknown'}"
        )
