"""
Host Target Value Object

Architectural Intent:
- Immutable identity of one managed host for the duration of a run
- Bundles the forum instance with the fully resolved command set
- validate_target() guards the SSH invocation against argument injection
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields, replace
from typing import Mapping, Optional

from forumfleet.domain.entities.forum_instance import ForumInstance
from forumfleet.domain.errors import InvalidTargetError

DEFAULT_OS_UPDATE_CMD = (
    "sudo -n DEBIAN_FRONTEND=noninteractive apt update && "
    "sudo -n DEBIAN_FRONTEND=noninteractive apt upgrade -y"
)
DEFAULT_REBOOT_CMD = "sudo -n reboot"
DEFAULT_UPDATE_CMD = "cd /var/discourse && sudo -n ./launcher rebuild app"
DEFAULT_CLEANUP_CMD = "cd /var/discourse && sudo -n ./launcher cleanup"
DEFAULT_OS_VERSION_CMD = "lsb_release -d | cut -f2"
DEFAULT_OS_VERSION_FALLBACK_CMD = (
    "grep PRETTY_NAME /etc/os-release | cut -d'=' -f2 | tr -d '\"'"
)


def validate_target(target: str) -> str:
    """Return the trimmed target or raise InvalidTargetError."""
    trimmed = target.strip()
    if not trimmed:
        raise InvalidTargetError(target, "target is empty")
    if trimmed.startswith("-"):
        raise InvalidTargetError(target, "target cannot start with '-'")
    if any(ch.isspace() for ch in trimmed):
        raise InvalidTargetError(target, "target cannot contain whitespace")
    return trimmed


@dataclass(frozen=True)
class UpgradeCommands:
    """Remote commands run by the upgrade sequence.

    An empty reboot_cmd skips the reboot step; an empty
    os_update_rollback_cmd means no rollback is attempted.
    """
    os_update_cmd: str = DEFAULT_OS_UPDATE_CMD
    os_update_rollback_cmd: str = ""
    reboot_cmd: str = DEFAULT_REBOOT_CMD
    update_cmd: str = DEFAULT_UPDATE_CMD
    cleanup_cmd: str = DEFAULT_CLEANUP_CMD
    os_version_cmd: str = DEFAULT_OS_VERSION_CMD
    os_version_fallback_cmd: str = DEFAULT_OS_VERSION_FALLBACK_CMD

    @property
    def rollback(self) -> Optional[str]:
        return self.os_update_rollback_cmd.strip() or None

    @property
    def reboot(self) -> Optional[str]:
        return self.reboot_cmd.strip() or None

    def with_overrides(self, overrides: Mapping[str, str]) -> "UpgradeCommands":
        known = {f.name for f in fields(self)}
        applicable = {k: str(v) for k, v in overrides.items() if k in known}
        return replace(self, **applicable) if applicable else self


@dataclass(frozen=True)
class HostTarget:
    instance: ForumInstance
    commands: UpgradeCommands = field(default_factory=UpgradeCommands)

    @property
    def name(self) -> str:
        return self.instance.name

    @property
    def ssh_address(self) -> str:
        return self.instance.ssh_address

    def __str__(self) -> str:
        if self.ssh_address == self.name:
            return self.name
        return f"{self.name} ({self.ssh_address})"
