"""
Composition Root

Architectural Intent:
- Dependency injection composition root for the forumfleet application
- Single place where all adapters and use cases are wired together
- No adapter instantiation should occur outside this module

Design Decisions:
- Uses a simple dataclass container instead of a DI framework
- Factory function creates and wires all dependencies from a loaded config
- Console-facing pieces (progress, confirm, output) are passed in so tests
  and non-interactive callers can replace them
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from forumfleet.application.services.host_prober import HostProber
from forumfleet.application.services.version_oracle import VersionOracle
from forumfleet.application.use_cases.publish_changelog import PublishChangelog
from forumfleet.application.use_cases.upgrade_fleet import UpgradeFleet
from forumfleet.application.use_cases.upgrade_host import (
    RebootWaitSchedule,
    UpgradeHost,
)
from forumfleet.domain.ports.progress_port import ProgressPort
from forumfleet.infrastructure.adapters.discourse_adapter import DiscourseAdapter
from forumfleet.infrastructure.adapters.fabric_adapter import (
    FabricAdapter,
    parse_ssh_options,
)
from forumfleet.infrastructure.audit_log import FileAuditLog
from forumfleet.infrastructure.config import ForumFleetConfig


@dataclass
class ForumFleetContainer:
    """DI container holding all wired dependencies."""

    config: ForumFleetConfig
    fabric_adapter: FabricAdapter
    discourse_adapter: DiscourseAdapter
    prober: HostProber
    versions: VersionOracle
    upgrade_host: UpgradeHost
    publisher: PublishChangelog
    upgrade_fleet: UpgradeFleet


def create_container(
    config: ForumFleetConfig,
    progress: Optional[ProgressPort] = None,
    confirm: Optional[Callable[[str], bool]] = None,
    output: Callable[[str], None] = print,
    assume_yes: bool = False,
) -> ForumFleetContainer:
    """Create and wire all dependencies."""
    ssh = config.ssh
    fabric_adapter = FabricAdapter(
        strict_host_key_checking=ssh.strict_host_key_checking,
        options=parse_ssh_options(ssh.options),
        known_hosts_file=Path(ssh.known_hosts_file) if ssh.known_hosts_file else None,
    )
    discourse_adapter = DiscourseAdapter()

    prober = HostProber(fabric_adapter, connect_timeout=ssh.probe_timeout_seconds)
    versions = VersionOracle(discourse_adapter, fabric_adapter)
    upgrade_host = UpgradeHost(
        fabric_adapter,
        versions,
        prober,
        schedule=RebootWaitSchedule(
            grace_seconds=ssh.reboot_grace_seconds,
            probe_interval_seconds=ssh.probe_interval_seconds,
            probe_attempts=ssh.probe_attempts,
        ),
        progress=progress,
        tail_lines=ssh.tail_lines,
    )
    publisher_kwargs = {"confirm": confirm} if confirm is not None else {}
    publisher = PublishChangelog(
        discourse_adapter,
        assume_yes=assume_yes,
        run_marker=config.test.marker,
        output=output,
        **publisher_kwargs,
    )
    audit_directory = Path(config.audit.directory)
    upgrade_fleet = UpgradeFleet(
        upgrade_host,
        open_audit_log=lambda: FileAuditLog.for_today(audit_directory),
        publisher=publisher,
    )

    return ForumFleetContainer(
        config=config,
        fabric_adapter=fabric_adapter,
        discourse_adapter=discourse_adapter,
        prober=prober,
        versions=versions,
        upgrade_host=upgrade_host,
        publisher=publisher,
        upgrade_fleet=upgrade_fleet,
    )
