"""
Upgrade Host Use Case

Architectural Intent:
- The per-host upgrade state machine
- Runs the steps strictly in order, each exactly once, and either returns a
  complete UpgradeOutcome or raises a typed UpgradeError
- Collaborators (remote executor, version oracle, prober, sleep) are injected
  so the whole sequence runs against fakes in tests

Step order:
    COLLECT_BEFORE -> OS_UPDATE -> REBOOT -> AWAIT_ONLINE -> APP_UPGRADE
    -> COLLECT_AFTER -> CLEANUP -> COMPLETED

Failure semantics:
- OS update failure runs the rollback command (if configured) and aborts;
  a failing rollback is only logged
- Reboot failure is not fatal: the host is treated as not rebooted and the
  reboot wait is skipped
- Exhausting the probe attempts after a reboot aborts
- App upgrade and cleanup failures abort; no rollback at this layer
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from forumfleet.application.services.host_prober import HostProber
from forumfleet.application.services.logging_progress import LoggingProgress
from forumfleet.application.services.version_oracle import VersionOracle
from forumfleet.domain.entities.upgrade_outcome import UpgradeOutcome, UpgradeStep
from forumfleet.domain.errors import (
    AppUpgradeFailedError,
    CleanupFailedError,
    HostUnreachableAfterRebootError,
    OsUpdateFailedError,
)
from forumfleet.domain.ports.progress_port import ProgressPort
from forumfleet.domain.ports.remote_executor_port import (
    DEFAULT_TAIL_LINES,
    CommandResult,
    RemoteExecutorPort,
)
from forumfleet.domain.services.changelog import parse_reclaimed_space
from forumfleet.domain.value_objects.host_target import HostTarget, validate_target

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RebootWaitSchedule:
    """Grace sleep, then up to probe_attempts probes spaced by probe_interval."""
    grace_seconds: float = 30
    probe_interval_seconds: float = 30
    probe_attempts: int = 12

    def __post_init__(self) -> None:
        if self.probe_attempts < 1:
            raise ValueError(
                f"probe_attempts must be at least 1, got {self.probe_attempts}"
            )


class UpgradeHost:
    def __init__(
        self,
        remote_executor: RemoteExecutorPort,
        versions: VersionOracle,
        prober: HostProber,
        schedule: Optional[RebootWaitSchedule] = None,
        progress: Optional[ProgressPort] = None,
        sleep: Sleep = asyncio.sleep,
        tail_lines: int = DEFAULT_TAIL_LINES,
    ):
        self.remote_executor = remote_executor
        self.versions = versions
        self.prober = prober
        self.schedule = schedule or RebootWaitSchedule()
        self.progress = progress or LoggingProgress()
        self.sleep = sleep
        self.tail_lines = tail_lines

    async def execute(self, target: HostTarget) -> UpgradeOutcome:
        try:
            address = validate_target(target.ssh_address)
            return await self._execute(target, address)
        except Exception:
            self._enter(target, UpgradeStep.ABORTED)
            raise

    async def _execute(self, target: HostTarget, address: str) -> UpgradeOutcome:
        self.progress.stage(address, f"Updating {target}")

        self._enter(target, UpgradeStep.COLLECT_BEFORE)
        before_app = await self._collect_app_version(target, "before update")
        before_os = await self._collect_os_version(target, "before update")

        self._enter(target, UpgradeStep.OS_UPDATE)
        await self._os_update(target)
        os_updated = True

        server_rebooted = False
        if target.commands.reboot:
            self._enter(target, UpgradeStep.REBOOT)
            server_rebooted = await self._reboot(target)
            if server_rebooted:
                self._enter(target, UpgradeStep.AWAIT_ONLINE)
                await self._await_online(target)
        else:
            self.progress.stage(address, "Reboot skipped (no reboot command configured)")

        self._enter(target, UpgradeStep.APP_UPGRADE)
        try:
            await self._run_streaming(
                target, target.commands.update_cmd, "Discourse update in progress"
            )
        except Exception as e:
            raise AppUpgradeFailedError(target.name, str(e)) from e

        self._enter(target, UpgradeStep.COLLECT_AFTER)
        after_app = await self._collect_app_version(target, "after update")
        after_os = await self._collect_os_version(target, "after update")

        self._enter(target, UpgradeStep.CLEANUP)
        try:
            cleanup = await self.remote_executor.run(address, target.commands.cleanup_cmd)
        except Exception as e:
            raise CleanupFailedError(target.name, str(e)) from e
        reclaimed_space = parse_reclaimed_space(cleanup.stdout)
        if reclaimed_space is None:
            self.progress.stage(address, "Reclaimed space not reported by cleanup")

        outcome = UpgradeOutcome(
            host=target.name,
            before_app_version=before_app,
            after_app_version=after_app,
            before_os_version=before_os,
            after_os_version=after_os,
            reclaimed_space=reclaimed_space,
            os_updated=os_updated,
            server_rebooted=server_rebooted,
        )
        self._enter(target, UpgradeStep.COMPLETED)
        return outcome

    def _enter(self, target: HostTarget, step: UpgradeStep) -> None:
        logger.debug(
            "%s: entering %s",
            target.name,
            step.value,
            extra={"host": target.name, "step": step.value},
        )

    async def _collect_app_version(self, target: HostTarget, when: str) -> Optional[str]:
        self.progress.stage(target.ssh_address, f"Fetching Discourse version ({when})")
        version = await self.versions.fetch_app_version(target)
        self.progress.stage(
            target.ssh_address, f"Discourse version ({when}): {version or 'unknown'}"
        )
        return version

    async def _collect_os_version(self, target: HostTarget, when: str) -> Optional[str]:
        self.progress.stage(target.ssh_address, f"Fetching OS version ({when})")
        version = await self.versions.fetch_os_version(target)
        self.progress.stage(
            target.ssh_address, f"OS version ({when}): {version or 'unknown'}"
        )
        return version

    async def _os_update(self, target: HostTarget) -> None:
        address = target.ssh_address
        self.progress.stage(address, "Running OS update")
        try:
            await self._run_streaming(
                target, target.commands.os_update_cmd, "OS update in progress"
            )
        except Exception as e:
            rollback = target.commands.rollback
            if rollback:
                self.progress.stage(address, "Running OS update rollback")
                try:
                    await self.remote_executor.run(address, rollback)
                except Exception as rollback_error:
                    logger.warning(
                        "OS update rollback failed for %s: %s",
                        address,
                        rollback_error,
                        extra={"host": target.name, "step": UpgradeStep.OS_UPDATE.value},
                    )
            raise OsUpdateFailedError(target.name, str(e)) from e

    async def _reboot(self, target: HostTarget) -> bool:
        address = target.ssh_address
        self.progress.stage(address, "Rebooting server")
        try:
            await self.remote_executor.run(address, target.commands.reboot_cmd)
        except Exception as e:
            self.progress.stage(address, f"Reboot skipped: {e}")
            return False
        return True

    async def _await_online(self, target: HostTarget) -> None:
        address = target.ssh_address
        attempts = self.schedule.probe_attempts
        self.progress.stage(address, "Waiting for server to come back online")
        await self.sleep(self.schedule.grace_seconds)
        for attempt in range(1, attempts + 1):
            if await self.prober.probe(address):
                self.progress.stage(address, "Server is back online")
                return
            if attempt < attempts:
                self.progress.stage(
                    address,
                    f"Still waiting for SSH (attempt {attempt + 1}/{attempts})",
                )
                await self.sleep(self.schedule.probe_interval_seconds)
        raise HostUnreachableAfterRebootError(
            target.name,
            f"server did not come back online after {attempts} probes",
        )

    async def _run_streaming(
        self, target: HostTarget, command: str, label: str
    ) -> CommandResult:
        with self.progress.stream(target.ssh_address, label) as on_line:
            return await self.remote_executor.run_streaming(
                target.ssh_address, command, on_line=on_line, tail_lines=self.tail_lines
            )
