"""
Upgrade Fleet Use Case

Architectural Intent:
- Applies the per-host upgrade sequence across the configured hosts
- Owns the audit log for the duration of one fleet run
- Optionally publishes a changelog after each successful host upgrade

Execution policies:
- SEQUENTIAL: configuration order, fail-fast on the first aborted host
- PARALLEL: at most max_concurrency hosts in flight, gated by a semaphore;
  one host's failure never cancels its siblings and every error is reported

Publishing failures do not invalidate an upgrade: they never stop the fleet
and are reported together at the end of the run.
"""

from __future__ import annotations
import asyncio
import logging
from enum import Enum
from typing import Callable, Optional, Sequence

from forumfleet.application.use_cases.publish_changelog import PublishChangelog
from forumfleet.application.use_cases.upgrade_host import UpgradeHost
from forumfleet.domain.entities.upgrade_outcome import UpgradeOutcome
from forumfleet.domain.errors import FleetUpgradeError, ReportPublishError
from forumfleet.domain.ports.audit_log_port import AuditLogPort
from forumfleet.domain.value_objects.host_target import HostTarget

logger = logging.getLogger(__name__)


class ExecutionPolicy(Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class UpgradeFleet:
    def __init__(
        self,
        upgrade_host: UpgradeHost,
        open_audit_log: Callable[[], AuditLogPort],
        publisher: Optional[PublishChangelog] = None,
    ):
        self.upgrade_host = upgrade_host
        self.open_audit_log = open_audit_log
        self.publisher = publisher

    async def execute(
        self,
        targets: Sequence[HostTarget],
        policy: ExecutionPolicy = ExecutionPolicy.SEQUENTIAL,
        max_concurrency: Optional[int] = None,
        post_changelog: bool = False,
    ) -> dict[str, UpgradeOutcome]:
        """Upgrade every target and return the outcomes keyed by host name.

        Raises:
            UpgradeError: sequential mode, the first host that aborted.
            FleetUpgradeError: any host failed in parallel mode, or any
                changelog post failed.
        """
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError(f"max_concurrency must be at least 1, got {max_concurrency}")
        if post_changelog and self.publisher is None:
            raise ValueError("post_changelog requires a changelog publisher")

        audit_log = self.open_audit_log()
        try:
            if policy is ExecutionPolicy.PARALLEL:
                return await self._run_parallel(
                    targets, audit_log, max_concurrency, post_changelog
                )
            return await self._run_sequential(targets, audit_log, post_changelog)
        finally:
            audit_log.close()

    async def _run_sequential(
        self,
        targets: Sequence[HostTarget],
        audit_log: AuditLogPort,
        post_changelog: bool,
    ) -> dict[str, UpgradeOutcome]:
        outcomes: dict[str, UpgradeOutcome] = {}
        publish_errors: dict[str, Exception] = {}
        for target in targets:
            outcomes[target.name] = await self._upgrade(target, audit_log)
            if post_changelog:
                error = await self._publish(target, outcomes[target.name], audit_log)
                if error is not None:
                    publish_errors[target.name] = error
        if publish_errors:
            raise FleetUpgradeError(publish_errors)
        return outcomes

    async def _run_parallel(
        self,
        targets: Sequence[HostTarget],
        audit_log: AuditLogPort,
        max_concurrency: Optional[int],
        post_changelog: bool,
    ) -> dict[str, UpgradeOutcome]:
        semaphore = asyncio.Semaphore(max_concurrency or max(len(targets), 1))

        async def run_one(target: HostTarget) -> UpgradeOutcome:
            async with semaphore:
                outcome = await self._upgrade(target, audit_log)
                if post_changelog:
                    error = await self._publish(target, outcome, audit_log)
                    if error is not None:
                        raise error
                return outcome

        results = await asyncio.gather(
            *(run_one(target) for target in targets),
            return_exceptions=True,
        )

        outcomes: dict[str, UpgradeOutcome] = {}
        errors: dict[str, Exception] = {}
        for target, result in zip(targets, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                errors[target.name] = result
            else:
                outcomes[target.name] = result
        if errors:
            raise FleetUpgradeError(errors)
        return outcomes

    async def _upgrade(
        self, target: HostTarget, audit_log: AuditLogPort
    ) -> UpgradeOutcome:
        audit_log.record("starting", target.name)
        try:
            outcome = await self.upgrade_host.execute(target)
        except Exception as e:
            step = getattr(e, "step", "upgrade")
            logger.error(
                "Upgrade of %s failed at %s: %s",
                target.name,
                step,
                e,
                extra={"host": target.name, "step": step},
            )
            audit_log.record("failed", target.name, f"{step}: {e}")
            raise
        audit_log.record("succeeded", target.name, outcome.summary())
        return outcome

    async def _publish(
        self, target: HostTarget, outcome: UpgradeOutcome, audit_log: AuditLogPort
    ) -> Optional[ReportPublishError]:
        assert self.publisher is not None
        try:
            await self.publisher.execute(target, outcome, audit_log)
        except ReportPublishError as e:
            logger.error("%s", e)
            return e
        return None
