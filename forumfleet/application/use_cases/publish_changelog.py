"""
Publish Changelog Use Case

Architectural Intent:
- Turns an upgrade outcome into a changelog post on the instance's forum
- Skips quietly when the instance has no changelog topic or no API credentials
- Asks for confirmation unless running non-interactively (assume_yes or a
  run marker is set)
- Records every decision in the audit log

Run marker:
- An optional external identifier appended to the payload and echoed as
  TEST_POST_ID=<id> so test harnesses can find the exact post
"""

from __future__ import annotations
import asyncio
import logging
from typing import Callable, Optional

from forumfleet.domain.entities.upgrade_outcome import UpgradeOutcome
from forumfleet.domain.errors import ReportPublishError
from forumfleet.domain.ports.audit_log_port import AuditLogPort
from forumfleet.domain.ports.forum_port import ForumPort
from forumfleet.domain.services.changelog import build_changelog_payload
from forumfleet.domain.value_objects.host_target import HostTarget

logger = logging.getLogger(__name__)

CONFIRM_PROMPT = "Post this to changelog?"


def _decline(prompt: str) -> bool:
    return False


class PublishChangelog:
    def __init__(
        self,
        forum: ForumPort,
        confirm: Callable[[str], bool] = _decline,
        assume_yes: bool = False,
        run_marker: Optional[str] = None,
        output: Callable[[str], None] = print,
    ):
        self.forum = forum
        self.confirm = confirm
        self.assume_yes = assume_yes
        self.run_marker = run_marker or None
        self.output = output
        self._confirm_lock = asyncio.Lock()

    async def execute(
        self,
        target: HostTarget,
        outcome: Optional[UpgradeOutcome],
        audit_log: AuditLogPort,
    ) -> Optional[int]:
        """Publish the changelog for one host.

        Returns:
            The created post id, or None when the post was skipped.

        Raises:
            ReportPublishError: the forum rejected the post.
        """
        instance = target.instance
        payload = build_changelog_payload(outcome, self.run_marker)
        self.output(f"\nChangelog message for {instance.name}:\n{payload}\n")

        topic_id = instance.changelog_topic_id
        if topic_id is None:
            return self._skip(
                target, audit_log, f"missing changelog_topic_id for {instance.name}"
            )
        if not instance.has_api_credentials:
            return self._skip(
                target,
                audit_log,
                f"missing api credentials for {instance.name}; "
                "set apikey and api_username",
            )
        if not await self._confirmed():
            return self._skip(target, audit_log, "declined")

        try:
            post_id = await self.forum.create_post(instance, topic_id, payload)
        except Exception as e:
            audit_log.record("post-failed", target.name, str(e))
            self.output(f"Changelog post failed: {e}")
            raise ReportPublishError(target.name, str(e)) from e

        audit_log.record("post-created", target.name, f"post_id={post_id}")
        self.output(f"Changelog post created with ID: {post_id}")
        if self.run_marker:
            self.output(f"TEST_POST_ID={post_id}")
        return post_id

    async def _confirmed(self) -> bool:
        if self.assume_yes or self.run_marker:
            self.output(f"{CONFIRM_PROMPT} [y/N]: y (auto)")
            return True
        # Prompts from concurrent hosts must not interleave on the terminal.
        async with self._confirm_lock:
            return await asyncio.to_thread(self.confirm, CONFIRM_PROMPT)

    def _skip(self, target: HostTarget, audit_log: AuditLogPort, reason: str) -> None:
        audit_log.record("post-skipped", target.name, reason)
        self.output(f"Changelog post skipped: {reason}")
        return None
