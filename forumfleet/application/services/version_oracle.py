"""
Version Oracle

Architectural Intent:
- Best-effort lookup of the forum application version and the host OS version
- Both lookups return Optional[str] and never raise; an unknown version only
  degrades the report, it never stops an upgrade

OS version lookup:
- Runs the primary command, then the fallback command, then gives up
- Output is trimmed; a command with empty output is treated like a failed one
"""

import logging
from typing import Optional

from forumfleet.domain.ports.forum_port import ForumPort
from forumfleet.domain.ports.remote_executor_port import RemoteExecutorPort
from forumfleet.domain.value_objects.host_target import HostTarget

logger = logging.getLogger(__name__)


class VersionOracle:
    def __init__(self, forum: ForumPort, remote_executor: RemoteExecutorPort):
        self.forum = forum
        self.remote_executor = remote_executor

    async def fetch_app_version(self, target: HostTarget) -> Optional[str]:
        try:
            version = await self.forum.fetch_version(target.instance)
        except Exception as e:
            logger.info("Version fetch for %s failed: %s", target.name, e)
            return None
        return (version or "").strip() or None

    async def fetch_os_version(self, target: HostTarget) -> Optional[str]:
        commands = (
            target.commands.os_version_cmd,
            target.commands.os_version_fallback_cmd,
        )
        for command in commands:
            if not command.strip():
                continue
            try:
                result = await self.remote_executor.run(target.ssh_address, command)
            except Exception as e:
                logger.info(
                    "OS version command failed on %s: %s", target.ssh_address, e
                )
                continue
            version = result.stdout.strip()
            if version:
                return version
        return None
