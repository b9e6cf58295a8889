"""
Host Prober

Architectural Intent:
- Lightweight reachability check built on the remote executor
- Uses a short connect timeout and a no-op command
- Returns False on any failure: an unreachable host is an expected answer,
  not an exception
"""

import logging

from forumfleet.domain.ports.remote_executor_port import RemoteExecutorPort

logger = logging.getLogger(__name__)

PROBE_COMMAND = "echo 'server is up'"
DEFAULT_PROBE_TIMEOUT = 10


class HostProber:
    def __init__(
        self,
        remote_executor: RemoteExecutorPort,
        connect_timeout: int = DEFAULT_PROBE_TIMEOUT,
    ):
        self.remote_executor = remote_executor
        self.connect_timeout = connect_timeout

    async def probe(self, target: str) -> bool:
        try:
            await self.remote_executor.run(
                target, PROBE_COMMAND, connect_timeout=self.connect_timeout
            )
        except Exception as e:
            logger.debug("Probe of %s failed: %s", target, e)
            return False
        return True
