"""
Remote Executor Port

Architectural Intent:
- Port interface for executing a shell command on one named remote host
- Implemented by adapters (Fabric/SSH in production, fakes in tests)
- No retry logic and no default timeout at this layer

Contract:
- run() and run_streaming() return a CommandResult only for a zero exit status
- A non-zero exit raises CommandFailedError; a malformed target raises
  InvalidTargetError before any connection is attempted
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class CommandResult:
    stdout: str
    stderr: str
    exit_status: int


@dataclass(frozen=True)
class OutputLine:
    text: str
    is_stderr: bool = False


# Receives each line as it arrives plus the bounded display tail.
LineCallback = Callable[[OutputLine, tuple[str, ...]], None]

DEFAULT_TAIL_LINES = 3


class RemoteExecutorPort(ABC):
    """
    Port interface for executing commands on remote hosts.
    """

    @abstractmethod
    async def run(
        self, target: str, command: str, connect_timeout: Optional[int] = None
    ) -> CommandResult:
        """
        Runs a command to completion and returns its separated output.
        """
        pass

    @abstractmethod
    async def run_streaming(
        self,
        target: str,
        command: str,
        on_line: Optional[LineCallback] = None,
        tail_lines: int = DEFAULT_TAIL_LINES,
    ) -> CommandResult:
        """
        Runs a command, reporting each output line while it runs.
        The full output is still accumulated and returned.
        """
        pass
