"""
Progress Port

Architectural Intent:
- Lets use cases report stage messages and live command output without
  knowing whether a terminal, a log, or a test is listening
- stream() yields a line callback for the duration of one streaming command
"""

from typing import ContextManager, Optional, Protocol, runtime_checkable

from forumfleet.domain.ports.remote_executor_port import LineCallback


@runtime_checkable
class ProgressPort(Protocol):
    def stage(self, target: str, message: str) -> None:
        ...

    def stream(self, target: str, label: str) -> ContextManager[Optional[LineCallback]]:
        ...
