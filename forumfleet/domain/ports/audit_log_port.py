"""
Audit Log Port

Architectural Intent:
- Append-only event record shared by every host of one fleet run
- Implementations must serialize writes so each event is one intact line
"""

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class AuditLogPort(Protocol):
    def record(self, event: str, host: str, detail: Optional[str] = None) -> None:
        ...

    def close(self) -> None:
        ...
