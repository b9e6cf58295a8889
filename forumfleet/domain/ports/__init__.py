"""
Domain Ports Package

Architectural Intent:
- Contains port interfaces (abstract contracts) for external dependencies
- Ports define what the domain needs, adapters implement how
- Follows Hexagonal Architecture principles
"""

from forumfleet.domain.ports.remote_executor_port import (
    RemoteExecutorPort,
    CommandResult,
    OutputLine,
    LineCallback,
)
from forumfleet.domain.ports.forum_port import ForumPort
from forumfleet.domain.ports.audit_log_port import AuditLogPort
from forumfleet.domain.ports.progress_port import ProgressPort

__all__ = [
    "RemoteExecutorPort",
    "CommandResult",
    "OutputLine",
    "LineCallback",
    "ForumPort",
    "AuditLogPort",
    "ProgressPort",
]
