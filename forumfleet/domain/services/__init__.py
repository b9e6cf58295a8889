"""
Domain Services Package

Architectural Intent:
- Contains domain services implementing pure business logic
- No I/O: everything here is deterministic given its inputs
"""

from forumfleet.domain.services.changelog import (
    build_changelog_payload,
    parse_reclaimed_space,
    RECLAIMED_SPACE_MARKER,
)

__all__ = [
    "build_changelog_payload",
    "parse_reclaimed_space",
    "RECLAIMED_SPACE_MARKER",
]
