"""
Forum Port

Architectural Intent:
- Abstract interface for the two forum HTTP calls the orchestrator needs
- Keeps the Discourse API out of the upgrade logic so endpoints can be
  swapped or faked

Design Decisions:
- Uses Protocol for structural typing (no inheritance needed)
- Both methods raise on failure; best-effort handling belongs to callers
"""

from typing import Optional, Protocol, runtime_checkable

from forumfleet.domain.entities.forum_instance import ForumInstance


@runtime_checkable
class ForumPort(Protocol):
    """Port for the forum's version lookup and post creation."""

    async def fetch_version(self, instance: ForumInstance) -> Optional[str]:
        """Return the running application version, or None if not reported."""
        ...

    async def create_post(
        self, instance: ForumInstance, topic_id: int, raw: str
    ) -> int:
        """Create a post in the given topic and return its id."""
        ...
