"""
Forum Instance Entity

Architectural Intent:
- Immutable description of one configured Discourse install
- Holds what the HTTP collaborator needs (base URL, API credentials, the
  changelog topic) and how to reach the host over SSH
- Command overrides are kept as raw key/value pairs; they are resolved into
  UpgradeCommands by the configuration layer
"""

from __future__ import annotations
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional


def parse_tags(raw: str) -> tuple[str, ...]:
    """Split a ``tag1,tag2`` (or ``tag1;tag2``) filter into trimmed tags."""
    return tuple(tag.strip() for tag in re.split(r"[,;]", raw) if tag.strip())


@dataclass(frozen=True)
class ForumInstance:
    name: str
    baseurl: str = ""
    fullname: Optional[str] = None
    apikey: Optional[str] = None
    api_username: Optional[str] = None
    changelog_topic_id: Optional[int] = None
    ssh_host: Optional[str] = None
    tags: tuple[str, ...] = ()
    command_overrides: tuple[tuple[str, str], ...] = field(default=(), repr=False)

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Forum instance name cannot be empty")

    @property
    def ssh_address(self) -> str:
        return self.ssh_host or self.name

    @property
    def has_api_credentials(self) -> bool:
        return bool((self.apikey or "").strip() and (self.api_username or "").strip())

    def matches_tags(self, wanted: Iterable[str]) -> bool:
        """True if the forum carries any of the wanted tags, ignoring case.

        An empty filter matches every forum; an untagged forum matches only
        the empty filter.
        """
        wanted = {tag.lower() for tag in wanted}
        if not wanted:
            return True
        return any(tag.lower() in wanted for tag in self.tags)
