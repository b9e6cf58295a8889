"""
Application Services Package

Architectural Intent:
- Best-effort helpers shared by the upgrade use cases
- Reachability probing and version lookup, both failure-tolerant
"""

from forumfleet.application.services.host_prober import HostProber
from forumfleet.application.services.version_oracle import VersionOracle

__all__ = ["HostProber", "VersionOracle"]
