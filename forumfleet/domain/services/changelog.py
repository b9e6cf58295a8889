"""
Changelog Service

Architectural Intent:
- Pure functions turning upgrade facts into the changelog post body
- Output is deterministic for a given outcome and marker so payloads can be
  compared byte for byte
- Also owns parsing of the cleanup command output

Domain Logic:
- Each fact renders as a checked or unchecked markdown task item
- The run marker line appears only when a marker is supplied
"""

from __future__ import annotations
from typing import Optional

from forumfleet.domain.entities.upgrade_outcome import UpgradeOutcome

RECLAIMED_SPACE_MARKER = "Total reclaimed space:"


def parse_reclaimed_space(output: str) -> Optional[str]:
    """Return the text after the reclaimed-space marker, or None if absent."""
    for line in output.splitlines():
        _, found, value = line.partition(RECLAIMED_SPACE_MARKER)
        if found:
            value = value.strip()
            return value or None
    return None


def _checkbox(done: bool, text: str) -> str:
    return f"- [{'x' if done else ' '}] {text}"


def build_changelog_payload(
    outcome: Optional[UpgradeOutcome], run_marker: Optional[str] = None
) -> str:
    lines: list[str] = []
    if outcome is not None:
        lines.append(_checkbox(outcome.os_updated, "Ubuntu OS updated"))
        if outcome.os_updated:
            if outcome.before_os_version and outcome.after_os_version:
                lines.append(
                    f"  OS version: {outcome.before_os_version} → {outcome.after_os_version}"
                )
        else:
            lines.append("  (OS update was skipped or failed)")

        lines.append(_checkbox(outcome.server_rebooted, "Server rebooted"))
        if not outcome.server_rebooted:
            lines.append("  (Server reboot was skipped or failed)")
        version = outcome.app_version
        reclaimed = outcome.reclaimed_space
    else:
        lines.append(_checkbox(True, "Ubuntu OS updated"))
        lines.append(_checkbox(True, "Server rebooted"))
        version = None
        reclaimed = None

    lines.append(_checkbox(True, f"Updated Discourse to version {version or 'unknown'}"))
    lines.append(
        _checkbox(
            True,
            f"`./launcher cleanup` Total reclaimed space: {reclaimed or 'unknown'}",
        )
    )
    if run_marker:
        lines.append(f"- Run-ID: {run_marker}")
    return "\n".join(lines)
