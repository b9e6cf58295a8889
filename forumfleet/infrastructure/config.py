"""
Configuration Module

Architectural Intent:
- Centralized configuration loading from TOML (or JSON) files
- Provides typed access to all forumfleet settings
- Falls back to sensible defaults when config file is absent
- Environment variables override file-based config

Design Decisions:
- Uses stdlib tomllib for TOML; files ending in .json are parsed as JSON
- Config is a frozen dataclass for immutability after load
- Nested config sections map to sub-dataclasses
- Remote commands are resolved here into UpgradeCommands so the use cases
  never read the environment themselves
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional
import dataclasses
import json
import logging
import os
import tomllib

from forumfleet.domain.entities.forum_instance import ForumInstance
from forumfleet.domain.errors import ConfigError
from forumfleet.domain.value_objects.host_target import (
    DEFAULT_CLEANUP_CMD,
    DEFAULT_OS_UPDATE_CMD,
    DEFAULT_OS_VERSION_CMD,
    DEFAULT_OS_VERSION_FALLBACK_CMD,
    DEFAULT_REBOOT_CMD,
    DEFAULT_UPDATE_CMD,
    HostTarget,
    UpgradeCommands,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "forumfleet.toml"
ENV_PREFIX = "FORUMFLEET"


@dataclass(frozen=True)
class SshConfig:
    """Remote command channel and upgrade command configuration."""
    strict_host_key_checking: str = "accept-new"
    options: str = ""
    known_hosts_file: str = ""
    os_update_cmd: str = DEFAULT_OS_UPDATE_CMD
    os_update_rollback_cmd: str = ""
    reboot_cmd: str = DEFAULT_REBOOT_CMD
    update_cmd: str = DEFAULT_UPDATE_CMD
    cleanup_cmd: str = DEFAULT_CLEANUP_CMD
    os_version_cmd: str = DEFAULT_OS_VERSION_CMD
    os_version_fallback_cmd: str = DEFAULT_OS_VERSION_FALLBACK_CMD
    probe_timeout_seconds: int = 10
    reboot_grace_seconds: int = 30
    probe_interval_seconds: int = 30
    probe_attempts: int = 12
    tail_lines: int = 3

    def commands(self) -> UpgradeCommands:
        return UpgradeCommands(
            os_update_cmd=self.os_update_cmd,
            os_update_rollback_cmd=self.os_update_rollback_cmd,
            reboot_cmd=self.reboot_cmd,
            update_cmd=self.update_cmd,
            cleanup_cmd=self.cleanup_cmd,
            os_version_cmd=self.os_version_cmd,
            os_version_fallback_cmd=self.os_version_fallback_cmd,
        )


@dataclass(frozen=True)
class AuditConfig:
    """Audit log configuration."""
    directory: str = "."


@dataclass(frozen=True)
class HarnessConfig:
    """External test harness correlation."""
    marker: str = ""


@dataclass(frozen=True)
class ForumFleetConfig:
    """Root configuration for the forumfleet application."""
    ssh: SshConfig = field(default_factory=SshConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    test: HarnessConfig = field(default_factory=HarnessConfig)
    forums: tuple[ForumInstance, ...] = ()
    log_level: str = "WARNING"

    def find_forum(self, name: str) -> Optional[ForumInstance]:
        for forum in self.forums:
            if forum.name == name:
                return forum
        return None

    def target_for(self, forum: ForumInstance) -> HostTarget:
        commands = self.ssh.commands().with_overrides(dict(forum.command_overrides))
        return HostTarget(instance=forum, commands=commands)

    def targets(self) -> tuple[HostTarget, ...]:
        return tuple(self.target_for(forum) for forum in self.forums)


_TOP_LEVEL_KEYS = ("log_level",)
_LIST_SECTIONS = ("forum",)


def _env_override(data: dict, prefix: str = ENV_PREFIX) -> dict:
    """Override config values with environment variables.

    Environment variables follow the pattern FORUMFLEET_SECTION_KEY.
    For example: FORUMFLEET_SSH_REBOOT_CMD="sudo -n systemctl reboot",
    FORUMFLEET_TEST_MARKER=run-42, FORUMFLEET_LOG_LEVEL=DEBUG
    """
    for key, value in os.environ.items():
        if not key.startswith(f"{prefix}_"):
            continue
        rest = key[len(prefix) + 1:].lower()
        if rest in _TOP_LEVEL_KEYS:
            data[rest] = value
            continue
        parts = rest.split("_", 1)
        if len(parts) != 2 or parts[0] in _LIST_SECTIONS:
            continue
        section, field_name = parts
        if not isinstance(data.get(section), dict):
            data[section] = {}
        data[section][field_name] = value
    return data


def _parse_config_file(path: Path) -> dict:
    """Parse a TOML or JSON config file. Returns empty dict if absent."""
    try:
        raw = path.read_text()
    except FileNotFoundError:
        logger.debug("Config file not found: %s", path)
        return {}
    except OSError as e:
        raise ConfigError(f"reading {path}: {e}") from e
    try:
        if path.suffix == ".json":
            data = json.loads(raw)
        else:
            data = tomllib.loads(raw)
    except (json.JSONDecodeError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"parsing {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"parsing {path}: top level must be a table")
    return data


def _convert(value: Any, type_name: str, name: str) -> Any:
    """Convert string values (env vars) to the declared field type."""
    if type_name in ("int", "Optional[int]"):
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return None if type_name == "Optional[int]" else 0
            try:
                return int(value)
            except ValueError as e:
                raise ConfigError(f"{name} must be an integer, got {value!r}") from e
        return value
    if type_name == "bool" and isinstance(value, str):
        return value.lower() in ("true", "1", "yes")
    if type_name == "tuple[str, ...]":
        if isinstance(value, str):
            return tuple(v.strip() for v in value.replace(";", ",").split(",") if v.strip())
        if isinstance(value, list):
            return tuple(str(v) for v in value)
    if type_name == "Optional[str]" and isinstance(value, str):
        return value or None
    return value


def _build_sub_config(cls, data: dict):
    """Build a sub-config dataclass from a dict, ignoring unknown keys."""
    if not isinstance(data, dict):
        raise ConfigError(f"section for {cls.__name__} must be a table")
    valid = {f.name: f for f in dataclasses.fields(cls) if f.init}
    filtered = {
        k: _convert(v, valid[k].type, k) for k, v in data.items() if k in valid
    }
    return cls(**filtered)


def _build_forum(data: dict) -> ForumInstance:
    if not isinstance(data, dict):
        raise ConfigError("each [[forum]] entry must be a table")
    overrides = data.get("ssh") or {}
    if not isinstance(overrides, dict):
        raise ConfigError(f"forum {data.get('name')!r}: ssh overrides must be a table")
    known_commands = {f.name for f in dataclasses.fields(UpgradeCommands)}
    unknown = sorted(set(overrides) - known_commands)
    if unknown:
        logger.warning(
            "Ignoring unknown command overrides for %s: %s",
            data.get("name"),
            ", ".join(unknown),
        )
    try:
        forum = _build_sub_config(
            ForumInstance,
            {k: v for k, v in data.items() if k not in ("ssh", "command_overrides")},
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid forum entry {data.get('name')!r}: {e}") from e
    if forum.changelog_topic_id == 0:
        forum = dataclasses.replace(forum, changelog_topic_id=None)
    return dataclasses.replace(
        forum,
        command_overrides=tuple(
            (k, str(v)) for k, v in overrides.items() if k in known_commands
        ),
    )


def load_config(
    path: Optional[str] = None,
    env_prefix: str = ENV_PREFIX,
) -> ForumFleetConfig:
    """Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (FORUMFLEET_SECTION_KEY)
    2. Config file values
    3. Defaults

    Args:
        path: Path to config file (TOML or JSON). Defaults to forumfleet.toml in CWD.
        env_prefix: Environment variable prefix. Defaults to FORUMFLEET.
    """
    config_path = Path(path) if path else Path(DEFAULT_CONFIG_FILE)
    data = _parse_config_file(config_path)
    data = _env_override(data, env_prefix)

    forums = data.get("forum", [])
    if not isinstance(forums, list):
        raise ConfigError("forum must be an array of tables ([[forum]])")

    try:
        return ForumFleetConfig(
            ssh=_build_sub_config(SshConfig, data.get("ssh", {})),
            audit=_build_sub_config(AuditConfig, data.get("audit", {})),
            test=_build_sub_config(HarnessConfig, data.get("test", {})),
            forums=tuple(_build_forum(f) for f in forums),
            log_level=str(data.get("log_level", "WARNING")),
        )
    except TypeError as e:
        raise ConfigError(f"invalid configuration: {e}") from e
