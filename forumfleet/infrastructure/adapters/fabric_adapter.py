"""
Fabric Adapter

Architectural Intent:
- Infrastructure adapter implementing RemoteExecutorPort via Fabric/SSH
- One connection per command; nothing is pooled or reused between steps
- Blocking Fabric calls run in worker threads so hosts upgrade concurrently

Security:
- Targets are validated before connecting (no empty, option-like or
  whitespace-containing targets)
- Authentication is non-interactive: agent and key files only, and local
  stdin is never forwarded, so a prompt fails instead of hanging
- Host keys are verified against the known_hosts file on every connection.
  The default accept-new policy records keys of unknown hosts in that file,
  so a key that changes later (for example across the reboot) is rejected
- Host key handling is not configurable through ssh options; paramiko
  ignores StrictHostKeyChecking and UserKnownHostsFile there
"""

import asyncio
import logging
import shlex
import threading
from collections import deque
from pathlib import Path
from typing import Optional, Sequence

from fabric import Config, Connection
from paramiko import (
    HostKeys,
    MissingHostKeyPolicy,
    RejectPolicy,
    SSHClient,
    SSHConfig,
    SSHException,
    WarningPolicy,
)
from paramiko.pkey import PKey

from forumfleet.domain.errors import CommandFailedError
from forumfleet.domain.ports.remote_executor_port import (
    DEFAULT_TAIL_LINES,
    CommandResult,
    LineCallback,
    OutputLine,
    RemoteExecutorPort,
)
from forumfleet.domain.value_objects.host_target import validate_target

logger = logging.getLogger(__name__)

DEFAULT_KNOWN_HOSTS = Path("~/.ssh/known_hosts")

# Concurrent host upgrades may learn new keys at the same time.
_KNOWN_HOSTS_LOCK = threading.Lock()


class AcceptNewPolicy(MissingHostKeyPolicy):
    """Accept a host's first key and record it in the known_hosts file.

    Mirrors ssh(1) ``StrictHostKeyChecking=accept-new``: the key is merged
    into the file on disk, so every later connection verifies against it.
    """

    def __init__(self, known_hosts: Path) -> None:
        self.known_hosts = known_hosts

    def missing_host_key(self, client: SSHClient, hostname: str, key: PKey) -> None:
        with _KNOWN_HOSTS_LOCK:
            host_keys = HostKeys()
            if self.known_hosts.is_file():
                host_keys.load(str(self.known_hosts))
            else:
                self.known_hosts.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            host_keys.add(hostname, key.get_name(), key)
            host_keys.save(str(self.known_hosts))
        client.get_host_keys().add(hostname, key.get_name(), key)
        logger.warning(
            "Permanently added %s key for %s to %s",
            key.get_name(),
            hostname,
            self.known_hosts,
        )


HOST_KEY_POLICIES = {
    "accept-new": AcceptNewPolicy,
    "yes": RejectPolicy,
    "no": WarningPolicy,
    "off": WarningPolicy,
}

# Settings that ssh_config would carry but paramiko ignores there.
_HOST_KEY_OPTIONS = {
    "stricthostkeychecking": "strict_host_key_checking",
    "userknownhostsfile": "known_hosts_file",
}

# ssh(1) flags that map onto ssh_config keywords.
_FLAG_KEYWORDS = {"-p": "Port", "-i": "IdentityFile", "-l": "User"}

# Exit status ssh(1) reports for connection-level failures.
CONNECTION_FAILED_STATUS = 255


def parse_ssh_options(raw: str) -> list[tuple[str, str]]:
    """Parse extra ssh options into (keyword, value) pairs.

    Accepts ``-o Key=Value``, ``-oKey=Value``, ``-p PORT``, ``-i FILE``,
    ``-l USER`` and bare ``Key=Value`` tokens.
    """
    tokens = shlex.split(raw)
    options: list[tuple[str, str]] = []
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if token in _FLAG_KEYWORDS or token == "-o":
            if i + 1 >= len(tokens):
                raise ValueError(f"ssh option {token} requires a value")
            value = tokens[i + 1]
            i += 2
            if token == "-o":
                options.append(_split_keyword(value))
            else:
                options.append((_FLAG_KEYWORDS[token], value))
            continue
        if token.startswith("-o"):
            options.append(_split_keyword(token[2:]))
        elif not token.startswith("-"):
            options.append(_split_keyword(token))
        else:
            raise ValueError(f"unsupported ssh option: {token}")
        i += 1
    return options


def _split_keyword(option: str) -> tuple[str, str]:
    key, sep, value = option.partition("=")
    if not sep or not key.strip():
        raise ValueError(f"ssh option must look like Key=Value: {option!r}")
    return key.strip(), value.strip()


class _OutputTail:
    """Delivers complete lines to a callback and keeps the last N for display."""

    def __init__(self, on_line: LineCallback, tail_lines: int) -> None:
        self._on_line = on_line
        self._tail: deque[str] = deque(maxlen=max(tail_lines, 0))
        self._lock = threading.Lock()

    def emit(self, text: str, is_stderr: bool) -> None:
        # stdout and stderr are read by separate threads.
        with self._lock:
            self._tail.append(text)
            self._on_line(OutputLine(text, is_stderr), tuple(self._tail))


class _LineStream:
    """File-like sink handed to Fabric as out_stream/err_stream."""

    def __init__(self, tail: _OutputTail, is_stderr: bool) -> None:
        self._tail = tail
        self._is_stderr = is_stderr
        self._buffer = ""

    def write(self, data: str) -> int:
        self._buffer += data
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            self._tail.emit(line.rstrip("\r"), self._is_stderr)
        return len(data)

    def flush(self) -> None:
        pass

    def close(self) -> None:
        if self._buffer:
            self._tail.emit(self._buffer.rstrip("\r"), self._is_stderr)
            self._buffer = ""


class FabricAdapter(RemoteExecutorPort):
    """Adapter implementing RemoteExecutorPort via Fabric/SSH."""

    def __init__(
        self,
        strict_host_key_checking: str = "accept-new",
        options: Sequence[tuple[str, str]] = (),
        user_ssh_config: Optional[Path] = None,
        known_hosts_file: Optional[Path] = None,
    ):
        policy = strict_host_key_checking.strip().lower()
        if policy and policy not in HOST_KEY_POLICIES:
            raise ValueError(
                f"Unsupported strict_host_key_checking value: {strict_host_key_checking!r}"
            )
        for key, _ in options:
            setting = _HOST_KEY_OPTIONS.get(key.lower())
            if setting:
                raise ValueError(
                    f"ssh option {key} is not supported; set ssh.{setting} instead"
                )
        self._policy_name = policy
        self._options = tuple(options)
        self._user_ssh_config = user_ssh_config or Path.home() / ".ssh" / "config"
        self.known_hosts = Path(known_hosts_file or DEFAULT_KNOWN_HOSTS).expanduser()

    def _host_key_policy(self) -> Optional[MissingHostKeyPolicy]:
        if not self._policy_name:
            return None
        policy_cls = HOST_KEY_POLICIES[self._policy_name]
        if policy_cls is AcceptNewPolicy:
            return AcceptNewPolicy(self.known_hosts)
        return policy_cls()

    def _ssh_config(self) -> Optional[SSHConfig]:
        """Layer the configured options over the user's ssh config.

        Paramiko keeps the first value it sees for a keyword, so the leading
        ``Host *`` block wins over anything in the user's file.
        """
        if not self._options:
            return None
        lines = ["Host *"] + [f"    {key} {value}" for key, value in self._options]
        text = "\n".join(lines) + "\n"
        if self._user_ssh_config.is_file():
            text += self._user_ssh_config.read_text()
        return SSHConfig.from_text(text)

    def _get_connection(
        self, target: str, connect_timeout: Optional[int] = None
    ) -> Connection:
        host = validate_target(target)
        ssh_config = self._ssh_config()
        conn = Connection(
            host=host,
            config=Config(ssh_config=ssh_config) if ssh_config is not None else None,
            connect_timeout=connect_timeout,
            connect_kwargs={
                "allow_agent": True,
                "look_for_keys": True,
            },
        )
        if self.known_hosts.is_file():
            conn.client.load_system_host_keys(str(self.known_hosts))
        policy = self._host_key_policy()
        if policy is not None:
            conn.client.set_missing_host_key_policy(policy)
        return conn

    def _execute(
        self,
        target: str,
        command: str,
        connect_timeout: Optional[int] = None,
        on_line: Optional[LineCallback] = None,
        tail_lines: int = DEFAULT_TAIL_LINES,
    ) -> CommandResult:
        conn = self._get_connection(target, connect_timeout)
        logger.debug("Running on %s: %s", target, command)
        try:
            if on_line is None:
                result = conn.run(command, hide=True, warn=True, in_stream=False)
            else:
                tail = _OutputTail(on_line, tail_lines)
                out_stream = _LineStream(tail, is_stderr=False)
                err_stream = _LineStream(tail, is_stderr=True)
                result = conn.run(
                    command,
                    hide=False,
                    warn=True,
                    in_stream=False,
                    out_stream=out_stream,
                    err_stream=err_stream,
                )
                out_stream.close()
                err_stream.close()
        except (SSHException, OSError) as e:
            raise CommandFailedError(
                target, command, str(e), CONNECTION_FAILED_STATUS
            ) from e
        finally:
            conn.close()

        if result.failed:
            raise CommandFailedError(target, command, result.stderr, result.exited)
        return CommandResult(
            stdout=result.stdout, stderr=result.stderr, exit_status=result.exited
        )

    async def run(
        self, target: str, command: str, connect_timeout: Optional[int] = None
    ) -> CommandResult:
        return await asyncio.to_thread(self._execute, target, command, connect_timeout)

    async def run_streaming(
        self,
        target: str,
        command: str,
        on_line: Optional[LineCallback] = None,
        tail_lines: int = DEFAULT_TAIL_LINES,
    ) -> CommandResult:
        return await asyncio.to_thread(
            self._execute, target, command, None, on_line, tail_lines
        )
