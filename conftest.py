"""Global test configuration.

Shared fakes for the ports so use cases can be exercised without SSH,
HTTP, or real sleeping.
"""

import logging
from contextlib import contextmanager
from typing import Optional

import pytest

from forumfleet.application.services.host_prober import PROBE_COMMAND
from forumfleet.domain.entities.forum_instance import ForumInstance
from forumfleet.domain.errors import CommandFailedError, ForumApiError
from forumfleet.domain.ports.remote_executor_port import (
    CommandResult,
    OutputLine,
    RemoteExecutorPort,
)
from forumfleet.domain.value_objects.host_target import HostTarget, UpgradeCommands


class FakeRemoteExecutor(RemoteExecutorPort):
    """Scripted remote executor recording every command it is asked to run."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.outputs: dict[str, str] = {}
        self.failing: dict[str, str] = {}
        self.probe_results: list[bool] = []
        self.probe_default = True
        self.connect_timeouts: list[Optional[int]] = []

    def fail(self, command: str, stderr: str = "boom") -> None:
        self.failing[command] = stderr

    def commands_run(self, target: Optional[str] = None) -> list[str]:
        return [c for t, c in self.calls if target is None or t == target]

    def count(self, command: str) -> int:
        return sum(1 for _, c in self.calls if c == command)

    def _respond(self, target: str, command: str) -> CommandResult:
        self.calls.append((target, command))
        if command == PROBE_COMMAND:
            up = self.probe_results.pop(0) if self.probe_results else self.probe_default
            if not up:
                raise CommandFailedError(target, command, "Connection refused", 255)
            return CommandResult("server is up\n", "", 0)
        if command in self.failing:
            raise CommandFailedError(target, command, self.failing[command], 1)
        return CommandResult(self.outputs.get(command, ""), "", 0)

    async def run(self, target, command, connect_timeout=None):
        self.connect_timeouts.append(connect_timeout)
        return self._respond(target, command)

    async def run_streaming(self, target, command, on_line=None, tail_lines=3):
        result = self._respond(target, command)
        tail: list[str] = []
        for text in result.stdout.splitlines():
            tail = (tail + [text])[-tail_lines:] if tail_lines > 0 else []
            if on_line is not None:
                on_line(OutputLine(text), tuple(tail))
        return result


class FakeForum:
    """In-memory ForumPort."""

    def __init__(self, versions=None, fail_versions=False, fail_posts=False) -> None:
        self.versions = list(versions or [])
        self.fail_versions = fail_versions
        self.fail_posts = fail_posts
        self.posts: list[tuple[str, int, str]] = []
        self.next_post_id = 1000

    async def fetch_version(self, instance):
        if self.fail_versions:
            raise ForumApiError("about.json request failed with 503")
        return self.versions.pop(0) if self.versions else None

    async def create_post(self, instance, topic_id, raw):
        if self.fail_posts:
            raise ForumApiError("create post failed with 422: topic closed")
        self.next_post_id += 1
        self.posts.append((instance.name, topic_id, raw))
        return self.next_post_id


class RecordingAuditLog:
    def __init__(self) -> None:
        self.entries: list[tuple[str, str, Optional[str]]] = []
        self.closed = False

    def record(self, event, host, detail=None):
        self.entries.append((event, host, detail))

    def close(self):
        self.closed = True

    def events(self, event: str) -> list[str]:
        return [host for e, host, _ in self.entries if e == event]


class RecordingProgress:
    def __init__(self) -> None:
        self.stages: list[tuple[str, str]] = []
        self.lines: list[tuple[str, str, OutputLine, tuple[str, ...]]] = []

    def stage(self, target, message):
        self.stages.append((target, message))

    @contextmanager
    def stream(self, target, label):
        def on_line(line, tail):
            self.lines.append((target, label, line, tail))

        yield on_line


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_target(
    name: str = "forum.example.com",
    ssh_host: Optional[str] = None,
    changelog_topic_id: Optional[int] = None,
    credentials: bool = False,
    **commands,
) -> HostTarget:
    instance = ForumInstance(
        name=name,
        baseurl=f"https://{name}",
        ssh_host=ssh_host,
        changelog_topic_id=changelog_topic_id,
        apikey="secret" if credentials else None,
        api_username="system" if credentials else None,
    )
    return HostTarget(instance=instance, commands=UpgradeCommands(**commands))


@pytest.fixture(autouse=True)
def isolated_logger():
    """Undo configure_logging() calls made by CLI tests."""
    logger = logging.getLogger("forumfleet")
    level, handlers = logger.level, list(logger.handlers)
    yield
    logger.setLevel(level)
    logger.handlers[:] = handlers


@pytest.fixture
def remote():
    return FakeRemoteExecutor()


@pytest.fixture
def forum():
    return FakeForum()


@pytest.fixture
def audit_log():
    return RecordingAuditLog()


@pytest.fixture
def progress():
    return RecordingProgress()


@pytest.fixture
def sleep():
    return RecordingSleep()
