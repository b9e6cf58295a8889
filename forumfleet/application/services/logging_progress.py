"""
Logging Progress

Default ProgressPort used when no console is attached: stage messages go to
the module logger and streamed lines are logged at DEBUG.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from forumfleet.domain.ports.remote_executor_port import LineCallback, OutputLine

logger = logging.getLogger(__name__)


class LoggingProgress:
    def stage(self, target: str, message: str) -> None:
        logger.info("[%s] %s", target, message)

    @contextmanager
    def stream(self, target: str, label: str) -> Iterator[Optional[LineCallback]]:
        def on_line(line: OutputLine, tail: tuple[str, ...]) -> None:
            logger.debug("[%s] %s: %s", target, label, line.text)

        yield on_line
