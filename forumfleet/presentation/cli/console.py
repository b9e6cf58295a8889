"""
Console Progress

Architectural Intent:
- ProgressPort implementation for interactive terminals using rich
- Stage messages print as plain "[host] message" lines
- Streaming commands show a spinner with the last few output lines; several
  hosts can stream at once and share one live display
"""

import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.prompt import Confirm

from forumfleet.domain.ports.remote_executor_port import LineCallback, OutputLine


class ConsoleProgress:
    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("{task.description}"),
            console=self.console,
            transient=True,
        )
        self._lock = threading.Lock()
        self._active = 0

    def stage(self, target: str, message: str) -> None:
        self.console.print(
            f"[{target}] {message}", markup=False, highlight=False, soft_wrap=True
        )

    @contextmanager
    def stream(self, target: str, label: str) -> Iterator[Optional[LineCallback]]:
        base = f"[{target}] {label}"
        with self._lock:
            if self._active == 0:
                self._progress.start()
            self._active += 1
            task_id = self._progress.add_task(escape(base), total=None)

        def on_line(line: OutputLine, tail: tuple[str, ...]) -> None:
            description = "\n".join([base] + [f"  {text}" for text in tail])
            self._progress.update(task_id, description=escape(description))

        try:
            yield on_line
        finally:
            with self._lock:
                self._progress.remove_task(task_id)
                self._active -= 1
                if self._active == 0:
                    self._progress.stop()

    def confirm(self, prompt: str) -> bool:
        return Confirm.ask(prompt, default=False, console=self.console)

    def print(self, message: str) -> None:
        self.console.print(message, markup=False, highlight=False, soft_wrap=True)
