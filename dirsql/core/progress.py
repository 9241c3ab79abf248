"""Terminal progress indicator for multi-file loads."""
from __future__ import annotations
import sys
import threading
import time
from contextlib import contextmanager
from typing import Optional, TextIO


class LoadProgress:
    """Spinner with a ``done/total`` counter, drawn on stderr when it is a TTY."""

    def __init__(self, total: int, message: str = "Loading", enabled: bool = True,
                 interval: float = 0.1, stream: Optional[TextIO] = None):
        self.total = total
        self.message = message
        self.stream = stream or sys.stderr
        self.enabled = enabled and total > 1 and self.stream.isatty()
        self.interval = interval
        self.done = 0
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._frames = ['|', '/', '-', '\\']
        self._last_len = 0

    def text(self, frame: str = '') -> str:
        return f"{self.message} {self.done}/{self.total} {frame}".rstrip()

    def update(self, done: int) -> None:
        self.done = done

    def _run(self):
        i = 0
        while not self._stop.is_set():
            line = self.text(self._frames[i % len(self._frames)])
            self.stream.write("\r" + line.ljust(self._last_len))
            self.stream.flush()
            self._last_len = len(line)
            time.sleep(self.interval)
            i += 1
        self.stream.write("\r" + ' ' * self._last_len + "\r")
        self.stream.flush()

    def __enter__(self):
        if self.enabled:
            self._thread = threading.Thread(target=self._run, daemon=True)
            self._thread.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        if self.enabled:
            self._stop.set()
            if self._thread:
                self._thread.join()


@contextmanager
def load_progress(total: int, message: str = "Loading", enabled: bool = True):
    progress = LoadProgress(total, message, enabled=enabled)
    with progress:
        yield progress
