"""Streaming parse of ffmpeg ``-stats`` output and the live progress line."""

from __future__ import annotations

import re
from typing import NamedTuple

from rich.console import Console
from rich.progress import BarColumn, Progress, TaskID, TextColumn, TimeElapsedColumn

# One ffmpeg stats line: "frame= 42 ... time=00:01:02.50 bitrate=... speed=1.23x".
# A whole-number speed only matches once the character after it has arrived.
_STATS_RE = re.compile(
    rb"time=(\d+):(\d+):(\d+)(?:\.\d+)?[^\r\n]*?speed=\s*(\d+\.\d+|\d+(?=[^\d.]))"
)


class ProgressSample(NamedTuple):
    """Encoded position and encoder speed taken from one stats line."""

    hour: int
    minute: int
    second: int
    speed: float | None = None

    @property
    def position(self) -> tuple[int, int, int]:
        return (self.hour, self.minute, self.second)

    @property
    def seconds(self) -> int:
        return self.hour * 3600 + self.minute * 60 + self.second

    def __str__(self) -> str:
        text = f"{self.hour:02d}:{self.minute:02d}:{self.second:02d}"
        if self.speed is not None:
            text += f" Speed: {self.speed:.2f}x"
        return text


class ProgressParser:
    """Accumulates encoder diagnostics and reports forward progress.

    The buffer is cleared after every match, whether or not the timestamp
    moved forward, so chatty output cannot grow it without bound.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self.last_position: tuple[int, int, int] = (0, 0, 0)

    def feed(self, chunk: bytes) -> ProgressSample | None:
        """Add ``chunk`` and return a sample if the position advanced."""
        self._buffer.extend(chunk)
        match = None
        # The newest complete line in the buffer wins
        for match in _STATS_RE.finditer(self._buffer):
            pass
        if match is None:
            return None
        hour, minute, second, speed = match.groups()
        self._buffer.clear()

        sample = ProgressSample(int(hour), int(minute), int(second), float(speed))
        if sample.position <= self.last_position:
            return None
        self.last_position = sample.position
        return sample

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet matched."""
        return len(self._buffer)


class LiveProgress:
    """A single progress line that is overwritten in place."""

    def __init__(self, console: Console | None = None) -> None:
        self._progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TextColumn("{task.fields[position]}"),
            TimeElapsedColumn(),
            console=console,
        )
        self._task: TaskID | None = None

    def start(self, name: str, duration_secs: float | None = None) -> None:
        self._progress.start()
        self._task = self._progress.add_task(
            name, total=duration_secs, position="00:00:00"
        )

    def update(self, sample: ProgressSample) -> None:
        if self._task is None:
            return
        self._progress.update(
            self._task, completed=sample.seconds, position=str(sample)
        )

    def finish(self) -> None:
        """Stop refreshing and leave the final line on screen."""
        if self._task is None:
            return
        self._progress.stop()
        self._task = None
