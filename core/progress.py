"""
Progress events for conversion runs.

Loaders, processors and the batch runner report ``(percent, message)``
through plain callbacks; ``ProgressBus`` turns those into ``ProgressEvent``
values labelled with the stage, the channel and the file they belong to, and
fans them out to observers such as the CLI's terminal renderer.  Files in a
batch are converted concurrently, so stage events carry their source file.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol
import os
import sys
import time


CHANNELS = ("stage", "dag", "batch")


@dataclass(frozen=True)
class ProgressEvent:
    """Immutable progress payload."""

    percent: int
    message: str
    stage: Optional[str] = None
    channel: str = "stage"  # one of CHANNELS
    source: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


class ProgressObserver(Protocol):
    def on_progress(self, event: ProgressEvent) -> None:
        ...


class ProgressBus:
    """
    Fan-out of progress events to subscribed observers.

    Observers are either callables taking a ``ProgressEvent`` or objects with
    an ``on_progress`` method.
    """

    def __init__(self) -> None:
        self._observers: list[Callable[[ProgressEvent], None] | ProgressObserver] = []

    def subscribe(self, observer: Callable[[ProgressEvent], None] | ProgressObserver) -> "ProgressBus":
        self._observers.append(observer)
        return self

    def unsubscribe(self, observer: Callable[[ProgressEvent], None] | ProgressObserver) -> "ProgressBus":
        if observer in self._observers:
            self._observers.remove(observer)
        return self

    def emit(self, event: ProgressEvent) -> None:
        for observer in tuple(self._observers):
            handler = getattr(observer, "on_progress", observer)
            handler(event)

    def callback(self,
                 stage: Optional[str] = None,
                 channel: str = "stage",
                 source: Optional[str] = None) -> Callable[[int, str], None]:
        """``(percent, message)`` callback emitting on this bus; percent is clamped to [0, 100]."""
        if channel not in CHANNELS:
            raise ValueError(f"Unknown progress channel {channel!r}")
        label = os.path.basename(source) if source else None

        def report(percent: int, message: str) -> None:
            clamped = max(0, min(100, int(percent)))
            self.emit(ProgressEvent(clamped, message, stage=stage, channel=channel, source=label))

        return report

    def stage_callback(self, stage: str, source: Optional[str] = None) -> Callable[[int, str], None]:
        return self.callback(stage, "stage", source)

    def dag_callback(self, source: Optional[str] = None) -> Callable[[int, str], None]:
        return self.callback(None, "dag", source)

    def batch_callback(self) -> Callable[[int, str], None]:
        return self.callback(None, "batch")


class TerminalProgressObserver:
    """
    Plain-text renderer used by the CLI.

    DAG and batch events are printed one per line; stage events redraw a bar
    in place and are only shown when ``show_stages`` is set.
    """

    def __init__(self, bar_width: int = 30, stream=None, show_stages: bool = True) -> None:
        self.bar_width = bar_width
        self.stream = stream or sys.stdout
        self.show_stages = show_stages

    def on_progress(self, event: ProgressEvent) -> None:
        prefix = f"{event.source}: " if event.source else ""
        if event.channel != "stage":
            label = "DAG" if event.channel == "dag" else "Batch"
            self.stream.write(f"  [{label} {event.percent:3d}%] {prefix}{event.message}\n")
            self.stream.flush()
            return
        if not self.show_stages:
            return

        filled = int(self.bar_width * event.percent / 100)
        bar = "#" * filled + "." * (self.bar_width - filled)
        stage = event.stage or "task"
        self.stream.write(f"\r  {prefix}[{stage}] [{bar}] {event.percent:3d}%  {event.message:<48}")
        if event.percent >= 100:
            self.stream.write("\n")
        self.stream.flush()


__all__ = [
    "CHANNELS",
    "ProgressEvent",
    "ProgressObserver",
    "ProgressBus",
    "TerminalProgressObserver",
]
