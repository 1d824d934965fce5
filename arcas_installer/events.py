"""Delivery of progress and log events to the caller.

The executor is the only producer. Events reach the sink in emission order;
:class:`BackgroundRun` forwards them through a queue so a UI thread can
consume them while the worker thread runs the pipeline.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import TYPE_CHECKING, Iterator, List, Optional, Protocol, Union

from .model import LogEntry, ProgressInfo

if TYPE_CHECKING:
    from .executor import CommandExecutor, InstallationResult

logger = logging.getLogger(__name__)

Event = Union[ProgressInfo, LogEntry]


class EventSink(Protocol):
    def on_progress(self, info: ProgressInfo) -> None:
        ...

    def on_log(self, entry: LogEntry) -> None:
        ...


class NullSink:
    def on_progress(self, info: ProgressInfo) -> None:
        pass

    def on_log(self, entry: LogEntry) -> None:
        pass


class CollectingSink:
    """Keeps every event, in order."""

    def __init__(self) -> None:
        self.events: List[Event] = []

    def on_progress(self, info: ProgressInfo) -> None:
        self.events.append(info)

    def on_log(self, entry: LogEntry) -> None:
        self.events.append(entry)

    @property
    def progress(self) -> List[ProgressInfo]:
        return [e for e in self.events if isinstance(e, ProgressInfo)]


_DONE = object()


class QueueSink:
    def __init__(self, channel: "queue.Queue[object]") -> None:
        self.channel = channel

    def on_progress(self, info: ProgressInfo) -> None:
        self.channel.put(info)

    def on_log(self, entry: LogEntry) -> None:
        self.channel.put(entry)


class BackgroundRun:
    """Runs an executor on a worker thread; iterate :meth:`events` to consume."""

    def __init__(self, executor: "CommandExecutor") -> None:
        self.executor = executor
        self.channel: "queue.Queue[object]" = queue.Queue()
        self.result: Optional["InstallationResult"] = None
        self._thread = threading.Thread(target=self._work, name="arcas-installer", daemon=True)

    def start(self) -> "BackgroundRun":
        self._thread.start()
        return self

    def _work(self) -> None:
        try:
            self.result = self.executor.execute(sink=QueueSink(self.channel))
        finally:
            self.channel.put(_DONE)

    def events(self, timeout: Optional[float] = None) -> Iterator[Event]:
        while True:
            item = self.channel.get(timeout=timeout)
            if item is _DONE:
                return
            yield item  # type: ignore[misc]

    def cancel(self) -> None:
        self.executor.context.state.request_cancel()

    def join(self, timeout: Optional[float] = None) -> Optional["InstallationResult"]:
        self._thread.join(timeout)
        return self.result


def run_in_background(executor: "CommandExecutor") -> BackgroundRun:
    return BackgroundRun(executor).start()
