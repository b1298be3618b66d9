# src/pagepilot/runlog.py
from typing import Callable, List, Tuple

from .models import LogEntry, LogKind

Subscriber = Callable[[LogEntry], None]


class RunLog:
    """Append-only stream of LogEntry. Trimming for display is the reader's business."""

    def __init__(self):
        self._entries: List[LogEntry] = []
        self._subscribers: List[Subscriber] = []

    def subscribe(self, fn: Subscriber) -> Callable[[], None]:
        self._subscribers.append(fn)

        def unsubscribe():
            if fn in self._subscribers:
                self._subscribers.remove(fn)

        return unsubscribe

    def append(self, kind: LogKind, message: str) -> LogEntry:
        entry = LogEntry(kind=kind, message=message)
        self._entries.append(entry)
        for fn in list(self._subscribers):
            fn(entry)
        return entry

    def info(self, message: str) -> LogEntry:
        return self.append(LogKind.INFO, message)

    def warning(self, message: str) -> LogEntry:
        return self.append(LogKind.WARNING, message)

    def error(self, message: str) -> LogEntry:
        return self.append(LogKind.ERROR, message)

    @property
    def entries(self) -> Tuple[LogEntry, ...]:
        return tuple(self._entries)

    def recent_context(self, n: int = 6) -> str:
        return "\n".join(e.for_prompt() for e in self._entries[-n:])

    def __len__(self) -> int:
        return len(self._entries)
