# src/pagepilot/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import NamedTuple, Optional, Tuple, Union


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


class Size(NamedTuple):
    width: float
    height: float

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def __str__(self) -> str:
        return f"{int(self.width)}x{int(self.height)}"


# ============================================================
# Actions
# ============================================================

@dataclass(frozen=True)
class Navigate:
    url: str

    def describe(self) -> str:
        return f"navigate({self.url})"


@dataclass(frozen=True)
class ClickAt:
    # normalized 0..1000 on both axes
    x: float
    y: float

    def describe(self) -> str:
        return f"click_at({self.x:g},{self.y:g})"


@dataclass(frozen=True)
class Scroll:
    delta_y: float

    def describe(self) -> str:
        return f"scroll({self.delta_y:g})"


@dataclass(frozen=True)
class Type:
    text: str

    def describe(self) -> str:
        return f"type({self.text[:30]})"


@dataclass(frozen=True)
class Wait:
    ms: int

    def describe(self) -> str:
        return f"wait({self.ms}ms)"


@dataclass(frozen=True)
class Complete:
    def describe(self) -> str:
        return "complete"


Action = Union[Navigate, ClickAt, Scroll, Type, Wait, Complete]


@dataclass(frozen=True)
class ModelResponse:
    raw_text: str
    actions: Tuple[Action, ...] = ()
    is_complete: bool = False
    warnings: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Snapshot:
    """One perception cycle: base64 PNG, viewport it was taken at, FNV-1a hash of the PNG bytes."""
    encoded_image: str
    viewport: Size
    content_hash: int


# ============================================================
# Log stream
# ============================================================

class LogKind(str, Enum):
    INFO = "info"
    MODEL = "model"
    ACTION = "action"
    RESULT = "result"
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class LogEntry:
    kind: LogKind
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def for_prompt(self) -> str:
        return f"[{self.kind.value}] {self.message}"


@dataclass(frozen=True)
class ExecutionOutcome:
    """
    Result of one executor pass.
      completed: a Complete action ran
      paused:    the safety gate stopped the batch; pending is the unexecuted suffix
      aborted:   no surface to act on, nothing ran
    """
    completed: bool = False
    paused: bool = False
    aborted: bool = False
    pending: Optional[Tuple[Action, ...]] = None
    matched: Tuple[str, ...] = ()
