# src/pagepilot/executor.py
from __future__ import annotations

import asyncio
import json
import logging
from typing import Awaitable, Callable, Sequence, Tuple

from .models import Action, ClickAt, Complete, ExecutionOutcome, LogKind, Navigate, Scroll, Size, Type, Wait
from .runlog import RunLog
from .security import SafetyGate, warning_for
from .surface import PageSurface, SurfaceSlot

logger = logging.getLogger(__name__)

NORMALIZED_MAX = 1000.0


def clamp(v: float, lo: float = 0.0, hi: float = NORMALIZED_MAX) -> float:
    return max(lo, min(hi, v))


def normalized_point(x: float, y: float, viewport: Size) -> Tuple[float, float]:
    """Map 0..1000 model coordinates onto viewport pixels."""
    px = clamp(x) / NORMALIZED_MAX * viewport.width
    py = clamp(y) / NORMALIZED_MAX * viewport.height
    return px, py


def js_string(text: str) -> str:
    # JSON string literals are valid JS string literals
    return json.dumps(text)


def click_script(px: float, py: float) -> str:
    return f"""
(() => {{
  const element = document.elementFromPoint({px}, {py});
  if (!element) {{ return 'No element at point'; }}
  element.click();
  return `Clicked ${{element.tagName}}`;
}})();
"""


def scroll_script(dy: float) -> str:
    return f"window.scrollBy(0, {dy});"


def type_script(text: str) -> str:
    return f"""
(() => {{
  const target = document.activeElement;
  if (!target) {{ return 'No active element'; }}
  target.value = (target.value || '') + {js_string(text)};
  target.dispatchEvent(new Event('input', {{ bubbles: true }}));
  return 'Typed into active element';
}})();
"""


class ActionExecutor:
    def __init__(
        self,
        slot: SurfaceSlot,
        log: RunLog,
        gate: SafetyGate | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.slot = slot
        self.log = log
        self.gate = gate or SafetyGate()
        self._sleep = sleep

    async def execute(self, actions: Sequence[Action], viewport: Size, *, confirmed: bool = False) -> ExecutionOutcome:
        """
        Run `actions` in order. The safety gate is consulted before every action;
        with confirmed=True the first one is let through (the user just approved it).
        Cancellation propagates out of the awaits.
        """
        surface = self.slot.current()
        if surface is None or not surface.is_attached:
            self.log.error("Page surface went away; actions not executed")
            return ExecutionOutcome(aborted=True)

        actions = tuple(actions)
        for index, action in enumerate(actions):
            if not (confirmed and index == 0):
                matched = await self.gate.scan(surface)
                if matched:
                    self.log.warning(warning_for(matched))
                    return ExecutionOutcome(paused=True, pending=actions[index:], matched=tuple(matched))

            self.log.append(LogKind.ACTION, f"Executing: {action.describe()}")
            try:
                if await self._perform(surface, action, viewport):
                    return ExecutionOutcome(completed=True)
            except Exception as e:
                logger.debug("action %s failed", action.describe(), exc_info=True)
                self.log.warning(f"{action.describe()} failed: {type(e).__name__}: {e}")

        return ExecutionOutcome()

    async def _perform(self, surface: PageSurface, action: Action, viewport: Size) -> bool:
        """True when the action signals goal completion."""
        if isinstance(action, Navigate):
            await surface.load(action.url)
            self.log.append(LogKind.RESULT, f"Navigated to {action.url}")
        elif isinstance(action, ClickAt):
            px, py = normalized_point(action.x, action.y, viewport)
            result = await surface.evaluate(click_script(px, py))
            self.log.append(LogKind.RESULT, str(result) if result else "No element at point")
        elif isinstance(action, Scroll):
            await surface.evaluate(scroll_script(action.delta_y))
        elif isinstance(action, Type):
            result = await surface.evaluate(type_script(action.text))
            if result:
                self.log.append(LogKind.RESULT, str(result))
        elif isinstance(action, Wait):
            await self._sleep(max(0, action.ms) / 1000.0)
        elif isinstance(action, Complete):
            return True
        else:
            raise TypeError(f"unknown action {action!r}")
        return False
