# src/pagepilot/controller.py
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from .credentials import API_KEY_NAME, CredentialStore, MemoryCredentialStore
from .decision import DecisionEngine, pick_default_model
from .errors import ConfigurationError, MissingCredentialError, PerceptionError, TransportError
from .executor import ActionExecutor
from .models import Action, ExecutionOutcome, LogKind, RunState, Snapshot
from .parser import parse_response
from .perception import PerceptionSource
from .runlog import RunLog
from .security import SafetyGate
from .surface import SurfaceSlot

logger = logging.getLogger(__name__)

CONTEXT_ENTRIES = 6

RATE_LIMIT_MESSAGE = "Model is rate limited or unavailable; run paused. Start a new run once it recovers."


class _Step(Enum):
    CONTINUE = "continue"
    DONE = "done"
    PAUSED = "paused"
    ABORT = "abort"


class RunController:
    """
    Owns the run state machine and the perceive → decide → act loop.

    One asyncio task at a time. step(), run_automatically() and
    resume_after_safety_check() cancel whatever is running and start a new task;
    stop() cancels and returns to IDLE. State is written only from those entry
    points and from inside the active task.
    """

    def __init__(
        self,
        slot: SurfaceSlot,
        engine: DecisionEngine,
        *,
        perception: Optional[PerceptionSource] = None,
        executor: Optional[ActionExecutor] = None,
        log: Optional[RunLog] = None,
        credentials: Optional[CredentialStore] = None,
        goal: str = "",
        step_limit: int = 10,
        automation_enabled: bool = False,
    ):
        self.slot = slot
        self.engine = engine
        self.log = log or RunLog()
        self.perception = perception or PerceptionSource(slot)
        self.executor = executor or ActionExecutor(slot, self.log, SafetyGate())
        self.credentials = credentials or MemoryCredentialStore()

        self.goal = goal
        self._step_limit = max(1, step_limit)
        self.automation_enabled = automation_enabled

        self.state = RunState.IDLE
        self.current_step = 0
        self.pending_actions: Optional[Tuple[Action, ...]] = None
        self.last_model_output: Optional[str] = None
        self.available_models: List[str] = []

        self._task: Optional[asyncio.Task] = None
        self._budget = 0
        self._last_hash: Optional[int] = None

        stored = self.credentials.load(API_KEY_NAME)
        if stored:
            self.engine.api_key = stored

    # ------------------------------------------------------------
    # properties
    # ------------------------------------------------------------

    @property
    def step_limit(self) -> int:
        return self._step_limit

    @step_limit.setter
    def step_limit(self, value: int) -> None:
        self._step_limit = max(1, int(value))

    @property
    def is_running(self) -> bool:
        return self.state is RunState.RUNNING

    @property
    def awaiting_safety_confirmation(self) -> bool:
        return self.pending_actions is not None

    @property
    def api_key(self) -> str:
        return self.engine.api_key or ""

    @api_key.setter
    def api_key(self, value: str) -> None:
        value = (value or "").strip()
        self.engine.api_key = value
        if value and not self.credentials.save(API_KEY_NAME, value):
            self.log.warning("Could not persist the API key")

    @property
    def selected_model(self) -> str:
        return self.engine.model

    @property
    def is_surface_available(self) -> bool:
        return self.slot.is_available

    # ------------------------------------------------------------
    # configuration entry points
    # ------------------------------------------------------------

    def toggle_automation(self, enabled: bool) -> None:
        self.automation_enabled = enabled
        self.log.info(f"Agent Mode {'enabled' if enabled else 'disabled'}")

    def set_goal(self, goal: str) -> None:
        self.goal = goal.strip()

    async def refresh_models(self) -> List[str]:
        try:
            infos = await self.engine.fetch_models()
        except (ConfigurationError, TransportError) as e:
            self.log.error(str(e))
            return self.available_models
        self.available_models = [m.name for m in infos if m.supports_generation]
        if not self.selected_model or self.selected_model not in self.available_models:
            choice = pick_default_model(infos)
            if choice:
                self.engine.model = choice
        self.log.info(f"Models: {len(self.available_models)} available, using {self.selected_model}")
        return self.available_models

    def apply_model_override(self, name: str) -> None:
        name = (name or "").strip()
        if not name:
            return
        self.engine.model = name
        self.log.info(f"Model set to {name}")

    # ------------------------------------------------------------
    # run entry points
    # ------------------------------------------------------------

    def step(self) -> asyncio.Task:
        return self._start(budget=1)

    def run_automatically(self) -> asyncio.Task:
        return self._start(budget=self.step_limit)

    def stop(self) -> None:
        self._cancel_task()
        self.state = RunState.IDLE
        self.pending_actions = None
        self._last_hash = None
        self.log.info("Agent execution stopped")

    def resume_after_safety_check(self) -> Optional[asyncio.Task]:
        if self.pending_actions is None:
            return None
        actions = self.pending_actions
        self.pending_actions = None
        self._cancel_task()
        self.state = RunState.RUNNING
        self.log.info("Resuming after safety confirmation")
        self._task = asyncio.get_running_loop().create_task(
            self._run(start=self.current_step, resume_batch=actions)
        )
        return self._task

    async def join(self) -> None:
        """Wait for the active run task (and any task it was replaced by) to finish."""
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})

    async def probe_snapshot(self) -> Optional[Snapshot]:
        if not self.slot.is_available:
            self.log.warning("Page surface is not ready for snapshot")
            return None
        try:
            snapshot = await self.perception.capture()
        except PerceptionError as e:
            self.log.error(f"Test snapshot failed: {e}")
            return None
        self.log.info(f"Test snapshot captured (viewport: {snapshot.viewport})")
        return snapshot

    # ------------------------------------------------------------
    # internals
    # ------------------------------------------------------------

    def _cancel_task(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _start(self, budget: int) -> asyncio.Task:
        self._cancel_task()
        self.pending_actions = None
        self.current_step = 0
        self._budget = budget
        self._last_hash = None
        self.state = RunState.RUNNING
        self._task = asyncio.get_running_loop().create_task(self._run(start=0))
        return self._task

    def _is_active(self) -> bool:
        return self._task is not None and self._task is asyncio.current_task()

    def _check_guards(self) -> bool:
        if not self.automation_enabled:
            self.log.warning("Enable Agent Mode to start")
            return False
        if not self.goal.strip():
            self.log.warning("Set a goal for the agent")
            return False
        if not self.slot.is_available:
            self.log.warning("Page surface is not ready")
            return False
        return True

    async def _run(self, start: int, resume_batch: Optional[Sequence[Action]] = None) -> None:
        try:
            if not self._check_guards():
                return

            if resume_batch is not None:
                size = await self.slot.current().layout_size()
                outcome = await self.executor.execute(resume_batch, size, confirmed=True)
                if self._after_execution(outcome) is not _Step.CONTINUE:
                    return

            for index in range(start, self._budget):
                self.current_step = index + 1
                result = await self._iteration()
                if result is not _Step.CONTINUE:
                    return

            self.log.info("Reached step limit")
        except asyncio.CancelledError:
            self.log.info("Cancelled")
            raise
        finally:
            if self._is_active():
                self._task = None
                if self.state is RunState.RUNNING:
                    self.state = RunState.IDLE

    async def _iteration(self) -> _Step:
        try:
            return await self._perceive_decide_act()
        except (ConfigurationError, PerceptionError) as e:
            self.log.error(str(e))
            return _Step.ABORT
        except TransportError as e:
            self.log.error(str(e))
            if e.retryable:
                self.log.warning(RATE_LIMIT_MESSAGE)
                self.state = RunState.PAUSED
                return _Step.PAUSED
            return _Step.ABORT
        except Exception as e:
            logger.exception("step %d failed", self.current_step)
            self.log.error(f"{type(e).__name__}: {e}")
            return _Step.CONTINUE

    async def _perceive_decide_act(self) -> _Step:
        if not self.engine.api_key:
            raise MissingCredentialError()

        snapshot = await self.perception.capture()
        if snapshot.content_hash == self._last_hash:
            self.log.info("No visual change since last step; skipping model call")
            return _Step.CONTINUE

        context = self.log.recent_context(CONTEXT_ENTRIES)
        raw = await self.engine.generate_actions(self.goal, context, snapshot.encoded_image)
        self._last_hash = snapshot.content_hash

        response = parse_response(raw)
        self.last_model_output = response.raw_text
        self.log.append(LogKind.MODEL, response.raw_text)
        for w in response.warnings:
            self.log.warning(w)
        if not response.actions:
            self.log.warning("No actions returned")

        if response.is_complete:
            self.log.append(LogKind.RESULT, "Agent marked goal complete")
            return _Step.DONE

        outcome = await self.executor.execute(response.actions, snapshot.viewport)
        return self._after_execution(outcome)

    def _after_execution(self, outcome: ExecutionOutcome) -> _Step:
        if outcome.paused:
            self.pending_actions = outcome.pending
            self.state = RunState.PAUSED
            return _Step.PAUSED
        if outcome.completed:
            self.log.append(LogKind.RESULT, "Agent marked goal complete")
            return _Step.DONE
        if outcome.aborted:
            return _Step.ABORT
        return _Step.CONTINUE
