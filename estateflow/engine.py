"""Event-driven flow engine.

The engine owns the flow and action registries and the execution history.
Every event fans out to the enabled flows listening for it; each flow runs
in isolation with its own copy of the event context, evaluates its
conditions and then executes its actions one after another, continuing past
failed actions. One ExecutionRecord is kept per flow that passed its
conditions.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import time
import uuid
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime
from typing import Any

from .actions.base import ActionHandler, ActionRegistry, ActionSpec
from .conditions import evaluate
from .errors import EngineNotRunningError, UnknownActionTypeError
from .logger import logger
from .models import (
    ActionDefinition,
    ActionResult,
    EngineStats,
    ExecutionRecord,
    ExecutionStatus,
    FlowDefinition,
    utc_now,
)
from .registry import FlowRegistry
from .templating import resolve

ExecutionListener = Callable[[ExecutionRecord], Awaitable[None] | None]

RESERVED_CONTEXT_KEYS = ("payload", "trigger", "env")


def classify(actions_completed: int, actions_failed: int) -> ExecutionStatus:
    if actions_failed == 0:
        return "success"
    if actions_completed == 0:
        return "failed"
    return "partial"


class FlowEngine:
    def __init__(
        self,
        actions: ActionRegistry | None = None,
        flows: FlowRegistry | None = None,
        *,
        history_size: int = 1000,
        action_timeout: float | None = 30.0,
        template_globals: Mapping[str, Any] | None = None,
    ) -> None:
        if history_size <= 0:
            raise ValueError("history_size must be a positive integer")
        self.actions = actions if actions is not None else ActionRegistry()
        self.flows = flows if flows is not None else FlowRegistry()
        self.history: deque[ExecutionRecord] = deque(maxlen=history_size)
        self.action_timeout = action_timeout or None
        self.template_globals = dict(template_globals or {})
        self._running = False
        self._listeners: list[ExecutionListener] = []

    # lifecycle

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            logger.warning("Flow engine is already running")
            return
        self._running = True
        logger.info(
            f"Flow engine started ({len(self.flows)} flows, {len(self.actions)} actions)"
        )

    def stop(self) -> None:
        if not self._running:
            logger.warning("Flow engine is not running")
            return
        self._running = False
        logger.info("Flow engine stopped")

    # registries

    def register_action(self, type_name: str, handler: ActionHandler, description: str = "") -> None:
        self.actions.register(ActionSpec(type_name=type_name, description=description, handler=handler))
        logger.info(f"Action registered: {type_name}")

    def register_flow(self, definition: FlowDefinition | Mapping[str, Any]) -> FlowDefinition:
        return self.flows.register(definition)

    def unregister_flow(self, flow_id: str) -> None:
        self.flows.unregister(flow_id)

    def enable_flow(self, flow_id: str) -> FlowDefinition:
        return self.flows.enable(flow_id)

    def disable_flow(self, flow_id: str) -> FlowDefinition:
        return self.flows.disable(flow_id)

    def get_flow(self, flow_id: str) -> FlowDefinition | None:
        return self.flows.get(flow_id)

    def get_flows(self) -> list[FlowDefinition]:
        return self.flows.list_flows()

    def add_listener(self, listener: ExecutionListener) -> None:
        self._listeners.append(listener)

    # history

    def get_execution_history(self, limit: int = 50) -> list[ExecutionRecord]:
        if limit <= 0:
            return []
        return list(self.history)[-limit:]

    def get_stats(self) -> EngineStats:
        flows = self.flows.list_flows()
        enabled = sum(1 for flow in flows if flow.enabled)
        return EngineStats(
            total_flows=len(flows),
            enabled_flows=enabled,
            disabled_flows=len(flows) - enabled,
            scheduled_flows=sum(1 for flow in flows if flow.trigger.is_scheduled),
            total_executions=sum(flow.stats.total_executions for flow in flows),
            registered_actions=len(self.actions),
            history_size=len(self.history),
            is_running=self._running,
        )

    # execution

    async def trigger_event(
        self,
        event_name: str,
        event_data: Mapping[str, Any] | None = None,
        *,
        triggered_by: str | None = None,
    ) -> list[ExecutionRecord]:
        """Run every enabled flow listening for ``event_name``.

        Returns the execution records of the flows whose conditions matched,
        once all of them have finished. Action failures never raise here.
        """
        self._ensure_running()
        data = dict(event_data or {})
        candidates = self.flows.matching(event_name)
        logger.info(f"Event triggered: {event_name} ({len(candidates)} candidate flows)")
        if not candidates:
            return []

        outcomes = await asyncio.gather(
            *(
                self._run_isolated(flow, event_name, data, triggered_by or event_name)
                for flow in candidates
            )
        )
        return [record for record in outcomes if record is not None]

    async def run_flow(
        self,
        flow_id: str,
        event_data: Mapping[str, Any] | None = None,
        *,
        triggered_by: str = "manual",
    ) -> ExecutionRecord | None:
        """Run one flow directly, whatever its trigger; None if conditions fail."""
        self._ensure_running()
        flow = self.flows.require(flow_id)
        event_name = flow.trigger.event or triggered_by
        return await self._run_isolated(flow, event_name, dict(event_data or {}), triggered_by)

    def _ensure_running(self) -> None:
        if not self._running:
            logger.warning("Flow engine is not running; event rejected")
            raise EngineNotRunningError()

    async def _run_isolated(
        self,
        flow: FlowDefinition,
        event_name: str,
        data: dict[str, Any],
        triggered_by: str,
    ) -> ExecutionRecord | None:
        try:
            return await self._execute_flow(flow, event_name, data, triggered_by)
        except Exception:
            logger.exception(f"Flow {flow.id} aborted while handling {event_name}")
            return None

    def build_context(
        self,
        flow: FlowDefinition,
        event_name: str,
        data: Mapping[str, Any],
        triggered_by: str,
        triggered_at: datetime,
    ) -> dict[str, Any]:
        context = copy.deepcopy(dict(data))
        collisions = [key for key in RESERVED_CONTEXT_KEYS if key in context]
        if collisions:
            logger.debug(f"Event payload keys shadowed by engine fields: {collisions}")
        context["payload"] = copy.deepcopy(dict(data))
        context["trigger"] = {
            "event": event_name,
            "flow_id": flow.id,
            "triggered_at": triggered_at,
            "triggered_by": triggered_by,
        }
        context["env"] = copy.deepcopy(self.template_globals)
        return context

    async def _execute_flow(
        self,
        flow: FlowDefinition,
        event_name: str,
        data: dict[str, Any],
        triggered_by: str,
    ) -> ExecutionRecord | None:
        triggered_at = utc_now()
        started = time.perf_counter()
        context = self.build_context(flow, event_name, data, triggered_by, triggered_at)

        if not evaluate(flow.conditions, context):
            logger.debug(f"Flow skipped: {flow.name} ({flow.id}) - conditions not met")
            return None

        logger.info(f"Executing flow: {flow.name} ({flow.id})")
        results: list[ActionResult] = []
        for action in flow.actions:
            results.append(await self._execute_action(action, context))

        completed = sum(1 for result in results if result.status == "success")
        failed = len(results) - completed
        errors = [result.error for result in results if result.error]
        record = ExecutionRecord(
            id=str(uuid.uuid4()),
            flow_id=flow.id,
            flow_name=flow.name,
            triggered_at=triggered_at,
            triggered_by=triggered_by,
            status=classify(completed, failed),
            actions_completed=completed,
            actions_failed=failed,
            error=errors[-1] if errors else None,
            duration_ms=(time.perf_counter() - started) * 1000,
            results=results,
        )
        await self._record(flow, record)
        return record

    async def _execute_action(self, action: ActionDefinition, context: dict[str, Any]) -> ActionResult:
        if action.delay_minutes > 0:
            logger.debug(f"Delaying action {action.type} by {action.delay_minutes} min")
            await asyncio.sleep(action.delay_minutes * 60)

        started_at = utc_now()
        started = time.perf_counter()
        timeout = action.timeout_seconds or self.action_timeout
        try:
            spec = self.actions.get(action.type)
            params = resolve(action.params, context)
            outcome = await asyncio.wait_for(spec.execute(params, context), timeout)
        except UnknownActionTypeError as exc:
            logger.warning(str(exc))
            return self._failed(action, started_at, started, str(exc))
        except asyncio.TimeoutError:
            message = f"Action {action.type} timed out after {timeout}s"
            logger.error(message)
            return self._failed(action, started_at, started, message)
        except Exception as exc:
            logger.error(f"Action failed: {action.type} - {exc}")
            return self._failed(action, started_at, started, str(exc) or type(exc).__name__)

        duration_ms = (time.perf_counter() - started) * 1000
        logger.info(f"Action completed: {action.type} ({duration_ms:.0f}ms)")
        return ActionResult(
            type=action.type,
            status="success",
            started_at=started_at,
            duration_ms=duration_ms,
            result=outcome,
        )

    @staticmethod
    def _failed(action: ActionDefinition, started_at: datetime, started: float, error: str) -> ActionResult:
        return ActionResult(
            type=action.type,
            status="failed",
            started_at=started_at,
            duration_ms=(time.perf_counter() - started) * 1000,
            error=error,
        )

    async def _record(self, flow: FlowDefinition, record: ExecutionRecord) -> None:
        self.history.append(record)
        flow.stats.record(record)
        level = "INFO" if record.status == "success" else "WARNING"
        logger.log(
            level,
            f"Flow {record.status}: {flow.name} "
            f"({record.actions_completed}/{record.actions_completed + record.actions_failed} actions, "
            f"{record.duration_ms:.0f}ms)",
        )
        for listener in list(self._listeners):
            try:
                outcome = listener(record)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception(f"Execution listener failed for flow {flow.id}")
