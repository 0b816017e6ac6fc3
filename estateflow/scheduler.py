"""Polling scheduler for flows with a ``scheduled`` trigger.

Each enabled scheduled flow gets a next-run time from its cron expression the
first time the scheduler sees it; every poll runs the flows whose next run
has passed and computes the following occurrence.
"""

from __future__ import annotations

import asyncio
from datetime import datetime

from croniter import croniter

from .engine import FlowEngine
from .errors import EngineNotRunningError, FlowNotFoundError
from .logger import logger
from .models import ExecutionRecord, FlowDefinition, utc_now


class FlowScheduler:
    def __init__(self, engine: FlowEngine, poll_interval: float = 30.0) -> None:
        self.engine = engine
        self.poll_interval = poll_interval
        self._next_runs: dict[str, datetime] = {}
        self._poll_task: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[ExecutionRecord | None]] = set()

    @property
    def is_running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    async def start(self) -> None:
        if self.is_running:
            logger.warning("Scheduler already running")
            return
        self._poll_task = asyncio.create_task(self._poll_loop())
        logger.info(f"Flow scheduler started (poll interval: {self.poll_interval}s)")

    async def stop(self) -> None:
        if self._poll_task is None and not self._pending:
            return
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Flow scheduler stopped")

    def next_run(self, flow_id: str) -> datetime | None:
        return self._next_runs.get(flow_id)

    @staticmethod
    def compute_next_run(flow: FlowDefinition, after: datetime) -> datetime:
        return croniter(flow.trigger.cron, after).get_next(datetime)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def dispatch(self, now: datetime | None = None) -> list[asyncio.Task[ExecutionRecord | None]]:
        """Start a task for every scheduled flow due at ``now`` without waiting for it."""
        now = now or utc_now()
        if not self.engine.is_running:
            return []

        active = {flow.id: flow for flow in self.engine.flows.scheduled()}
        for flow_id in list(self._next_runs):
            if flow_id not in active:
                del self._next_runs[flow_id]

        due: list[tuple[FlowDefinition, datetime]] = []
        for flow in active.values():
            scheduled_for = self._next_runs.get(flow.id)
            if scheduled_for is None:
                self._next_runs[flow.id] = self.compute_next_run(flow, now)
            elif scheduled_for <= now:
                due.append((flow, scheduled_for))
                self._next_runs[flow.id] = self.compute_next_run(flow, now)

        tasks = []
        for flow, scheduled_for in due:
            task = asyncio.create_task(self._run(flow, scheduled_for))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            tasks.append(task)
        return tasks

    async def tick(self, now: datetime | None = None) -> list[ExecutionRecord]:
        """Run every scheduled flow that is due at ``now`` and wait for the results."""
        tasks = self.dispatch(now)
        if not tasks:
            return []
        records = await asyncio.gather(*tasks)
        return [record for record in records if record is not None]

    async def _run(self, flow: FlowDefinition, scheduled_for: datetime) -> ExecutionRecord | None:
        logger.info(f"Running scheduled flow {flow.id} (due {scheduled_for.isoformat()})")
        try:
            return await self.engine.run_flow(
                flow.id,
                {"schedule": flow.trigger.cron, "scheduled_for": scheduled_for},
                triggered_by="schedule",
            )
        except (EngineNotRunningError, FlowNotFoundError) as exc:
            logger.warning(f"Scheduled flow {flow.id} dropped: {exc}")
            return None

    async def _poll_loop(self) -> None:
        while True:
            try:
                self.dispatch()
            except Exception:
                logger.exception("Scheduler tick failed")
            await asyncio.sleep(self.poll_interval)
