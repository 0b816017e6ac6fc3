"""Adapters that turn record changes and periodic checks into engine events."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from .engine import FlowEngine
from .errors import EngineNotRunningError
from .logger import logger
from .models import ExecutionRecord, utc_now
from .services import RecordChange, RecordStore

WATCHED_FIELDS: dict[str, tuple[str, ...]] = {
    "contact": ("status",),
    "property": ("status", "list_price"),
    "transaction": ("stage",),
}

Event = tuple[str, dict[str, Any]]
Finder = Callable[[], Awaitable[list[Event]]]

_emit_depth: ContextVar[int] = ContextVar("estateflow_emit_depth", default=0)


class ModelEventEmitter:
    """Feeds record-store lifecycle changes to the engine as named events.

    Flows whose actions write records cause further events; ``max_depth``
    bounds how deep such a cascade may go.
    """

    def __init__(
        self,
        engine: FlowEngine,
        *,
        watched_fields: Mapping[str, tuple[str, ...]] | None = None,
        max_depth: int = 3,
    ) -> None:
        self.engine = engine
        self.watched_fields = dict(watched_fields if watched_fields is not None else WATCHED_FIELDS)
        self.max_depth = max_depth
        self._pending: set[asyncio.Task[list[ExecutionRecord]]] = set()

    def watch(self, store: RecordStore) -> None:
        store.subscribe(self.on_change)

    async def on_change(self, change: RecordChange) -> None:
        for event_name, payload in self.events_for(change):
            self.dispatch(event_name, payload)

    def dispatch(self, event_name: str, payload: dict[str, Any]) -> asyncio.Task[list[ExecutionRecord]]:
        """Emit in a tracked background task and return it."""
        task = asyncio.create_task(self.emit(event_name, payload))
        self._pending.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task[list[ExecutionRecord]]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error("Event dispatch failed")

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait until every dispatched event, including cascades, has been handled."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def stop(self) -> None:
        while self._pending:
            pending = list(self._pending)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            logger.info(f"Cancelled {len(pending)} pending events")

    def events_for(self, change: RecordChange) -> list[Event]:
        kind, record = change.kind, change.record
        base = {kind: record, f"{kind}_id": record.get("id")}
        if change.operation == "created":
            events: list[Event] = [(f"{kind}.created", base)]
            if kind == "property" and record.get("listed"):
                events.append(("property.listed", {**base, "list_price": record.get("list_price")}))
            return events

        previous = change.previous or {}
        changed = sorted(
            key for key in set(record) | set(previous)
            if key != "updated_at" and record.get(key) != previous.get(key)
        )
        events = [(f"{kind}.updated", {**base, "changes": changed})]
        for field in self.watched_fields.get(kind, ()):
            if field in changed:
                events.append(
                    (
                        f"{kind}.{field}.changed",
                        {
                            **base,
                            "field": field,
                            "old_value": previous.get(field),
                            "new_value": record.get(field),
                        },
                    )
                )
        if kind == "contact" and "tags" in changed:
            old_tags = previous.get("tags") or []
            all_tags = list(record.get("tags") or [])
            for tag in all_tags:
                if tag not in old_tags:
                    events.append(("contact.tagged", {**base, "tag": tag, "all_tags": all_tags}))
        return events

    async def emit(self, event_name: str, payload: dict[str, Any]) -> list[ExecutionRecord]:
        depth = _emit_depth.get()
        if depth >= self.max_depth:
            logger.warning(f"Dropping {event_name}: event cascade depth {depth} reached")
            return []
        token = _emit_depth.set(depth + 1)
        try:
            return await self.engine.trigger_event(event_name, payload)
        except EngineNotRunningError:
            logger.warning(f"Dropping {event_name}: flow engine not running")
            return []
        finally:
            _emit_depth.reset(token)


def _is_past(value: Any, now: datetime) -> bool:
    if isinstance(value, str) and value:
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return False
    if not isinstance(value, datetime):
        return False
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value < now


def overdue_follow_ups(records: RecordStore, clock: Callable[[], datetime] = utc_now) -> Finder:
    async def _find() -> list[Event]:
        now = clock()
        contacts = await records.find("contact", lambda contact: _is_past(contact.get("next_follow_up"), now))
        return [
            (
                "contact.followup.overdue",
                {
                    "contact": contact,
                    "contact_id": contact["id"],
                    "follow_up_date": contact.get("next_follow_up"),
                    "assigned_to": contact.get("assigned_to"),
                },
            )
            for contact in contacts
        ]

    return _find


def overdue_transactions(records: RecordStore, clock: Callable[[], datetime] = utc_now) -> Finder:
    async def _find() -> list[Event]:
        now = clock()
        events: list[Event] = []
        for transaction in await records.find("transaction"):
            base = {"transaction": transaction, "transaction_id": transaction["id"]}
            milestones = [
                milestone
                for milestone in transaction.get("milestones") or []
                if not milestone.get("completed") and _is_past(milestone.get("due_date"), now)
            ]
            tasks = [
                task
                for task in transaction.get("tasks") or []
                if task.get("status") != "completed" and _is_past(task.get("due_date"), now)
            ]
            if milestones:
                events.append(("transaction.milestone.overdue", {**base, "overdue_milestones": milestones}))
            if tasks:
                events.append(("transaction.task.overdue", {**base, "overdue_tasks": tasks}))
        return events

    return _find


@dataclass(slots=True)
class PeriodicCheck:
    name: str
    finder: Finder
    interval: float


class EventPoller:
    def __init__(self, emitter: ModelEventEmitter, checks: list[PeriodicCheck] | None = None) -> None:
        self.emitter = emitter
        self.checks = list(checks or [])
        self._tasks: list[asyncio.Task[None]] = []

    def add(self, check: PeriodicCheck) -> None:
        self.checks.append(check)

    async def run_check(self, check: PeriodicCheck) -> int:
        events = await check.finder()
        for event_name, payload in events:
            self.emitter.dispatch(event_name, payload)
        if events:
            logger.info(f"Periodic check {check.name} emitted {len(events)} events")
        return len(events)

    async def start(self) -> None:
        if self._tasks:
            logger.warning("Event poller already running")
            return
        self._tasks = [asyncio.create_task(self._loop(check)) for check in self.checks]
        logger.info(f"Event poller started ({len(self.checks)} checks)")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []

    async def _loop(self, check: PeriodicCheck) -> None:
        while True:
            await asyncio.sleep(check.interval)
            try:
                await self.run_check(check)
            except Exception:
                logger.exception(f"Periodic check {check.name} failed")


def default_checks(
    records: RecordStore,
    *,
    follow_up_interval: float = 3600.0,
    milestone_interval: float = 21600.0,
) -> list[PeriodicCheck]:
    return [
        PeriodicCheck("overdue-follow-ups", overdue_follow_ups(records), follow_up_interval),
        PeriodicCheck("overdue-transactions", overdue_transactions(records), milestone_interval),
    ]
