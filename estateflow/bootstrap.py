"""Wires the engine, its collaborators and background services from config."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from .actions import ActionRegistry, register_builtin_actions
from .config import AppConfig, app_config
from .definitions import load_builtin_flows, load_flow_definitions
from .emitters import EventPoller, ModelEventEmitter, default_checks
from .engine import ExecutionListener, FlowEngine
from .errors import FlowEngineError
from .logger import logger
from .models import ExecutionRecord
from .scheduler import FlowScheduler
from .services import ActionServices
from .store import SQLiteStore


@dataclass(slots=True)
class FlowRuntime:
    engine: FlowEngine
    services: ActionServices
    emitter: ModelEventEmitter
    scheduler: FlowScheduler | None = None
    poller: EventPoller | None = None
    store: SQLiteStore | None = None

    async def start(self) -> None:
        self.engine.start()
        if self.scheduler is not None:
            await self.scheduler.start()
        if self.poller is not None:
            await self.poller.start()

    async def stop(self) -> None:
        if self.poller is not None:
            await self.poller.stop()
        if self.scheduler is not None:
            await self.scheduler.stop()
        await self.emitter.stop()
        if self.engine.is_running:
            self.engine.stop()


def create_store(config: AppConfig = app_config) -> SQLiteStore:
    return SQLiteStore(str(config.store_settings()["db_path"]))


def persist_executions(store: SQLiteStore) -> ExecutionListener:
    async def _persist(record: ExecutionRecord) -> None:
        await asyncio.to_thread(store.save_execution, record)

    return _persist


def register_stored_workflows(engine: FlowEngine, store: SQLiteStore) -> int:
    registered = 0
    for workflow in store.list_workflows(status="active"):
        try:
            engine.register_flow(workflow.to_flow_definition())
        except FlowEngineError as exc:
            logger.error(f"Stored workflow {workflow.id} not registered: {exc}")
            continue
        registered += 1
    return registered


def build_engine(
    config: AppConfig = app_config,
    services: ActionServices | None = None,
    *,
    load_definitions: bool | None = None,
) -> FlowEngine:
    services = services or ActionServices()
    engine_cfg = config.engine_settings()
    webhook_cfg = config.webhook_settings()

    actions = ActionRegistry()
    register_builtin_actions(
        actions,
        services,
        webhook_domains=list(webhook_cfg["allow_domains"]),
        webhook_timeout=float(webhook_cfg["timeout_seconds"]),
    )
    engine = FlowEngine(
        actions,
        history_size=int(engine_cfg["history_size"]),
        action_timeout=float(engine_cfg["action_timeout_seconds"]),
        template_globals=config.template_globals(),
    )

    if load_definitions is None:
        load_definitions = bool(engine_cfg["load_builtin_flows"])
    flows = load_builtin_flows() if load_definitions else []
    flows += load_flow_definitions(engine_cfg["definition_files"])
    for flow in flows:
        try:
            engine.register_flow(flow)
        except FlowEngineError as exc:
            logger.error(f"Flow {flow.id} not registered: {exc}")
    return engine


def build_runtime(
    config: AppConfig = app_config,
    services: ActionServices | None = None,
    *,
    store: SQLiteStore | None = None,
    load_definitions: bool | None = None,
    background: bool = True,
) -> FlowRuntime:
    """Build the engine plus emitter, and optionally scheduler and poller."""
    services = services or ActionServices()
    engine = build_engine(config, services, load_definitions=load_definitions)
    emitter = ModelEventEmitter(engine)
    emitter.watch(services.records)

    if store is not None:
        count = register_stored_workflows(engine, store)
        if count:
            logger.info(f"Registered {count} stored workflows")
        if config.store_settings()["persist_executions"]:
            engine.add_listener(persist_executions(store))

    scheduler = poller = None
    if background:
        scheduler_cfg = config.scheduler_settings()
        if scheduler_cfg["enabled"]:
            scheduler = FlowScheduler(engine, poll_interval=float(scheduler_cfg["poll_interval_seconds"]))
        check_cfg = config.check_settings()
        if check_cfg["enabled"]:
            poller = EventPoller(
                emitter,
                default_checks(
                    services.records,
                    follow_up_interval=float(check_cfg["follow_up_interval_seconds"]),
                    milestone_interval=float(check_cfg["milestone_interval_seconds"]),
                ),
            )

    return FlowRuntime(engine, services, emitter, scheduler, poller, store)
