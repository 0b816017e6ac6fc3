from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from .bootstrap import FlowRuntime, build_runtime, create_store
from .config import app_config
from .errors import (
    DuplicateFlowIdError,
    EngineNotRunningError,
    FlowEngineError,
    FlowNotFoundError,
)
from .logger import setup_logging
from .models import EngineStats, ExecutionRecord, FlowDefinition, TriggerRequest
from .store import SQLiteStore
from .workflows import WorkflowDocument


def create_app(runtime: FlowRuntime | None = None) -> FastAPI:
    """Build the HTTP app around a runtime; the default one is built from config.ini.

    Serve with ``uvicorn estateflow.api:create_app --factory``.
    """
    if runtime is None:
        log_cfg = app_config.logging_settings()
        setup_logging(str(log_cfg["level"]), bool(log_cfg["serialize"]))
        runtime = build_runtime(app_config, store=create_store(app_config))

    engine = runtime.engine
    store = runtime.store

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        await runtime.start()
        try:
            yield
        finally:
            await runtime.stop()

    app = FastAPI(title="EstateFlow", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://127.0.0.1:5173", "http://localhost:5173"],
        allow_origin_regex=r"^https?://(127\.0\.0\.1|localhost):\d+$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.runtime = runtime

    @app.get("/health")
    def health() -> dict[str, object]:
        return {"status": "ok", "engine_running": engine.is_running}

    @app.get("/api/actions")
    def list_actions() -> list[dict[str, str]]:
        return engine.actions.list_specs()

    @app.get("/api/flows", response_model=list[FlowDefinition])
    def list_flows() -> list[FlowDefinition]:
        return engine.get_flows()

    @app.get("/api/flows/stats", response_model=EngineStats)
    def flow_stats() -> EngineStats:
        return engine.get_stats()

    @app.get("/api/flows/history/recent", response_model=list[ExecutionRecord])
    def recent_history(limit: int = Query(default=50, ge=1, le=1000)) -> list[ExecutionRecord]:
        return engine.get_execution_history(limit)

    @app.post("/api/flows/trigger")
    async def trigger_event(request: TriggerRequest) -> dict[str, object]:
        if not request.event_name:
            raise HTTPException(status_code=400, detail="eventName is required")
        try:
            await engine.trigger_event(request.event_name, request.event_data or {}, triggered_by="manual")
        except EngineNotRunningError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return {"success": True, "message": f"Event {request.event_name} triggered"}

    @app.get("/api/flows/{flow_id}", response_model=FlowDefinition)
    def get_flow(flow_id: str) -> FlowDefinition:
        flow = engine.get_flow(flow_id)
        if flow is None:
            raise HTTPException(status_code=404, detail=f"Flow not found: {flow_id}")
        return flow

    @app.post("/api/flows", response_model=FlowDefinition, status_code=201)
    def register_flow(definition: dict[str, Any] = Body(...)) -> FlowDefinition:
        try:
            return engine.register_flow(definition)
        except FlowEngineError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.put("/api/flows/{flow_id}/enable", response_model=FlowDefinition)
    def enable_flow(flow_id: str) -> FlowDefinition:
        try:
            return engine.enable_flow(flow_id)
        except FlowNotFoundError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.put("/api/flows/{flow_id}/disable", response_model=FlowDefinition)
    def disable_flow(flow_id: str) -> FlowDefinition:
        try:
            return engine.disable_flow(flow_id)
        except FlowNotFoundError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.delete("/api/flows/{flow_id}")
    def unregister_flow(flow_id: str) -> dict[str, object]:
        try:
            engine.unregister_flow(flow_id)
        except FlowNotFoundError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"success": True, "message": f"Flow {flow_id} unregistered"}

    @app.get("/api/workflows", response_model=list[WorkflowDocument])
    def list_workflows(status: str | None = None) -> list[WorkflowDocument]:
        return _require_store().list_workflows(status=status)

    @app.get("/api/workflows/{workflow_id}", response_model=WorkflowDocument)
    def get_workflow(workflow_id: str) -> WorkflowDocument:
        workflow = _require_store().get_workflow(workflow_id)
        if workflow is None:
            raise HTTPException(status_code=404, detail="Workflow not found")
        return workflow

    @app.post("/api/workflows", response_model=WorkflowDocument, status_code=201)
    def create_workflow(workflow: WorkflowDocument) -> WorkflowDocument:
        workflow_store = _require_store()
        if workflow_store.get_workflow(workflow.id) is not None:
            raise HTTPException(status_code=409, detail="Workflow id already exists")
        try:
            flow = workflow.to_flow_definition()
        except FlowEngineError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if workflow.status == "active":
            try:
                engine.register_flow(flow)
            except DuplicateFlowIdError as exc:
                raise HTTPException(status_code=409, detail=str(exc)) from exc
        return workflow_store.create_workflow(workflow)

    @app.put("/api/workflows/{workflow_id}", response_model=WorkflowDocument)
    def update_workflow(workflow_id: str, workflow: WorkflowDocument) -> WorkflowDocument:
        if workflow.id != workflow_id:
            raise HTTPException(status_code=400, detail="Workflow id mismatch")
        workflow_store = _require_store()
        existing = workflow_store.get_workflow(workflow_id)
        if existing is None:
            raise HTTPException(status_code=404, detail="Workflow not found")
        try:
            flow = workflow.to_flow_definition()
        except FlowEngineError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if existing.status == "active" and flow.id in engine.flows:
            engine.unregister_flow(flow.id)
        if workflow.status == "active":
            try:
                engine.register_flow(flow)
            except DuplicateFlowIdError as exc:
                raise HTTPException(status_code=409, detail=str(exc)) from exc
        updated = workflow_store.update_workflow(workflow_id, workflow)
        if updated is None:
            raise HTTPException(status_code=404, detail="Workflow not found")
        return updated

    @app.post("/api/workflows/{workflow_id}/run")
    async def run_workflow(workflow_id: str, payload: dict[str, Any] | None = Body(default=None)) -> dict[str, object]:
        workflow = _require_store().get_workflow(workflow_id)
        if workflow is None:
            raise HTTPException(status_code=404, detail="Workflow not found")
        if workflow.status != "active":
            raise HTTPException(status_code=400, detail=f"Workflow is not active: {workflow_id}")
        try:
            record = await engine.run_flow(workflow.flow_id, payload or {}, triggered_by="manual")
        except FlowNotFoundError as exc:
            raise HTTPException(status_code=400, detail=f"Workflow is not active: {workflow_id}") from exc
        except EngineNotRunningError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return {"success": True, "executed": record is not None}

    def _require_store() -> SQLiteStore:
        if store is None:
            raise HTTPException(status_code=404, detail="Workflow storage is not configured")
        return store

    return app
