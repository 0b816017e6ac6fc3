"""Shared fixtures for the flow engine tests."""

from collections.abc import Callable
from typing import Any

import pytest

from estateflow.actions import ActionRegistry, register_builtin_actions
from estateflow.engine import FlowEngine
from estateflow.services import ActionServices, MemoryRecordStore


@pytest.fixture
def records() -> MemoryRecordStore:
    """Record store seeded with one contact, one property and one transaction."""
    return MemoryRecordStore(
        {
            "contact": [
                {
                    "id": "c1",
                    "full_name": "Ada Buyer",
                    "first_name": "Ada",
                    "email": "ada@example.com",
                    "phone": "+254700000001",
                    "status": "warm",
                    "assigned_to": "agent-7",
                    "tags": [],
                }
            ],
            "property": [
                {"id": "p1", "title": "2BR Kilimani", "status": "available", "list_price": 9_500_000}
            ],
            "transaction": [{"id": "t1", "stage": "lead", "agent_id": "agent-7", "tasks": [], "milestones": []}],
        }
    )


@pytest.fixture
def services(records: MemoryRecordStore) -> ActionServices:
    return ActionServices(records=records)


@pytest.fixture
def engine() -> FlowEngine:
    """A running engine with no actions or flows registered."""
    flow_engine = FlowEngine(action_timeout=5)
    flow_engine.start()
    return flow_engine


@pytest.fixture
def builtin_engine(services: ActionServices) -> FlowEngine:
    """A running engine with every built-in action bound to in-memory services."""
    actions = ActionRegistry()
    register_builtin_actions(actions, services)
    flow_engine = FlowEngine(actions, action_timeout=5)
    flow_engine.start()
    return flow_engine


@pytest.fixture
def recorder() -> Callable[..., Any]:
    """Factory for handlers that append their resolved params to a list."""

    def _make(calls: list[dict[str, Any]], result: Any = None):
        async def _handler(params: dict[str, Any], context: dict[str, Any]) -> Any:
            calls.append(params)
            return result

        return _handler

    return _make


@pytest.fixture
def make_flow() -> Callable[..., dict[str, Any]]:
    """Factory for minimal flow definitions using the 'record' action."""

    def _make(flow_id: str = "flow-1", event: str = "test.event", **overrides: Any) -> dict[str, Any]:
        definition: dict[str, Any] = {
            "id": flow_id,
            "name": flow_id.replace("-", " ").title(),
            "trigger": {"event": event},
            "actions": [{"type": "record", "params": {}}],
        }
        definition.update(overrides)
        return definition

    return _make
