"""Tests for the flow engine orchestrator."""

import asyncio
from typing import Any

import pytest

from estateflow.engine import FlowEngine, classify
from estateflow.errors import EngineNotRunningError, FlowNotFoundError


async def _boom(params: dict[str, Any], context: dict[str, Any]) -> None:
    raise RuntimeError("handler exploded")


# ─── Lifecycle ──────────────────────────────────────────────────────────────


class TestLifecycle:
    """Tests for start/stop and the not-running guard."""

    def test_new_engine_is_stopped(self) -> None:
        """Engines start in the stopped state."""
        assert FlowEngine().is_running is False

    def test_start_and_stop(self) -> None:
        """start and stop toggle is_running and tolerate repeats."""
        engine = FlowEngine()
        engine.start()
        engine.start()
        assert engine.is_running
        engine.stop()
        engine.stop()
        assert not engine.is_running

    async def test_trigger_while_stopped_raises(self, make_flow) -> None:
        """Events are rejected, not queued, while the engine is stopped."""
        engine = FlowEngine()
        engine.register_flow(make_flow())
        with pytest.raises(EngineNotRunningError):
            await engine.trigger_event("test.event", {})
        assert engine.get_execution_history() == []

    def test_history_size_must_be_positive(self) -> None:
        """A zero-capacity history is a configuration error."""
        with pytest.raises(ValueError):
            FlowEngine(history_size=0)


# ─── Matching and conditions ────────────────────────────────────────────────


class TestMatching:
    """Tests for selecting flows for an event."""

    async def test_no_matching_flows(self, engine: FlowEngine) -> None:
        """An event nobody listens to produces no records."""
        assert await engine.trigger_event("nobody.listens", {"a": 1}) == []

    async def test_conditions_filter_flows(self, engine, recorder, make_flow) -> None:
        """Flows whose conditions fail are skipped without a record."""
        calls: list[dict] = []
        engine.register_action("record", recorder(calls))
        engine.register_flow(
            make_flow(conditions=[{"field": "tag", "operator": "equals", "value": "vip"}])
        )

        assert await engine.trigger_event("test.event", {"tag": "regular"}) == []
        records = await engine.trigger_event("test.event", {"tag": "vip"})

        assert len(records) == 1
        assert len(calls) == 1
        assert len(engine.get_execution_history()) == 1

    async def test_disabled_flow_never_matches(self, engine, recorder, make_flow) -> None:
        """Disabling a flow stops it from running until re-enabled."""
        calls: list[dict] = []
        engine.register_action("record", recorder(calls))
        engine.register_flow(make_flow())

        engine.disable_flow("flow-1")
        assert await engine.trigger_event("test.event") == []
        assert calls == []

        engine.enable_flow("flow-1")
        records = await engine.trigger_event("test.event")
        assert [record.flow_id for record in records] == ["flow-1"]

    async def test_scheduled_flows_ignore_events(self, engine, recorder, make_flow) -> None:
        """Scheduled flows are not matched by event name."""
        calls: list[dict] = []
        engine.register_action("record", recorder(calls))
        engine.register_flow(make_flow(trigger={"type": "scheduled", "schedule": "hourly"}))
        assert await engine.trigger_event("test.event") == []


# ─── Action execution ───────────────────────────────────────────────────────


class TestActionExecution:
    """Tests for parameter resolution and per-action outcomes."""

    async def test_contact_tagged_scenario(self, engine, recorder, make_flow) -> None:
        """The welcome flow resolves the recipient from the tagged contact."""
        sent: list[dict] = []
        engine.register_action("send_email", recorder(sent, {"success": True}))
        engine.register_flow(
            make_flow(
                "first-time-buyer-welcome",
                event="contact.tagged",
                conditions=[{"field": "tag", "operator": "equals", "value": "first-time-buyer"}],
                actions=[
                    {
                        "type": "send_email",
                        "params": {"to": "{{contact.email}}", "subject": "Welcome!"},
                    }
                ],
            )
        )

        records = await engine.trigger_event(
            "contact.tagged",
            {"contact": {"email": "a@b.com", "tags": ["first-time-buyer"]}, "tag": "first-time-buyer"},
        )

        assert sent == [{"to": "a@b.com", "subject": "Welcome!"}]
        assert records[0].status == "success"
        assert records[0].actions_completed == 1

    async def test_typed_values_pass_through(self, engine, recorder, make_flow) -> None:
        """Whole-placeholder params keep their type."""
        calls: list[dict] = []
        engine.register_action("record", recorder(calls))
        engine.register_flow(make_flow(actions=[{"type": "record", "params": {"price": "{{price}}"}}]))

        await engine.trigger_event("test.event", {"price": 1250000})

        assert calls[0]["price"] == 1250000

    async def test_actions_run_in_declared_order(self, engine, make_flow) -> None:
        """Actions run sequentially in list order."""
        order: list[str] = []

        async def _slow(params, context):
            await asyncio.sleep(0.01)
            order.append(params["name"])

        async def _fast(params, context):
            order.append(params["name"])

        engine.register_action("slow", _slow)
        engine.register_action("fast", _fast)
        engine.register_flow(
            make_flow(
                actions=[
                    {"type": "slow", "params": {"name": "A"}},
                    {"type": "fast", "params": {"name": "B"}},
                ]
            )
        )

        await engine.trigger_event("test.event")

        assert order == ["A", "B"]

    async def test_params_see_earlier_context_mutations(self, engine, recorder, make_flow) -> None:
        """Later params are resolved after earlier actions mutated the context."""
        sent: list[dict] = []

        async def _increment(params, context):
            context["counter"] = context.get("counter", 0) + 1
            return {"value": context["counter"]}

        engine.register_action("increment", _increment)
        engine.register_action("send_email", recorder(sent))
        engine.register_flow(
            make_flow(
                actions=[
                    {"type": "increment"},
                    {"type": "send_email", "params": {"body": "Counter is {{counter}}"}},
                ]
            )
        )

        await engine.trigger_event("test.event", {"counter": 4})

        assert sent == [{"body": "Counter is 5"}]

    async def test_return_values_are_not_merged_into_context(self, engine, recorder, make_flow) -> None:
        """Only explicit context mutations are visible to later actions."""
        calls: list[dict] = []

        async def _returns(params, context):
            return {"secret": "value"}

        engine.register_action("returns", _returns)
        engine.register_action("record", recorder(calls))
        engine.register_flow(
            make_flow(actions=[{"type": "returns"}, {"type": "record", "params": {"x": "{{secret}}"}}])
        )

        await engine.trigger_event("test.event")

        assert calls == [{"x": "{{secret}}"}]

    async def test_failed_action_does_not_stop_the_flow(self, engine, recorder, make_flow) -> None:
        """Continue-on-error: later actions run after a failure."""
        calls: list[dict] = []
        engine.register_action("boom", _boom)
        engine.register_action("record", recorder(calls))
        engine.register_flow(
            make_flow(actions=[{"type": "boom"}, {"type": "record", "params": {"ran": True}}])
        )

        [record] = await engine.trigger_event("test.event")

        assert calls == [{"ran": True}]
        assert record.status == "partial"
        assert record.actions_completed == 1
        assert record.actions_failed == 1
        assert record.error == "handler exploded"
        assert [result.status for result in record.results] == ["failed", "success"]

    async def test_unknown_action_type_is_recorded(self, engine, recorder, make_flow) -> None:
        """Unknown action types fail that action only."""
        calls: list[dict] = []
        engine.register_action("record", recorder(calls))
        engine.register_flow(make_flow(actions=[{"type": "does_not_exist"}, {"type": "record"}]))

        [record] = await engine.trigger_event("test.event")

        assert record.status == "partial"
        assert "Unknown action type: does_not_exist" in record.error
        assert len(calls) == 1

    async def test_all_actions_failing(self, engine, make_flow) -> None:
        """A flow where every action fails is recorded as failed."""
        engine.register_action("boom", _boom)
        engine.register_flow(make_flow(actions=[{"type": "boom"}, {"type": "boom"}]))

        [record] = await engine.trigger_event("test.event")

        assert record.status == "failed"
        assert record.actions_failed == 2
        assert record.actions_completed + record.actions_failed == 2

    async def test_action_timeout(self, make_flow) -> None:
        """Actions exceeding their timeout fail with a timeout message."""
        engine = FlowEngine(action_timeout=0.01)
        engine.start()

        async def _hang(params, context):
            await asyncio.sleep(1)

        engine.register_action("hang", _hang)
        engine.register_flow(make_flow(actions=[{"type": "hang"}]))

        [record] = await engine.trigger_event("test.event")

        assert record.status == "failed"
        assert "timed out" in record.error

    async def test_delay_waits_before_running(self, engine, recorder, make_flow, monkeypatch) -> None:
        """delay_minutes sleeps before the action executes."""
        slept: list[float] = []
        real_sleep = asyncio.sleep

        async def _fake_sleep(seconds: float) -> None:
            slept.append(seconds)
            await real_sleep(0)

        monkeypatch.setattr("estateflow.engine.asyncio.sleep", _fake_sleep)
        calls: list[dict] = []
        engine.register_action("record", recorder(calls))
        engine.register_flow(make_flow(actions=[{"type": "record", "delay_minutes": 2}]))

        await engine.trigger_event("test.event")

        assert slept == [120]
        assert len(calls) == 1

    async def test_context_is_isolated_per_flow(self, engine, make_flow) -> None:
        """Mutations by one flow are invisible to another flow and to the caller."""
        seen: list[Any] = []

        async def _mutate(params, context):
            context["contact"]["tags"].append("mutated")

        async def _observe(params, context):
            await asyncio.sleep(0)
            seen.append(list(context["contact"]["tags"]))

        engine.register_action("mutate", _mutate)
        engine.register_action("observe", _observe)
        engine.register_flow(make_flow("mutator", actions=[{"type": "mutate"}]))
        engine.register_flow(make_flow("observer", actions=[{"type": "observe"}]))
        payload = {"contact": {"tags": ["a"]}}

        await engine.trigger_event("test.event", payload)

        assert seen == [["a"]]
        assert payload == {"contact": {"tags": ["a"]}}

    async def test_engine_fields_in_context(self, make_flow) -> None:
        """The context carries payload, trigger and env roots."""
        engine = FlowEngine(template_globals={"portal": "https://portal.example"})
        engine.start()
        captured: list[dict] = []

        async def _capture(params, context):
            captured.append(params)

        engine.register_action("capture", _capture)
        engine.register_flow(
            make_flow(
                actions=[
                    {
                        "type": "capture",
                        "params": {
                            "event": "{{trigger.event}}",
                            "flow": "{{trigger.flow_id}}",
                            "raw": "{{payload.x}}",
                            "url": "{{env.portal}}/pay",
                        },
                    }
                ]
            )
        )

        await engine.trigger_event("test.event", {"x": 7})

        assert captured == [
            {"event": "test.event", "flow": "flow-1", "raw": 7, "url": "https://portal.example/pay"}
        ]


# ─── Isolation across flows ─────────────────────────────────────────────────


class TestIsolation:
    """Tests for failure isolation between flows of one event."""

    async def test_failing_flow_does_not_affect_others(self, engine, recorder, make_flow) -> None:
        """Every matched flow runs and is recorded with its own status."""
        calls: list[dict] = []
        engine.register_action("boom", _boom)
        engine.register_action("record", recorder(calls))
        engine.register_flow(make_flow("bad", actions=[{"type": "boom"}]))
        engine.register_flow(make_flow("good-1", actions=[{"type": "record"}, {"type": "record"}]))
        engine.register_flow(make_flow("good-2", actions=[{"type": "record"}]))

        records = await engine.trigger_event("test.event")

        statuses = {record.flow_id: record.status for record in records}
        assert statuses == {"bad": "failed", "good-1": "success", "good-2": "success"}
        assert len(calls) == 3

    async def test_flow_crash_is_contained(self, engine, recorder, make_flow, monkeypatch) -> None:
        """An unexpected engine error in one flow does not abort the others."""
        calls: list[dict] = []
        engine.register_action("record", recorder(calls))
        engine.register_flow(make_flow("crashes", conditions=[{"field": "x", "operator": "exists"}]))
        engine.register_flow(make_flow("fine"))
        original = engine._execute_flow

        async def _execute(flow, *args):
            if flow.id == "crashes":
                raise RuntimeError("internal")
            return await original(flow, *args)

        monkeypatch.setattr(engine, "_execute_flow", _execute)

        records = await engine.trigger_event("test.event", {"x": 1})

        assert [record.flow_id for record in records] == ["fine"]


# ─── History and stats ──────────────────────────────────────────────────────


class TestHistoryAndStats:
    """Tests for execution history and statistics."""

    async def test_history_is_bounded(self, recorder, make_flow) -> None:
        """The oldest records are evicted once capacity is reached."""
        engine = FlowEngine(history_size=3)
        engine.start()
        engine.register_action("record", recorder([]))
        engine.register_flow(make_flow())

        for index in range(5):
            await engine.trigger_event("test.event", {"i": index})

        history = engine.get_execution_history(limit=10)
        assert len(history) == 3
        assert engine.get_stats().history_size == 3
        assert engine.get_flow("flow-1").stats.total_executions == 5

    async def test_history_limit_returns_most_recent(self, engine, recorder, make_flow) -> None:
        """limit returns the newest records, oldest first."""
        engine.register_action("record", recorder([]))
        engine.register_flow(make_flow())
        for index in range(4):
            await engine.trigger_event("test.event", {"i": index}, triggered_by=f"run-{index}")

        recent = engine.get_execution_history(limit=2)

        assert [record.triggered_by for record in recent] == ["run-2", "run-3"]
        assert engine.get_execution_history(limit=0) == []

    async def test_flow_stats(self, engine, make_flow) -> None:
        """Per-flow stats count outcomes and average durations."""
        outcomes = iter([None, RuntimeError("x"), None])

        async def _maybe(params, context):
            outcome = next(outcomes)
            if outcome is not None:
                raise outcome

        engine.register_action("maybe", _maybe)
        engine.register_flow(make_flow(actions=[{"type": "maybe"}]))

        records = []
        for _ in range(3):
            records += await engine.trigger_event("test.event")

        stats = engine.get_flow("flow-1").stats
        assert stats.total_executions == 3
        assert stats.successful_executions == 2
        assert stats.failed_executions == 1
        assert stats.last_executed == records[-1].triggered_at
        expected = sum(record.duration_ms for record in records) / 3
        assert stats.average_duration_ms == pytest.approx(expected)

    async def test_engine_stats(self, engine, recorder, make_flow) -> None:
        """Engine stats summarise flows, actions and history."""
        engine.register_action("record", recorder([]))
        engine.register_flow(make_flow("a"))
        engine.register_flow(make_flow("b", enabled=False))
        engine.register_flow(make_flow("c", trigger={"type": "scheduled", "schedule": "daily"}))
        await engine.trigger_event("test.event")

        stats = engine.get_stats()

        assert stats.total_flows == 3
        assert stats.enabled_flows == 2
        assert stats.disabled_flows == 1
        assert stats.scheduled_flows == 1
        assert stats.total_executions == 1
        assert stats.registered_actions == 1
        assert stats.is_running is True

    async def test_listeners_receive_records(self, engine, recorder, make_flow) -> None:
        """Listeners see each record; a failing listener is ignored."""
        received = []

        def _broken(record):
            raise RuntimeError("listener down")

        async def _collect(record):
            received.append(record.flow_id)

        engine.add_listener(_broken)
        engine.add_listener(_collect)
        engine.register_action("record", recorder([]))
        engine.register_flow(make_flow())

        records = await engine.trigger_event("test.event")

        assert received == ["flow-1"]
        assert records[0].status == "success"


# ─── Direct execution ───────────────────────────────────────────────────────


class TestRunFlow:
    """Tests for running a single flow by id."""

    async def test_run_flow_by_id(self, engine, recorder, make_flow) -> None:
        """run_flow executes one flow with the given payload."""
        calls: list[dict] = []
        engine.register_action("record", recorder(calls))
        engine.register_flow(make_flow(actions=[{"type": "record", "params": {"v": "{{v}}"}}]))

        record = await engine.run_flow("flow-1", {"v": 3})

        assert record is not None
        assert record.triggered_by == "manual"
        assert calls == [{"v": 3}]

    async def test_run_unknown_flow(self, engine) -> None:
        """Unknown ids raise FlowNotFoundError."""
        with pytest.raises(FlowNotFoundError):
            await engine.run_flow("ghost")


@pytest.mark.parametrize(
    ("completed", "failed", "status"),
    [(3, 0, "success"), (0, 0, "success"), (2, 1, "partial"), (0, 2, "failed")],
)
def test_classify(completed: int, failed: int, status: str) -> None:
    """Execution status follows from the action counts."""
    assert classify(completed, failed) == status
