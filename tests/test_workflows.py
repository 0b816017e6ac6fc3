"""Tests for converting workflow documents into flow definitions."""

import pytest

from estateflow.errors import FlowValidationError
from estateflow.workflows import WorkflowDocument


def _document(**overrides) -> WorkflowDocument:
    data = {
        "id": "wf1",
        "name": "Late rent",
        "status": "active",
        "trigger": {"type": "event", "event": "payment_late"},
        "actions": [{"type": "send_sms", "sms": {"to": "{{tenant.phone}}", "message": "Rent is late"}}],
    }
    data.update(overrides)
    return WorkflowDocument.model_validate(data)


class TestTriggerConversion:
    """Tests for mapping workflow triggers onto flow triggers."""

    def test_event_trigger(self) -> None:
        """Event triggers keep their event name."""
        flow = _document().to_flow_definition()
        assert flow.id == "workflow-wf1"
        assert flow.trigger.event == "payment_late"
        assert flow.enabled is True

    @pytest.mark.parametrize(
        ("schedule", "cron"),
        [
            ({"frequency": "daily", "time": "08:15"}, "15 8 * * *"),
            ({"frequency": "weekly", "time": "09:00", "dayOfWeek": 1}, "0 9 * * 1"),
            ({"frequency": "monthly", "time": "07:30", "dayOfMonth": 5}, "30 7 5 * *"),
            ({"frequency": "yearly"}, "0 0 1 1 *"),
        ],
    )
    def test_schedule_trigger(self, schedule: dict, cron: str) -> None:
        """Schedule specs become cron expressions."""
        flow = _document(trigger={"type": "schedule", "schedule": schedule}).to_flow_definition()
        assert flow.trigger.is_scheduled
        assert flow.trigger.cron == cron

    def test_invalid_schedule_time(self) -> None:
        """A malformed time is rejected."""
        document = _document(trigger={"type": "schedule", "schedule": {"time": "25:00"}})
        with pytest.raises(FlowValidationError):
            document.to_flow_definition()

    def test_status_change_trigger(self) -> None:
        """Status changes become field-change events with old/new conditions."""
        flow = _document(
            trigger={
                "type": "status_change",
                "statusChange": {"model": "Property", "field": "status", "from": "occupied", "to": "available"},
            }
        ).to_flow_definition()

        assert flow.trigger.event == "property.status.changed"
        assert [(c.field, c.value) for c in flow.conditions] == [
            ("old_value", "occupied"),
            ("new_value", "available"),
        ]

    def test_manual_trigger(self) -> None:
        """Manual workflows listen on a per-workflow event."""
        flow = _document(trigger={"type": "manual"}).to_flow_definition()
        assert flow.trigger.event == "workflow.wf1.manual"

    def test_date_based_rejected(self) -> None:
        """Date-based triggers are not supported."""
        document = _document(trigger={"type": "date_based", "dateBased": {"field": "lease_end"}})
        with pytest.raises(FlowValidationError, match="date_based"):
            document.to_flow_definition()

    def test_inactive_workflow_is_disabled(self) -> None:
        """Only active workflows produce enabled flows."""
        assert _document(status="draft").to_flow_definition().enabled is False


class TestActionConversion:
    """Tests for mapping workflow actions onto built-in actions."""

    def test_actions_sorted_by_order(self) -> None:
        """Actions run in ascending order, not list order."""
        flow = _document(
            actions=[
                {"type": "send_sms", "order": 2, "sms": {"to": "1", "message": "second"}},
                {"type": "send_email", "order": 1, "email": {"to": "a@b.com", "subject": "first"}},
            ]
        ).to_flow_definition()
        assert [action.type for action in flow.actions] == ["send_email", "send_sms"]

    def test_delay_carried_over(self) -> None:
        """Workflow delays map to delay_minutes."""
        flow = _document(
            actions=[{"type": "send_sms", "delay": 15, "sms": {"to": "1", "message": "later"}}]
        ).to_flow_definition()
        assert flow.actions[0].delay_minutes == 15

    def test_notify_user(self) -> None:
        """notify_user maps to an in-app notification."""
        flow = _document(
            actions=[{"type": "notify_user", "notification": {"recipient": "u1", "message": "hi", "type": "warning"}}]
        ).to_flow_definition()
        action = flow.actions[0]
        assert action.type == "send_in_app_notification"
        assert action.params == {"user_id": "u1", "message": "hi", "type": "warning"}

    def test_update_status(self) -> None:
        """update_status maps to update_record on the status field."""
        flow = _document(
            actions=[{"type": "update_status", "update": {"model": "Lease", "value": "terminated"}}]
        ).to_flow_definition()
        action = flow.actions[0]
        assert action.type == "update_record"
        assert action.params == {"model": "lease", "id": "{{record_id}}", "field": "status", "value": "terminated"}

    def test_create_task(self) -> None:
        """Task blocks map onto create_task params."""
        flow = _document(
            actions=[{"type": "create_task", "task": {"title": "Inspect", "assignTo": "u2", "priority": "high"}}]
        ).to_flow_definition()
        assert flow.actions[0].params == {"title": "Inspect", "assigned_to": "u2", "priority": "high"}

    def test_missing_block_rejected(self) -> None:
        """An action without its config block is rejected."""
        with pytest.raises(FlowValidationError, match="email"):
            _document(actions=[{"type": "send_email"}]).to_flow_definition()

    def test_generate_document_rejected(self) -> None:
        """Document generation is not supported."""
        document = _document(actions=[{"type": "generate_document", "document": {"template": "lease"}}])
        with pytest.raises(FlowValidationError, match="generate_document"):
            document.to_flow_definition()


async def test_converted_workflow_runs_on_engine(builtin_engine, services) -> None:
    """A converted workflow executes like any other flow."""
    builtin_engine.register_flow(_document().to_flow_definition())

    [record] = await builtin_engine.trigger_event("payment_late", {"tenant": {"phone": "+254711"}})

    assert record.status == "success"
    assert services.sms.sent[0]["to"] == "+254711"
    assert services.sms.sent[0]["message"] == "Rent is late"
