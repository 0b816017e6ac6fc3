from __future__ import annotations

from ..services import ActionServices
from .base import ActionRegistry, ActionSpec
from .data import (
    _build_add_contact_interaction,
    _build_add_contact_tag,
    _build_create_saved_search,
    _build_increment_field,
    _build_link_contact_to_property,
    _build_move_transaction_stage,
    _build_update_contact_status,
    _build_update_record,
)
from .email import _build_send_email, _build_send_template_email, send_email_sequence
from .notifications import (
    _build_send_agent_alert,
    _build_send_in_app_notification,
    _build_send_push_notification,
)
from .sms import _build_send_sms, _build_send_sms_notification
from .tasks import _build_create_milestone, _build_create_task, _build_schedule_follow_up
from .webhook import _build_call_webhook


def builtin_action_specs(
    services: ActionServices,
    *,
    webhook_domains: list[str] | None = None,
    webhook_timeout: float = 10.0,
) -> list[ActionSpec]:
    records = services.records
    return [
        ActionSpec("send_email", "Sends an email to one recipient.", _build_send_email(services.mailer)),
        ActionSpec("send_email_sequence", "Schedules a named drip email sequence.", send_email_sequence),
        ActionSpec(
            "send_template_email",
            "Sends a provider-side template email.",
            _build_send_template_email(services.mailer),
        ),
        ActionSpec("send_sms", "Sends a text message.", _build_send_sms(services.sms)),
        ActionSpec(
            "send_sms_notification",
            "Fills an SMS template from variables and sends it.",
            _build_send_sms_notification(services.sms),
        ),
        ActionSpec(
            "send_push_notification",
            "Pushes a notification to a user's devices.",
            _build_send_push_notification(services.notifications),
        ),
        ActionSpec(
            "send_in_app_notification",
            "Creates an in-app notification for a user.",
            _build_send_in_app_notification(services.notifications),
        ),
        ActionSpec(
            "send_agent_alert",
            "Alerts the agent assigned to a contact or deal.",
            _build_send_agent_alert(services.notifications),
        ),
        ActionSpec("create_task", "Creates a task, optionally on a transaction.", _build_create_task(records)),
        ActionSpec("create_milestone", "Adds a milestone to a transaction.", _build_create_milestone(records)),
        ActionSpec(
            "schedule_follow_up",
            "Sets the next follow-up date on a contact.",
            _build_schedule_follow_up(records),
        ),
        ActionSpec("add_contact_tag", "Tags a contact.", _build_add_contact_tag(records)),
        ActionSpec(
            "update_contact_status",
            "Changes a contact's pipeline status.",
            _build_update_contact_status(records),
        ),
        ActionSpec(
            "link_contact_to_property",
            "Links a contact and a property in both directions.",
            _build_link_contact_to_property(records),
        ),
        ActionSpec(
            "add_contact_interaction",
            "Logs an interaction against a contact.",
            _build_add_contact_interaction(records),
        ),
        ActionSpec(
            "move_transaction_stage",
            "Moves a transaction to another pipeline stage.",
            _build_move_transaction_stage(records),
        ),
        ActionSpec(
            "create_saved_search",
            "Saves a property search on a buyer profile.",
            _build_create_saved_search(records),
        ),
        ActionSpec("update_record", "Sets fields on any stored record.", _build_update_record(records)),
        ActionSpec("increment_field", "Increments a numeric field on a record.", _build_increment_field(records)),
        ActionSpec(
            "call_webhook",
            "Calls an HTTP endpoint with a JSON body.",
            _build_call_webhook(webhook_domains or [], webhook_timeout),
        ),
    ]


def register_builtin_actions(
    registry: ActionRegistry,
    services: ActionServices,
    *,
    webhook_domains: list[str] | None = None,
    webhook_timeout: float = 10.0,
) -> None:
    for spec in builtin_action_specs(
        services, webhook_domains=webhook_domains, webhook_timeout=webhook_timeout
    ):
        registry.register(spec)
