from __future__ import annotations

from typing import Any

from ..models import utc_now
from ..services import NotificationSink
from .base import ActionHandler, require_params


def _build_send_push_notification(sink: NotificationSink) -> ActionHandler:
    async def _send_push_notification(params: dict[str, Any], _context: dict[str, Any]) -> dict[str, Any]:
        require_params(params, "send_push_notification", "user_id", "title", "message")
        user_id = str(params["user_id"])
        notification_id = await sink.notify(
            "push",
            user_id,
            {"title": params["title"], "message": params["message"], "data": params.get("data") or {}},
        )
        return {
            "success": True,
            "notification_id": notification_id,
            "user_id": user_id,
            "title": params["title"],
            "message": params["message"],
        }

    return _send_push_notification


def _build_send_in_app_notification(sink: NotificationSink) -> ActionHandler:
    async def _send_in_app_notification(params: dict[str, Any], _context: dict[str, Any]) -> dict[str, Any]:
        require_params(params, "send_in_app_notification", "user_id", "message")
        user_id = str(params["user_id"])
        payload = {
            "title": params.get("title"),
            "message": params["message"],
            "type": params.get("type") or "info",
            "link": params.get("link"),
        }
        notification_id = await sink.notify("in_app", user_id, payload)
        return {"success": True, "notification_id": notification_id, "user_id": user_id, **payload}

    return _send_in_app_notification


def _build_send_agent_alert(sink: NotificationSink) -> ActionHandler:
    async def _send_agent_alert(params: dict[str, Any], _context: dict[str, Any]) -> dict[str, Any]:
        require_params(params, "send_agent_alert", "agent_id", "message")
        agent_id = str(params["agent_id"])
        payload = {
            "alert_type": params.get("alert_type") or "general",
            "message": params["message"],
            "priority": params.get("priority") or "medium",
        }
        notification_id = await sink.notify("agent_alert", agent_id, payload)
        return {
            "success": True,
            "notification_id": notification_id,
            "agent_id": agent_id,
            **payload,
            "timestamp": utc_now(),
        }

    return _send_agent_alert
