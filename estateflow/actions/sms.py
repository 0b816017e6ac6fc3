from __future__ import annotations

from typing import Any

from ..errors import ActionHandlerError
from ..services import SmsGateway
from ..templating import resolve
from .base import ActionHandler, require_params


def _build_send_sms(gateway: SmsGateway) -> ActionHandler:
    async def _send_sms(params: dict[str, Any], _context: dict[str, Any]) -> dict[str, Any]:
        require_params(params, "send_sms", "to", "message")
        to = str(params["to"])
        message_id = await gateway.send(to, str(params["message"]))
        return {"success": True, "message_id": message_id, "to": to}

    return _send_sms


def _build_send_sms_notification(gateway: SmsGateway) -> ActionHandler:
    async def _send_sms_notification(params: dict[str, Any], _context: dict[str, Any]) -> dict[str, Any]:
        require_params(params, "send_sms_notification", "to")
        # the template keeps its own placeholders, filled from variables below
        if not isinstance(params.get("template"), str) or not params["template"].strip():
            raise ActionHandlerError('send_sms_notification requires "to", "template" parameters')
        variables = params.get("variables") or {}
        if not isinstance(variables, dict):
            raise ActionHandlerError("send_sms_notification.variables must be a dictionary")
        message = str(resolve(str(params["template"]), variables))
        to = str(params["to"])
        message_id = await gateway.send(to, message)
        return {"success": True, "message_id": message_id, "to": to, "message": message}

    return _send_sms_notification
