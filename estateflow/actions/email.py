from __future__ import annotations

from typing import Any

from ..logger import logger
from ..services import Mailer
from .base import ActionHandler, require_params


def _build_send_email(mailer: Mailer) -> ActionHandler:
    async def _send_email(params: dict[str, Any], _context: dict[str, Any]) -> dict[str, Any]:
        require_params(params, "send_email", "to", "subject")
        to = str(params["to"])
        message_id = await mailer.send(
            to,
            str(params["subject"]),
            body=params.get("body"),
            template=params.get("template"),
            data=params.get("template_data") or {},
            sender=params.get("from"),
        )
        return {"success": True, "message_id": message_id, "to": to}

    return _send_email


def _build_send_template_email(mailer: Mailer) -> ActionHandler:
    async def _send_template_email(params: dict[str, Any], _context: dict[str, Any]) -> dict[str, Any]:
        require_params(params, "send_template_email", "to", "template_id")
        to = str(params["to"])
        template_id = str(params["template_id"])
        message_id = await mailer.send(
            to,
            str(params.get("subject") or template_id),
            template=template_id,
            data=params.get("variables") or {},
        )
        return {"success": True, "message_id": message_id, "template_id": template_id, "to": to}

    return _send_template_email


async def send_email_sequence(params: dict[str, Any], _context: dict[str, Any]) -> dict[str, Any]:
    require_params(params, "send_email_sequence", "to", "sequence_name")
    start_delay = params.get("start_delay", 0)
    logger.info(f"Email sequence {params['sequence_name']!r} scheduled for {params['to']}")
    return {
        "success": True,
        "sequence_name": params["sequence_name"],
        "to": params["to"],
        "start_delay": start_delay,
        "message": "Email sequence scheduled",
    }
