from __future__ import annotations

import asyncio
import json
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from ..errors import ActionHandlerError
from .base import ActionHandler, require_params

_ALLOWED_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE"}


def _build_call_webhook(allow_domains: list[str], timeout: float) -> ActionHandler:
    allow = {domain.strip().lower() for domain in allow_domains if domain.strip()}

    def _request(url: str, method: str, headers: dict[str, str], body: Any) -> dict[str, Any]:
        data = None
        if body is not None and method != "GET":
            data = json.dumps(body, default=str).encode("utf-8")
            headers.setdefault("Content-Type", "application/json")
        req = Request(url, data=data, method=method, headers={"User-Agent": "estateflow/0.1", **headers})
        try:
            with urlopen(req, timeout=timeout) as resp:  # noqa: S310
                text = resp.read(4000).decode("utf-8", errors="ignore")
                return {"success": True, "status": resp.status, "body": text}
        except HTTPError as exc:
            raise ActionHandlerError(f"Webhook returned HTTP {exc.code}") from exc
        except URLError as exc:
            raise ActionHandlerError(f"Webhook error: {exc.reason}") from exc

    async def _call_webhook(params: dict[str, Any], _context: dict[str, Any]) -> dict[str, Any]:
        require_params(params, "call_webhook", "url")
        url = str(params["url"])
        parsed = urlparse(url)
        host = (parsed.hostname or "").lower()
        if parsed.scheme not in ("http", "https") or not host:
            raise ActionHandlerError(f"Invalid webhook URL: {url}")
        if allow and host not in allow:
            raise ActionHandlerError(f"Webhook domain blocked: {host}")
        method = str(params.get("method") or "POST").upper()
        if method not in _ALLOWED_METHODS:
            raise ActionHandlerError(f"Unsupported webhook method: {method}")
        headers = {str(key): str(value) for key, value in (params.get("headers") or {}).items()}
        return await asyncio.to_thread(_request, url, method, headers, params.get("body"))

    return _call_webhook
