from __future__ import annotations

import logging
from secrets import compare_digest

from fastapi import Request

from anisync.api.errors import ApiException
from anisync.settings import settings

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization") or ""
    if not header.lower().startswith(BEARER_PREFIX):
        return None
    token = header[len(BEARER_PREFIX):].strip()
    return token or None


async def require_control_token(request: Request) -> None:
    expected = (settings.control_token or "").strip()
    if not expected:
        logger.error(
            "api.control_token_missing",
            extra={"event": "api.control_token_missing", "path": request.url.path},
        )
        raise ApiException(
            status_code=500,
            code="server_misconfigured",
            message="Control token is not configured.",
        )
    provided = _bearer_token(request)
    if provided is None:
        raise ApiException(
            status_code=401,
            code="auth_required",
            message="Bearer token required.",
        )
    if not compare_digest(provided, expected):
        logger.warning(
            "api.control_token_invalid",
            extra={"event": "api.control_token_invalid", "path": request.url.path},
        )
        raise ApiException(
            status_code=403,
            code="forbidden",
            message="Invalid control token.",
        )
