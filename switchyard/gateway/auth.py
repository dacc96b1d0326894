"""
Inbound API key check.

When SERVICE_API_KEY is configured, every request must present it either
as ``Authorization: Bearer <key>`` or as ``x-api-key``.
"""

import logging
import secrets

from fastapi import Depends, HTTPException, Request

from switchyard.config import Settings, get_settings
from switchyard.schemas.chat import ErrorCodes, ErrorTypes

logger = logging.getLogger(__name__)


def extract_inbound_api_key(request: Request) -> str:
    """Inbound key from the bearer token, else the x-api-key header."""
    authorization = request.headers.get("authorization", "")
    if authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    return request.headers.get("x-api-key", "").strip()


async def require_api_key(
    request: Request, settings: Settings = Depends(get_settings)
) -> None:
    """
    FastAPI dependency enforcing the service API key.

    Raises:
        HTTPException: 401 when a key is configured and the request's key
            is missing or does not match
    """
    if settings.service_api_key is None:
        return
    expected = settings.service_api_key.get_secret_value()
    if not expected:
        return

    presented = extract_inbound_api_key(request)
    if presented and secrets.compare_digest(presented.encode(), expected.encode()):
        return

    logger.warning(f"Rejected request to {request.url.path}: missing or invalid API key")
    raise HTTPException(
        status_code=401,
        detail={
            "message": "Unauthorized. Missing or invalid API key.",
            "type": ErrorTypes.AUTHENTICATION,
            "code": ErrorCodes.INVALID_API_KEY,
        },
    )
