from __future__ import annotations

import logging
import secrets

from fastapi import Depends, Header, HTTPException, Request, status

from bizops.core.config import WebhookConfig
from bizops.dependencies.config import get_webhook_config

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def require_admin_api_key(
    request: Request,
    authorization: str | None = Header(default=None),
    config: WebhookConfig = Depends(get_webhook_config),
) -> None:
    """
    Shared-secret bearer auth for admin endpoints, compared in constant time.
    An unconfigured key rejects every caller.
    """
    if not config.admin_api_key:
        logger.error("ADMIN_API_KEY not configured; rejecting admin request")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    if not authorization or not authorization.startswith(BEARER_PREFIX):
        logger.warning("Missing or invalid Authorization header on %s", request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    provided = authorization[len(BEARER_PREFIX):]
    if not secrets.compare_digest(provided.encode("utf-8"), config.admin_api_key.encode("utf-8")):
        client_host = request.client.host if request.client else "unknown"
        logger.warning("Unauthorized admin request from %s", client_host)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
