from __future__ import annotations

from fastapi import Request

from bizops.core.config import WebhookConfig, settings


def get_webhook_config(request: Request) -> WebhookConfig:
    """Return the config object built at startup (see bizops.main)."""
    config = getattr(request.app.state, "webhook_config", None)
    if config is None:
        config = WebhookConfig.from_settings(settings)
        request.app.state.webhook_config = config
    return config
