from __future__ import annotations

import logging

from bizops.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    resolved = (level or settings.LOG_LEVEL or "INFO").upper()
    logging.basicConfig(level=getattr(logging, resolved, logging.INFO), format=LOG_FORMAT)
    # Stripe's SDK logs request bodies at DEBUG; keep it quiet unless asked for.
    logging.getLogger("stripe").setLevel(max(logging.INFO, logging.getLogger().level))
