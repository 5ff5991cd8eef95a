"""Entry point: ``python -m sei_analytics``."""

from __future__ import annotations

import logging

import uvicorn

from sei_analytics.config import get_settings
from sei_analytics.server.app import create_app

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.get_logging_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting Sei analytics server with settings: %s", settings.redacted_summary())

    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        ws="websockets",
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
