from __future__ import annotations
import logging
import uvicorn
from completion_gateway.infrastructure.config import get_settings

logger = logging.getLogger("completion_gateway")


def main() -> None:
    """Configure logging and serve the gateway with uvicorn."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    )
    if settings.debug:
        logger.warning("DEBUG is on: unexpected error text will be returned to callers")
    logger.info("Completion gateway listening on %s:%d", settings.host, settings.port)

    uvicorn.run(
        "completion_gateway.interface.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
