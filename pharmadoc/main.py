"""Application entry point for the PharmaDoc API server."""

import uvicorn

from pharmadoc.api.app import app
from pharmadoc.utils.config import load_config
from pharmadoc.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def main() -> None:
    """Start the FastAPI application server."""
    config = load_config()
    setup_logging(config.log_level)
    logger.info("Starting PharmaDoc API on %s:%d", config.host, config.port)
    uvicorn.run(app, host=config.host, port=config.port)


if __name__ == "__main__":
    main()
