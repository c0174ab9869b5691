"""Main entry point for the progress engine API server"""
import logging
import uvicorn

from progress_engine.config import validate_config, API_HOST, API_PORT, LOG_LEVEL
from progress_engine.api.server import create_api_application

logger = logging.getLogger(__name__)


def main() -> None:
    """Validate configuration and serve the API"""
    logger.info("Validating configuration...")
    validate_config()

    app = create_api_application()
    logger.info(f"Starting API server on {API_HOST}:{API_PORT}")
    uvicorn.run(app, host=API_HOST, port=API_PORT, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
