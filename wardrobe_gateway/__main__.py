from __future__ import annotations

import logging
import sys
import uvicorn

from .app import create_app
from .config_loader import load_config_from_env


def setup_logging() -> None:
    """
    Configure logging for service deployment.

    Logs are formatted with timestamp, logger name, level and message and
    written to stdout for the service manager to capture.
    """
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    # Set uvicorn logging to INFO to capture server events
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    # httpx request lines include signed URLs and the Gemini key
    logging.getLogger("httpx").setLevel(logging.WARNING)


def main() -> None:
    setup_logging()

    logger = logging.getLogger(__name__)
    logger.info("Starting Wardrobe AI Gateway server")

    config = load_config_from_env()
    logger.info(
        f"Server configuration: host={config.host}, port={config.port}, "
        f"bucket={config.media_bucket}, models={config.model_standard}/{config.model_pro}"
    )

    uvicorn.run(create_app(config), host=config.host, port=config.port)


if __name__ == "__main__":
    main()
