"""
Run script for starting the Call Stream Manager server.

This script configures and starts the FastAPI server that accepts caller audio
streams, transcribes them and streams AI replies back to the call.

Usage:
    python run.py [--port PORT] [--host HOST] [--log-level LEVEL]
"""

import argparse
import logging
import os

import uvicorn

from callstream.config.constants import LOGGER_NAME
from callstream.config.logging_config import configure_logging

logger = logging.getLogger(LOGGER_NAME)


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Start the Call Stream Manager server"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", "8000")),
        help="Port to run the server on (default: 8000 or PORT env var)",
    )
    parser.add_argument(
        "--host",
        default=os.getenv("HOST", "0.0.0.0"),
        help="Host to bind the server to (default: 0.0.0.0 or HOST env var)",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO or LOG_LEVEL env var)",
    )
    return parser.parse_args()


def main():
    """Main entry point for starting the server."""
    args = parse_args()
    # The app configures logging again on import; keep it at the requested level
    os.environ["LOG_LEVEL"] = args.log_level
    configure_logging(args.log_level)

    # Providers fail per call without keys; warn up front instead of refusing to start
    for key in ("OPENAI_API_KEY", "GOOGLE_API_KEY"):
        if not os.getenv(key):
            logger.warning(f"{key} environment variable not set")

    logger.info(f"Starting server on http://{args.host}:{args.port}")
    logger.info(f"Log level: {args.log_level}")

    uvicorn.run(
        "callstream.main:app",
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
        http="h11",
        # We have our own logging
        access_log=False,
        reload=os.getenv("ENV", "production").lower() == "development",
    )


if __name__ == "__main__":
    main()
