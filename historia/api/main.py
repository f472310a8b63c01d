"""
Historia API Server Entry Point.

Run with:
    python -m historia.api.main

Or with uvicorn directly:
    uvicorn historia.api.main:get_app --factory --reload --host 0.0.0.0 --port 8000
"""

import argparse
import logging
import os

import uvicorn

from ..config import SAVES_DIR_ENV, TIME_POLICY_ENV, default_saves_dir
from .server import create_app

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def main():
    """Main entry point for the Historia API server."""
    parser = argparse.ArgumentParser(description="Historia Turn Engine API Server")
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host to bind to (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)",
    )
    parser.add_argument(
        "--saves",
        default=str(default_saves_dir()),
        help="Path to saves directory",
    )
    parser.add_argument(
        "--time-policy",
        choices=["ignore", "allow"],
        default=None,
        help="Whether oracle time updates advance the calendar",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format=LOG_FORMAT,
    )
    logger = logging.getLogger("historia")

    # Hand settings to the app factory through the environment
    os.environ[SAVES_DIR_ENV] = args.saves
    if args.time_policy:
        os.environ[TIME_POLICY_ENV] = args.time_policy

    logger.info("Starting Historia API server on %s:%d", args.host, args.port)
    logger.info("Saves: %s", args.saves)

    # Factory mode builds the app after the environment is set
    uvicorn.run(
        "historia.api.main:get_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="debug" if args.debug else "info",
    )


def get_app():
    """Factory function for creating the FastAPI app."""
    return create_app(saves_dir=default_saves_dir())


if __name__ == "__main__":
    main()
