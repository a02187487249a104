"""
MangaMotion Main Entry Point

Run the MangaMotion API server.
"""

import argparse

from mangamotion.core.config import get_settings
from mangamotion.core.logging_config import LogLevel, create_session_log, get_logger, setup_logging


def main():
    """Main entry point for the MangaMotion service."""
    settings = get_settings()

    parser = argparse.ArgumentParser(
        description="MangaMotion - turn manga pages into animated clips"
    )

    parser.add_argument(
        "--host",
        type=str,
        default=settings.host,
        help=f"Interface to bind (default: {settings.host})"
    )

    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help=f"Port for the API server (default: {settings.port})"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Use the verbose log format with line numbers"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        default=settings.debug,
        help="Enable debug logging and auto-reload"
    )

    args = parser.parse_args()

    log_level = LogLevel.DEBUG if args.debug else LogLevel.from_name(settings.log_level)
    if settings.log_dir:
        log_file = create_session_log(
            settings.log_dir, prefix="mangamotion", level=log_level, verbose=args.verbose
        )
    else:
        log_file = None
        setup_logging(level=log_level, verbose=args.verbose)

    logger = get_logger("main")
    logger.info(f"Starting MangaMotion API on http://{args.host}:{args.port}")
    if log_file:
        logger.info(f"Writing session log to {log_file}")

    from mangamotion.api.main import start_server
    start_server(host=args.host, port=args.port, reload=args.debug)


if __name__ == "__main__":
    main()
