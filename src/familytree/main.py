"""Main application entry point for familytree."""

from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from familytree.api import create_api_router, register_error_handlers
from familytree.config import Config, get_config
from familytree.database import Database, get_database
from familytree.version import VERSION

_file_sink_id: int | None = None


def setup_logging(config: Config) -> None:
    """Add the rotating file sink (once per process)."""
    global _file_sink_id
    if _file_sink_id is not None:
        return

    log_path = Path(config.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    # Add file sink for all logs (rotation at 10 MB, keep 5 old files)
    _file_sink_id = logger.add(
        log_path,
        rotation="10 MB",
        retention=5,
        level=config.log_level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        backtrace=True,
        diagnose=True,
    )
    logger.info(f"Logging to file: {log_path}")


def create_app(db: Database | None = None, config: Config | None = None) -> FastAPI:
    """Build the familytree API application.

    Args:
        db: Database to serve (defaults to ``Config.database_path``)
        config: Settings (defaults to the global configuration)

    Returns:
        Configured FastAPI application
    """
    config = config or get_config()
    db = db or get_database()

    app = FastAPI(title="familytree", version=VERSION)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(create_api_router(db, config))

    logger.info(f"REST API configured for database {db.db_path}")
    return app


def main() -> None:
    """Run the API server."""
    config = get_config()
    setup_logging(config)
    logger.info("Starting familytree server")

    app = create_app(config=config)
    uvicorn.run(app, host=config.api_host, port=config.api_port, log_level=config.log_level.lower())


if __name__ in {"__main__", "__mp_main__"}:
    main()
