from __future__ import annotations

import argparse
import logging
from datetime import timezone
from typing import Mapping, Optional

from dotenv import load_dotenv
from sqlalchemy.engine import make_url

from .config import SyncSettings, load_camera_sources
from .db import check_connection, create_store_engine, init_db
from .errors import ConfigurationError, StoreUnavailable
from .logging import configure_logging
from .scheduler import run_forever
from .syncer import build_coordinator

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Plate Sync - camera plate detections -> SQL")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--print-config", action="store_true", help="Print resolved configuration and exit.")
    mode.add_argument("--init-db", action="store_true", help="Create missing camera tables and exit.")
    mode.add_argument("--once", action="store_true", help="Run a single sync cycle for all cameras and exit.")
    mode.add_argument("--http-serve", action="store_true", help="Sync in the background and serve /health, /status.")
    return parser


def run(
    argv: list[str] | None = None,
    cfg: SyncSettings | None = None,
    environ: Optional[Mapping[str, str]] = None,
) -> int:
    """
    Sync service entrypoint. Returns the process exit code.

    0: normal end (including Ctrl+C / SIGTERM after a graceful stop)
    1: startup failure (no cameras, database unreachable, unexpected crash)
    """
    try:
        args = build_parser().parse_args(argv)

        if environ is None:
            # Camera vars are scanned from the process env; pull .env into it first.
            load_dotenv(override=False)

        # Load settings from environment / .env
        cfg = cfg or SyncSettings()

        # Setup logging using configured level
        configure_logging(cfg.log_level, cfg.log_file)

        logger.info("Plate Sync starting")
        sources = load_camera_sources(environ)

        if args.print_config:
            dumped = cfg.model_dump()
            dumped["database_url"] = make_url(cfg.database_url).render_as_string(hide_password=True)
            print(dumped)
            for source in sources:
                print(source.model_dump())
            return 0

        if not sources:
            logger.error("No cameras configured! Set CAMERA1_URL (CAMERA2_URL, ...) in the environment or .env")
            return 1

        logger.info("Found %d camera(s) configured:", len(sources))
        for source in sources:
            logger.info("   - %s: %s -> %s", source.name, source.base_url, source.table_name)

        engine = create_store_engine(cfg.database_url)
        try:
            try:
                check_connection(engine)
            except StoreUnavailable as e:
                logger.error("Error connecting to the database: %s", e.message)
                return 1
            logger.info("Successfully connected to the database")

            if args.init_db:
                init_db(engine, [s.table_name for s in sources])
                return 0

            coordinator = build_coordinator(sources, cfg, engine)

            if args.once:
                coordinator.run_once()
                return 0

            if args.http_serve:
                import uvicorn
                from apscheduler.schedulers.background import BackgroundScheduler

                from .status_api import create_app

                app = create_app(cfg, coordinator, scheduler=BackgroundScheduler(timezone=timezone.utc))

                logger.info("Starting status API at http://%s:%s", cfg.status_http_host, cfg.status_http_port)
                uvicorn.run(
                    app,
                    host=cfg.status_http_host,
                    port=cfg.status_http_port,
                    log_level=cfg.log_level.lower(),
                )
                return 0

            run_forever(coordinator, cfg.sync_interval_minutes)
            logger.info("Sync stopped")
            return 0
        finally:
            engine.dispose()

    except ConfigurationError as e:
        logger.error("Configuration error: %s", e.message)
        return 1

    except Exception:
        # Log unexpected exceptions so the service is diagnosable.
        logger.exception("Plate Sync crashed due to an unexpected error")
        if cfg is not None and cfg.log_level.upper() == "DEBUG":
            raise
        return 1


def main() -> None:
    raise SystemExit(run())


if __name__ == "__main__":
    main()
