from __future__ import annotations

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.base import BaseScheduler
from fastapi import FastAPI
from pydantic import BaseModel

from .config import SyncSettings
from .scheduler import add_sync_job
from .syncer import SyncCoordinator, SyncReport


class HealthOut(BaseModel):
    status: str
    time_utc: datetime

    model_config = {"json_schema_extra": {"examples": [{"status": "ok", "time_utc": "2026-02-18T12:00:00Z"}]}}


class StatusOut(BaseModel):
    time_utc: datetime
    uptime_seconds: int
    interval_minutes: int
    cycle_running: bool
    sources: list[SyncReport]

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "time_utc": "2026-02-18T12:00:00Z",
                    "uptime_seconds": 42,
                    "interval_minutes": 2,
                    "cycle_running": False,
                    "sources": [
                        {
                            "source": "Camera1",
                            "state": "done",
                            "started_at": "2026-02-18T11:58:00Z",
                            "finished_at": "2026-02-18T11:58:01Z",
                            "watermark": "2026-02-18T11:50:12Z",
                            "parsed": 3,
                            "skipped": 0,
                            "inserted": 3,
                            "error": None,
                        }
                    ],
                }
            ]
        }
    }


def create_app(
    cfg: SyncSettings,
    coordinator: SyncCoordinator,
    *,
    scheduler: Optional[BaseScheduler] = None,
) -> FastAPI:
    """
    Create the status HTTP API.

    If a (background) scheduler is given, the app owns it: sync starts with
    the app and is stopped, after any in-flight cycle, when the app shuts down.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if scheduler is not None:
            add_sync_job(scheduler, coordinator, cfg.sync_interval_minutes, run_now=True)
            scheduler.start()
        yield
        if scheduler is not None and scheduler.running:
            scheduler.shutdown(wait=True)

    app = FastAPI(
        title="Plate Sync - Status API",
        version="0.1.0",
        description="Liveness and last-cycle results for the camera plate sync.",
        lifespan=lifespan,
    )

    # Store start time for uptime calculation
    started_monotonic = time.monotonic()

    @app.get("/")
    def root():
        return {"status": "plate sync running"}

    @app.get("/health", response_model=HealthOut, tags=["health"])
    def health() -> HealthOut:
        """Liveness check: returns OK if the process is running."""
        return HealthOut(status="ok", time_utc=datetime.now(timezone.utc))

    @app.get("/status", response_model=StatusOut, tags=["health"])
    def status() -> StatusOut:
        """Last cycle result per camera, in configured order."""
        reports = coordinator.last_reports
        ordered = [reports[s.name] for s in coordinator.syncers if s.name in reports]
        return StatusOut(
            time_utc=datetime.now(timezone.utc),
            uptime_seconds=int(time.monotonic() - started_monotonic),
            interval_minutes=cfg.sync_interval_minutes,
            cycle_running=coordinator.running,
            sources=ordered,
        )

    return app
