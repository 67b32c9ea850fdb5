from __future__ import annotations

import logging
import signal
import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from apscheduler.job import Job
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .syncer import SyncCoordinator

logger = logging.getLogger(__name__)

SYNC_JOB_ID = "plate_sync"


def add_sync_job(
    scheduler: BaseScheduler,
    coordinator: SyncCoordinator,
    interval_minutes: int,
    *,
    run_now: bool = False,
) -> Job:
    """
    Register coordinator.run_once() every `interval_minutes`.

    max_instances=1 + coalesce: a late tick is merged, never stacked. The
    coordinator's own lock still covers callers outside the scheduler.
    """
    kwargs = {}
    if run_now:
        kwargs["next_run_time"] = datetime.now(timezone.utc)

    return scheduler.add_job(
        coordinator.run_once,
        trigger=IntervalTrigger(minutes=interval_minutes),
        id=SYNC_JOB_ID,
        name="Sync all cameras",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
        **kwargs,
    )


def install_shutdown_handlers(on_stop: Callable[[], None]) -> None:
    """Route SIGINT/SIGTERM to `on_stop`."""

    def _handler(signum, frame) -> None:
        logger.info("Received %s, stopping system...", signal.Signals(signum).name)
        on_stop()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def run_forever(
    coordinator: SyncCoordinator,
    interval_minutes: int,
    *,
    scheduler: Optional[BaseScheduler] = None,
) -> None:
    """
    Initial sync right away, then every `interval_minutes` until SIGINT/SIGTERM.

    On a signal the scheduler stops taking new ticks and waits for an
    in-flight cycle to finish before returning.
    """
    scheduler = scheduler or BlockingScheduler(timezone=timezone.utc)
    stop_requested = threading.Event()

    def stop() -> None:
        stop_requested.set()
        if scheduler.running:
            scheduler.shutdown(wait=True)

    install_shutdown_handlers(stop)

    coordinator.run_once()
    if stop_requested.is_set():
        return

    add_sync_job(scheduler, coordinator, interval_minutes)
    logger.info("Scheduling sync every %d minutes for all cameras", interval_minutes)
    # A signal between the check above and here finds no running scheduler to stop.
    if stop_requested.is_set():
        return
    logger.info("System is running. Press Ctrl+C to stop")
    scheduler.start()
