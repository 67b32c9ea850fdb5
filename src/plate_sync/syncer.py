from __future__ import annotations

import logging
import threading
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional, Sequence

from pydantic import BaseModel
from sqlalchemy.engine import Engine

from .config import CameraSource, SyncSettings
from .device_client import DeviceClient
from .errors import DeviceError, MalformedResponse
from .event_store import EventStore
from .plate_parser import EventParser
from .timecodec import TimeCodec, utc_now

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    RESOLVING_WATERMARK = "resolving_watermark"
    FETCHING = "fetching"
    PARSING = "parsing"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


class SyncReport(BaseModel):
    """Outcome of one cycle for one camera."""

    source: str
    state: SyncState
    started_at: datetime
    finished_at: Optional[datetime] = None
    watermark: Optional[datetime] = None
    parsed: int = 0
    skipped: int = 0
    inserted: int = 0
    error: Optional[str] = None


class SourceSyncer:
    """
    Runs one sync cycle for a single camera:
    watermark -> fetch -> parse -> dedup/insert.

    Holds no state between cycles; everything durable lives in the table.
    """

    def __init__(
        self,
        source: CameraSource,
        *,
        client: DeviceClient,
        parser: EventParser,
        store: EventStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.source = source
        self.client = client
        self.parser = parser
        self.store = store
        self._clock = clock

    @property
    def name(self) -> str:
        return self.source.name

    def sync(self) -> SyncReport:
        """
        Never raises for device, parse or store problems: those end as a FAILED
        report (zero events) or as per-event log lines.
        """
        report = SyncReport(source=self.name, state=SyncState.RESOLVING_WATERMARK, started_at=self._clock())
        logger.info("=" * 50)
        logger.info("[%s] Starting sync -> %s", self.name, self.source.table_name)

        report.watermark = self.store.resolve_watermark()
        logger.info("[%s] Last sync time: %s", self.name, report.watermark.isoformat())

        report.state = SyncState.FETCHING
        try:
            body = self.client.fetch_events_since(report.watermark)
        except DeviceError as e:
            return self._fail(report, f"Error reading from camera: {e.message}")

        report.state = SyncState.PARSING
        try:
            parsed = self.parser.parse(body)
        except MalformedResponse as e:
            return self._fail(report, f"Unreadable camera response: {e.message}")

        report.parsed = len(parsed.events)
        report.skipped = parsed.skipped
        logger.info("[%s] Found %d new vehicles", self.name, report.parsed)

        report.state = SyncState.PERSISTING
        if parsed.events:
            report.inserted = self.store.append_batch(parsed.events)
        else:
            logger.info("[%s] No new vehicles found", self.name)

        report.state = SyncState.DONE
        report.finished_at = self._clock()
        logger.info("[%s] Sync completed: inserted=%d skipped=%d", self.name, report.inserted, report.skipped)
        return report

    def _fail(self, report: SyncReport, message: str) -> SyncReport:
        logger.error("[%s] %s (during %s)", self.name, message, report.state.value)
        report.state = SyncState.FAILED
        report.error = message
        report.finished_at = self._clock()
        return report


class SyncCoordinator:
    """
    Runs every camera's syncer one after the other, once per run_once() call.

    Sequential on purpose: few cameras, minutes between ticks, one shared
    store connection pool. If a run is still going when the next one is
    asked for, the new one is skipped (and logged), not queued.
    """

    def __init__(self, syncers: Sequence[SourceSyncer]) -> None:
        self.syncers = list(syncers)
        self._lock = threading.Lock()
        self._last_reports: dict[str, SyncReport] = {}

    @property
    def running(self) -> bool:
        return self._lock.locked()

    @property
    def last_reports(self) -> dict[str, SyncReport]:
        """Most recent report per camera (status display only, never a cursor)."""
        return dict(self._last_reports)

    def run_once(self) -> Optional[list[SyncReport]]:
        """
        One pass over all cameras. Returns None if another pass was still running.
        """
        if not self._lock.acquire(blocking=False):
            logger.warning("Previous sync cycle still running; skipping this tick")
            return None

        try:
            reports: list[SyncReport] = []
            for syncer in self.syncers:
                try:
                    report = syncer.sync()
                except Exception:
                    # Keep going: one camera must never stop the others.
                    logger.exception("[%s] Sync crashed due to an unexpected error", syncer.name)
                    report = SyncReport(
                        source=syncer.name,
                        state=SyncState.FAILED,
                        started_at=utc_now(),
                        finished_at=utc_now(),
                        error="unexpected error",
                    )
                self._last_reports[syncer.name] = report
                reports.append(report)

            total = sum(r.inserted for r in reports)
            failed = [r.source for r in reports if r.state is SyncState.FAILED]
            logger.info(
                "Sync cycle finished: cameras=%d inserted=%d failed=%s",
                len(reports), total, ",".join(failed) or "none",
            )
            return reports
        finally:
            self._lock.release()


def build_syncer(
    source: CameraSource,
    cfg: SyncSettings,
    engine: Engine,
    *,
    codec: Optional[TimeCodec] = None,
    session: Optional[Any] = None,
) -> SourceSyncer:
    """Wire one camera's client, parser and store together."""
    codec = codec or TimeCodec(cfg.device_timezone)
    return SourceSyncer(
        source,
        client=DeviceClient(
            source,
            codec,
            session=session,
            timeout_s=cfg.device_timeout_sec,
            verify_tls=cfg.device_verify_tls,
        ),
        parser=EventParser(codec, source=source.name),
        store=EventStore(engine, source.table_name, codec, source=source.name),
    )


def build_coordinator(
    sources: Sequence[CameraSource],
    cfg: SyncSettings,
    engine: Engine,
    *,
    session: Optional[Any] = None,
) -> SyncCoordinator:
    codec = TimeCodec(cfg.device_timezone)
    return SyncCoordinator(
        [build_syncer(s, cfg, engine, codec=codec, session=session) for s in sources]
    )
