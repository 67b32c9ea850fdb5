from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .detection_event import DetectionEvent
from .errors import StoreUnavailable
from .models import detection_table
from .timecodec import TimeCodec, utc_now

logger = logging.getLogger(__name__)


class EventStore:
    """
    One camera's table: where its sync progress comes from and where its events go.

    There is no stored cursor. The watermark is re-derived from MAX(CaptureTime)
    every cycle, so it can never drift from what is actually in the table.
    """

    def __init__(
        self,
        engine: Engine,
        table_name: str,
        codec: TimeCodec,
        *,
        source: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.engine = engine
        self.table = detection_table(table_name)
        self.codec = codec
        self.source = source or table_name
        self._clock = clock

    def resolve_watermark(self) -> datetime:
        """
        Latest stored CaptureTime, or midnight today (device zone) when the
        table is empty or can't be read. A flapping store means re-fetching
        today's data, not a stalled sync.
        """
        try:
            with self.engine.connect() as conn:
                last = conn.execute(select(func.max(self.table.c.CaptureTime))).scalar()
        except SQLAlchemyError as e:
            fallback = self.codec.start_of_day(self._clock())
            logger.error(
                "[%s] Error reading last sync time from %s: %s; starting from %s",
                self.source, self.table.name, e, fallback.isoformat(),
            )
            return fallback

        if last is None:
            return self.codec.start_of_day(self._clock())
        return self.codec.from_store(last)

    def exists(self, pic_name: str) -> bool:
        """Raises StoreUnavailable on store errors."""
        stmt = select(self.table.c.PicName).where(self.table.c.PicName == pic_name).limit(1)
        try:
            with self.engine.connect() as conn:
                return conn.execute(stmt).first() is not None
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Existence check failed for {pic_name}: {e}", source=self.source) from e

    def append_if_absent(self, event: DetectionEvent) -> bool:
        """
        Insert `event` unless a row with the same PicName exists.

        Check and insert are two separate statements (not one transaction);
        this is only duplicate-safe because the sync is the table's sole writer.
        Returns True if a row was inserted. Raises StoreUnavailable on store errors.
        """
        if self.exists(event.pic_name):
            return False

        row = {
            # Both timestamps are stored as device-zone wall-clock.
            "CaptureTime": self.codec.to_store(event.capture_time),
            "PlateNumber": event.plate_number,
            "PicName": event.pic_name,
            "Country": event.country,
            "Direction": event.direction,
            "InsertTime": self.codec.to_store(self._clock()),
        }
        try:
            with self.engine.begin() as conn:
                conn.execute(self.table.insert().values(**row))
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Insert failed for {event.pic_name}: {e}", source=self.source) from e

        logger.info("   + [%s] %s - %s", self.source, event.plate_number, event.direction)
        return True

    def append_batch(self, events: Iterable[DetectionEvent]) -> int:
        """
        append_if_absent() for each event, in order. One failed insert is logged
        and the rest are still attempted. Returns how many rows were inserted.
        """
        inserted = 0
        for event in events:
            try:
                if self.append_if_absent(event):
                    inserted += 1
            except StoreUnavailable as e:
                logger.error("[%s] Error inserting vehicle %s: %s", self.source, event.plate_number, e.message)

        logger.info("[%s] Saved %d new records to %s", self.source, inserted, self.table.name)
        return inserted
