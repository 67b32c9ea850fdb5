import logging
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from plate_sync.db import create_store_engine
from plate_sync.detection_event import DetectionEvent
from plate_sync.errors import StoreUnavailable
from plate_sync.event_store import EventStore


def _event(pic_name: str, minute: int = 15, plate: str = "12345678") -> DetectionEvent:
    return DetectionEvent(
        capture_time=datetime(2024, 1, 15, 7, minute, 30, tzinfo=timezone.utc),
        plate_number=plate,
        pic_name=pic_name,
        country="ISR",
        direction="forward",
    )


def _store(engine, codec, fixed_now, table="VehicleDetection"):
    return EventStore(engine, table, codec, source="Camera1", clock=lambda: fixed_now)


def test_empty_table_watermark_is_local_midnight(engine, codec, fixed_now):
    assert _store(engine, codec, fixed_now).resolve_watermark() == datetime(2024, 1, 14, 22, 0, tzinfo=timezone.utc)


def test_watermark_is_latest_capture_time(engine, codec, fixed_now):
    store = _store(engine, codec, fixed_now)
    store.append_if_absent(_event("pic-1", minute=10))
    store.append_if_absent(_event("pic-2", minute=40))
    store.append_if_absent(_event("pic-3", minute=20))

    watermark = store.resolve_watermark()
    assert watermark == datetime(2024, 1, 15, 7, 40, 30, tzinfo=timezone.utc)
    assert watermark.tzinfo is not None


def test_watermark_is_per_table(engine, codec, fixed_now):
    _store(engine, codec, fixed_now).append_if_absent(_event("pic-1"))

    other = _store(engine, codec, fixed_now, table="VehicleDetection2")
    assert other.resolve_watermark() == codec.start_of_day(fixed_now)


def test_unreadable_table_degrades_to_start_of_day(engine, codec, fixed_now, caplog):
    store = _store(engine, codec, fixed_now, table="NotCreatedYet")

    with caplog.at_level(logging.ERROR, logger="plate_sync.event_store"):
        assert store.resolve_watermark() == codec.start_of_day(fixed_now)
    assert "NotCreatedYet" in caplog.text


def test_append_if_absent_dedups_on_pic_name(engine, codec, fixed_now):
    store = _store(engine, codec, fixed_now)

    assert store.append_if_absent(_event("pic-1")) is True
    # Same picture, different plate text: still the same capture.
    assert store.append_if_absent(_event("pic-1", plate="OTHER")) is False

    with engine.connect() as conn:
        rows = conn.execute(select(store.table)).mappings().all()
    assert len(rows) == 1
    assert rows[0]["PlateNumber"] == "12345678"
    assert rows[0]["Direction"] == "forward"


def test_insert_time_is_process_time_not_capture_time(engine, codec):
    inserted_at = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
    store = EventStore(engine, "VehicleDetection", codec, clock=lambda: inserted_at)
    store.append_if_absent(_event("pic-1"))

    with engine.connect() as conn:
        row = conn.execute(select(store.table)).mappings().one()
    assert codec.from_store(row["InsertTime"]) == inserted_at


def test_timestamps_are_stored_as_device_wall_clock(engine, codec, fixed_now):
    store = _store(engine, codec, fixed_now)
    store.append_if_absent(_event("pic-1", minute=15))

    with engine.connect() as conn:
        row = conn.execute(select(store.table)).mappings().one()
    # 07:15:30 UTC is 09:15:30 in Jerusalem (UTC+2 in January).
    assert row["CaptureTime"] == datetime(2024, 1, 15, 9, 15, 30)
    assert row["InsertTime"] == datetime(2024, 1, 15, 12, 0, 0)


def test_watermark_from_existing_local_time_rows(engine, codec, fixed_now):
    # A row as already present in tables filled before this service: local wall-clock, no zone.
    store = _store(engine, codec, fixed_now)
    with engine.begin() as conn:
        conn.execute(
            store.table.insert().values(
                CaptureTime=datetime(2024, 1, 15, 9, 15, 30),
                PlateNumber="12345678",
                PicName="legacy-1",
                Country="ISR",
                Direction="forward",
                InsertTime=datetime(2024, 1, 15, 9, 16, 0),
            )
        )

    watermark = store.resolve_watermark()

    assert watermark == datetime(2024, 1, 15, 7, 15, 30, tzinfo=timezone.utc)
    assert codec.to_device_local(watermark) == "2024-01-15T09:15:30"


def test_append_batch_counts_only_new_rows(engine, codec, fixed_now):
    store = _store(engine, codec, fixed_now)
    store.append_if_absent(_event("pic-1"))

    assert store.append_batch([_event("pic-1"), _event("pic-2"), _event("pic-3")]) == 2
    assert store.append_batch([_event("pic-1"), _event("pic-2"), _event("pic-3")]) == 0


def test_append_batch_survives_one_failed_insert(engine, codec, fixed_now, monkeypatch, caplog):
    store = _store(engine, codec, fixed_now)
    real_exists = store.exists

    def flaky_exists(pic_name):
        if pic_name == "pic-2":
            raise StoreUnavailable("deadlock victim", source="Camera1")
        return real_exists(pic_name)

    monkeypatch.setattr(store, "exists", flaky_exists)

    with caplog.at_level(logging.ERROR, logger="plate_sync.event_store"):
        inserted = store.append_batch([_event("pic-1"), _event("pic-2"), _event("pic-3")])

    assert inserted == 2
    assert "deadlock victim" in caplog.text


def test_store_errors_raise_store_unavailable(tmp_path, codec, fixed_now):
    engine = create_store_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    store = _store(engine, codec, fixed_now)  # table never created

    with pytest.raises(StoreUnavailable) as exc:
        store.append_if_absent(_event("pic-1"))
    assert exc.value.source == "Camera1"
    engine.dispose()


def test_watermark_moves_forward_with_new_events(engine, codec, fixed_now):
    store = _store(engine, codec, fixed_now)
    store.append_if_absent(_event("pic-1", minute=10))
    first = store.resolve_watermark()
    store.append_if_absent(_event("pic-2", minute=11))

    assert store.resolve_watermark() - first == timedelta(minutes=1)
