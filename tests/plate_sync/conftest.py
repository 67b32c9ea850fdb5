from datetime import datetime, timezone

import pytest

from plate_sync.config import CameraSource, SyncSettings
from plate_sync.db import create_store_engine, init_db
from plate_sync.timecodec import TimeCodec


@pytest.fixture
def codec() -> TimeCodec:
    return TimeCodec("Asia/Jerusalem")


@pytest.fixture
def fixed_now() -> datetime:
    # 12:00 local (UTC+2 in January)
    return datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def camera() -> CameraSource:
    return CameraSource(
        name="Camera1",
        base_url="http://cam1.local/",
        username="admin",
        password="secret",
        table_name="VehicleDetection",
    )


@pytest.fixture
def camera2() -> CameraSource:
    return CameraSource(
        name="Camera2",
        base_url="http://cam2.local",
        username="admin",
        password="secret2",
        table_name="VehicleDetection2",
    )


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'plates.db'}"


@pytest.fixture
def settings(db_url) -> SyncSettings:
    return SyncSettings(_env_file=None, database_url=db_url, device_timeout_sec=5, log_level="INFO")


@pytest.fixture
def engine(db_url, camera, camera2):
    eng = create_store_engine(db_url)
    init_db(eng, [camera.table_name, camera2.table_name])
    yield eng
    eng.dispose()
