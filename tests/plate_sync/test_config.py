import pytest
from pydantic import ValidationError

from plate_sync.config import SyncSettings, load_camera_sources
from plate_sync.errors import ConfigurationError


def test_settings_defaults_and_types():
    cfg = SyncSettings(_env_file=None)

    assert isinstance(cfg.sync_interval_minutes, int)
    assert cfg.device_timezone == "Asia/Jerusalem"
    assert cfg.device_verify_tls is False


def test_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("SYNC_INTERVAL_MINUTES", "5")
    monkeypatch.setenv("database_url", "sqlite:///x.db")

    cfg = SyncSettings(_env_file=None)

    assert cfg.sync_interval_minutes == 5
    assert cfg.database_url == "sqlite:///x.db"


def test_interval_must_be_positive():
    with pytest.raises(ValidationError):
        SyncSettings(_env_file=None, sync_interval_minutes=0)


def test_cameras_load_in_numeric_order_with_defaults():
    env = {
        "CAMERA10_URL": "http://cam10",
        "CAMERA10_USERNAME": "u10",
        "CAMERA10_PASSWORD": "p10",
        "CAMERA2_URL": "http://cam2/",
        "CAMERA2_USERNAME": "u2",
        "CAMERA2_PASSWORD": "p2",
        "CAMERA2_NAME": "Gate",
        "camera1_url": "http://cam1",
        "camera1_username": "u1",
        "camera1_password": "p1",
    }

    sources = load_camera_sources(env)

    assert [s.name for s in sources] == ["Camera1", "Gate", "Camera10"]
    assert [s.table_name for s in sources] == ["VehicleDetection", "VehicleDetection2", "VehicleDetection10"]
    assert sources[1].base_url == "http://cam2"
    assert sources[0].password.get_secret_value() == "p1"


def test_camera_without_url_is_not_configured():
    env = {"CAMERA1_URL": "", "CAMERA1_USERNAME": "u", "CAMERA3_URL": "http://cam3"}

    assert [s.name for s in load_camera_sources(env)] == ["Camera3"]


def test_no_cameras_is_an_empty_list():
    assert load_camera_sources({"DATABASE_URL": "sqlite://"}) == []


def test_table_name_must_be_plain_identifier():
    with pytest.raises(ConfigurationError):
        load_camera_sources({"CAMERA1_URL": "http://cam1", "CAMERA1_TABLE": "Vehicles; DROP TABLE x"})


def test_two_cameras_cannot_share_a_table():
    env = {
        "CAMERA1_URL": "http://cam1",
        "CAMERA2_URL": "http://cam2",
        "CAMERA2_TABLE": "VehicleDetection",
    }
    with pytest.raises(ConfigurationError):
        load_camera_sources(env)


def test_camera_source_is_immutable_and_masks_password():
    (source,) = load_camera_sources({"CAMERA1_URL": "http://cam1", "CAMERA1_PASSWORD": "hunter2"})

    with pytest.raises(ValidationError):
        source.name = "other"
    assert "hunter2" not in str(source.model_dump())
