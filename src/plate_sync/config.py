from __future__ import annotations

import os
import re
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

_CAMERA_URL_KEY = re.compile(r"^CAMERA(\d+)_URL$", re.IGNORECASE)
_SQL_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SyncSettings(BaseSettings):
    """
    Configuration for the sync service.
    """

    # Tell pydantic-settings to load environment variables from .env if present.
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # CAMERA{n}_* vars are read separately
    )

    # --- Store ---
    database_url: str = "sqlite:///./plate_sync.db"

    # --- Polling ---
    sync_interval_minutes: int = 2

    # --- Devices ---
    # All device timestamps (request and response) are wall-clock in this zone.
    device_timezone: str = "Asia/Jerusalem"
    device_timeout_sec: float = 30.0
    # Cameras ship self-signed certificates.
    device_verify_tls: bool = False

    # --- Logging ---
    log_level: str = "INFO"
    log_file: Optional[str] = None  # e.g. logs/plate_sync.log

    # --- Status HTTP API ---
    status_http_host: str = "127.0.0.1"
    status_http_port: int = 8130

    @field_validator("sync_interval_minutes")
    @classmethod
    def _positive_interval(cls, v: int) -> int:
        if v < 1:
            raise ValueError("sync_interval_minutes must be >= 1")
        return v


class CameraSource(BaseModel):
    """
    One camera and the table its detections go into. Immutable after startup.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    base_url: str
    username: str
    password: SecretStr
    table_name: str

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("base_url must not be empty")
        return v

    @field_validator("table_name")
    @classmethod
    def _plain_identifier(cls, v: str) -> str:
        # Table names end up in SQL; only allow plain identifiers.
        if not _SQL_IDENTIFIER.match(v):
            raise ValueError(f"table_name {v!r} is not a plain SQL identifier")
        return v


def _default_table_name(index: int) -> str:
    # Camera 1 keeps the historical table name; others get a numeric suffix.
    return "VehicleDetection" if index == 1 else f"VehicleDetection{index}"


def load_camera_sources(environ: Optional[Mapping[str, str]] = None) -> list[CameraSource]:
    """
    Build the camera list from numbered env vars, ordered by number.

    CAMERA{n}_URL is what makes camera n "configured"; USERNAME/PASSWORD are
    expected alongside it. NAME and TABLE are optional.
    Raises ConfigurationError when a configured camera is invalid.
    """
    env = {k.upper(): v for k, v in (os.environ if environ is None else environ).items()}

    indexes: list[int] = []
    for key, value in env.items():
        m = _CAMERA_URL_KEY.match(key)
        if m and value.strip():
            indexes.append(int(m.group(1)))
    indexes.sort()

    sources: list[CameraSource] = []
    for n in indexes:
        prefix = f"CAMERA{n}_"
        try:
            sources.append(
                CameraSource(
                    name=env.get(prefix + "NAME") or f"Camera{n}",
                    base_url=env[prefix + "URL"],
                    username=env.get(prefix + "USERNAME", ""),
                    password=env.get(prefix + "PASSWORD", ""),
                    table_name=env.get(prefix + "TABLE") or _default_table_name(n),
                )
            )
        except ValueError as e:
            # pydantic.ValidationError is a ValueError
            raise ConfigurationError(f"Invalid configuration for camera {n}: {e}") from e

    tables = [s.table_name for s in sources]
    duplicates = {t for t in tables if tables.count(t) > 1}
    if duplicates:
        raise ConfigurationError(f"Several cameras write into the same table: {sorted(duplicates)}")

    return sources
