from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import ConfigurationError, MalformedTimestamp

DEFAULT_DEVICE_TIMEZONE = "Asia/Jerusalem"

# Request format expected by the camera: local wall-clock, no fraction, no offset.
DEVICE_REQUEST_FORMAT = "%Y-%m-%dT%H:%M:%S"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    Naive values are taken as UTC. Store values are not: they go through
    TimeCodec.from_store().
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class TimeCodec:
    """
    Converts between canonical UTC instants and the camera's local time strings.

    The camera has no notion of offsets: it speaks wall-clock time in one fixed,
    named zone. Everything inside the service is aware UTC.
    """

    def __init__(self, tz_name: str = DEFAULT_DEVICE_TIMEZONE) -> None:
        try:
            self.tz = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigurationError(f"Unknown device time zone {tz_name!r}") from e
        self.tz_name = tz_name

    def to_device_local(self, instant: datetime) -> str:
        """Render `instant` as YYYY-MM-DDTHH:mm:ss wall-clock in the device zone."""
        return ensure_utc(instant).astimezone(self.tz).strftime(DEVICE_REQUEST_FORMAT)

    def from_device_local(self, digits: str) -> datetime:
        """
        Decode a device captureTime into an aware UTC datetime.

        Layout is positional: YYYYMMDD, one separator char at index 8 (the
        camera sends 'T'), then HHmmss. Anything past index 15 (usually an
        offset like +0200) is ignored; the fixed zone wins. A bare 14-digit
        YYYYMMDDHHmmss is accepted as well.

        Raises MalformedTimestamp on anything else.
        """
        if not isinstance(digits, str):
            raise MalformedTimestamp(f"captureTime must be text, got {type(digits).__name__}")

        raw = digits.strip()
        if len(raw) >= 15:
            date_part, time_part = raw[0:8], raw[9:15]
        elif len(raw) == 14:
            date_part, time_part = raw[0:8], raw[8:14]
        else:
            raise MalformedTimestamp(f"captureTime too short: {digits!r}")

        fields = date_part + time_part
        if not fields.isdigit():
            raise MalformedTimestamp(f"captureTime has non-digit fields: {digits!r}")

        try:
            local = datetime(
                int(fields[0:4]),
                int(fields[4:6]),
                int(fields[6:8]),
                int(fields[8:10]),
                int(fields[10:12]),
                int(fields[12:14]),
                tzinfo=self.tz,
            )
        except ValueError as e:
            raise MalformedTimestamp(f"captureTime out of range: {digits!r} ({e})") from e

        return local.astimezone(timezone.utc)

    def start_of_day(self, now: Optional[datetime] = None) -> datetime:
        """Midnight of the current day in the device zone, as aware UTC."""
        local_now = ensure_utc(now or utc_now()).astimezone(self.tz)
        midnight = datetime(local_now.year, local_now.month, local_now.day, tzinfo=self.tz)
        return midnight.astimezone(timezone.utc)

    def to_store(self, instant: datetime) -> datetime:
        """
        Render `instant` as a naive wall-clock datetime in the device zone.

        Detection tables hold zoneless local times (the layout existing
        tables already have), so this is what gets written.
        """
        return ensure_utc(instant).astimezone(self.tz).replace(tzinfo=None)

    def from_store(self, value: datetime) -> datetime:
        """
        Inverse of to_store(): a naive store value is device-zone wall-clock.
        Aware values (zone-capable columns) are just normalized to UTC.
        """
        if value.tzinfo is None:
            return value.replace(tzinfo=self.tz).astimezone(timezone.utc)
        return value.astimezone(timezone.utc)
