from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .timecodec import ensure_utc

DEFAULT_DIRECTION = "unknown"


class DetectionEvent(BaseModel):
    """
    Parsed representation of one <Plate> record from a camera.

    pic_name is the natural key: the camera assigns one per capture, so it is
    what dedup is based on. plate_number is NOT unique (same car, many passes).
    """

    model_config = ConfigDict(frozen=True)

    capture_time: datetime = Field(..., description="Aware UTC instant of the capture")
    plate_number: str
    pic_name: str = Field(..., min_length=1)
    country: str
    direction: str = DEFAULT_DIRECTION

    @field_validator("capture_time")
    @classmethod
    def _aware_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)
