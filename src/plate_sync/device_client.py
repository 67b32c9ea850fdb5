from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional
from xml.etree import ElementTree as ET

import requests
from requests.auth import HTTPDigestAuth

from .config import CameraSource
from .errors import DeviceProtocolError, DeviceUnreachable
from .timecodec import TimeCodec

logger = logging.getLogger(__name__)

PLATES_PATH = "/ISAPI/Traffic/channels/1/vehicleDetect/plates"
HIKVISION_XMLNS = "http://www.hikvision.com/ver20/XMLSchema"


def build_after_time_request(pic_time: str) -> bytes:
    """
    Build the <AfterTime> request body: "give me every plate captured after pic_time".

    pic_time is already in device-local YYYY-MM-DDTHH:mm:ss form.
    """
    root = ET.Element("AfterTime", {"version": "2.0", "xmlns": HIKVISION_XMLNS})
    ET.SubElement(root, "picTime").text = pic_time
    return ET.tostring(root, encoding="UTF-8", xml_declaration=True)


class DeviceClient:
    """
    HTTP client for one camera's plate search endpoint.

    Every call authenticates from scratch (fresh digest handshake, no cached
    session state). `session` only exists so tests can swap the transport;
    anything with a requests-compatible `post()` works.
    """

    def __init__(
        self,
        source: CameraSource,
        codec: TimeCodec,
        *,
        session: Optional[Any] = None,
        timeout_s: float = 30.0,
        verify_tls: bool = False,
    ) -> None:
        self.source = source
        self.codec = codec
        self._session = session
        self._timeout_s = timeout_s
        self._verify_tls = verify_tls

    @property
    def url(self) -> str:
        return f"{self.source.base_url}{PLATES_PATH}"

    def fetch_events_since(self, watermark: datetime) -> str:
        """
        POST an <AfterTime> search and return the raw XML body.

        Raises:
            DeviceUnreachable: connection error or timeout
            DeviceProtocolError: non-2xx answer (body is not parsed)
        """
        pic_time = self.codec.to_device_local(watermark)
        body = build_after_time_request(pic_time)

        logger.info(
            "[%s] Searching vehicles from: %s (%s time)",
            self.source.name, pic_time, self.codec.tz_name,
        )

        post = self._session.post if self._session is not None else requests.post
        try:
            resp = post(
                self.url,
                data=body,
                headers={"Content-Type": "application/xml"},
                auth=HTTPDigestAuth(self.source.username, self.source.password.get_secret_value()),
                timeout=self._timeout_s,
                verify=self._verify_tls,
            )
        except requests.exceptions.Timeout as e:
            raise DeviceUnreachable(
                f"Timed out after {self._timeout_s}s calling {self.url}", source=self.source.name
            ) from e
        except requests.exceptions.RequestException as e:
            raise DeviceUnreachable(f"Could not reach {self.url}: {e}", source=self.source.name) from e

        if not 200 <= resp.status_code < 300:
            raise DeviceProtocolError(
                f"HTTP {resp.status_code}: {resp.reason}",
                status_code=resp.status_code,
                source=self.source.name,
            )

        return resp.text
