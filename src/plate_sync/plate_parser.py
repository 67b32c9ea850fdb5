from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional
from xml.etree import ElementTree as ET

from .detection_event import DEFAULT_DIRECTION, DetectionEvent
from .errors import MalformedEvent, MalformedResponse
from .timecodec import TimeCodec

logger = logging.getLogger(__name__)

ROOT_TAG = "Plates"
PLATE_TAG = "Plate"


def _local_name(tag: str) -> str:
    """
    Strip the XML namespace: '{http://www.hikvision.com/...}Plate' -> 'Plate'.
    Cameras send a default namespace; we match on local names only.
    """
    return tag.rsplit("}", 1)[-1]


def _child_text(el: ET.Element, name: str) -> Optional[str]:
    """
    Text of the first direct child called `name`, or None if there is no such child.
    An empty element gives "".
    """
    for child in el:
        if _local_name(child.tag) == name:
            return (child.text or "").strip()
    return None


@dataclass
class ParseResult:
    """Events decoded from one response, plus how many records were dropped."""

    events: list[DetectionEvent] = field(default_factory=list)
    skipped: int = 0

    def __len__(self) -> int:
        return len(self.events)


class EventParser:
    """
    Decode a camera's <Plates> answer into DetectionEvent records.

    One broken <Plate> is logged and dropped; the rest of the batch goes through.
    """

    def __init__(self, codec: TimeCodec, *, source: Optional[str] = None) -> None:
        self.codec = codec
        self.source = source

    def parse(self, body: str | bytes) -> ParseResult:
        """
        Parse a full response body.

        Raises MalformedResponse if the body is not XML at all.
        A document whose root isn't <Plates> simply has no events.
        """
        if isinstance(body, str):
            # ET refuses str input that carries an encoding declaration.
            body = body.strip().encode("utf-8")

        if not body.strip():
            return ParseResult()

        try:
            root = ET.fromstring(body)
        except ET.ParseError as e:
            raise MalformedResponse(f"Invalid XML from camera: {e}", source=self.source) from e

        result = ParseResult()
        if _local_name(root.tag) != ROOT_TAG:
            logger.debug("[%s] Response root is <%s>, no plates", self.source, _local_name(root.tag))
            return result

        # One <Plate> and many <Plate> look the same to ElementTree: a list of children.
        plates = [child for child in root if _local_name(child.tag) == PLATE_TAG]

        for position, plate_el in enumerate(plates):
            try:
                result.events.append(self.parse_plate(plate_el))
            except MalformedEvent as e:
                result.skipped += 1
                logger.warning(
                    "[%s] Skipping malformed plate record #%d: %s",
                    self.source, position, e.message,
                )

        return result

    def parse_plate(self, plate_el: ET.Element) -> DetectionEvent:
        """
        Parse one <Plate> element.

        Raises MalformedEvent (or MalformedTimestamp) when a required field is
        missing or the capture time cannot be decoded.
        """
        capture_raw = _child_text(plate_el, "captureTime")
        plate_number = _child_text(plate_el, "plateNumber")
        pic_name = _child_text(plate_el, "picName")
        country = _child_text(plate_el, "country")
        direction = _child_text(plate_el, "direction")

        missing = [
            name
            for name, value in (
                ("captureTime", capture_raw),
                ("plateNumber", plate_number),
                ("picName", pic_name),
                ("country", country),
            )
            if value is None
        ]
        if missing:
            raise MalformedEvent(f"missing {', '.join(missing)}", source=self.source)

        if not pic_name:
            raise MalformedEvent("empty picName", source=self.source)
        if not capture_raw:
            raise MalformedEvent(f"empty captureTime (picName={pic_name})", source=self.source)

        capture_time = self.codec.from_device_local(capture_raw)

        return DetectionEvent(
            capture_time=capture_time,
            plate_number=plate_number,
            pic_name=pic_name,
            country=country,
            direction=direction or DEFAULT_DIRECTION,
        )
