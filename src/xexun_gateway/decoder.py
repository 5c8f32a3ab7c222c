"""Xexun tracker sentence decoder.

A sentence wraps a GPRMC fix between a sequence number / phone number prefix
and a tail carrying the IMEI and battery voltage::

    001,+123456789,GPRMC,123456.789,A,1234.5678,N,09876.5432,W,10.5,90.0,
    150124,extra imei:123456789012345,1,0.0,F:4.1V,tail

(one line on the wire). Only whole-line matches decode; there is no partial
recovery.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from pynmea2.nmea_utils import dm_to_sd

from xexun_gateway.models import PositionRecord
from xexun_gateway.registry import DeviceRegistry

logger = logging.getLogger(__name__)

SENTENCE_PATTERN = re.compile(
    r"\d+,"
    r"\+\d+,"
    r"GPRMC,"
    r"(?P<hour>\d{2})(?P<minute>\d{2})(?P<second>\d{2})\.(?P<millis>\d{3}),"
    r"(?P<validity>[AV]),"
    r"(?P<lat>\d{4}\.\d{4}),(?P<lat_hemi>[NS]),"   # DDMM.MMMM
    r"(?P<lon>\d{5}\.\d{4}),(?P<lon_hemi>[EW]),"   # DDDMM.MMMM
    r"(?P<speed>\d+\.\d+),"
    r"(?P<course>\d+\.\d+)?,"                      # often left empty
    r"(?P<day>\d{2})(?P<month>\d{2})(?P<year>\d{2}),"
    r".*imei:(?P<imei>\d+),"
    r"\d+,"
    r"\d+\.\d+,"
    r"F:(?P<power>\d+\.\d+)V,"
    r".*",
    re.ASCII,
)


class DecodeError(Exception):
    """A sentence could not be turned into a position."""


class MalformedSentence(DecodeError):
    pass


class UnknownDevice(DecodeError):
    def __init__(self, imei: str) -> None:
        super().__init__(f"Unknown device IMEI {imei}")
        self.imei = imei


@dataclass(frozen=True)
class ParsedSentence:
    """Every field of a matched sentence except the resolved device id."""

    imei: str
    time: datetime
    valid: bool
    latitude: float
    longitude: float
    speed: float
    course: float
    power: float

    def to_position(self, device_id: int) -> PositionRecord:
        return PositionRecord(
            device_id=device_id,
            time=self.time,
            valid=self.valid,
            latitude=self.latitude,
            longitude=self.longitude,
            altitude=0.0,
            speed=self.speed,
            course=self.course,
            power=self.power,
        )


def _fix_time(m: re.Match) -> datetime:
    """Combine the date and time groups into one UTC instant.

    Out-of-range fields roll over instead of failing: month 00 is December
    of the previous year, day 00 the last day of the previous month, and
    hour 24 the next day. Trackers without a fix report date ``000000``.
    """
    year, month = divmod(int(m["month"]) - 1, 12)
    base = datetime(2000 + int(m["year"]) + year, month + 1, 1, tzinfo=timezone.utc)
    return base + timedelta(
        days=int(m["day"]) - 1,
        hours=int(m["hour"]),
        minutes=int(m["minute"]),
        seconds=int(m["second"]),
        milliseconds=int(m["millis"]),
    )


def parse_sentence(line: str) -> ParsedSentence:
    """Match ``line`` against the sentence grammar and convert its fields.

    Raises MalformedSentence if the line does not match.
    """
    m = SENTENCE_PATTERN.fullmatch(line)
    if m is None:
        raise MalformedSentence("sentence does not match Xexun grammar")

    time = _fix_time(m)

    latitude = dm_to_sd(m["lat"])
    if m["lat_hemi"] == "S":
        latitude = -latitude

    longitude = dm_to_sd(m["lon"])
    if m["lon_hemi"] == "W":
        longitude = -longitude

    return ParsedSentence(
        imei=m["imei"],
        time=time,
        valid=m["validity"] == "A",
        latitude=latitude,
        longitude=longitude,
        speed=float(m["speed"]),
        course=float(m["course"]) if m["course"] is not None else 0.0,
        power=float(m["power"]),
    )


class Xexun2Decoder:
    """Turns sentences into PositionRecords, resolving IMEIs via a registry.

    Holds no per-sentence state; one instance can serve every connection.
    """

    def __init__(self, registry: DeviceRegistry) -> None:
        self.registry = registry

    async def decode(self, line: str) -> PositionRecord:
        parsed = parse_sentence(line)

        device_id = await self.registry.resolve_device_id(parsed.imei)
        if device_id is None:
            raise UnknownDevice(parsed.imei)

        logger.debug("Decoded sentence from IMEI %s -> device %s", parsed.imei, device_id)
        return parsed.to_position(device_id)
