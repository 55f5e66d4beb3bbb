"""NMEA 0183 parsing (and generation) for serial GPS receivers.

Only the two sentences needed for a fix are handled:
  - $xxGGA: position, fix quality, HDOP, altitude
  - $xxRMC: position, status, speed over ground (knots), course, date

The assembler merges the GGA and RMC of the same epoch into one
RawSample. Horizontal accuracy is estimated as HDOP × UERE.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone

from tracker.errors import NmeaParseError
from tracker.samples import RawSample

KNOTS_TO_MPS = 0.514444
UERE_M = 5.0  # user equivalent range error used to turn HDOP into meters


def nmea_checksum(sentence: str) -> str:
    """Compute NMEA XOR checksum for content between $ and *."""
    cs = 0
    for ch in sentence:
        cs ^= ord(ch)
    return f"{cs:02X}"


@dataclass(frozen=True, slots=True)
class GgaFix:
    time_utc: str
    lat: float | None
    lon: float | None
    quality: int
    num_sats: int
    hdop: float | None
    altitude_m: float | None


@dataclass(frozen=True, slots=True)
class RmcFix:
    time_utc: str
    valid: bool
    lat: float | None
    lon: float | None
    speed_knots: float | None
    course_deg: float | None
    date: str


def split_sentence(line: str) -> tuple[str, list[str]]:
    """Verify framing and checksum; return (sentence type, fields).

    The sentence type drops the talker id, e.g. "$GNRMC" -> "RMC".
    """
    line = line.strip()
    if not line.startswith("$"):
        raise NmeaParseError(f"missing '$': {line!r}")
    body, star, checksum = line[1:].partition("*")
    if star:
        if nmea_checksum(body) != checksum.strip().upper():
            raise NmeaParseError(f"checksum mismatch: {line!r}")
    fields = body.split(",")
    if len(fields[0]) < 5:
        raise NmeaParseError(f"bad address field: {line!r}")
    return fields[0][2:], fields[1:]


def _float(value: str) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError as e:
        raise NmeaParseError(f"bad number {value!r}") from e


def parse_coordinate(value: str, hemisphere: str, degree_digits: int) -> float | None:
    """Convert NMEA [d]ddmm.mmmm + hemisphere to signed degrees."""
    if not value:
        return None
    try:
        degrees = int(value[:degree_digits])
        minutes = float(value[degree_digits:])
    except ValueError as e:
        raise NmeaParseError(f"bad coordinate {value!r}") from e
    result = degrees + minutes / 60.0
    if hemisphere in ("S", "W"):
        result = -result
    return result


def parse_gga(fields: list[str]) -> GgaFix:
    if len(fields) < 9:
        raise NmeaParseError(f"GGA needs 9+ fields, got {len(fields)}")
    return GgaFix(
        time_utc=fields[0],
        lat=parse_coordinate(fields[1], fields[2], 2),
        lon=parse_coordinate(fields[3], fields[4], 3),
        quality=int(fields[5] or 0),
        num_sats=int(fields[6] or 0),
        hdop=_float(fields[7]),
        altitude_m=_float(fields[8]),
    )


def parse_rmc(fields: list[str]) -> RmcFix:
    if len(fields) < 9:
        raise NmeaParseError(f"RMC needs 9+ fields, got {len(fields)}")
    return RmcFix(
        time_utc=fields[0],
        valid=fields[1] == "A",
        lat=parse_coordinate(fields[2], fields[3], 2),
        lon=parse_coordinate(fields[4], fields[5], 3),
        speed_knots=_float(fields[6]),
        course_deg=_float(fields[7]),
        date=fields[8],
    )


def fix_timestamp_ms(date: str, time_utc: str) -> float | None:
    """Epoch milliseconds from RMC ddmmyy + hhmmss.ss, or None."""
    if len(date) != 6 or len(time_utc) < 6:
        return None
    try:
        dt = datetime(
            2000 + int(date[4:6]), int(date[2:4]), int(date[0:2]),
            int(time_utc[0:2]), int(time_utc[2:4]), int(time_utc[4:6]),
            tzinfo=timezone.utc,
        )
        frac = float(time_utc[6:]) if len(time_utc) > 6 else 0.0
    except ValueError:
        return None
    return dt.timestamp() * 1000.0 + frac * 1000.0


class NmeaAssembler:
    """Turns a stream of NMEA lines into RawSamples.

    A sample is produced for every valid RMC, enriched with the GGA of the
    same epoch when one was seen. Receivers that only emit GGA produce a
    sample per GGA with a fix.
    """

    def __init__(self, uere_m: float = UERE_M, clock_ms=None):
        self._uere = uere_m
        self._clock_ms = clock_ms or (lambda: time.time() * 1000.0)
        self._last_gga: GgaFix | None = None
        self._rmc_seen = False

    def feed(self, line: str) -> RawSample | None:
        """Consume one line. Unknown sentence types are ignored."""
        kind, fields = split_sentence(line)
        if kind == "GGA":
            gga = parse_gga(fields)
            self._last_gga = gga
            if self._rmc_seen or gga.quality == 0 or gga.lat is None or gga.lon is None:
                return None
            return RawSample(
                latitude=gga.lat,
                longitude=gga.lon,
                accuracy_m=self._accuracy(gga.hdop),
                timestamp_ms=self._clock_ms(),
                altitude_m=gga.altitude_m,
            )
        if kind == "RMC":
            self._rmc_seen = True
            rmc = parse_rmc(fields)
            if not rmc.valid or rmc.lat is None or rmc.lon is None:
                return None
            gga = self._last_gga if self._last_gga and self._last_gga.time_utc == rmc.time_utc else None
            ts = fix_timestamp_ms(rmc.date, rmc.time_utc)
            return RawSample(
                latitude=rmc.lat,
                longitude=rmc.lon,
                accuracy_m=self._accuracy(gga.hdop if gga else None),
                timestamp_ms=ts if ts is not None else self._clock_ms(),
                altitude_m=gga.altitude_m if gga else None,
                speed_mps=rmc.speed_knots * KNOTS_TO_MPS if rmc.speed_knots is not None else None,
                heading_deg=rmc.course_deg,
            )
        return None

    def _accuracy(self, hdop: float | None) -> float:
        # No HDOP: assume a mediocre fix rather than a perfect one
        return (hdop if hdop is not None else 2.0) * self._uere


def _format_lat(lat: float) -> tuple[str, str]:
    """Format latitude as NMEA ddmm.mmmmm,N/S."""
    hemisphere = "N" if lat >= 0 else "S"
    lat = abs(lat)
    degrees = int(lat)
    minutes = (lat - degrees) * 60.0
    return f"{degrees:02d}{minutes:08.5f}", hemisphere


def _format_lon(lon: float) -> tuple[str, str]:
    """Format longitude as NMEA dddmm.mmmmm,E/W."""
    hemisphere = "E" if lon >= 0 else "W"
    lon = abs(lon)
    degrees = int(lon)
    minutes = (lon - degrees) * 60.0
    return f"{degrees:03d}{minutes:08.5f}", hemisphere


def format_gga(sample: RawSample, dt: datetime, hdop: float | None = None) -> str:
    """Generate a $GPGGA sentence for a sample (used by the simulator)."""
    if hdop is None:
        hdop = sample.accuracy_m / UERE_M
    time_str = f"{dt.hour:02d}{dt.minute:02d}{dt.second:02d}.{dt.microsecond // 10000:02d}"
    lat_str, lat_ns = _format_lat(sample.latitude)
    lon_str, lon_ew = _format_lon(sample.longitude)
    body = (
        f"GPGGA,{time_str},{lat_str},{lat_ns},{lon_str},{lon_ew},"
        f"1,08,{hdop:.1f},{sample.altitude_m or 0.0:.1f},M,0.0,M,,"
    )
    return f"${body}*{nmea_checksum(body)}"


def format_rmc(sample: RawSample, dt: datetime) -> str:
    """Generate a $GPRMC sentence for a sample (used by the simulator)."""
    time_str = f"{dt.hour:02d}{dt.minute:02d}{dt.second:02d}.{dt.microsecond // 10000:02d}"
    date_str = f"{dt.day:02d}{dt.month:02d}{dt.year % 100:02d}"
    lat_str, lat_ns = _format_lat(sample.latitude)
    lon_str, lon_ew = _format_lon(sample.longitude)
    speed_knots = (sample.speed_mps or 0.0) / KNOTS_TO_MPS
    course = sample.heading_deg if sample.heading_deg is not None else 0.0
    body = (
        f"GPRMC,{time_str},A,{lat_str},{lat_ns},{lon_str},{lon_ew},"
        f"{speed_knots:.1f},{course:.1f},{date_str},,,A"
    )
    return f"${body}*{nmea_checksum(body)}"
