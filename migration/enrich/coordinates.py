"""Legacy spatial value decoding, reprojection, and bounds checks."""

from __future__ import annotations

import re
import struct
from dataclasses import asdict, dataclass
from functools import lru_cache

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError, ProjError

from migration.common.constants import NORDIC_BBOX_WGS84

WGS84_EPSG = 4326
POINT_TEXT_RE = re.compile(r"POINT\s*\(\s*([-+\d.eE]+)\s+([-+\d.eE]+)\s*\)", re.IGNORECASE)
BINARY_LITERAL_RE = re.compile(r"^_binary\s*(['\"])(.*)\1$", re.DOTALL)
WKB_POINT_TYPE = 1


@dataclass(frozen=True)
class Point:
    lon: float
    lat: float
    source_format: str
    srid: int = WGS84_EPSG

    def to_wkt(self) -> str:
        return f"POINT({self.lon} {self.lat})"

    def to_dict(self) -> dict:
        return asdict(self)


def _valid_lat_lon(lat: float, lon: float) -> bool:
    return -90 <= lat <= 90 and -180 <= lon <= 180


def within_bbox(lat: float, lon: float, bbox: dict | None = None) -> bool:
    bbox = bbox or NORDIC_BBOX_WGS84
    return (
        bbox["min_lat"] <= lat <= bbox["max_lat"]
        and bbox["min_lon"] <= lon <= bbox["max_lon"]
    )


@lru_cache(maxsize=16)
def _transformer(source_epsg: int) -> Transformer:
    return Transformer.from_crs(CRS.from_epsg(source_epsg), CRS.from_epsg(WGS84_EPSG), always_xy=True)


def transform_to_wgs84(x: float, y: float, source_epsg: int) -> tuple[float, float] | None:
    """Returns (lon, lat) in WGS84, or None when the source CRS is unusable."""
    if source_epsg in (0, WGS84_EPSG):
        return x, y
    try:
        lon, lat = _transformer(source_epsg).transform(x, y)
    except (CRSError, ProjError):
        return None
    if lon != lon or lat != lat or lon in (float("inf"), float("-inf")):
        return None
    return lon, lat


def _point_from_wkb(buffer: bytes, offset: int) -> tuple[float, float] | None:
    if len(buffer) < offset + 21:
        return None
    byte_order = buffer[offset]
    if byte_order not in (0, 1):
        return None
    endian = "<" if byte_order == 1 else ">"
    (geometry_type,) = struct.unpack_from(f"{endian}I", buffer, offset + 1)
    if geometry_type != WKB_POINT_TYPE:
        return None
    return struct.unpack_from(f"{endian}dd", buffer, offset + 5)


def decode_wkb(buffer: bytes) -> tuple[float, float, int] | None:
    """Decode plain WKB (21 bytes) or MySQL internal WKB (4-byte SRID prefix, 25 bytes)."""
    if len(buffer) >= 25:
        (srid,) = struct.unpack_from("<I", buffer, 0)
        decoded = _point_from_wkb(buffer, 4)
        if decoded is not None:
            return decoded[0], decoded[1], srid
    decoded = _point_from_wkb(buffer, 0)
    if decoded is not None:
        return decoded[0], decoded[1], WGS84_EPSG
    return None


def _decode_binary_literal(value: str) -> bytes | None:
    match = BINARY_LITERAL_RE.match(value)
    if match is None:
        return None
    quote, body = match.group(1), match.group(2)
    body = body.replace(quote * 2, quote)
    body = re.sub(r"\\(.)", lambda m: "\0" if m.group(1) == "0" else m.group(1), body)
    try:
        return body.encode("latin-1")
    except UnicodeEncodeError:
        return None


def parse_legacy_point(value: str | None, bbox: dict | None = None) -> Point | None:
    """Decode a legacy location column; None unless it yields a point inside ``bbox``."""
    if value is None:
        return None
    text = value.strip()
    if not text or text.upper() == "NULL":
        return None

    candidate: tuple[float, float, int] | None = None
    source_format = "unknown"

    match = POINT_TEXT_RE.search(text)
    if match is not None:
        try:
            candidate = (float(match.group(1)), float(match.group(2)), WGS84_EPSG)
        except ValueError:
            candidate = None
        source_format = "point_text"
    elif text[:2].lower() in ("0x", "\\x"):
        hex_data = text[2:]
        if len(hex_data) % 2 == 0:
            try:
                candidate = decode_wkb(bytes.fromhex(hex_data))
            except ValueError:
                candidate = None
        source_format = "wkb_hex"
    else:
        raw = _decode_binary_literal(text)
        if raw is not None:
            candidate = decode_wkb(raw)
            source_format = "binary"

    if candidate is None:
        return None
    x, y, srid = candidate
    transformed = transform_to_wgs84(x, y, srid)
    if transformed is None:
        return None
    lon, lat = transformed
    if not _valid_lat_lon(lat, lon) or not within_bbox(lat, lon, bbox):
        return None
    return Point(lon=lon, lat=lat, source_format=source_format, srid=srid)
