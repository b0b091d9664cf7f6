"""Google encoded polyline helpers returning ``LatLng`` points."""
from __future__ import annotations

from typing import Iterable, List

import polyline

from .models import LatLng

PRECISION = 5

# Every encoded chunk is offset by 63 and fits in 6 bits.
_MIN_CHAR = 63
_MAX_CHAR = 63 + 0x3F


def decode_polyline(encoded: str) -> List[LatLng]:
    """Decode a Routes API ``encodedPolyline``.

    Raises ``ValueError`` for characters outside the encoding alphabet and
    for input that stops in the middle of a coordinate.
    """
    for position, char in enumerate(encoded):
        if not _MIN_CHAR <= ord(char) <= _MAX_CHAR:
            raise ValueError(f"invalid polyline character at position {position}")
    try:
        points = polyline.decode(encoded, PRECISION)
    except IndexError as exc:
        raise ValueError("truncated polyline") from exc
    return [LatLng(lat=lat, lng=lng) for lat, lng in points]


def encode_polyline(points: Iterable[LatLng]) -> str:
    return polyline.encode([(point.lat, point.lng) for point in points], PRECISION)
