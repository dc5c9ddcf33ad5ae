"""Utilities supporting ScreenFlow modules."""

from __future__ import annotations

import hashlib
import json
import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

from .errors import EmptyInputError

Segment = Union[str, bytes]

_SEPARATOR = b"\x1f"
_SCREEN_ID_NAMESPACE = "stable-id-v1"

_ISO8601 = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:?\d{2})$"
)


def content_id(namespace: str, *segments: Segment) -> str:
    """Hash a namespace tag and ordered segments into a hex SHA-256 id.

    Segments are joined with the 0x1F unit separator so that adjacent
    values cannot run together, and the namespace keeps ids for different
    artifact kinds apart even when their inputs coincide.
    """

    digest = hashlib.sha256()
    digest.update(namespace.encode("utf-8"))
    for segment in segments:
        digest.update(_SEPARATOR)
        digest.update(segment.encode("utf-8") if isinstance(segment, str) else segment)
    return digest.hexdigest()


def stable_screen_id(normalized_image_bytes: bytes, processing_version: str) -> str:
    """Return the content-addressed id of a normalized screen image."""

    if not normalized_image_bytes:
        raise EmptyInputError("normalized image bytes are empty")
    if not processing_version:
        raise EmptyInputError("processing version is empty")
    return content_id(_SCREEN_ID_NAMESPACE, normalized_image_bytes, processing_version)


def collapse_whitespace(value: str) -> str:
    return " ".join(value.split())


def round_half_away(value: float, places: int) -> float:
    """Round like a schoolbook, not like Python's banker's ``round``."""

    scale = 10 ** places
    scaled = abs(value) * scale
    if not math.isfinite(scaled):
        return value
    return math.copysign(math.floor(scaled + 0.5), value) / scale


def canonical_json(payload: Any) -> str:
    """Serialize with sorted keys and compact separators for stable bytes."""

    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def parse_iso8601(value: str) -> Optional[datetime]:
    """Parse an internet date-time, with or without fractional seconds."""

    match = _ISO8601.match(value)
    if not match:
        return None
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    try:
        if zone == "Z":
            tz = timezone.utc
        else:
            sign = 1 if zone[0] == "+" else -1
            digits = zone[1:].replace(":", "")
            tz = timezone(sign * timedelta(hours=int(digits[:2]), minutes=int(digits[2:])))
        micro = int((fraction or "0")[:6].ljust(6, "0"))
        return datetime(
            int(year), int(month), int(day), int(hour), int(minute), int(second), micro, tzinfo=tz
        )
    except ValueError:
        return None


def format_timestamp(value: datetime) -> str:
    """Render a datetime as UTC ISO-8601 with second precision."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(value: str) -> datetime:
    parsed = parse_iso8601(value)
    if parsed is None:
        raise ValueError(f"not an ISO-8601 timestamp: {value!r}")
    return parsed


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)
