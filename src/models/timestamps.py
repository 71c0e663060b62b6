"""
Timestamp normalization for capture messages.

Every timestamp is carried as an integer count of nanoseconds since the Unix
epoch. Conversions never go through float so nanosecond precision survives
the trip into pcap's seconds/microseconds split.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Tuple, Union

NANOS_PER_SECOND = 1_000_000_000
NANOS_PER_MICRO = 1_000

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_ISO_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d{1,9}))?"
    r"(?P<tz>Z|[+-]\d{2}:?\d{2})?$"
)

TimestampLike = Union[int, str, datetime]


class InvalidTimestampError(ValueError):
    """Raised when a value cannot be turned into epoch nanoseconds."""


def to_nanoseconds(value: TimestampLike) -> int:
    """
    Convert a timestamp to nanoseconds since the Unix epoch.

    Accepts:
        int: already nanoseconds
        str: decimal digits (nanoseconds, as the trace backend sends them)
             or ISO-8601 with up to 9 fractional digits
        datetime: naive values are taken as UTC

    Raises:
        InvalidTimestampError: negative, unparsable or unsupported values
    """
    if isinstance(value, bool):
        raise InvalidTimestampError(f"Unsupported timestamp: {value!r}")

    if isinstance(value, int):
        nanos = value
    elif isinstance(value, datetime):
        nanos = _datetime_to_nanos(value)
    elif isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            nanos = int(text)
        else:
            nanos = _iso_to_nanos(text)
    else:
        raise InvalidTimestampError(
            f"Unsupported timestamp type: {type(value).__name__}")

    if nanos < 0:
        raise InvalidTimestampError(f"Timestamp before epoch: {value!r}")
    return nanos


def split_timestamp(nanos: int) -> Tuple[int, int]:
    """Split epoch nanoseconds into (seconds, microseconds remainder)."""
    seconds, remainder = divmod(nanos, NANOS_PER_SECOND)
    return seconds, remainder // NANOS_PER_MICRO


def _datetime_to_nanos(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    delta = dt - _EPOCH
    return (delta // timedelta(microseconds=1)) * NANOS_PER_MICRO


def _iso_to_nanos(text: str) -> int:
    match = _ISO_RE.match(text)
    if not match:
        raise InvalidTimestampError(f"Unparsable timestamp: {text!r}")

    try:
        base = datetime.strptime(match.group("base").replace(" ", "T"),
                                 "%Y-%m-%dT%H:%M:%S")
        tz = match.group("tz")
        if tz and tz != "Z":
            sign = -1 if tz[0] == "-" else 1
            digits = tz[1:].replace(":", "")
            offset = timedelta(hours=int(digits[:2]), minutes=int(digits[2:]))
            base = base.replace(tzinfo=timezone(sign * offset))
        else:
            base = base.replace(tzinfo=timezone.utc)
    except ValueError as e:
        raise InvalidTimestampError(f"Invalid timestamp {text!r}: {e}")

    # Right-pad so "123" means 123 milliseconds
    frac = (match.group("frac") or "").ljust(9, "0")
    seconds = (base - _EPOCH) // timedelta(seconds=1)
    return seconds * NANOS_PER_SECOND + int(frac)
