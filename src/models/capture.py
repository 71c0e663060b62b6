"""
Call capture data models.

These are the in-memory shapes a call trace takes before it is turned into a
pcap file. They are IMMUTABLE: the encoder reads them and never writes back,
so the same CallCapture always produces the same bytes.
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Sequence, Tuple, Union

from .timestamps import TimestampLike, to_nanoseconds


@dataclass(frozen=True)
class ProtocolHeader:
    """
    Network 5-tuple minus the protocol (always UDP here).

    No validation happens on construction. Addresses and ports are checked
    when the packet is framed, so a bad header only costs its own packet.
    """
    src_ip: str
    """Dotted-quad IPv4 source address"""

    dst_ip: str
    """Dotted-quad IPv4 destination address"""

    src_port: int = 0
    """0 means unknown/unset"""

    dst_port: int = 0


@dataclass(frozen=True)
class RtpHeaderFields:
    """Fixed RTP header fields (RFC 3550 section 5.1)."""
    version: int = 2
    padding: int = 0
    extension: int = 0
    csrc_count: int = 0
    marker: int = 0
    payload_type: int = 0
    sequence_number: int = 0
    rtp_timestamp: int = 0
    ssrc: int = 0


@dataclass(frozen=True)
class RtpFrame:
    """One media frame of an RTP flow."""
    timestamp: TimestampLike
    rtp: RtpHeaderFields
    payload: bytes = b""
    header: Optional[ProtocolHeader] = None
    """Frame-level addressing. None inherits the owning flow's header."""


@dataclass(frozen=True)
class SipMessage:
    """A complete SIP message exactly as captured (CRLFs included)."""
    timestamp: TimestampLike
    header: ProtocolHeader
    raw_text: str

    kind = "sip"

    @property
    def first_timestamp_ns(self) -> int:
        return to_nanoseconds(self.timestamp)


@dataclass(frozen=True)
class RtpFlow:
    """Media frames exchanged between one source/destination pair."""
    header: ProtocolHeader
    frames: Tuple[RtpFrame, ...] = field(default_factory=tuple)

    kind = "rtp_flow"

    def __post_init__(self):
        if not isinstance(self.frames, tuple):
            object.__setattr__(self, 'frames', tuple(self.frames))

    @property
    def first_timestamp_ns(self) -> int:
        if not self.frames:
            return 0
        return min(to_nanoseconds(frame.timestamp) for frame in self.frames)


@dataclass(frozen=True)
class StreamRecord:
    """
    Log-store shaped record: one stream descriptor, many raw payloads.

    Each (timestamp, payload) value becomes its own packet, framed like a
    SIP message that shares the stream's header.
    """
    stream: ProtocolHeader
    values: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    kind = "stream"

    def __post_init__(self):
        if not isinstance(self.values, tuple):
            object.__setattr__(self, 'values', tuple(tuple(v) for v in self.values))

    @property
    def first_timestamp_ns(self) -> int:
        if not self.values:
            return 0
        return min(to_nanoseconds(ts) for ts, _ in self.values)


CaptureMessage = Union[SipMessage, RtpFlow, StreamRecord]


@dataclass(frozen=True)
class CallCapture:
    """
    Everything needed to synthesize one call's pcap.

    The message order is the packet order in the output file. Nothing is
    sorted implicitly; use sorted_by_time() to get chronological order.
    """
    call_id: str
    """Opaque identifier, only used for naming the output file"""

    messages: Tuple[CaptureMessage, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if self.messages is not None and not isinstance(self.messages, tuple):
            object.__setattr__(self, 'messages', tuple(self.messages))

    def sorted_by_time(self) -> "CallCapture":
        """Return a copy with messages ordered by their first timestamp (stable)."""
        return replace(self, messages=sort_by_time(self.messages))

    @property
    def message_count(self) -> int:
        return len(self.messages or ())


def sort_by_time(messages: Sequence[CaptureMessage]) -> Tuple[CaptureMessage, ...]:
    """
    Stable sort by first timestamp.

    Messages without a usable timestamp (unparsable values, unknown message
    types) go last in their original relative order, so whoever frames them
    can still report them one by one.
    """
    return tuple(sorted(messages, key=_time_sort_key))


def _time_sort_key(msg) -> Tuple[int, int]:
    try:
        return (0, msg.first_timestamp_ns)
    except (AttributeError, TypeError, ValueError):
        return (1, 0)


def count_packets(messages: Sequence[CaptureMessage]) -> int:
    """Number of packets the messages expand to before any are skipped."""
    total = 0
    for msg in messages:
        if isinstance(msg, RtpFlow):
            total += len(msg.frames)
        elif isinstance(msg, StreamRecord):
            total += len(msg.values)
        else:
            total += 1
    return total
