"""
UDP payload framing for SIP text and RTP media.
"""

import struct

from .exceptions import InvalidFieldError
from models.capture import RtpHeaderFields

RTP_HEADER_SIZE = 12

_RTP_FIXED = struct.Struct("!BBHII")

# field name -> bit width
_RTP_FIELD_BITS = (
    ("version", 2),
    ("padding", 1),
    ("extension", 1),
    ("csrc_count", 4),
    ("marker", 1),
    ("payload_type", 7),
    ("sequence_number", 16),
    ("rtp_timestamp", 32),
    ("ssrc", 32),
)


def sip_payload(raw_text: str) -> bytes:
    """SIP goes on the wire verbatim; only the text encoding is applied."""
    return raw_text.encode("utf-8")


def rtp_header(fields: RtpHeaderFields) -> bytes:
    """
    Pack the 12-byte RTP fixed header.

    byte 0: V(2) P(1) X(1) CC(4)
    byte 1: M(1) PT(7)
    then sequence number, timestamp and SSRC in network order.

    Raises:
        InvalidFieldError: a field is negative or wider than its bit width
    """
    for name, bits in _RTP_FIELD_BITS:
        value = getattr(fields, name)
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < (1 << bits):
            raise InvalidFieldError(f"RTP {name}={value!r} does not fit in {bits} bits")

    return _RTP_FIXED.pack(
        (fields.version << 6) | (fields.padding << 5)
        | (fields.extension << 4) | fields.csrc_count,
        (fields.marker << 7) | fields.payload_type,
        fields.sequence_number,
        fields.rtp_timestamp,
        fields.ssrc,
    )


def rtp_payload(fields: RtpHeaderFields, media: bytes) -> bytes:
    """RTP header followed by the media bytes as received."""
    return rtp_header(fields) + bytes(media)
