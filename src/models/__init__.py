"""
Call capture and packet data models.
"""

from .capture import (
    CallCapture,
    CaptureMessage,
    ProtocolHeader,
    RtpFlow,
    RtpFrame,
    RtpHeaderFields,
    SipMessage,
    StreamRecord,
    count_packets,
    sort_by_time,
)
from .packet import RawPacket, DecodedPacket, RtpInfo
from .timestamps import InvalidTimestampError, split_timestamp, to_nanoseconds

__all__ = [
    'CallCapture',
    'CaptureMessage',
    'ProtocolHeader',
    'RtpFlow',
    'RtpFrame',
    'RtpHeaderFields',
    'SipMessage',
    'StreamRecord',
    'count_packets',
    'sort_by_time',
    'RawPacket',
    'DecodedPacket',
    'RtpInfo',
    'InvalidTimestampError',
    'split_timestamp',
    'to_nanoseconds',
]
