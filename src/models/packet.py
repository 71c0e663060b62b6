"""
Packet records read back from a pcap file.

THESE MODELS ARE IMMUTABLE - a RawPacket is exactly what the file holds and
a DecodedPacket is a view over it. Decoding creates new objects.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class RawPacket:
    """
    One packet record: 16-byte record header values plus the captured bytes.

    packet_id is monotonic starting at 1 within a file.
    """
    packet_id: int

    timestamp_ns: int
    """Nanoseconds since epoch. Microsecond files are scaled up."""

    captured_length: int
    """Bytes stored in the file (incl_len)"""

    original_length: int
    """Bytes on the wire (orig_len)"""

    link_type: int
    """libpcap DLT_* constant (1 = DLT_EN10MB)"""

    data: bytes

    offset: int = 0
    """File offset of the record header"""

    @property
    def timestamp_us(self) -> int:
        return self.timestamp_ns // 1_000

    @property
    def is_truncated(self) -> bool:
        """True if captured length < original length (snaplen limited)."""
        return self.captured_length < self.original_length


@dataclass(frozen=True)
class RtpInfo:
    """RTP fixed header fields recovered from a UDP payload."""
    version: int
    padding: int
    extension: int
    csrc_count: int
    marker: int
    payload_type: int
    sequence_number: int
    rtp_timestamp: int
    ssrc: int


@dataclass(frozen=True)
class DecodedPacket:
    """
    Ethernet/IPv4/UDP view of a RawPacket.

    Fields stay None when the layer they belong to could not be decoded;
    quality_flags says why.
    """
    raw_packet: RawPacket

    protocol_stack: Tuple[str, ...] = field(default_factory=tuple)
    """e.g. ('ETH', 'IP4', 'UDP', 'SIP')"""

    src_mac: Optional[str] = None
    dst_mac: Optional[str] = None
    src_ip: Optional[str] = None
    dst_ip: Optional[str] = None
    ttl: Optional[int] = None
    ip_protocol: int = 0
    ip_checksum: Optional[int] = None
    src_port: Optional[int] = None
    dst_port: Optional[int] = None
    udp_length: Optional[int] = None
    payload: bytes = b""
    app_protocol: Optional[str] = None
    """'SIP', 'RTP' or None"""

    rtp: Optional[RtpInfo] = None
    quality_flags: int = 0

    def __post_init__(self):
        if not isinstance(self.protocol_stack, tuple):
            object.__setattr__(self, 'protocol_stack', tuple(self.protocol_stack))

    @property
    def stack_summary(self) -> str:
        return "/".join(self.protocol_stack) if self.protocol_stack else "unknown"

    @property
    def sip_first_line(self) -> Optional[str]:
        if self.app_protocol != "SIP":
            return None
        line = self.payload.split(b"\r\n", 1)[0]
        return line.decode("utf-8", errors="replace")

    def to_dict(self) -> Dict[str, Any]:
        raw = self.raw_packet
        record = {
            "packet_id": raw.packet_id,
            "timestamp_ns": raw.timestamp_ns,
            "length": raw.captured_length,
            "stack": self.stack_summary,
            "src_ip": self.src_ip,
            "dst_ip": self.dst_ip,
            "src_port": self.src_port,
            "dst_port": self.dst_port,
            "app_protocol": self.app_protocol,
            "payload_length": len(self.payload),
            "quality_flags": self.quality_flags,
        }
        if self.app_protocol == "SIP":
            record["sip_first_line"] = self.sip_first_line
        if self.rtp is not None:
            record["rtp_ssrc"] = self.rtp.ssrc
            record["rtp_seq"] = self.rtp.sequence_number
            record["rtp_payload_type"] = self.rtp.payload_type
        return record
