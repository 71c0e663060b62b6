"""
Pure packet decoding logic (Ethernet/IPv4/UDP + SIP/RTP classification).

This module is deterministic and best-effort:
- It never throws on malformed/truncated packets
- It returns quality flags to describe decode issues
- It only parses headers; payloads are classified, not dissected
"""
from __future__ import annotations

from enum import IntFlag
import re
import struct
from typing import Optional, Tuple

from models.packet import DecodedPacket, RawPacket, RtpInfo
from pcap_writer.headers import ipv4_checksum

# Link type constants (libpcap DLT_*)
DLT_EN10MB = 1
DLT_RAW = 12

# EtherType constants
ETH_TYPE_IPV4 = 0x0800
ETH_TYPE_VLAN = 0x8100

# IP protocol numbers
IP_PROTO_UDP = 17

_SIP_START = re.compile(rb"^(?:SIP/2\.0 \d{3}|[A-Z]+ \S+ SIP/2\.0\r?\n)")


class DecodeQuality(IntFlag):
    OK = 0
    TRUNCATED = 1 << 0
    UNSUPPORTED_LINKTYPE = 1 << 1
    MALFORMED_L2 = 1 << 2
    MALFORMED_L3 = 1 << 3
    MALFORMED_L4 = 1 << 4
    UNKNOWN_L3 = 1 << 5
    UNKNOWN_L4 = 1 << 6
    BAD_IP_CHECKSUM = 1 << 7


def quality_flag_names(flags: int) -> Tuple[str, ...]:
    """Return decode quality flag names for display."""
    if flags == 0:
        return ("OK",)
    names = []
    for flag in DecodeQuality:
        if flag != DecodeQuality.OK and (flags & flag):
            names.append(flag.name)
    return tuple(names)


def decode_packet(raw: RawPacket) -> DecodedPacket:
    """Decode a RawPacket into a DecodedPacket (best-effort)."""
    data = raw.data or b""
    cap_len = len(data)
    fields = {}

    quality = DecodeQuality.OK
    if raw.is_truncated:
        quality |= DecodeQuality.TRUNCATED

    protocol_stack = []

    if raw.link_type == DLT_EN10MB:
        protocol_stack.append("ETH")
        if cap_len < 14:
            quality |= DecodeQuality.MALFORMED_L2
            return DecodedPacket(raw_packet=raw, protocol_stack=tuple(protocol_stack),
                                 quality_flags=int(quality))
        fields["dst_mac"] = _format_mac(data[0:6])
        fields["src_mac"] = _format_mac(data[6:12])
        ethertype = struct.unpack_from("!H", data, 12)[0]
        offset = 14
        if ethertype == ETH_TYPE_VLAN:
            if cap_len < offset + 4:
                quality |= DecodeQuality.MALFORMED_L2
                return DecodedPacket(raw_packet=raw, protocol_stack=tuple(protocol_stack + ["VLAN"]),
                                     quality_flags=int(quality), **fields)
            protocol_stack.append("VLAN")
            ethertype = struct.unpack_from("!H", data, offset + 2)[0]
            offset += 4
        if ethertype != ETH_TYPE_IPV4:
            quality |= DecodeQuality.UNKNOWN_L3
            return DecodedPacket(raw_packet=raw, protocol_stack=tuple(protocol_stack),
                                 quality_flags=int(quality), **fields)
    elif raw.link_type == DLT_RAW:
        offset = 0
    else:
        quality |= DecodeQuality.UNSUPPORTED_LINKTYPE
        return DecodedPacket(raw_packet=raw, quality_flags=int(quality))

    l4_offset, l3_quality = _parse_ipv4(data, offset, fields)
    quality |= l3_quality
    if l4_offset is None:
        return DecodedPacket(raw_packet=raw, protocol_stack=tuple(protocol_stack),
                             quality_flags=int(quality), **fields)
    protocol_stack.append("IP4")

    if fields["ip_protocol"] != IP_PROTO_UDP:
        quality |= DecodeQuality.UNKNOWN_L4
        return DecodedPacket(raw_packet=raw, protocol_stack=tuple(protocol_stack),
                             quality_flags=int(quality), **fields)

    l4_quality = _parse_udp(data, l4_offset, fields)
    quality |= l4_quality
    if "src_port" in fields:
        protocol_stack.append("UDP")

    payload = fields.get("payload", b"")
    if _SIP_START.match(payload):
        fields["app_protocol"] = "SIP"
        protocol_stack.append("SIP")
    else:
        rtp = _parse_rtp(payload)
        if rtp is not None:
            fields["app_protocol"] = "RTP"
            fields["rtp"] = rtp
            protocol_stack.append("RTP")

    return DecodedPacket(raw_packet=raw, protocol_stack=tuple(protocol_stack),
                         quality_flags=int(quality), **fields)


def _parse_ipv4(data: bytes, offset: int, fields: dict) -> Tuple[Optional[int], DecodeQuality]:
    cap_len = len(data)
    if offset + 20 > cap_len:
        return None, DecodeQuality.MALFORMED_L3
    vihl = data[offset]
    version = vihl >> 4
    ihl = (vihl & 0x0F) * 4
    if version != 4 or ihl < 20 or offset + ihl > cap_len:
        return None, DecodeQuality.MALFORMED_L3

    quality = DecodeQuality.OK
    header = data[offset:offset + ihl]
    if ipv4_checksum(header) != 0:
        quality |= DecodeQuality.BAD_IP_CHECKSUM

    fields["ttl"] = data[offset + 8]
    fields["ip_protocol"] = data[offset + 9]
    fields["ip_checksum"] = struct.unpack_from("!H", data, offset + 10)[0]
    fields["src_ip"] = _format_ipv4(data[offset + 12:offset + 16])
    fields["dst_ip"] = _format_ipv4(data[offset + 16:offset + 20])
    return offset + ihl, quality


def _parse_udp(data: bytes, offset: int, fields: dict) -> DecodeQuality:
    cap_len = len(data)
    if offset + 8 > cap_len:
        return DecodeQuality.MALFORMED_L4
    src_port, dst_port, length, _checksum = struct.unpack_from("!HHHH", data, offset)
    fields["src_port"] = src_port
    fields["dst_port"] = dst_port
    fields["udp_length"] = length
    if length < 8 or offset + length > cap_len:
        fields["payload"] = bytes(data[offset + 8:])
        return DecodeQuality.MALFORMED_L4
    fields["payload"] = bytes(data[offset + 8:offset + length])
    return DecodeQuality.OK


def _parse_rtp(payload: bytes) -> Optional[RtpInfo]:
    """RTP is only recognized heuristically: version 2 and room for the header."""
    if len(payload) < 12 or payload[0] >> 6 != 2:
        return None
    b0, b1, seq, ts, ssrc = struct.unpack_from("!BBHII", payload, 0)
    return RtpInfo(
        version=b0 >> 6,
        padding=(b0 >> 5) & 1,
        extension=(b0 >> 4) & 1,
        csrc_count=b0 & 0x0F,
        marker=b1 >> 7,
        payload_type=b1 & 0x7F,
        sequence_number=seq,
        rtp_timestamp=ts,
        ssrc=ssrc,
    )


def _format_ipv4(addr: bytes) -> Optional[str]:
    if len(addr) != 4:
        return None
    return "{}.{}.{}.{}".format(addr[0], addr[1], addr[2], addr[3])


def _format_mac(addr: bytes) -> str:
    return ":".join("{:02x}".format(b) for b in addr)
