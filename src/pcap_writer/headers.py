"""
Header synthesis for classic pcap files (link type Ethernet).

Reference: https://wiki.wireshark.org/Development/LibpcapFileFormat

File structure written here:
- 24-byte global header (little-endian)
- Repeated packet records:
  - 16-byte record header (little-endian)
  - Ethernet II (14) + IPv4 without options (20) + UDP (8) + payload

pcap headers are little-endian; everything on the wire is network order.
No record padding is added between packets.
"""

import ipaddress
import struct

from .exceptions import InvalidAddressError, InvalidFieldError, PayloadTooLargeError
from models.timestamps import split_timestamp

# Sizes
GLOBAL_HEADER_SIZE = 24
PACKET_HEADER_SIZE = 16
ETHERNET_HEADER_SIZE = 14
IP_HEADER_SIZE = 20
UDP_HEADER_SIZE = 8
MAX_PACKET_SIZE = 65535
MAX_UDP_PAYLOAD = MAX_PACKET_SIZE - IP_HEADER_SIZE - UDP_HEADER_SIZE  # 65507

# Global header values
PCAP_MAGIC = 0xA1B2C3D4
PCAP_VERSION_MAJOR = 2
PCAP_VERSION_MINOR = 4
PCAP_SNAPLEN = 65535
DLT_EN10MB = 1

# Link/network constants
ETH_TYPE_IPV4 = 0x0800
BROADCAST_MAC = b"\xff\xff\xff\xff\xff\xff"
PLACEHOLDER_MAC = b"\x00\x11\x22\x33\x44\x55"
IP_VERSION_IHL = 0x45
IP_FLAG_DONT_FRAGMENT = 0x4000
IP_DEFAULT_TTL = 64
IP_PROTO_UDP = 17

_GLOBAL_HEADER = struct.Struct("<IHHiIII")
_RECORD_HEADER = struct.Struct("<IIII")
_IPV4_HEADER = struct.Struct("!BBHHHBBH4s4s")
_UDP_HEADER = struct.Struct("!HHHH")


def global_header() -> bytes:
    """Return the 24-byte pcap global header (µs resolution, Ethernet)."""
    return _GLOBAL_HEADER.pack(
        PCAP_MAGIC,
        PCAP_VERSION_MAJOR,
        PCAP_VERSION_MINOR,
        0,  # thiszone: GMT
        0,  # sigfigs
        PCAP_SNAPLEN,
        DLT_EN10MB,
    )


def packet_record_header(timestamp_ns: int, length: int) -> bytes:
    """
    Return the 16-byte record header for a packet of `length` bytes.

    Captured and original length are the same; nothing is truncated.
    """
    seconds, micros = split_timestamp(timestamp_ns)
    if seconds > 0xFFFFFFFF:
        raise InvalidFieldError(f"timestamp {timestamp_ns} overflows 32-bit seconds")
    return _RECORD_HEADER.pack(seconds, micros, length, length)


def ethernet_header() -> bytes:
    """Synthetic Ethernet II header: broadcast <- placeholder, IPv4."""
    return BROADCAST_MAC + PLACEHOLDER_MAC + struct.pack("!H", ETH_TYPE_IPV4)


def ipv4_checksum(header: bytes) -> int:
    """
    Standard IPv4 header checksum.

    One's-complement sum of the 16-bit big-endian words with carries folded
    back in, then complemented. The checksum field must be zero in `header`
    when computing, or the result is 0 for a valid header when verifying.
    """
    if len(header) % 2:
        header += b"\x00"
    total = 0
    for (word,) in struct.iter_unpack("!H", header):
        total += word
    while total >> 16:
        total = (total & 0xFFFF) + (total >> 16)
    return ~total & 0xFFFF


def parse_ipv4(address: str) -> bytes:
    """Return the 4 packed octets of a dotted-quad address."""
    try:
        return ipaddress.IPv4Address(address).packed
    except (ipaddress.AddressValueError, ValueError, TypeError) as e:
        raise InvalidAddressError(f"invalid IPv4 address {address!r}: {e}")


def check_port(port: int) -> int:
    if isinstance(port, bool) or not isinstance(port, int) or not 0 <= port <= 0xFFFF:
        raise InvalidAddressError(f"invalid UDP port {port!r}")
    return port


def ipv4_header(src_ip: str, dst_ip: str, payload_length: int) -> bytes:
    """
    Return a 20-byte IPv4 header carrying a UDP datagram.

    Args:
        payload_length: UDP payload bytes (headers are added here)
    """
    total_length = IP_HEADER_SIZE + UDP_HEADER_SIZE + payload_length
    src = parse_ipv4(src_ip)
    dst = parse_ipv4(dst_ip)
    fields = [
        IP_VERSION_IHL,
        0,  # DSCP/ECN
        total_length,
        0,  # identification
        IP_FLAG_DONT_FRAGMENT,
        IP_DEFAULT_TTL,
        IP_PROTO_UDP,
        0,  # checksum placeholder
        src,
        dst,
    ]
    checksum = ipv4_checksum(_IPV4_HEADER.pack(*fields))
    fields[7] = checksum
    return _IPV4_HEADER.pack(*fields)


def udp_header(src_port: int, dst_port: int, payload_length: int) -> bytes:
    """8-byte UDP header. Checksum is 0 (not computed, optional over IPv4)."""
    return _UDP_HEADER.pack(
        check_port(src_port),
        check_port(dst_port),
        UDP_HEADER_SIZE + payload_length,
        0,
    )


def build_packet(timestamp_ns: int, src_ip: str, dst_ip: str,
                 src_port: int, dst_port: int, payload: bytes) -> bytes:
    """
    Return a full packet record (record header + frame) for one UDP payload.

    Raises:
        PayloadTooLargeError: payload longer than MAX_UDP_PAYLOAD
        InvalidAddressError: bad address or port
    """
    if len(payload) > MAX_UDP_PAYLOAD:
        raise PayloadTooLargeError(len(payload), MAX_UDP_PAYLOAD)

    frame = b"".join((
        ethernet_header(),
        ipv4_header(src_ip, dst_ip, len(payload)),
        udp_header(src_port, dst_port, len(payload)),
        payload,
    ))
    return packet_record_header(timestamp_ns, len(frame)) + frame
