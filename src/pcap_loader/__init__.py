"""
Classic pcap reading and decoding.
"""

from .exceptions import PcapEOFError, PcapFormatError
from .packet_decoder import DecodeQuality, decode_packet, quality_flag_names
from .pcap_reader import PcapReader, read_packets

__all__ = [
    'PcapEOFError',
    'PcapFormatError',
    'DecodeQuality',
    'decode_packet',
    'quality_flag_names',
    'PcapReader',
    'read_packets',
]
