"""
Classic pcap synthesis from call capture records.
"""

from .encoder import EncodeResult, EncoderOptions, PcapEncoder, encode_capture
from .exceptions import (
    InvalidAddressError,
    InvalidCaptureError,
    InvalidFieldError,
    PayloadTooLargeError,
    PcapEncodeError,
)
from .headers import MAX_UDP_PAYLOAD, ipv4_checksum

__all__ = [
    'EncodeResult',
    'EncoderOptions',
    'PcapEncoder',
    'encode_capture',
    'InvalidAddressError',
    'InvalidCaptureError',
    'InvalidFieldError',
    'PayloadTooLargeError',
    'PcapEncodeError',
    'MAX_UDP_PAYLOAD',
    'ipv4_checksum',
]
