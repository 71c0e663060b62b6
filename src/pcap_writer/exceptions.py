"""
Exceptions raised while synthesizing pcap data.

Everything except InvalidCaptureError is a per-packet problem: the encoder
logs it, drops that packet and keeps going.
"""


class PcapEncodeError(Exception):
    """Base class for pcap synthesis errors."""


class InvalidCaptureError(PcapEncodeError):
    """The capture as a whole cannot be encoded (e.g. no message list)."""


class PayloadTooLargeError(PcapEncodeError):
    """UDP payload does not fit in a single IPv4 datagram."""

    def __init__(self, length: int, limit: int):
        super().__init__(f"payload of {length} bytes exceeds UDP maximum of {limit}")
        self.length = length
        self.limit = limit


class InvalidAddressError(PcapEncodeError):
    """Address or port is not representable in an IPv4/UDP header."""


class InvalidFieldError(PcapEncodeError):
    """Protocol header field does not fit its bit width."""
