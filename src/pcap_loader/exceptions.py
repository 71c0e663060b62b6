"""
Exceptions raised while reading pcap files.
"""


class PcapFormatError(Exception):
    """File is not a classic pcap file or a header is corrupt."""


class PcapEOFError(PcapFormatError):
    """File ends in the middle of a packet record."""
