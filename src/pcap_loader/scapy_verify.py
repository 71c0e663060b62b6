"""
Cross-check a generated capture with scapy's dissectors.

Our own reader shares code with the writer (the checksum routine), so it
cannot catch a systematic mistake in that code. scapy parses the bytes
independently and recomputes the IPv4 checksum on its own.
"""

import io
from dataclasses import dataclass, field
from typing import List

try:
    from scapy.layers.inet import IP, UDP
    from scapy.utils import rdpcap
    SCAPY_AVAILABLE = True
except ImportError:
    SCAPY_AVAILABLE = False


@dataclass
class VerifyReport:
    packets_checked: int = 0
    problems: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems


def verify_capture(data: bytes) -> VerifyReport:
    """
    Dissect `data` with scapy and report anything a packet analyzer would flag.

    Checks every packet is Ethernet/IPv4/UDP, that the IPv4 checksum matches
    scapy's recomputation and that the UDP length covers exactly the payload.
    """
    if not SCAPY_AVAILABLE:
        raise RuntimeError("Scapy not available. Install with: pip install scapy")

    report = VerifyReport()
    packets = rdpcap(io.BytesIO(data))
    for number, pkt in enumerate(packets, start=1):
        report.packets_checked += 1
        if not pkt.haslayer(IP) or not pkt.haslayer(UDP):
            report.problems.append(f"packet {number}: not IPv4/UDP ({pkt.summary()})")
            continue

        ip = pkt[IP]
        rebuilt = ip.copy()
        del rebuilt.chksum
        expected = IP(bytes(rebuilt)).chksum
        if ip.chksum != expected:
            report.problems.append(
                f"packet {number}: IPv4 checksum 0x{ip.chksum:04x}, expected 0x{expected:04x}")

        udp = pkt[UDP]
        payload_len = len(bytes(udp.payload))
        if udp.len != 8 + payload_len:
            report.problems.append(
                f"packet {number}: UDP length {udp.len}, payload is {payload_len} bytes")

    return report
