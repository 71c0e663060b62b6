"""
Cross-checks generated captures against scapy's independent dissectors.
"""
import io

import pytest

pytest.importorskip("scapy")

from scapy.layers.inet import IP, UDP  # noqa: E402
from scapy.layers.l2 import Ether  # noqa: E402
from scapy.utils import rdpcap  # noqa: E402

from pcap_loader.scapy_verify import verify_capture  # noqa: E402
from pcap_writer import PcapEncoder  # noqa: E402


def test_generated_capture_passes_scapy(call_capture):
    report = verify_capture(PcapEncoder.encode(call_capture))
    assert report.ok, report.problems
    assert report.packets_checked == 3


def test_scapy_sees_the_original_payloads(call_capture):
    packets = rdpcap(io.BytesIO(PcapEncoder.encode(call_capture)))
    assert len(packets) == 3

    first = packets[0]
    assert first[Ether].dst == "ff:ff:ff:ff:ff:ff"
    assert first[IP].src == "10.0.0.1"
    assert first[IP].flags == "DF"
    assert first[UDP].dport == 5060
    assert bytes(first[UDP].payload).startswith(b"INVITE sip:m1@example.com SIP/2.0\r\n")

    media = bytes(packets[1][UDP].payload)
    assert media[:2] == b"\x80\x08"
    assert media[12:] == b"\xd5" * 160
    assert float(packets[2].time) == pytest.approx(1_700_000_000.002)


def test_corrupted_checksum_is_reported(call_capture):
    data = bytearray(PcapEncoder.encode(call_capture))
    # First packet: 24 global + 16 record + 14 ethernet + 10 into IPv4
    data[24 + 16 + 14 + 10] ^= 0x01
    report = verify_capture(bytes(data))
    assert not report.ok
    assert "packet 1: IPv4 checksum" in report.problems[0]
