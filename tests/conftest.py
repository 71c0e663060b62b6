"""
Shared fixtures. Puts src/ on the path so the tests run from a checkout.
"""
import os
import sys

import pytest

project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
src_path = os.path.join(project_root, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from models import CallCapture, ProtocolHeader, RtpFlow, RtpFrame, RtpHeaderFields  # noqa: E402
from builders import BASE_NS, invite, sip  # noqa: E402


@pytest.fixture
def call_capture():
    """INVITE, one RTP frame, BYE."""
    flow = RtpFlow(
        header=ProtocolHeader("10.0.0.1", "10.0.0.2", 40000, 40002),
        frames=(
            RtpFrame(
                timestamp=BASE_NS + 1_000_000,
                rtp=RtpHeaderFields(version=2, payload_type=8, sequence_number=1,
                                    rtp_timestamp=160, ssrc=0x11223344),
                payload=b"\xd5" * 160,
            ),
        ),
    )
    return CallCapture(
        call_id="call-1",
        messages=(
            sip(invite("m1"), ts=BASE_NS),
            flow,
            sip("BYE sip:m1@example.com SIP/2.0\r\n\r\n", ts=BASE_NS + 2_000_000),
        ),
    )
