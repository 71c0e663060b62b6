"""
Call capture -> classic pcap encoder.

Pure and deterministic: the same CallCapture always yields the same bytes.
It never throws for a well-shaped capture. A packet that cannot be framed
(oversized payload, bad address, out-of-range RTP field, bad timestamp) is
dropped with a warning and encoding carries on with the rest.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Tuple

from .exceptions import InvalidAddressError, InvalidCaptureError, PcapEncodeError
from .headers import build_packet, global_header
from .payloads import rtp_payload, sip_payload
from models.capture import (
    CallCapture,
    CaptureMessage,
    ProtocolHeader,
    RtpFlow,
    SipMessage,
    StreamRecord,
    sort_by_time,
)
from models.timestamps import to_nanoseconds

logger = logging.getLogger(__name__)

PacketBuilder = Callable[[], bytes]


@dataclass(frozen=True)
class EncoderOptions:
    """Encoding options. Defaults give the plain input-order encoding."""
    sort_by_time: bool = False
    """Order messages by their first timestamp before framing"""


@dataclass(frozen=True)
class EncodeResult:
    data: bytes
    packets_written: int
    packets_skipped: int

    @property
    def size(self) -> int:
        return len(self.data)


class PcapEncoder:
    """
    Serializes a CallCapture into a classic pcap byte string.

    Holds no state; every method is static and safe to call concurrently
    for different captures.
    """

    @staticmethod
    def encode(capture: CallCapture) -> bytes:
        """Return the pcap bytes for `capture`, messages kept in input order."""
        return PcapEncoder.encode_with_stats(capture).data

    @staticmethod
    def encode_with_stats(capture: CallCapture,
                          options: Optional[EncoderOptions] = None) -> EncodeResult:
        """
        Encode and report how many packets made it into the file.

        Raises:
            InvalidCaptureError: capture has no usable message list
        """
        options = options or EncoderOptions()
        messages = _checked_messages(capture)
        call_id = getattr(capture, "call_id", None)

        if options.sort_by_time:
            messages = sort_by_time(messages)

        chunks = [global_header()]
        written = 0
        skipped = 0
        for index, msg in enumerate(messages):
            for description, build in PcapEncoder._expand(msg, index):
                # Any failure costs this one packet, never the capture
                try:
                    chunks.append(build())
                except Exception as e:
                    skipped += 1
                    logger.warning("Skipping %s of call %s: %s", description, call_id, e)
                    continue
                written += 1

        data = b"".join(chunks)
        logger.debug("Encoded call %s: %d packets, %d skipped, %d bytes",
                     call_id, written, skipped, len(data))
        return EncodeResult(data=data, packets_written=written, packets_skipped=skipped)

    @staticmethod
    def _expand(msg: CaptureMessage, index: int) -> Iterator[Tuple[str, PacketBuilder]]:
        """Yield one (description, builder) pair per packet a message turns into."""
        if isinstance(msg, SipMessage):
            yield (f"SIP message #{index}",
                   lambda: _udp_packet(msg.timestamp, msg.header, sip_payload(msg.raw_text)))

        elif isinstance(msg, RtpFlow):
            for n, frame in enumerate(msg.frames or ()):
                yield (f"RTP frame #{n} of flow #{index}",
                       lambda frame=frame: _rtp_packet(frame, msg.header))

        elif isinstance(msg, StreamRecord):
            for n, value in enumerate(msg.values or ()):
                yield (f"value #{n} of stream #{index}",
                       lambda value=value: _stream_packet(value, msg.stream))

        else:
            yield (f"message #{index}", lambda: _unsupported(msg))


def encode_capture(capture: CallCapture) -> bytes:
    """Module-level shortcut for PcapEncoder.encode."""
    return PcapEncoder.encode(capture)


def _checked_messages(capture) -> Tuple[CaptureMessage, ...]:
    messages = getattr(capture, "messages", None)
    if messages is None:
        raise InvalidCaptureError("capture has no message list")
    try:
        return tuple(messages)
    except TypeError as e:
        raise InvalidCaptureError(f"capture messages are not a sequence: {e}") from e


def _udp_packet(timestamp, header: Optional[ProtocolHeader], payload: bytes) -> bytes:
    if header is None:
        raise InvalidAddressError("no protocol header")
    return build_packet(
        to_nanoseconds(timestamp),
        header.src_ip,
        header.dst_ip,
        header.src_port,
        header.dst_port,
        payload,
    )


def _rtp_packet(frame, flow_header: Optional[ProtocolHeader]) -> bytes:
    header = frame.header or flow_header
    return _udp_packet(frame.timestamp, header, rtp_payload(frame.rtp, frame.payload))


def _stream_packet(value, stream: ProtocolHeader) -> bytes:
    timestamp, text = value
    return _udp_packet(timestamp, stream, sip_payload(text))


def _unsupported(msg) -> bytes:
    raise PcapEncodeError(f"unsupported message type {type(msg).__name__}")
