"""
Turn trace-backend JSON into CallCapture objects.

Two documents are understood:

* Call documents: {"call_id": ..., "messages": [...]} where every message
  has a "type" of "sip", "rtp_flow" or "rtcp_flow".
* Log-store query results: {"data": {"result": [...]}} (or the bare list),
  each result being {"stream": {src_ip, dst_ip, src_port, dst_port, ...},
  "values": [[ns_timestamp, payload], ...]}.

RTCP flows carry quality statistics only and are not framed into packets.
"""

import json
import logging
import os
import re
from typing import Any, IO, List, Optional, Union

from models.capture import (
    CallCapture,
    ProtocolHeader,
    RtpFlow,
    RtpFrame,
    RtpHeaderFields,
    SipMessage,
    StreamRecord,
)

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._@-]")
_INT_STRING = re.compile(r"^\s*[+-]?\d+\s*$")

# data_header key -> RtpHeaderFields attribute, default
_RTP_FIELDS = (
    ("Version", "version", 2),
    ("Padding", "padding", 0),
    ("Extension", "extension", 0),
    ("CC", "csrc_count", 0),
    ("Marker", "marker", 0),
    ("PayloadType", "payload_type", 0),
    ("SequenceNumber", "sequence_number", 0),
    ("Timestamp", "rtp_timestamp", 0),
    ("Ssrc", "ssrc", 0),
)


class IngestError(ValueError):
    """Document does not have the shape of a call trace."""


def capture_from_call_json(doc: dict) -> CallCapture:
    """Build a CallCapture from a call document."""
    if not isinstance(doc, dict):
        raise IngestError(f"call document must be an object, got {type(doc).__name__}")
    messages = doc.get("messages")
    if not isinstance(messages, list):
        raise IngestError("call document has no 'messages' list")

    call_id = str(doc.get("call_id") or doc.get("callId") or "")
    parsed = []
    for index, msg in enumerate(messages):
        path = f"messages[{index}]"
        if not isinstance(msg, dict):
            logger.warning("Dropping %s: expected an object", path)
            continue
        kind = msg.get("type")
        try:
            if kind == "sip":
                parsed.append(_sip_message(msg, path))
            elif kind == "rtp_flow":
                parsed.append(_rtp_flow(msg, path))
            elif kind == "rtcp_flow":
                logger.debug("Dropping %s: RTCP flows are not framed", path)
            else:
                logger.warning("Dropping %s: unknown message type %r", path, kind)
        except IngestError as e:
            logger.warning("Dropping %s: %s", path, e)

    return CallCapture(call_id=call_id, messages=tuple(parsed))


def capture_from_streams(call_id: str, results: List[dict]) -> CallCapture:
    """Build a CallCapture from log-store query results, one record per stream."""
    if not isinstance(results, list):
        raise IngestError("stream results must be a list")

    records = []
    for index, result in enumerate(results):
        path = f"result[{index}]"
        if not isinstance(result, dict):
            raise IngestError(f"{path}: expected an object")
        stream = _required(result, "stream", path)
        if not isinstance(stream, dict):
            raise IngestError(f"{path}.stream: expected an object")
        values = _required(result, "values", path)
        if not isinstance(values, list):
            raise IngestError(f"{path}.values: expected a list")

        pairs = []
        for n, value in enumerate(values):
            if not isinstance(value, (list, tuple)) or len(value) != 2:
                raise IngestError(f"{path}.values[{n}]: expected [timestamp, payload]")
            pairs.append((str(value[0]), str(value[1])))

        records.append(StreamRecord(
            stream=ProtocolHeader(
                src_ip=str(_required(stream, "src_ip", f"{path}.stream")),
                dst_ip=str(_required(stream, "dst_ip", f"{path}.stream")),
                src_port=_int(stream.get("src_port") or 0, f"{path}.stream.src_port"),
                dst_port=_int(stream.get("dst_port") or 0, f"{path}.stream.dst_port"),
            ),
            values=tuple(pairs),
        ))
    return CallCapture(call_id=call_id, messages=tuple(records))


def load_capture(source: Union[str, os.PathLike, IO[str]],
                 call_id: Optional[str] = None) -> CallCapture:
    """
    Read a JSON document from a path or open file and build its CallCapture.

    Args:
        call_id: used for log-store results, which do not carry one.
                 Defaults to the file name without extension.
    """
    if hasattr(source, "read"):
        name = getattr(source, "name", "capture")
        doc = _parse_json(source.read(), name)
    else:
        name = os.fspath(source)
        with open(name, "r", encoding="utf-8") as f:
            doc = _parse_json(f.read(), name)

    if isinstance(doc, dict) and "messages" in doc:
        return capture_from_call_json(doc)

    if isinstance(doc, dict) and isinstance(doc.get("data"), dict):
        if doc.get("status", "success") != "success":
            raise IngestError(f"query status is {doc.get('status')!r}")
        results = doc["data"].get("result")
        call_id = call_id or doc.get("call_id")
    elif isinstance(doc, list):
        results = doc
    else:
        raise IngestError(f"{name}: not a call document or stream query result")

    if not call_id:
        call_id = os.path.splitext(os.path.basename(str(name)))[0]
    return capture_from_streams(call_id, results)


def pcap_filename(call_id: str) -> str:
    """Download name for a call's capture: unsafe characters become '_'."""
    stem = _UNSAFE_FILENAME_CHARS.sub("_", call_id or "") or "capture"
    return f"{stem}.pcap"


def _sip_message(msg: dict, path: str) -> SipMessage:
    return SipMessage(
        timestamp=_required(msg, "create_date", path),
        header=_protocol_header(_required(msg, "protocol_header", path),
                                f"{path}.protocol_header"),
        raw_text=str(_required(msg, "raw", path)),
    )


def _rtp_flow(msg: dict, path: str) -> RtpFlow:
    if "protocol_header" in msg:
        header = _protocol_header(msg["protocol_header"], f"{path}.protocol_header")
    else:
        header = ProtocolHeader(
            src_ip=str(_required(msg, "src_ip", path)),
            dst_ip=str(_required(msg, "dst_ip", path)),
            src_port=_int(msg.get("src_port") or 0, f"{path}.src_port"),
            dst_port=_int(msg.get("dst_port") or 0, f"{path}.dst_port"),
        )

    frames = []
    for n, item in enumerate(msg.get("messages") or []):
        frame_path = f"{path}.messages[{n}]"
        try:
            frames.append(_rtp_frame(item, frame_path))
        except IngestError as e:
            logger.warning("Dropping %s: %s", frame_path, e)
    return RtpFlow(header=header, frames=tuple(frames))


def _rtp_frame(item: Any, path: str) -> RtpFrame:
    if not isinstance(item, dict):
        raise IngestError(f"{path}: expected an object")
    frame_header = None
    if item.get("protocol_header"):
        frame_header = _protocol_header(item["protocol_header"], f"{path}.protocol_header")
    return RtpFrame(
        timestamp=_required(item, "create_date", path),
        rtp=_rtp_fields(item.get("data_header") or {}, f"{path}.data_header"),
        payload=_payload_bytes(item.get("raw") or [], f"{path}.raw"),
        header=frame_header,
    )


def _rtp_fields(data_header: dict, path: str) -> RtpHeaderFields:
    values = {}
    for key, attr, default in _RTP_FIELDS:
        raw = data_header.get(key)
        values[attr] = default if raw in (None, "") else _int(raw, f"{path}.{key}")
    return RtpHeaderFields(**values)


def _protocol_header(data: Any, path: str) -> ProtocolHeader:
    if not isinstance(data, dict):
        raise IngestError(f"{path}: expected an object")
    return ProtocolHeader(
        src_ip=str(_required(data, "srcIp", path)),
        dst_ip=str(_required(data, "dstIp", path)),
        src_port=_int(data.get("srcPort") or 0, f"{path}.srcPort"),
        dst_port=_int(data.get("dstPort") or 0, f"{path}.dstPort"),
    )


def _payload_bytes(raw: Any, path: str) -> bytes:
    try:
        return bytes(raw)
    except (TypeError, ValueError) as e:
        raise IngestError(f"{path}: not a list of byte values ({e})")


def _required(data: dict, key: str, path: str) -> Any:
    if key not in data or data[key] is None:
        raise IngestError(f"{path}: missing '{key}'")
    return data[key]


def _int(value: Any, path: str) -> int:
    """Integers and decimal strings only; 3.9 or True are errors, not 3 or 1."""
    if isinstance(value, bool):
        raise IngestError(f"{path}: {value!r} is not an integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise IngestError(f"{path}: {value!r} is not an integer")
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _INT_STRING.match(value):
        return int(value)
    raise IngestError(f"{path}: {value!r} is not an integer")


def _parse_json(text: str, name: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise IngestError(f"{name}: invalid JSON ({e})")
