"""
Tests for building call captures from trace-backend JSON.
"""
import io
import json
import logging

import pytest

from ingest import (
    IngestError,
    capture_from_call_json,
    capture_from_streams,
    load_capture,
    pcap_filename,
)
from models import RtpFlow, SipMessage, StreamRecord
from pcap_loader import decode_packet, read_packets
from pcap_writer import PcapEncoder

CALL_DOC = {
    "call_id": "a84b4c76e66710@pc33.example.com",
    "messages": [
        {
            "type": "sip",
            "create_date": "2023-11-14T22:13:20.123456789Z",
            "protocol_header": {"srcIp": "10.0.0.1", "dstIp": "10.0.0.2",
                                "srcPort": 5060, "dstPort": 5060},
            "raw": "INVITE sip:bob@example.com SIP/2.0\r\nContent-Length: 0\r\n\r\n",
        },
        {
            "type": "rtcp_flow",
            "src_ip": "10.0.0.1",
            "dst_ip": "10.0.0.2",
        },
        {
            "type": "rtp_flow",
            "src_ip": "10.0.0.1",
            "dst_ip": "10.0.0.2",
            "src_port": "40000",
            "dst_port": "40002",
            "messages": [
                {
                    "create_date": "2023-11-14T22:13:21.000000Z",
                    "protocol_header": {"srcIp": "10.0.0.1", "dstIp": "10.0.0.2",
                                        "srcPort": 40000, "dstPort": 40002},
                    "data_header": {"Version": "2", "Padding": "0", "Extension": "0",
                                    "CC": "0", "Marker": "1", "PayloadType": "8",
                                    "SequenceNumber": "300", "Timestamp": "123456",
                                    "Ssrc": "3735928559"},
                    "raw": [213, 213, 213, 213],
                },
                {
                    "create_date": "2023-11-14T22:13:21.020000Z",
                    "data_header": {"SequenceNumber": "301", "Ssrc": "3735928559"},
                    "raw": [],
                },
            ],
        },
    ],
}

STREAM_RESULT = {
    "status": "success",
    "data": {
        "result": [
            {
                "stream": {"src_ip": "192.168.10.1", "dst_ip": "192.168.10.2",
                           "src_port": "5060", "dst_port": "5060", "method": "INVITE"},
                "values": [["1700000000000000000", "INVITE sip:x SIP/2.0\r\n\r\n"]],
            },
            {
                "stream": {"src_ip": "192.168.10.2", "dst_ip": "192.168.10.1",
                           "src_port": "5060", "dst_port": "5060", "method": "200"},
                "values": [["1700000000100000000", "SIP/2.0 200 OK\r\n\r\n"]],
            },
        ]
    },
}


def test_call_document(caplog):
    with caplog.at_level(logging.DEBUG, logger="ingest.call_json"):
        capture = capture_from_call_json(CALL_DOC)

    assert capture.call_id == "a84b4c76e66710@pc33.example.com"
    assert [type(m) for m in capture.messages] == [SipMessage, RtpFlow]
    assert "RTCP" in caplog.text

    flow = capture.messages[1]
    assert flow.header.src_port == 40000
    first, second = flow.frames
    assert first.rtp.marker == 1
    assert first.rtp.payload_type == 8
    assert first.rtp.ssrc == 0xDEADBEEF
    assert first.payload == b"\xd5" * 4
    assert first.header.dst_port == 40002
    assert second.header is None
    assert second.rtp.version == 2


def test_call_document_encodes_end_to_end():
    data = PcapEncoder.encode(capture_from_call_json(CALL_DOC))
    packets = [decode_packet(p) for p in read_packets(data)]
    assert [p.app_protocol for p in packets] == ["SIP", "RTP", "RTP"]
    assert packets[0].raw_packet.timestamp_ns == 1700000000123456000
    assert packets[1].rtp.sequence_number == 300
    assert packets[2].src_port == 40000


def test_unknown_message_type_is_dropped(caplog):
    doc = {"call_id": "c", "messages": [{"type": "fax"}]}
    with caplog.at_level(logging.WARNING):
        capture = capture_from_call_json(doc)
    assert capture.messages == ()
    assert "fax" in caplog.text


@pytest.mark.parametrize("doc,fragment", [
    ([], "must be an object"),
    ({"call_id": "c"}, "'messages'"),
])
def test_malformed_call_documents(doc, fragment):
    with pytest.raises(IngestError) as exc:
        capture_from_call_json(doc)
    assert fragment in str(exc.value)


GOOD_SIP = {"type": "sip", "create_date": "1", "raw": "x",
            "protocol_header": {"srcIp": "1.1.1.1", "dstIp": "2.2.2.2"}}


@pytest.mark.parametrize("bad,fragment", [
    ({"type": "sip", "raw": "x",
      "protocol_header": {"srcIp": "1.1.1.1", "dstIp": "2.2.2.2"}},
     "create_date"),
    ({"type": "sip", "create_date": "1",
      "protocol_header": {"srcIp": "1.1.1.1", "dstIp": "2.2.2.2"}},
     "'raw'"),
    ({"type": "sip", "create_date": "1", "raw": "x",
      "protocol_header": {"srcIp": "1.1.1.1", "dstIp": "2.2.2.2", "srcPort": "abc"}},
     "srcPort"),
    ({"type": "rtp_flow", "dst_ip": "2.2.2.2", "messages": []},
     "src_ip"),
    ("not an object", "expected an object"),
])
def test_bad_message_is_dropped_alone(caplog, bad, fragment):
    with caplog.at_level(logging.WARNING, logger="ingest.call_json"):
        capture = capture_from_call_json({"call_id": "c", "messages": [bad, GOOD_SIP]})
    assert len(capture.messages) == 1
    assert isinstance(capture.messages[0], SipMessage)
    assert "messages[0]" in caplog.text
    assert fragment in caplog.text


def test_bad_rtp_frame_is_dropped_alone(caplog):
    doc = {"messages": [{
        "type": "rtp_flow", "src_ip": "1.1.1.1", "dst_ip": "2.2.2.2",
        "messages": [
            {"create_date": "1", "raw": [300]},
            {"create_date": "2", "raw": [1, 2]},
        ],
    }]}
    with caplog.at_level(logging.WARNING, logger="ingest.call_json"):
        capture = capture_from_call_json(doc)
    (flow,) = capture.messages
    assert [f.payload for f in flow.frames] == [b"\x01\x02"]
    assert "messages[0].messages[0].raw" in caplog.text


@pytest.mark.parametrize("port", [3.9, True, "5060.5", [5060]])
def test_non_integral_values_are_rejected(caplog, port):
    bad = dict(GOOD_SIP, protocol_header={"srcIp": "1.1.1.1", "dstIp": "2.2.2.2",
                                          "srcPort": port})
    with caplog.at_level(logging.WARNING, logger="ingest.call_json"):
        capture = capture_from_call_json({"messages": [bad]})
    assert capture.messages == ()
    assert "is not an integer" in caplog.text


def test_integral_values_are_accepted():
    ok = dict(GOOD_SIP, protocol_header={"srcIp": "1.1.1.1", "dstIp": "2.2.2.2",
                                         "srcPort": 5060.0, "dstPort": " 5061 "})
    (msg,) = capture_from_call_json({"messages": [ok]}).messages
    assert (msg.header.src_port, msg.header.dst_port) == (5060, 5061)


def test_stream_results():
    capture = capture_from_streams("cid", STREAM_RESULT["data"]["result"])
    assert capture.call_id == "cid"
    assert all(isinstance(m, StreamRecord) for m in capture.messages)
    assert capture.messages[0].stream.src_port == 5060
    assert capture.messages[1].values == (("1700000000100000000", "SIP/2.0 200 OK\r\n\r\n"),)


def test_stream_results_reject_bad_values():
    with pytest.raises(IngestError):
        capture_from_streams("cid", [{"stream": {"src_ip": "1.1.1.1", "dst_ip": "2.2.2.2"},
                                      "values": [["1"]]}])


def test_load_capture_detects_document_kind(tmp_path):
    call_path = tmp_path / "call.json"
    call_path.write_text(json.dumps(CALL_DOC), encoding="utf-8")
    assert load_capture(call_path).call_id == CALL_DOC["call_id"]

    stream_path = tmp_path / "abc123.json"
    stream_path.write_text(json.dumps(STREAM_RESULT), encoding="utf-8")
    assert load_capture(stream_path).call_id == "abc123"
    assert load_capture(stream_path, call_id="given").call_id == "given"

    bare = io.StringIO(json.dumps(STREAM_RESULT["data"]["result"]))
    assert len(load_capture(bare, call_id="x").messages) == 2


def test_load_capture_errors():
    with pytest.raises(IngestError):
        load_capture(io.StringIO("{not json"))
    with pytest.raises(IngestError):
        load_capture(io.StringIO('{"status": "error", "data": {}}'))
    with pytest.raises(IngestError):
        load_capture(io.StringIO('"just a string"'))


def test_pcap_filename():
    assert pcap_filename("a84b4c76e66710@pc33.example.com") == "a84b4c76e66710@pc33.example.com.pcap"
    assert pcap_filename("a/b c:d") == "a_b_c_d.pcap"
    assert pcap_filename("") == "capture.pcap"
