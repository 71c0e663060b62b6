"""
Trace-backend JSON ingestion.
"""

from .call_json import (
    IngestError,
    capture_from_call_json,
    capture_from_streams,
    load_capture,
    pcap_filename,
)

__all__ = [
    'IngestError',
    'capture_from_call_json',
    'capture_from_streams',
    'load_capture',
    'pcap_filename',
]
