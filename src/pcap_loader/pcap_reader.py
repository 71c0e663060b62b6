"""
PCAP file format reader (legacy .pcap).

Reference: https://wiki.wireshark.org/Development/LibpcapFileFormat

File structure:
- 24-byte global header
- Repeated packet records:
  - 16-byte packet header
  - Packet data (incl_len bytes)

Used to read back and inspect the captures this package writes, but it
accepts any classic pcap: both byte orders, µs and ns resolution.
"""

import mmap
import os
import struct
from typing import Any, Dict, Iterator, Optional, Tuple, Union

from .exceptions import PcapEOFError, PcapFormatError
from models.packet import RawPacket


class PcapReader:
    """
    Reads legacy PCAP data from a file path or an in-memory buffer.

    Usage:
        with PcapReader("call.pcap") as reader:
            for packet in reader:
                ...
    """

    # Magic numbers as read big-endian from the first 4 bytes
    MAGIC_NUMBER_BIG_ENDIAN = 0xA1B2C3D4        # Standard microsecond
    MAGIC_NUMBER_LITTLE_ENDIAN = 0xD4C3B2A1     # Swapped microsecond
    MAGIC_NUMBER_BIG_ENDIAN_NANO = 0xA1B23C4D   # Nanosecond resolution
    MAGIC_NUMBER_LITTLE_ENDIAN_NANO = 0x4D3CB2A1  # Swapped nanosecond

    # Link type constants (from pcap/bpf.h)
    DLT_NULL = 0          # BSD loopback
    DLT_EN10MB = 1        # Ethernet
    DLT_RAW = 12          # Raw IP
    DLT_LINUX_SLL = 113   # Linux cooked socket

    GLOBAL_HEADER_SIZE = 24
    RECORD_HEADER_SIZE = 16

    def __init__(self, source: Union[str, os.PathLike, bytes, bytearray]):
        """
        Args:
            source: path to a .pcap file, or the file's bytes
        """
        if isinstance(source, (bytes, bytearray)):
            self.filepath = None
            self._buffer = bytes(source)
        else:
            self.filepath = os.fspath(source)
            self._buffer = None

        self.file_handle = None
        self.mmap = None
        self.byte_order = '<'
        self.is_nanosecond = False
        self.link_type = self.DLT_EN10MB
        self.snaplen = 0
        self.version: Tuple[int, int] = (0, 0)
        self._packet_count = 0
        self._time_range: Optional[Tuple[int, int]] = None
        self._file_size = 0

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def open(self):
        """Open the source and validate the global header."""
        if self._buffer is not None:
            self._file_size = len(self._buffer)
            self._read_global_header(self._buffer[:self.GLOBAL_HEADER_SIZE])
            return

        if not os.path.exists(self.filepath):
            raise FileNotFoundError(f"PCAP file not found: {self.filepath}")

        self.file_handle = open(self.filepath, 'rb')
        self._file_size = os.path.getsize(self.filepath)
        try:
            self._read_global_header(self.file_handle.read(self.GLOBAL_HEADER_SIZE))
        except PcapFormatError:
            self.close()
            raise

        if self._file_size > self.GLOBAL_HEADER_SIZE:
            try:
                self.mmap = mmap.mmap(self.file_handle.fileno(), 0, access=mmap.ACCESS_READ)
            except (OSError, ValueError) as e:
                self.close()
                raise PcapFormatError(f"Failed to memory map file: {e}")

    def _read_global_header(self, header: bytes):
        """
        Validate the 24-byte global header and record the file's format.

        Raises:
            PcapFormatError: short header or unknown magic number
        """
        if len(header) < self.GLOBAL_HEADER_SIZE:
            raise PcapFormatError(
                f"Global header truncated: {len(header)} of {self.GLOBAL_HEADER_SIZE} bytes")

        magic = struct.unpack('>I', header[:4])[0]
        if magic == self.MAGIC_NUMBER_BIG_ENDIAN:
            self.byte_order, self.is_nanosecond = '>', False
        elif magic == self.MAGIC_NUMBER_LITTLE_ENDIAN:
            self.byte_order, self.is_nanosecond = '<', False
        elif magic == self.MAGIC_NUMBER_BIG_ENDIAN_NANO:
            self.byte_order, self.is_nanosecond = '>', True
        elif magic == self.MAGIC_NUMBER_LITTLE_ENDIAN_NANO:
            self.byte_order, self.is_nanosecond = '<', True
        else:
            raise PcapFormatError(f"Not a pcap file (magic 0x{magic:08X})")

        major, minor, _thiszone, _sigfigs, snaplen, link_type = struct.unpack(
            self.byte_order + 'HHiIII', header[4:24])
        self.version = (major, minor)
        self.snaplen = snaplen
        self.link_type = link_type

    def _data(self):
        if self._buffer is not None:
            return self._buffer
        if self.mmap is not None:
            return self.mmap
        if self.file_handle is not None:
            # Header-only file, nothing was mapped
            return b""
        raise RuntimeError("PcapReader is not open")

    def __iter__(self) -> Iterator[RawPacket]:
        """
        Yield packets in file order, packet_id starting at 1.

        Raises:
            RuntimeError: reader not opened
            PcapEOFError: file ends inside a record
        """
        data = self._data()
        end = len(data)
        offset = self.GLOBAL_HEADER_SIZE if end else 0
        packet_id = 1
        record = struct.Struct(self.byte_order + 'IIII')
        frac_scale = 1 if self.is_nanosecond else 1_000

        while offset < end:
            if offset + self.RECORD_HEADER_SIZE > end:
                raise PcapEOFError(f"Truncated record header at offset {offset}")
            ts_sec, ts_frac, incl_len, orig_len = record.unpack(
                data[offset:offset + self.RECORD_HEADER_SIZE])

            data_start = offset + self.RECORD_HEADER_SIZE
            data_end = data_start + incl_len
            if data_end > end:
                raise PcapEOFError(
                    f"Packet {packet_id} needs {incl_len} bytes at offset {data_start}, "
                    f"file has {end - data_start}")

            timestamp_ns = ts_sec * 1_000_000_000 + ts_frac * frac_scale
            yield RawPacket(
                packet_id=packet_id,
                timestamp_ns=timestamp_ns,
                captured_length=incl_len,
                original_length=orig_len,
                link_type=self.link_type,
                data=bytes(data[data_start:data_end]),
                offset=offset,
            )

            self._packet_count = packet_id
            if self._time_range is None:
                self._time_range = (timestamp_ns, timestamp_ns)
            else:
                first, last = self._time_range
                self._time_range = (min(first, timestamp_ns), max(last, timestamp_ns))
            packet_id += 1
            offset = data_end

    def close(self):
        """Release the memory map and file handle."""
        if self.mmap is not None:
            self.mmap.close()
            self.mmap = None
        if self.file_handle is not None:
            self.file_handle.close()
            self.file_handle = None

    def get_session_info(self) -> Dict[str, Any]:
        """Metadata about what has been read so far."""
        return {
            'packet_count': self._packet_count,
            'time_range': self._time_range or (0, 0),
            'file_size': self._file_size,
            'format': 'pcap',
            'version': "{}.{}".format(*self.version),
            'byte_order': self.byte_order,
            'is_nanosecond': self.is_nanosecond,
            'link_type': self.link_type,
            'snaplen': self.snaplen,
        }


def read_packets(source) -> Iterator[RawPacket]:
    """Convenience generator: open `source`, yield every packet, close."""
    with PcapReader(source) as reader:
        yield from reader
