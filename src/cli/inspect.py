"""
CLI command for listing the packets of a pcap file.
"""
import json
from datetime import datetime, timezone

import click

from pcap_loader import PcapFormatError, PcapReader, decode_packet, quality_flag_names


def _format_time(timestamp_ns: int) -> str:
    seconds, nanos = divmod(timestamp_ns, 1_000_000_000)
    dt = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return f"{dt:%Y-%m-%d %H:%M:%S}.{nanos // 1000:06d}"


def _endpoint(ip, port) -> str:
    if ip is None:
        return "-"
    return f"{ip}:{port}" if port is not None else ip


def _info(decoded) -> str:
    if decoded.app_protocol == "SIP":
        return decoded.sip_first_line or ""
    if decoded.rtp is not None:
        rtp = decoded.rtp
        return f"PT={rtp.payload_type} SSRC=0x{rtp.ssrc:08X} Seq={rtp.sequence_number}"
    return ""


@click.command()
@click.argument("filepath", type=click.Path(exists=True, dir_okay=False))
@click.option("--limit", type=int, default=0, show_default=True,
              help="Max packets to list (0 = no limit)")
@click.option("--format", "format", type=click.Choice(["table", "json"]),
              default="table", show_default=True, help="Output format")
def inspect(filepath: str, limit: int, format: str):
    """
    List the packets of a classic pcap file.

    Example:
      cdrpcap inspect call.pcap --limit 20
    """
    records = []
    try:
        with PcapReader(filepath) as reader:
            if format == "table":
                click.echo(f"{'ID':<5} {'Time (UTC)':<27} {'Source':<22} {'Destination':<22} "
                           f"{'Proto':<5} {'Len':>6}  Info")
                click.echo("-" * 110)

            for count, packet in enumerate(reader, start=1):
                decoded = decode_packet(packet)
                if format == "json":
                    records.append(decoded.to_dict())
                else:
                    proto = decoded.app_protocol or (decoded.protocol_stack[-1]
                                                     if decoded.protocol_stack else "-")
                    info = _info(decoded)
                    if decoded.quality_flags:
                        info += " [" + ",".join(quality_flag_names(decoded.quality_flags)) + "]"
                    click.echo(
                        f"{packet.packet_id:<5} {_format_time(packet.timestamp_ns):<27} "
                        f"{_endpoint(decoded.src_ip, decoded.src_port):<22} "
                        f"{_endpoint(decoded.dst_ip, decoded.dst_port):<22} "
                        f"{proto:<5} {packet.captured_length:>6}  {info}"
                    )
                if limit > 0 and count >= limit:
                    break
    except PcapFormatError as e:
        raise click.ClickException(str(e))

    if format == "json":
        click.echo(json.dumps(records, separators=(",", ":"), ensure_ascii=True))
