"""
CLI command for encoding a call trace into a pcap file.
"""
import os
from typing import Optional

import click

from ingest import IngestError, load_capture, pcap_filename
from pcap_writer import EncoderOptions, PcapEncodeError, PcapEncoder


@click.command()
@click.argument("input_file", type=click.File("r", encoding="utf-8"))
@click.option("--output", "-o", type=click.Path(dir_okay=False),
              help="Output .pcap path (default: <call_id>.pcap)")
@click.option("--call-id", help="Call-ID for stream query results that carry none")
@click.option("--sort", "sort_by_time", is_flag=True,
              help="Order messages by timestamp before encoding")
@click.option("--verify", is_flag=True, help="Re-dissect the result with scapy")
def encode(input_file, output: Optional[str], call_id: Optional[str],
           sort_by_time: bool, verify: bool):
    """
    Encode a call trace JSON document (or - for stdin) into a pcap file.

    Examples:
      cdrpcap encode call.json
      cdrpcap encode loki_result.json --call-id abc123 --sort -o abc123.pcap
    """
    try:
        capture = load_capture(input_file, call_id=call_id)
        result = PcapEncoder.encode_with_stats(capture, EncoderOptions(sort_by_time=sort_by_time))
    except (IngestError, PcapEncodeError) as e:
        raise click.ClickException(f"capture generation failed: {e}")

    if verify:
        from pcap_loader.scapy_verify import verify_capture
        try:
            report = verify_capture(result.data)
        except RuntimeError as e:
            raise click.ClickException(f"cannot verify: {e}")
        for problem in report.problems:
            click.echo(f"  {problem}", err=True)
        if not report.ok:
            raise click.ClickException(
                f"verification failed: {len(report.problems)} problem(s) "
                f"in {report.packets_checked} packets")

    path = output or pcap_filename(capture.call_id)
    try:
        with open(path, "wb") as f:
            f.write(result.data)
    except OSError as e:
        raise click.ClickException(f"Failed to write {path}: {e}")

    click.echo(f"Call ID:  {capture.call_id or '-'}")
    click.echo(f"Packets:  {result.packets_written} written, {result.packets_skipped} skipped")
    click.echo(f"Size:     {result.size:,} bytes")
    click.echo(f"Output:   {os.path.abspath(path)}")
