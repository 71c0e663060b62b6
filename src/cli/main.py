"""
cdrpcap CLI - main entry point.
"""
import logging

import click

from .encode import encode
from .inspect import inspect


@click.group()
@click.option('--verbose', '-v', count=True, help='-v for info, -vv for debug logging')
def cli(verbose: int):
    """cdrpcap - build pcap files from call trace records."""
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


cli.add_command(encode)
cli.add_command(inspect)

if __name__ == "__main__":
    cli()
