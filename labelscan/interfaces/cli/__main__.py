"""Entry point for running the labelscan CLI.

This module defines a top-level Click group that aggregates all subcommands
defined in the ``labelscan.interfaces.cli`` package. Executing
``python -m labelscan.interfaces.cli`` will invoke this group.
"""

import click

from .decode import decode_label
from .serve import serve


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
def cli() -> None:
    """labelscan command-line interface."""


cli.add_command(decode_label)
cli.add_command(serve)


if __name__ == "__main__":
    cli()
