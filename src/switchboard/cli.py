"""Root CLI group and version flag."""

import click

from switchboard import __version__
from switchboard.commands.history import history
from switchboard.commands.run import run


@click.group()
@click.version_option(version=__version__, prog_name="switchboard")
def cli() -> None:
    """switchboard — multiplex conversations onto agent CLI sessions."""


cli.add_command(run)
cli.add_command(history)
