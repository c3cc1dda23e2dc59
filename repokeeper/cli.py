#!/usr/bin/env python3

import click

from repokeeper import __version__
from repokeeper.commands.init import init_handler
from repokeeper.commands.remote import remote_cmd
from repokeeper.commands.search import search_handler
from repokeeper.commands.switch import check_handler, status_handler, switch_handler


@click.group()
@click.version_option(version=__version__, prog_name='repokeeper')
@click.option('--debug', is_flag=True, help='Enable debug logging')
def cli(debug):
    """repokeeper - Declarative management of a git server's repositories.

    Describe repositories, tags, symlinks and hooks in a config pushed to
    the server's admin repository; `switch` makes the server match it.
    """
    pass


# Core commands
cli.add_command(init_handler, name='init')
cli.add_command(switch_handler, name='switch')
cli.add_command(check_handler, name='check')
cli.add_command(status_handler, name='status')
cli.add_command(search_handler, name='search')

# Command groups
cli.add_command(remote_cmd)


def main():
    cli()

if __name__ == "__main__":
    main()
