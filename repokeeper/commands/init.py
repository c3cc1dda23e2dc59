"""
Init command for repokeeper.

Bootstraps a server: store, symlink root and the admin repository whose
hooks keep everything else in line with the fleet config.
"""

import json
import os
from pathlib import Path

import click

from ..cli_utils import add_common_options, command_errors, git_client, load_settings
from ..services.bootstrap import Bootstrap


@click.command('init')
@click.option('--store', required=True, type=click.Path(file_okay=False),
              help='Directory that will hold the bare repositories')
@click.option('--symlinks', required=True, type=click.Path(file_okay=False),
              help='Root of the symlink tree')
@click.option('--branch', help='Branch of the admin repository (default: general.default_branch)')
@add_common_options('pretty')
@command_errors
def init_handler(store: str, symlinks: str, branch: str, pretty: bool):
    """
    Create the store, the symlink root and the admin repository.

    The admin repository is committed with a config.xml that declares
    itself and its hooks. Push changes to that config and the server
    follows. Running init again on an initialized server changes nothing.

    \b
    Examples:
        repokeeper init --store /srv/git/store --symlinks /srv/git
        git clone ssh://server/srv/git/admin && cd admin && $EDITOR config.xml
    """
    settings = load_settings()
    branch = branch or settings['general']['default_branch']

    bootstrap = Bootstrap(git=git_client(settings))
    result = bootstrap.init(
        Path(os.path.abspath(os.path.expanduser(store))),
        Path(os.path.abspath(os.path.expanduser(symlinks))),
        default_branch=branch,
    )

    if not pretty:
        print(json.dumps(result.to_dict(), ensure_ascii=False), flush=True)
        return

    from rich.console import Console
    console = Console()
    if result.created:
        console.print(f"[bold green]✓[/bold green] Initialized admin repository: {result.admin_path}")
    else:
        console.print(f"[yellow]Already initialized:[/yellow] {result.admin_path}")
    console.print(f"[bold]Store:[/bold] {result.store_path}")
    console.print(f"[bold]Symlinks:[/bold] {result.symlink_root}")
    console.print(f"[bold]Branch:[/bold] {result.branch}")
