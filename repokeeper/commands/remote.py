"""
Remote registry commands for repokeeper.

A remote is a name for a fleet config file (usually inside a checkout of
some server's admin repository), so `switch`, `status` and `search` can
take `--remote NAME` instead of a path.
"""

import json
import os

import click

from ..cli_utils import command_errors, load_settings
from ..config import save_config
from ..exit_codes import CommandError, USAGE_ERROR


@click.group('remote')
def remote_cmd():
    """Manage named fleet configs."""
    pass


@remote_cmd.command('list')
@click.option('--pretty', is_flag=True, help='Display as a table')
@command_errors
def list_remotes(pretty: bool):
    """List registered remotes."""
    remotes = load_settings().get('remotes') or {}

    if pretty:
        from rich.console import Console
        from rich.table import Table
        table = Table(show_header=True, header_style="bold")
        table.add_column("Name", style="cyan")
        table.add_column("Config")
        for name in sorted(remotes):
            table.add_row(name, str(remotes[name]))
        Console().print(table)
        return

    for name in sorted(remotes):
        print(json.dumps({'name': name, 'config': str(remotes[name])}), flush=True)


@remote_cmd.command('add')
@click.argument('name')
@click.argument('config_path', type=click.Path(dir_okay=False))
@click.option('--force', is_flag=True, help='Replace an existing remote')
@command_errors
def add_remote(name: str, config_path: str, force: bool):
    """Register CONFIG_PATH under NAME."""
    settings = load_settings()
    remotes = settings.setdefault('remotes', {})
    if name in remotes and not force:
        raise CommandError(f"remote '{name}' already exists (use --force to replace)", USAGE_ERROR)

    remotes[name] = os.path.abspath(os.path.expanduser(config_path))
    save_config(settings)
    print(json.dumps({'name': name, 'config': remotes[name], 'action': 'added'}), flush=True)


@remote_cmd.command('remove')
@click.argument('name')
@command_errors
def remove_remote(name: str):
    """Forget the remote NAME."""
    settings = load_settings()
    remotes = settings.get('remotes') or {}
    if name not in remotes:
        raise CommandError(f"no remote named '{name}'", USAGE_ERROR)

    del remotes[name]
    settings['remotes'] = remotes
    save_config(settings)
    print(json.dumps({'name': name, 'action': 'removed'}), flush=True)
