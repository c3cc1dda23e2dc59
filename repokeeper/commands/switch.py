"""
Switch, check and status commands for repokeeper.

- switch: bring the server in line with the fleet config
- check: parse the fleet config only (the pre-receive hook runs this)
- status: show the drift between the fleet config and the server
"""

import json
from typing import Optional

import click

from ..cli_utils import (
    add_common_options, command_errors, git_client, load_settings, resolve_config_path
)
from ..exit_codes import ReconcileError
from ..infra.file_store import FileStore
from ..output import emit_plan, emit_report
from ..services.config_parser import parse
from ..services.reconciler import Reconciler, switch
from ..services.scanner import scan


def file_store(settings) -> FileStore:
    """FileStore for new repositories, defaulting to `general.default_branch`."""
    return FileStore(git_client(settings), default_branch=settings['general'].get('default_branch'))


@click.command('switch')
@add_common_options('config', 'remote', 'dry_run', 'pretty')
@command_errors
def switch_handler(config_file: Optional[str], remote: Optional[str], dry_run: bool, pretty: bool):
    """
    Reconcile the server with the fleet config.

    Creates missing repositories, writes or removes hooks, and creates,
    rebinds or removes symlinks. Repositories are never deleted; ones the
    config no longer declares are reported as orphans.

    \b
    Exit codes:
        0   converged
        65  the config did not parse (nothing was changed)
        67  the store or symlink root could not be read
        71  some repositories failed; the rest converged

    \b
    Examples:
        repokeeper switch -c /tmp/checkout/config.xml
        repokeeper switch --dry-run --pretty
    """
    settings = load_settings()
    config_path = resolve_config_path(settings, config_file, remote)

    desired, report = switch(
        config_path,
        applier=file_store(settings),
        protected=settings['general']['protected'],
        dry_run=dry_run,
    )
    emit_report(report, pretty=pretty)

    if not report.success:
        failed = len(report.failures)
        raise ReconcileError(
            f"{failed} of {len(desired.repos)} repositories failed to converge",
            report=report,
            succeeded=len(desired.repos) - failed,
            failed=failed,
        )


@click.command('check')
@add_common_options('config', 'remote', 'pretty')
@command_errors
def check_handler(config_file: Optional[str], remote: Optional[str], pretty: bool):
    """
    Parse the fleet config without touching the server.

    Exits 65 with the file, line and column of the problem when the config
    is invalid.
    """
    settings = load_settings()
    config_path = resolve_config_path(settings, config_file, remote)
    desired = parse(config_path)

    summary = {
        'type': 'check',
        'config': str(config_path),
        'store': str(desired.store_path),
        'symlinks': str(desired.symlink_root) if desired.symlink_root else None,
        'repos': len(desired.repos),
        'aliases': len(desired.aliases()),
        'hooks': sum(len(spec.hooks) for spec in desired.repos.values()),
    }

    if pretty:
        from rich.console import Console
        Console().print(
            f"[bold green]✓[/bold green] {config_path}: {summary['repos']} repositories, "
            f"{summary['aliases']} aliases, {summary['hooks']} hooks"
        )
    else:
        print(json.dumps(summary, ensure_ascii=False), flush=True)


@click.command('status')
@add_common_options('config', 'remote', 'pretty')
@command_errors
def status_handler(config_file: Optional[str], remote: Optional[str], pretty: bool):
    """
    Show what `switch` would change.

    Lists pending actions, notices (orphans, foreign links, unreadable
    entries) and per-repository problems without applying anything.
    """
    settings = load_settings()
    config_path = resolve_config_path(settings, config_file, remote)

    desired = parse(config_path)
    observed = scan(desired.store_path, desired.symlink_root)
    reconciler = Reconciler(
        applier=file_store(settings),
        protected=settings['general']['protected'],
    )
    emit_plan(reconciler.plan(desired, observed), pretty=pretty)
