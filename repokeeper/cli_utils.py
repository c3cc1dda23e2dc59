"""
Common CLI utilities and decorators for consistent command behavior.
"""

import json
import sys
import logging
from functools import wraps
from pathlib import Path
from typing import Any, Dict, Optional

import click

from .exit_codes import (
    INTERRUPTED, USAGE_ERROR,
    get_exit_code_for_exception, CommandError, SettingsError
)
from .infra.git_client import GitClient
from .markup import MarkupError

logger = logging.getLogger(__name__)


def command_errors(func):
    """
    Decorator that gives commands consistent error handling:
    - CommandError subclasses exit with their own exit code
    - A JSON error object on stdout for scripts and hooks
    - A human-readable message (and source excerpt for parse errors) on stderr
    - Ctrl+C exits with INTERRUPTED
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            logger.error("Interrupted by user")
            sys.exit(INTERRUPTED)
        except click.ClickException:
            # Click exceptions already have their exit code
            raise
        except CommandError as e:
            logger.error(str(e))
            if isinstance(e, MarkupError) and e.excerpt():
                click.echo(e.excerpt(), err=True)
            error_obj = {
                "error": str(e),
                "type": type(e).__name__,
                "exit_code": e.exit_code
            }
            # Add extra fields for ReconcileError
            if hasattr(e, 'succeeded'):
                error_obj['succeeded'] = e.succeeded
                error_obj['failed'] = e.failed
            print(json.dumps(error_obj, ensure_ascii=False), flush=True)
            sys.exit(e.exit_code)
        except Exception as e:
            logger.error(f"Command failed: {e}")
            logger.debug("Traceback", exc_info=True)
            error_obj = {
                "error": str(e),
                "type": type(e).__name__
            }
            print(json.dumps(error_obj, ensure_ascii=False), flush=True)
            sys.exit(get_exit_code_for_exception(e))

    return wrapper


def resolve_config_path(
    settings: Dict[str, Any],
    config_file: Optional[str] = None,
    remote: Optional[str] = None,
) -> Path:
    """
    Choose the fleet config file for a command.

    An explicit --config wins, then a named --remote from the settings
    registry, then `general.config_file`.
    """
    if config_file and remote:
        raise CommandError("use either --config or --remote, not both", USAGE_ERROR)
    if config_file:
        return Path(config_file).expanduser()
    if remote:
        remotes = settings.get('remotes') or {}
        if remote not in remotes:
            known = ', '.join(sorted(remotes)) or 'none'
            raise SettingsError(f"unknown remote '{remote}' (known: {known})")
        return Path(str(remotes[remote])).expanduser()
    return Path(str(settings.get('general', {}).get('config_file', 'config.xml'))).expanduser()


# Standard options that many commands share
common_options = {
    'config': click.option('-c', '--config', 'config_file', type=click.Path(dir_okay=False),
                           help='Fleet config file (default: general.config_file setting)'),
    'remote': click.option('--remote', help='Use the config registered under this remote name'),
    'pretty': click.option('--pretty', is_flag=True, help='Display with rich formatting'),
    'dry_run': click.option('--dry-run', is_flag=True, help='Preview changes without applying them'),
}


def add_common_options(*option_names):
    """
    Decorator to add common options to a command.

    Example:
        @add_common_options('config', 'dry_run')
        def my_command(config_file, dry_run):
            ...
    """
    def decorator(func):
        for name in reversed(option_names):
            if name in common_options:
                func = common_options[name](func)
        return func
    return decorator


def load_settings() -> Dict[str, Any]:
    """Load tool settings and apply the log level (honouring the global --debug)."""
    from .config import configure_logging, load_config

    ctx = click.get_current_context(silent=True)
    debug = bool(ctx and ctx.find_root().params.get('debug'))
    settings = load_config()
    configure_logging(settings, debug=debug)
    return settings


def git_client(settings: Dict[str, Any]) -> GitClient:
    """GitClient configured from the `git` settings section."""
    git = settings.get('git', {})
    return GitClient(binary=str(git.get('binary', 'git')), timeout=int(git.get('timeout', 60)))
