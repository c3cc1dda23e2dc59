"""
Search command for repokeeper.

Lists declared repositories by id and tags, with the URL to clone them.
"""

from typing import Optional

import click

from ..cli_utils import add_common_options, command_errors, load_settings, resolve_config_path
from ..exit_codes import NoReposFoundError
from ..output import emit
from ..services.config_parser import parse
from ..services.search_service import SearchService


@click.command('search')
@click.argument('terms', nargs=-1)
@click.option('--tag', '-t', 'tag_patterns', multiple=True,
              help='Filter by tag (supports wildcards, e.g. lang:*)')
@click.option('--host', help='Host for clone URLs, e.g. git@example.com (default: general.host)')
@add_common_options('config', 'remote', 'pretty')
@command_errors
def search_handler(
    terms: tuple,
    tag_patterns: tuple,
    host: Optional[str],
    config_file: Optional[str],
    remote: Optional[str],
    pretty: bool,
):
    """
    Find repositories in the fleet config.

    A repository matches when every term is part of one of its tags, or
    when the terms (joined by spaces) are part of its id.

    \b
    Examples:
        repokeeper search web
        repokeeper search -t lang:python
        repokeeper search blog --host git@example.com --pretty
    """
    settings = load_settings()
    config_path = resolve_config_path(settings, config_file, remote)
    desired = parse(config_path)

    service = SearchService(desired, host=host or settings['general'].get('host'))
    results = list(service.search(' '.join(terms), tag_patterns))
    if not results:
        raise NoReposFoundError("No repositories match the search")

    emit(results, pretty=pretty, columns=['id', 'tags', 'alias', 'url'])
