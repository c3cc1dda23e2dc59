"""
Service layer for repokeeper.

Contains the logic that turns a fleet config into filesystem changes:
- ConfigParser: Resolve config files into a DesiredState
- Scanner: Observe the store and symlink tree
- Reconciler: Plan and apply the difference
- Bootstrap: Create the layout and the admin repository
- SearchService: Find declared repositories

Services are the primary API for commands to use.
They handle coordination between infrastructure and domain layers.
"""

from .config_parser import ConfigParser, IncludeCycleError, IncludeError
from .scanner import Scanner
from .reconciler import Reconciler
from .bootstrap import Bootstrap, InitResult
from .search_service import SearchService

__all__ = [
    'ConfigParser',
    'IncludeCycleError',
    'IncludeError',
    'Scanner',
    'Reconciler',
    'Bootstrap',
    'InitResult',
    'SearchService',
]
