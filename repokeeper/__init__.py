"""
repokeeper - Declarative management of a git server's repositories.

A fleet config (XML, split across files with `src=` includes) declares the
repositories a server hosts, their tags, their symlinked locations and
their hooks. The server's admin repository holds that config; pushing it
runs `repokeeper switch`, which makes the disk match.

Quick Start:
    from repokeeper import parse, scan, Reconciler

    desired = parse("/srv/admin-checkout/config.xml")
    observed = scan(desired.store_path, desired.symlink_root)
    report = Reconciler().reconcile(desired, observed)
    print(report.summary())

Domain Objects:
    DesiredState - What the fleet config declares
    ObservedState - What is on disk
    Plan - Actions that take one to the other
    ReconcileReport - What applying a plan did
"""

__version__ = "0.3.0"

from .domain import (
    DesiredState,
    HookEvent,
    ObservedState,
    Plan,
    ReconcileReport,
    RepositorySpec,
)
from .services.bootstrap import init
from .services.config_parser import parse
from .services.reconciler import Reconciler, plan, reconcile, switch
from .services.scanner import scan

__all__ = [
    '__version__',
    'DesiredState',
    'HookEvent',
    'ObservedState',
    'Plan',
    'ReconcileReport',
    'RepositorySpec',
    'Reconciler',
    'init',
    'parse',
    'plan',
    'reconcile',
    'scan',
    'switch',
]
