"""
Domain layer for repokeeper.

Contains pure domain objects with no I/O or side effects:
- DesiredState / RepositorySpec: what the fleet config declares
- ObservedState: what the scanner found on disk
- Plan / ReconcileReport: the difference between the two and its outcome
- Tag: tag parsing and pattern matching

These objects are comparable values so the reconciler's diff can be
tested without touching a filesystem.
"""

from .desired import DesiredState, HookEvent, HookSpec, RepositorySpec
from .observed import EntryState, ObservedHook, ObservedLink, ObservedRepo, ObservedState
from .plan import Action, ActionKind, Notice, NoticeKind, Plan, ReconcileReport
from .tag import Tag

__all__ = [
    'DesiredState',
    'HookEvent',
    'HookSpec',
    'RepositorySpec',
    'EntryState',
    'ObservedHook',
    'ObservedLink',
    'ObservedRepo',
    'ObservedState',
    'Action',
    'ActionKind',
    'Notice',
    'NoticeKind',
    'Plan',
    'ReconcileReport',
    'Tag',
]
