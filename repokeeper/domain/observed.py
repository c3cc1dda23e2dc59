"""
Observed state domain objects for repokeeper.

The observed state is what the scanner found on disk. It has the same
shape as the desired state so the two can be compared value by value.
Anything the scanner could not read is marked UNKNOWN rather than guessed.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Dict, FrozenSet, Optional

from .desired import HookEvent


class EntryState(Enum):
    """Whether an entry exists on disk, as far as the scanner could tell."""
    PRESENT = "present"
    ABSENT = "absent"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ObservedHook:
    """A hook file as found in a repository's hooks directory."""
    event: HookEvent
    state: EntryState = EntryState.ABSENT
    content: Optional[str] = None
    executable: bool = False


@dataclass(frozen=True)
class ObservedRepo:
    """A directory in the store (UNKNOWN when the entry could not be inspected)."""
    id: str
    path: Path
    hooks: Dict[HookEvent, ObservedHook] = field(default_factory=dict)
    state: EntryState = EntryState.PRESENT

    def hook(self, event: HookEvent) -> ObservedHook:
        return self.hooks.get(event, ObservedHook(event))


@dataclass(frozen=True)
class ObservedLink:
    """
    A symlink under the symlink root.

    Attributes:
        alias: Path relative to the symlink root
        target: Raw link target as stored in the link
        repo_id: Store entry the target points at (None when foreign)
        foreign: True when the target lies outside the store
        state: UNKNOWN when the link target could not be read
    """
    alias: PurePosixPath
    target: Optional[str] = None
    repo_id: Optional[str] = None
    foreign: bool = False
    state: EntryState = EntryState.PRESENT

    @property
    def managed(self) -> bool:
        return self.state == EntryState.PRESENT and not self.foreign

    def to_dict(self) -> Dict[str, Any]:
        return {
            'alias': str(self.alias),
            'target': self.target,
            'repo': self.repo_id,
            'foreign': self.foreign,
            'state': self.state.value,
        }


@dataclass(frozen=True)
class ObservedState:
    """Everything the scanner saw in the store and the symlink tree."""
    store_path: Path
    symlink_root: Optional[Path] = None
    repos: Dict[str, ObservedRepo] = field(default_factory=dict)
    links: Dict[PurePosixPath, ObservedLink] = field(default_factory=dict)
    files: FrozenSet[PurePosixPath] = frozenset()
    directories: FrozenSet[PurePosixPath] = frozenset()
    unreadable: FrozenSet[PurePosixPath] = frozenset()

    def links_to(self, repo_id: str):
        """Managed links whose target is the given repository."""
        return [link for link in self.links.values()
                if link.managed and link.repo_id == repo_id]

    def is_unreadable(self, alias: PurePosixPath) -> bool:
        """True when the alias lies under a directory the scanner could not list."""
        return any(alias == path or path in alias.parents for path in self.unreadable)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'store': str(self.store_path),
            'symlinks': str(self.symlink_root) if self.symlink_root else None,
            'repos': [
                {
                    'id': repo.id,
                    'path': str(repo.path),
                    'state': repo.state.value,
                    'hooks': {
                        event.value: repo.hook(event).state.value for event in HookEvent
                    },
                }
                for repo in self.repos.values()
            ],
            'links': [link.to_dict() for link in self.links.values()],
            'unreadable': sorted(str(p) for p in self.unreadable),
        }
