"""
Desired state domain objects for repokeeper.

The desired state is what the fleet config says the server should look
like. It is rebuilt from the config text on every run and never cached.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Dict, FrozenSet, Optional


# The repository holding the fleet config; its hooks drive reconciliation.
ADMIN_REPOSITORY = "admin"


class HookEvent(Enum):
    """Server-side git hooks repokeeper manages."""
    PRE_RECEIVE = "pre-receive"
    UPDATE = "update"
    POST_RECEIVE = "post-receive"

    @classmethod
    def names(cls):
        return [event.value for event in cls]


@dataclass(frozen=True)
class HookSpec:
    """A hook script body for one event."""
    event: HookEvent
    body: str


def is_valid_repository_id(value: str) -> bool:
    """Repository ids become directory names in the store."""
    if not value or value in ('.', '..'):
        return False
    return not any(c.isspace() or c in '/\\' for c in value)


@dataclass(frozen=True)
class RepositorySpec:
    """
    One repository as declared in the fleet config.

    Attributes:
        id: Stable identifier and store directory name
        tags: Labels for search
        alias: Path of the symlink relative to the symlink root, if any
        hooks: Hook script bodies keyed by event
        source: "file:line" the declaration came from (diagnostics only)
    """
    id: str
    tags: FrozenSet[str] = frozenset()
    alias: Optional[PurePosixPath] = None
    hooks: Dict[HookEvent, HookSpec] = field(default_factory=dict)
    source: Optional[str] = field(default=None, compare=False)

    def hook_body(self, event: HookEvent) -> Optional[str]:
        spec = self.hooks.get(event)
        return spec.body if spec else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'tags': sorted(self.tags),
            'alias': str(self.alias) if self.alias else None,
            'hooks': {event.value: self.hooks[event].body
                      for event in HookEvent if event in self.hooks},
        }


@dataclass(frozen=True)
class DesiredState:
    """
    The fully resolved fleet config.

    `repos` keeps declaration order so plans and reports are stable.
    """
    store_path: Path
    symlink_root: Optional[Path] = None
    repos: Dict[str, RepositorySpec] = field(default_factory=dict)
    default_branch: Optional[str] = None

    def repository_path(self, repo_id: str) -> Path:
        return self.store_path / repo_id

    def link_path(self, alias: PurePosixPath) -> Path:
        if self.symlink_root is None:
            raise ValueError("no symlink root configured")
        return self.symlink_root.joinpath(*alias.parts)

    def aliases(self) -> Dict[PurePosixPath, str]:
        """Map each declared alias to the repository that owns it."""
        return {spec.alias: repo_id for repo_id, spec in self.repos.items() if spec.alias}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'store': str(self.store_path),
            'symlinks': str(self.symlink_root) if self.symlink_root else None,
            'branch': self.default_branch,
            'repos': [spec.to_dict() for spec in self.repos.values()],
        }
