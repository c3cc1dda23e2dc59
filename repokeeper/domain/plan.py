"""
Plan and report domain objects for repokeeper.

A Plan is the pure difference between a desired and an observed state:
an ordered list of actions plus informational notices and per-repository
planning errors. A ReconcileReport records what happened when a plan was
applied.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional

from .desired import HookEvent


class ActionKind(Enum):
    """Filesystem mutations, in the order their phases run."""
    CREATE_REPO = "create-repo"
    WRITE_HOOK = "write-hook"
    CHMOD_HOOK = "chmod-hook"
    REMOVE_HOOK = "remove-hook"
    REMOVE_LINK = "remove-link"
    CREATE_LINK = "create-link"
    REBIND_LINK = "rebind-link"


# Repositories first, then hooks, then stale links, then new links.
PHASES = {
    ActionKind.CREATE_REPO: 1,
    ActionKind.WRITE_HOOK: 2,
    ActionKind.CHMOD_HOOK: 2,
    ActionKind.REMOVE_HOOK: 2,
    ActionKind.REMOVE_LINK: 3,
    ActionKind.CREATE_LINK: 4,
    ActionKind.REBIND_LINK: 4,
}

LINK_ACTIONS = (ActionKind.REMOVE_LINK, ActionKind.CREATE_LINK, ActionKind.REBIND_LINK)


@dataclass(frozen=True)
class Action:
    """
    One mutation.

    Attributes:
        kind: What to do
        repo_id: Repository the action belongs to (failures are isolated per repo)
        path: Absolute path that is mutated
        target: Symlink target for link actions
        content: Script body for write-hook
        event: Hook event for hook actions
        alias: Alias for link actions
    """
    kind: ActionKind
    repo_id: str
    path: Path
    target: Optional[Path] = None
    content: Optional[str] = None
    event: Optional[HookEvent] = None
    alias: Optional[PurePosixPath] = None
    branch: Optional[str] = None

    @property
    def phase(self) -> int:
        return PHASES[self.kind]

    def describe(self) -> str:
        if self.kind == ActionKind.CREATE_REPO:
            return f"create repository {self.path}"
        if self.event is not None:
            return f"{self.kind.value.replace('-', ' ')} {self.event.value} for {self.repo_id}"
        if self.target is not None:
            return f"{self.kind.value.replace('-', ' ')} {self.alias} -> {self.target}"
        return f"{self.kind.value.replace('-', ' ')} {self.alias}"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'action': self.kind.value,
            'repo': self.repo_id,
            'path': str(self.path),
        }
        if self.event is not None:
            data['event'] = self.event.value
        if self.alias is not None:
            data['alias'] = str(self.alias)
        if self.target is not None:
            data['target'] = str(self.target)
        return data


class NoticeKind(Enum):
    """Conditions that are reported but never acted on."""
    ORPHAN = "orphan"
    ORPHAN_LINK = "orphan-link"
    PROTECTED = "protected"
    FOREIGN_LINK = "foreign-link"
    DANGLING_LINK = "dangling-link"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Notice:
    kind: NoticeKind
    message: str
    repo_id: Optional[str] = None
    path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'notice': self.kind.value,
            'repo': self.repo_id,
            'path': self.path,
            'message': self.message,
        }


@dataclass
class Plan:
    """Ordered actions plus notices and per-repository planning errors."""
    actions: List[Action] = field(default_factory=list)
    notices: List[Notice] = field(default_factory=list)
    errors: Dict[str, List[str]] = field(default_factory=OrderedDict)
    symlink_root: Optional[Path] = None

    def add_error(self, repo_id: str, message: str) -> None:
        self.errors.setdefault(repo_id, []).append(message)

    def ordered(self) -> List[Action]:
        """Actions sorted by phase; order within a phase is preserved."""
        return sorted(self.actions, key=lambda action: action.phase)

    @property
    def empty(self) -> bool:
        return not self.actions


@dataclass
class ReconcileReport:
    """What applying a plan did."""
    applied: List[Action] = field(default_factory=list)
    skipped: List[Action] = field(default_factory=list)
    failures: Dict[str, List[str]] = field(default_factory=OrderedDict)
    notices: List[Notice] = field(default_factory=list)
    dry_run: bool = False

    @property
    def success(self) -> bool:
        return not self.failures

    def add_failure(self, repo_id: str, message: str) -> None:
        self.failures.setdefault(repo_id, []).append(message)

    def count(self, kind: ActionKind) -> int:
        return sum(1 for action in self.applied if action.kind == kind)

    @property
    def created(self) -> List[str]:
        return [a.repo_id for a in self.applied if a.kind == ActionKind.CREATE_REPO]

    @property
    def orphans(self) -> List[str]:
        return [n.repo_id for n in self.notices if n.kind == NoticeKind.ORPHAN]

    @property
    def alias_changes(self) -> int:
        """Number of repositories whose symlinks changed."""
        return len({a.repo_id for a in self.applied if a.kind in LINK_ACTIONS})

    @property
    def changes(self) -> int:
        return len(self.applied)

    def summary(self) -> Dict[str, Any]:
        return {
            'type': 'summary',
            'success': self.success,
            'dry_run': self.dry_run,
            'changes': self.changes,
            'repos_created': len(self.created),
            'hooks_written': self.count(ActionKind.WRITE_HOOK) + self.count(ActionKind.CHMOD_HOOK),
            'hooks_removed': self.count(ActionKind.REMOVE_HOOK),
            'links_created': self.count(ActionKind.CREATE_LINK),
            'links_rebound': self.count(ActionKind.REBIND_LINK),
            'links_removed': self.count(ActionKind.REMOVE_LINK),
            'alias_changes': self.alias_changes,
            'orphans': self.orphans,
            'failed': list(self.failures),
        }
