"""
Reconciler ("switch") for repokeeper.

Brings the server in line with the fleet config in two steps:

1. plan(desired, observed) is a pure function of the two states. It
   returns the ordered actions needed to converge plus notices for
   conditions that are reported but never acted on (orphaned
   repositories, foreign links, entries the scanner could not read).
2. apply(plan) executes the actions through an applier (FileStore by
   default). A failing action marks its repository failed and skips that
   repository's remaining actions; every other repository still gets its
   turn.

Actions run in phases: repository creation, hooks, stale link removal,
then link creation and rebinding.

Rules:
- Repositories are never deleted. A repository in the store that the
  config no longer declares is reported as an orphan.
- Hooks are owned by the config: a hook on disk with no declaration is
  removed.
- Alias paths are owned by the config: a managed link at an alias is
  rebound to the right repository. Foreign links (pointing outside the
  store) are never modified.
- UNKNOWN entries are never touched.

The admin repository's post-receive hook is what runs `repokeeper switch`,
so a run may rewrite the very script that is executing it. Hook files are
replaced with write-to-temp and rename: the running shell keeps reading the
old inode and never sees a half-written file. Hook writes must stay atomic
for this to hold.
"""

import os
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional, Protocol, Set, Tuple, Union
import logging

from ..domain.desired import ADMIN_REPOSITORY, DesiredState, HookEvent, RepositorySpec
from ..domain.observed import EntryState, ObservedHook, ObservedRepo, ObservedState
from ..domain.plan import Action, ActionKind, Notice, NoticeKind, Plan, ReconcileReport
from ..infra.file_store import FileStore
from ..infra.git_client import GitError
from .config_parser import parse
from .scanner import hook_path, link_target, scan

logger = logging.getLogger(__name__)

DEFAULT_PROTECTED = (ADMIN_REPOSITORY,)


class Applier(Protocol):
    """The mutations apply() needs; FileStore implements them on disk."""

    def create_repository(self, path: Path, branch: Optional[str] = None) -> None: ...

    def write_hook(self, path: Path, content: str) -> None: ...

    def make_executable(self, path: Path) -> None: ...

    def remove_file(self, path: Path) -> None: ...

    def replace_symlink(self, link: Path, target: Path, root: Optional[Path] = None) -> None: ...

    def remove_symlink(self, link: Path, root: Path) -> None: ...


class Reconciler:
    """
    Diffs desired against observed state and applies the difference.

    Example:
        reconciler = Reconciler()
        report = reconciler.reconcile(desired, observed)
        if not report.success:
            for repo_id, errors in report.failures.items():
                print(repo_id, errors)
    """

    def __init__(
        self,
        applier: Optional[Applier] = None,
        protected: Iterable[str] = DEFAULT_PROTECTED,
    ):
        """
        Initialize Reconciler.

        Args:
            applier: Performs the mutations (FileStore when None)
            protected: Repository ids never reported as orphans
        """
        self.applier = applier if applier is not None else FileStore()
        self.protected = frozenset(protected)

    # -- planning ------------------------------------------------------

    def plan(self, desired: DesiredState, observed: ObservedState) -> Plan:
        """Compute the actions that take observed to desired. Pure."""
        result = Plan(symlink_root=desired.symlink_root)

        self._plan_notices(desired, observed, result)

        for repo_id, spec in desired.repos.items():
            repo_path = desired.repository_path(repo_id)
            observed_repo = observed.repos.get(repo_id)

            if observed_repo is not None and observed_repo.state == EntryState.UNKNOWN:
                continue

            if observed_repo is None:
                result.actions.append(Action(
                    kind=ActionKind.CREATE_REPO,
                    repo_id=repo_id,
                    path=repo_path,
                    branch=desired.default_branch,
                ))

            self._plan_hooks(spec, observed_repo, repo_path, result)

        removed = self._plan_stale_links(desired, observed, result)

        for repo_id, spec in desired.repos.items():
            if spec.alias is not None:
                self._plan_alias(desired, observed, spec, removed, result)

        return result

    def _plan_notices(self, desired: DesiredState, observed: ObservedState, result: Plan) -> None:
        for repo_id, observed_repo in observed.repos.items():
            if observed_repo.state == EntryState.UNKNOWN:
                result.notices.append(Notice(
                    NoticeKind.UNKNOWN,
                    f"store entry '{repo_id}' could not be inspected; left untouched",
                    repo_id=repo_id,
                    path=str(observed_repo.path),
                ))
            elif repo_id in desired.repos:
                continue
            elif repo_id in self.protected:
                result.notices.append(Notice(
                    NoticeKind.PROTECTED,
                    f"protected repository '{repo_id}' is not declared; left in place",
                    repo_id=repo_id,
                ))
            else:
                result.notices.append(Notice(
                    NoticeKind.ORPHAN,
                    f"repository '{repo_id}' is no longer declared; left in place",
                    repo_id=repo_id,
                ))

        for relative in sorted(observed.unreadable):
            result.notices.append(Notice(
                NoticeKind.UNKNOWN,
                f"directory '{relative}' could not be read; links below it are left untouched",
                path=str(relative),
            ))

        for alias in sorted(observed.links):
            link = observed.links[alias]
            if link.state == EntryState.UNKNOWN:
                result.notices.append(Notice(
                    NoticeKind.UNKNOWN,
                    f"link '{alias}' could not be read; left untouched",
                    path=str(alias),
                ))
            elif link.foreign:
                result.notices.append(Notice(
                    NoticeKind.FOREIGN_LINK,
                    f"link '{alias}' points outside the store ({link.target}); not managed",
                    path=str(alias),
                ))
            elif link.repo_id not in desired.repos:
                if link.repo_id in observed.repos:
                    result.notices.append(Notice(
                        NoticeKind.ORPHAN_LINK,
                        f"link '{alias}' points at undeclared repository '{link.repo_id}'; left in place",
                        repo_id=link.repo_id,
                        path=str(alias),
                    ))
                else:
                    result.notices.append(Notice(
                        NoticeKind.DANGLING_LINK,
                        f"link '{alias}' points at missing store entry '{link.repo_id}'",
                        repo_id=link.repo_id,
                        path=str(alias),
                    ))

    def _plan_hooks(
        self,
        spec: RepositorySpec,
        observed_repo: Optional[ObservedRepo],
        repo_path: Path,
        result: Plan,
    ) -> None:
        for event in HookEvent:
            body = spec.hook_body(event)
            current = observed_repo.hook(event) if observed_repo else ObservedHook(event)
            path = hook_path(repo_path, event)

            if current.state == EntryState.UNKNOWN:
                result.notices.append(Notice(
                    NoticeKind.UNKNOWN,
                    f"{event.value} hook of '{spec.id}' could not be read; left untouched",
                    repo_id=spec.id,
                    path=str(path),
                ))
                continue

            if body is not None:
                if current.state == EntryState.ABSENT or current.content != body:
                    result.actions.append(Action(
                        kind=ActionKind.WRITE_HOOK,
                        repo_id=spec.id,
                        path=path,
                        content=body,
                        event=event,
                    ))
                elif not current.executable:
                    result.actions.append(Action(
                        kind=ActionKind.CHMOD_HOOK,
                        repo_id=spec.id,
                        path=path,
                        event=event,
                    ))
            elif current.state == EntryState.PRESENT:
                result.actions.append(Action(
                    kind=ActionKind.REMOVE_HOOK,
                    repo_id=spec.id,
                    path=path,
                    event=event,
                ))

    def _plan_stale_links(
        self, desired: DesiredState, observed: ObservedState, result: Plan
    ) -> Set[PurePosixPath]:
        """Plan removal of managed links to declared repos that no longer match an alias."""
        claimed = desired.aliases()
        removed: Set[PurePosixPath] = set()
        if desired.symlink_root is None:
            return removed

        for repo_id, spec in desired.repos.items():
            for link in observed.links_to(repo_id):
                if link.alias == spec.alias or link.alias in claimed:
                    # Correct, or about to be rebound by the alias's owner
                    continue
                result.actions.append(Action(
                    kind=ActionKind.REMOVE_LINK,
                    repo_id=repo_id,
                    path=desired.link_path(link.alias),
                    alias=link.alias,
                ))
                removed.add(link.alias)
        return removed

    def _plan_alias(
        self,
        desired: DesiredState,
        observed: ObservedState,
        spec: RepositorySpec,
        removed: Set[PurePosixPath],
        result: Plan,
    ) -> None:
        alias = spec.alias
        link_path = desired.link_path(alias)
        target = Path(os.path.normpath(desired.repository_path(spec.id)))

        if observed.is_unreadable(alias):
            logger.debug(f"Skipping alias {alias}: below an unreadable directory")
            return

        link = observed.links.get(alias)
        if link is not None:
            if link.state == EntryState.UNKNOWN:
                return
            if link.foreign:
                result.add_error(
                    spec.id,
                    f"alias '{alias}' is a foreign link to {link.target}; left untouched",
                )
                return
            if link_target(link, link_path) == target:
                return
            result.actions.append(Action(
                kind=ActionKind.REBIND_LINK,
                repo_id=spec.id,
                path=link_path,
                target=target,
                alias=alias,
            ))
            return

        if alias in observed.files or alias in observed.directories:
            result.add_error(spec.id, f"alias '{alias}' exists and is not a symlink")
            return

        for parent in alias.parents:
            if parent == PurePosixPath('.'):
                continue
            if parent in observed.files:
                result.add_error(spec.id, f"alias '{alias}' is below the file '{parent}'")
                return
            if parent in observed.links and parent not in removed:
                result.add_error(spec.id, f"alias '{alias}' is below the symlink '{parent}'")
                return

        result.actions.append(Action(
            kind=ActionKind.CREATE_LINK,
            repo_id=spec.id,
            path=link_path,
            target=target,
            alias=alias,
        ))

    # -- applying ------------------------------------------------------

    def apply(self, plan: Plan, dry_run: bool = False) -> ReconcileReport:
        """
        Execute a plan, isolating failures per repository.

        Args:
            plan: Output of plan()
            dry_run: Record the actions without executing them

        Returns:
            ReconcileReport
        """
        report = ReconcileReport(notices=list(plan.notices), dry_run=dry_run)
        for repo_id, messages in plan.errors.items():
            for message in messages:
                logger.error(f"{repo_id}: {message}")
                report.add_failure(repo_id, message)

        for notice in plan.notices:
            logger.debug(notice.message)

        failed: Set[str] = set()
        for action in plan.ordered():
            if action.repo_id in failed:
                logger.debug(f"Skipping {action.describe()}: earlier step failed")
                report.skipped.append(action)
                continue

            if dry_run:
                report.applied.append(action)
                continue

            try:
                self._execute(action, plan.symlink_root)
            except (OSError, GitError) as e:
                logger.error(f"{action.repo_id}: {action.describe()} failed: {e}")
                report.add_failure(action.repo_id, f"{action.describe()}: {e}")
                failed.add(action.repo_id)
                continue

            logger.info(action.describe())
            report.applied.append(action)

        return report

    def _execute(self, action: Action, symlink_root: Optional[Path]) -> None:
        kind = action.kind
        if kind == ActionKind.CREATE_REPO:
            self.applier.create_repository(action.path, branch=action.branch)
        elif kind == ActionKind.WRITE_HOOK:
            self.applier.write_hook(action.path, action.content or '')
        elif kind == ActionKind.CHMOD_HOOK:
            self.applier.make_executable(action.path)
        elif kind == ActionKind.REMOVE_HOOK:
            self.applier.remove_file(action.path)
        elif kind == ActionKind.REMOVE_LINK:
            self.applier.remove_symlink(action.path, symlink_root)
        elif kind in (ActionKind.CREATE_LINK, ActionKind.REBIND_LINK):
            self.applier.replace_symlink(action.path, action.target, symlink_root)
        else:
            raise ValueError(f"unknown action {kind}")

    def reconcile(
        self, desired: DesiredState, observed: ObservedState, dry_run: bool = False
    ) -> ReconcileReport:
        """Plan and apply in one step."""
        return self.apply(self.plan(desired, observed), dry_run=dry_run)


def plan(
    desired: DesiredState,
    observed: ObservedState,
    protected: Iterable[str] = DEFAULT_PROTECTED,
) -> Plan:
    """Compute a plan without an applier (see Reconciler.plan)."""
    return Reconciler(protected=protected).plan(desired, observed)


def reconcile(
    desired: DesiredState,
    observed: ObservedState,
    applier: Optional[Applier] = None,
    protected: Iterable[str] = DEFAULT_PROTECTED,
    dry_run: bool = False,
) -> ReconcileReport:
    """Reconcile observed towards desired (see Reconciler.reconcile)."""
    return Reconciler(applier=applier, protected=protected).reconcile(
        desired, observed, dry_run=dry_run
    )


def switch(
    config_path: Union[str, Path],
    applier: Optional[Applier] = None,
    protected: Iterable[str] = DEFAULT_PROTECTED,
    dry_run: bool = False,
) -> Tuple[DesiredState, ReconcileReport]:
    """
    Parse the fleet config, scan the server and reconcile.

    ParseError and ScanError propagate before anything is mutated.
    """
    desired = parse(config_path)
    # The whole link tree is walked: links left by aliases deeper than any
    # current one must still be found to be removed.
    observed = scan(desired.store_path, desired.symlink_root)
    report = reconcile(desired, observed, applier=applier, protected=protected, dry_run=dry_run)
    return desired, report

