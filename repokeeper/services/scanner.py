"""
Observed state scanner for repokeeper.

Reads the store, each repository's hooks directory and the symlink tree
and returns an ObservedState. The scanner never writes.

Failure policy:
- A missing or unreadable store, or an unreadable symlink root, raises
  ScanError: nothing can be reconciled without seeing current state.
- Anything below that which cannot be read (a store entry, a hook file, a
  link target, a nested directory) is recorded as UNKNOWN and left for the
  reconciler to skip. A store entry that is a symlink to a directory counts
  as a repository; a symlink to anything else is UNKNOWN.
"""

import os
import stat
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional, Set, Tuple
import logging

from ..domain.desired import HookEvent
from ..domain.observed import (
    EntryState, ObservedHook, ObservedLink, ObservedRepo, ObservedState
)
from ..exit_codes import ScanError

logger = logging.getLogger(__name__)

HOOKS_DIRNAME = 'hooks'


def scan(
    store_path: Path,
    symlink_root: Optional[Path] = None,
    max_depth: Optional[int] = None,
) -> ObservedState:
    """Scan the store and symlink tree (see Scanner.scan)."""
    return Scanner().scan(store_path, symlink_root, max_depth=max_depth)


def hook_path(repository_path: Path, event: HookEvent) -> Path:
    """Location of a hook script inside a bare repository."""
    return repository_path / HOOKS_DIRNAME / event.value


class Scanner:
    """
    Builds an ObservedState from disk.

    Example:
        observed = Scanner().scan(Path("/srv/git/store"), Path("/srv/git"))
        for alias, link in observed.links.items():
            print(alias, link.target, link.foreign)
    """

    def scan(
        self,
        store_path: Path,
        symlink_root: Optional[Path] = None,
        max_depth: Optional[int] = None,
    ) -> ObservedState:
        """
        Scan the store and the symlink tree.

        Args:
            store_path: Directory holding one bare repository per id
            symlink_root: Root of the symlink tree (None when not configured)
            max_depth: How many directory levels of the symlink tree to
                walk (None walks the whole tree)

        Returns:
            ObservedState

        Raises:
            ScanError: The store or the symlink root cannot be read
        """
        store_path = Path(os.path.normpath(store_path))
        repos = self._scan_store(store_path)

        links: Dict[PurePosixPath, ObservedLink] = {}
        files: Set[PurePosixPath] = set()
        directories: Set[PurePosixPath] = set()
        unreadable: Set[PurePosixPath] = set()

        if symlink_root is not None:
            symlink_root = Path(os.path.normpath(symlink_root))
            self._scan_links(
                symlink_root, store_path, max_depth,
                links, files, directories, unreadable,
            )

        logger.debug(
            f"Observed {len(repos)} repositories and {len(links)} symlinks"
            + (f", {len(unreadable)} unreadable directories" if unreadable else "")
        )
        return ObservedState(
            store_path=store_path,
            symlink_root=symlink_root,
            repos=repos,
            links=links,
            files=frozenset(files),
            directories=frozenset(directories),
            unreadable=frozenset(unreadable),
        )

    # -- store ---------------------------------------------------------

    def _scan_store(self, store_path: Path) -> Dict[str, ObservedRepo]:
        if not store_path.is_dir():
            raise ScanError(f"store {store_path} does not exist or is not a directory")
        try:
            entries = sorted(os.scandir(store_path), key=lambda e: e.name)
        except OSError as e:
            raise ScanError(f"cannot read store {store_path}: {e.strerror or e}") from e

        repos: Dict[str, ObservedRepo] = {}
        for entry in entries:
            if entry.name.startswith('.'):
                continue
            path = Path(entry.path)
            try:
                is_link = entry.is_symlink()
                is_dir = entry.is_dir()
            except OSError as e:
                logger.debug(f"Cannot inspect store entry {path}: {e}")
                repos[entry.name] = ObservedRepo(id=entry.name, path=path, state=EntryState.UNKNOWN)
                continue

            if is_dir:
                # A symlink to a directory is a repository kept elsewhere
                repos[entry.name] = ObservedRepo(id=entry.name, path=path, hooks=self._scan_hooks(path))
            elif is_link:
                logger.debug(f"Store entry {path} is a symlink to a non-directory")
                repos[entry.name] = ObservedRepo(id=entry.name, path=path, state=EntryState.UNKNOWN)
        return repos

    def _scan_hooks(self, repository_path: Path) -> Dict[HookEvent, ObservedHook]:
        hooks = {}
        for event in HookEvent:
            hooks[event] = self._scan_hook(hook_path(repository_path, event), event)
        return hooks

    def _scan_hook(self, path: Path, event: HookEvent) -> ObservedHook:
        try:
            st = os.lstat(path)
        except FileNotFoundError:
            return ObservedHook(event, EntryState.ABSENT)
        except NotADirectoryError:
            return ObservedHook(event, EntryState.ABSENT)
        except OSError as e:
            logger.debug(f"Cannot stat {path}: {e}")
            return ObservedHook(event, EntryState.UNKNOWN)

        if not stat.S_ISREG(st.st_mode):
            # A symlink or directory in place of a script never matches a desired body
            return ObservedHook(event, EntryState.PRESENT, content=None, executable=False)

        try:
            content = path.read_text(encoding='utf-8', errors='replace')
        except OSError as e:
            logger.debug(f"Cannot read {path}: {e}")
            return ObservedHook(event, EntryState.UNKNOWN)

        return ObservedHook(
            event,
            EntryState.PRESENT,
            content=content,
            executable=bool(st.st_mode & stat.S_IXUSR),
        )

    # -- symlink tree --------------------------------------------------

    def _scan_links(
        self,
        root: Path,
        store_path: Path,
        max_depth: Optional[int],
        links: Dict[PurePosixPath, ObservedLink],
        files: Set[PurePosixPath],
        directories: Set[PurePosixPath],
        unreadable: Set[PurePosixPath],
    ) -> None:
        if not os.path.lexists(root):
            logger.debug(f"Symlink root {root} does not exist yet")
            return
        if not root.is_dir():
            raise ScanError(f"symlink root {root} is not a directory")

        pending: List[Tuple[Path, PurePosixPath]] = [(root, PurePosixPath())]
        while pending:
            directory, relative = pending.pop()
            try:
                entries = sorted(os.scandir(directory), key=lambda e: e.name)
            except OSError as e:
                if directory == root:
                    raise ScanError(f"cannot read symlink root {root}: {e.strerror or e}") from e
                logger.warning(f"Cannot read {directory}: {e.strerror or e}")
                unreadable.add(relative)
                continue

            for entry in entries:
                child = relative / entry.name
                if entry.is_symlink():
                    links[child] = self._read_link(Path(entry.path), child, store_path)
                elif entry.is_dir(follow_symlinks=False):
                    directories.add(child)
                    if Path(entry.path) == store_path:
                        continue
                    if max_depth is None or len(child.parts) < max_depth:
                        pending.append((Path(entry.path), child))
                else:
                    files.add(child)

    def _read_link(self, path: Path, alias: PurePosixPath, store_path: Path) -> ObservedLink:
        try:
            target = os.readlink(path)
        except OSError as e:
            logger.debug(f"Cannot read link {path}: {e}")
            return ObservedLink(alias=alias, state=EntryState.UNKNOWN)

        resolved = Path(os.path.normpath(os.path.join(str(path.parent), target)))
        if store_path in resolved.parents:
            repo_id = resolved.relative_to(store_path).parts[0]
            return ObservedLink(alias=alias, target=target, repo_id=repo_id)
        return ObservedLink(alias=alias, target=target, foreign=True)


def link_target(observed_link: ObservedLink, link_path: Path) -> Optional[Path]:
    """Absolute, normalised target of an observed link."""
    if observed_link.target is None:
        return None
    return Path(os.path.normpath(os.path.join(str(link_path.parent), observed_link.target)))
