"""
File store infrastructure for repokeeper.

Every mutation the reconciler makes on disk goes through FileStore:
- Hook scripts are written atomically (write to temp, then rename)
- Symlinks are replaced atomically (temp link, then rename over the old one)
- Repositories are created through the git client
- Emptied symlink directories are pruned up to the symlink root

Because each step is atomic on its own, a reconciliation that is killed or
races another one leaves either the old or the new entry, never a partly
written one.
"""

import os
import secrets
import stat
import tempfile
from pathlib import Path
from typing import Optional
import logging

from .git_client import GitClient

logger = logging.getLogger(__name__)

HOOK_MODE = 0o755
EXECUTE_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


class FileStore:
    """
    Atomic filesystem mutations for the store and the symlink tree.

    Example:
        store = FileStore(GitClient())
        store.create_repository(Path("/srv/git/store/blog"), branch="main")
        store.replace_symlink(Path("/srv/git/blog"), Path("/srv/git/store/blog"))
    """

    def __init__(self, git: Optional[GitClient] = None, default_branch: Optional[str] = None):
        self.git = git or GitClient()
        self.default_branch = default_branch

    def create_repository(self, path: Path, branch: Optional[str] = None) -> None:
        """Initialize a bare repository at path on branch (or the default branch)."""
        path.parent.mkdir(parents=True, exist_ok=True)
        self.git.init_bare(path, branch=branch or self.default_branch)

    def write_hook(self, path: Path, content: str) -> None:
        """Write an executable hook script atomically."""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp"
        )

        try:
            with os.fdopen(fd, 'w', encoding='utf-8', newline='') as f:
                f.write(content)
            os.chmod(temp_path, HOOK_MODE)

            # Atomic rename; a shell already running the old script keeps its inode
            os.replace(temp_path, path)

        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def make_executable(self, path: Path) -> None:
        mode = path.stat().st_mode
        os.chmod(path, mode | EXECUTE_BITS)

    def remove_file(self, path: Path) -> None:
        """Remove a file; a file that is already gone is fine."""
        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug(f"{path} already removed")

    def replace_symlink(self, link: Path, target: Path, root: Optional[Path] = None) -> None:
        """
        Point link at target, replacing any existing link atomically.

        When root is given, no directory between root and the link may be a
        symlink, so a link is never created inside a repository by following
        an old alias.
        """
        if root is not None:
            for parent in link.parents:
                if parent == root or root not in parent.parents:
                    break
                if parent.is_symlink():
                    raise OSError(f"{parent} is a symlink; cannot create {link} below it")
        link.parent.mkdir(parents=True, exist_ok=True)

        while True:
            temp_link = link.parent / f".{link.name}.{secrets.token_hex(4)}.tmp"
            try:
                os.symlink(str(target), str(temp_link))
                break
            except FileExistsError:
                continue

        try:
            os.replace(temp_link, link)
        except Exception:
            try:
                os.unlink(temp_link)
            except OSError:
                pass
            raise

    def remove_symlink(self, link: Path, root: Path) -> None:
        """
        Remove a symlink and prune directories it leaves empty.

        Pruning stops at root, which is never removed.
        """
        if os.path.lexists(link):
            if not link.is_symlink():
                raise OSError(f"refusing to remove non-symlink {link}")
            link.unlink()

        parent = link.parent
        while parent != root and root in parent.parents:
            try:
                parent.rmdir()
            except OSError:
                break
            logger.debug(f"Pruned empty directory {parent}")
            parent = parent.parent
