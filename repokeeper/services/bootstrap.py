"""
Bootstrap for repokeeper servers.

`repokeeper init` lays down what every later reconciliation relies on:

- the store directory and the symlink root
- a bare `admin` repository inside the store
- its pre-receive hook (rejects pushes whose config does not parse) and
  post-receive hook (checks out the pushed config and runs `switch`)
- an initial commit holding config.xml and the two hook scripts, so the
  config declares the admin repository and its own hooks
- the `admin` symlink

The hooks written here are byte-identical to the scripts committed to the
admin repository, so the first `switch` after `init` has nothing to do.

Running init again on an initialized layout changes nothing and reports the
existing paths.
"""

import os
import shutil
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
import logging

from ..domain.desired import ADMIN_REPOSITORY, HookEvent
from ..exit_codes import InitError
from ..infra.file_store import FileStore
from ..infra.git_client import GitClient, GitError
from .scanner import hook_path

logger = logging.getLogger(__name__)

CONFIG_FILENAME = 'config.xml'
DEFAULT_BRANCH = 'main'

HOOK_SCRIPTS = {
    HookEvent.PRE_RECEIVE: 'hooks/pre-receive.sh',
    HookEvent.POST_RECEIVE: 'hooks/post-receive.sh',
}

CONFIG_TEMPLATE = """\
<config store="@STORE@" symlinks="@SYMLINKS@" branch="@BRANCH@">
  <!-- This file lives in the admin repository. Pushing it runs
       "repokeeper switch", which brings the server in line with it. -->
  <repo id="admin">
    <alias>admin</alias>
    <tag>admin</tag>
    <hook name="pre-receive" src="hooks/pre-receive.sh"/>
    <hook name="post-receive" src="hooks/post-receive.sh"/>
  </repo>
</config>
"""

PRE_RECEIVE_TEMPLATE = """\
#!/bin/sh
# Reject pushes to the admin branch whose fleet config does not parse.
branch="refs/heads/@BRANCH@"
while read -r old new ref; do
    [ "$ref" = "$branch" ] || continue
    case "$new" in *[!0]*) ;; *) continue ;; esac
    checkout="$(mktemp -d)" || exit 1
    git archive "$new" | tar -x -C "$checkout"
    "@PYTHON@" -m repokeeper check --config "$checkout/@CONFIG@"
    status=$?
    rm -rf "$checkout"
    [ "$status" -eq 0 ] || exit "$status"
done
exit 0
"""

POST_RECEIVE_TEMPLATE = """\
#!/bin/sh
# Reconcile the server with the fleet config pushed to the admin branch.
# This script may be replaced by the run it starts; repokeeper swaps hook
# files atomically so this shell keeps reading the old copy.
branch="refs/heads/@BRANCH@"
status=0
while read -r old new ref; do
    [ "$ref" = "$branch" ] || continue
    case "$new" in *[!0]*) ;; *) continue ;; esac
    checkout="$(mktemp -d)" || exit 1
    git archive "$new" | tar -x -C "$checkout"
    "@PYTHON@" -m repokeeper switch --config "$checkout/@CONFIG@" || status=$?
    rm -rf "$checkout"
done
exit "$status"
"""


def _attribute(value: str) -> str:
    return value.replace('\\', '\\\\').replace('"', '\\"')


def render(template: str, **values: str) -> str:
    for key, value in values.items():
        template = template.replace(f'@{key.upper()}@', value)
    return template


def admin_files(
    store_path: Path,
    symlink_root: Path,
    branch: str = DEFAULT_BRANCH,
    python: Optional[str] = None,
) -> Dict[str, str]:
    """The files committed to a fresh admin repository, keyed by path."""
    python = python or sys.executable
    hook_values = {'branch': branch, 'python': python, 'config': CONFIG_FILENAME}
    return {
        CONFIG_FILENAME: render(
            CONFIG_TEMPLATE,
            store=_attribute(str(store_path)),
            symlinks=_attribute(str(symlink_root)),
            branch=_attribute(branch),
        ),
        HOOK_SCRIPTS[HookEvent.PRE_RECEIVE]: render(PRE_RECEIVE_TEMPLATE, **hook_values),
        HOOK_SCRIPTS[HookEvent.POST_RECEIVE]: render(POST_RECEIVE_TEMPLATE, **hook_values),
    }


@dataclass
class InitResult:
    """Paths of an initialized layout."""
    store_path: Path
    symlink_root: Path
    admin_path: Path
    link_path: Path
    branch: str
    created: bool
    files: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'store': str(self.store_path),
            'symlinks': str(self.symlink_root),
            'admin': str(self.admin_path),
            'link': str(self.link_path),
            'branch': self.branch,
            'created': self.created,
            'files': sorted(self.files),
        }


class Bootstrap:
    """
    Creates the server layout and the self-reconciling admin repository.

    Example:
        result = Bootstrap().init(Path("/srv/git/store"), Path("/srv/git"))
        print(result.admin_path, result.created)
    """

    def __init__(
        self,
        git: Optional[GitClient] = None,
        file_store: Optional[FileStore] = None,
        python: Optional[str] = None,
    ):
        self.git = git or GitClient()
        self.file_store = file_store or FileStore(self.git)
        self.python = python

    def init(
        self,
        store_path: Path,
        symlink_root: Path,
        default_branch: str = DEFAULT_BRANCH,
    ) -> InitResult:
        """
        Initialize the layout.

        Raises:
            InitError: The layout could not be created
        """
        for label, path in (('store', store_path), ('symlink root', symlink_root)):
            if not os.path.isabs(str(path)):
                raise InitError(f"{label} must be an absolute path, got '{path}'")
        if not default_branch or not default_branch.strip():
            raise InitError("default branch must not be empty")

        store_path = Path(os.path.normpath(store_path))
        symlink_root = Path(os.path.normpath(symlink_root))
        admin_path = store_path / ADMIN_REPOSITORY
        link_path = symlink_root / ADMIN_REPOSITORY

        result = InitResult(
            store_path=store_path,
            symlink_root=symlink_root,
            admin_path=admin_path,
            link_path=link_path,
            branch=default_branch,
            created=False,
        )

        try:
            store_path.mkdir(parents=True, exist_ok=True)
            symlink_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InitError(f"cannot create layout: {e}") from e

        if os.path.lexists(admin_path):
            logger.info(f"Admin repository already exists at {admin_path}")
            return result

        files = admin_files(store_path, symlink_root, default_branch, python=self.python)
        try:
            self.file_store.create_repository(admin_path, branch=default_branch)
            for event, name in HOOK_SCRIPTS.items():
                self.file_store.write_hook(hook_path(admin_path, event), files[name])
            self.git.commit_files(
                admin_path,
                files,
                branch=default_branch,
                message="Initial repokeeper configuration",
                executable=HOOK_SCRIPTS.values(),
            )
            self.file_store.replace_symlink(link_path, admin_path, symlink_root)
        except (OSError, GitError) as e:
            self._discard(admin_path)
            raise InitError(f"cannot initialize admin repository at {admin_path}: {e}") from e

        logger.info(f"Initialized admin repository at {admin_path}")
        result.created = True
        result.files = files
        return result

    def _discard(self, admin_path: Path) -> None:
        """Remove a partly built admin repository so init can run again."""
        if not os.path.lexists(admin_path):
            return
        try:
            shutil.rmtree(admin_path)
        except OSError as e:
            logger.error(f"Cannot remove partly initialized {admin_path}: {e}")
        else:
            logger.info(f"Removed partly initialized {admin_path}")


def init(
    store_path: Path,
    symlink_root: Path,
    default_branch: str = DEFAULT_BRANCH,
    git: Optional[GitClient] = None,
) -> InitResult:
    """Initialize a server layout (see Bootstrap.init)."""
    return Bootstrap(git=git).init(Path(store_path), Path(symlink_root), default_branch)
