"""
Git client infrastructure for repokeeper.

Provides a clean abstraction over git command execution.
All git operations go through this client, making them:
- Easy to mock for testing
- Consistent in error handling
- Isolated from business logic

Repositories in the store are bare, so every command addresses the
repository with --git-dir instead of relying on the working directory.
"""

import os
import subprocess
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

# Identity used for commits repokeeper makes itself (the seeded admin config)
# when the environment does not provide one.
DEFAULT_IDENTITY = {
    'GIT_AUTHOR_NAME': 'repokeeper',
    'GIT_AUTHOR_EMAIL': 'repokeeper@localhost',
    'GIT_COMMITTER_NAME': 'repokeeper',
    'GIT_COMMITTER_EMAIL': 'repokeeper@localhost',
}


class GitError(Exception):
    """Raised when a git command fails."""

    def __init__(self, message: str, returncode: int = -1, stderr: str = ''):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class GitClient:
    """
    Abstraction over git commands.

    Example:
        client = GitClient()
        client.init_bare(Path("/srv/git/store/blog"), branch="main")
        assert client.is_repository(Path("/srv/git/store/blog"))
    """

    def __init__(self, binary: str = 'git', timeout: int = 60):
        """
        Initialize GitClient.

        Args:
            binary: git executable to run
            timeout: Command timeout in seconds (default: 60)
        """
        self.binary = binary
        self.timeout = timeout

    def _run(
        self,
        args: List[str],
        cwd: Optional[Path] = None,
        input: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        check: bool = True,
    ) -> Tuple[str, int]:
        """
        Run a git command.

        Args:
            args: Arguments after the git binary
            cwd: Working directory
            input: Text fed to stdin
            env: Extra environment variables
            check: Raise GitError on non-zero exit

        Returns:
            Tuple of (stdout, returncode)
        """
        cmd = [self.binary] + args
        full_env = None
        if env:
            full_env = os.environ.copy()
            full_env.update(env)

        try:
            result = subprocess.run(
                cmd,
                cwd=str(cwd) if cwd else None,
                input=input,
                env=full_env,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise GitError(f"git command timed out: {' '.join(cmd)}") from e
        except OSError as e:
            raise GitError(f"could not run {self.binary}: {e}") from e

        if check and result.returncode != 0:
            stderr = (result.stderr or '').strip()
            raise GitError(
                f"{' '.join(cmd)} failed ({result.returncode}): {stderr}",
                returncode=result.returncode,
                stderr=stderr,
            )

        return (result.stdout or '').strip(), result.returncode

    def is_repository(self, path: Path) -> bool:
        """Check if path is a git repository (bare or not)."""
        path = Path(path)
        if not path.is_dir():
            return False
        _, code = self._run(['--git-dir', str(self._git_dir(path)), 'rev-parse', '--git-dir'],
                            check=False)
        return code == 0

    def _git_dir(self, path: Path) -> Path:
        dot_git = Path(path) / '.git'
        return dot_git if dot_git.is_dir() else Path(path)

    def init_bare(self, path: Path, branch: Optional[str] = None) -> None:
        """
        Create a bare repository.

        Args:
            path: Repository directory (created with parents)
            branch: Initial branch name (git's default when None)
        """
        args = ['init', '--bare', '--quiet']
        if branch:
            args.append(f'--initial-branch={branch}')
        args.append(str(path))
        logger.debug(f"git {' '.join(args)}")
        self._run(args)

    def commit_files(
        self,
        path: Path,
        files: Dict[str, str],
        branch: str,
        message: str,
        executable: Iterable[str] = (),
    ) -> str:
        """
        Commit files to a branch of a bare repository without a worktree.

        Builds blobs and trees with plumbing commands, so nested paths such as
        "hooks/post-receive.sh" become subtrees.

        Args:
            path: Bare repository
            files: Relative path -> content
            branch: Branch to point at the new commit
            message: Commit message
            executable: Paths committed with mode 100755

        Returns:
            SHA of the new commit
        """
        git_dir = ['--git-dir', str(self._git_dir(path))]
        executable = set(executable)

        tree: Dict[str, object] = {}
        for name, content in files.items():
            parts = name.split('/')
            node = tree
            for part in parts[:-1]:
                node = node.setdefault(part, {})
            blob, _ = self._run(git_dir + ['hash-object', '-w', '--stdin'], input=content)
            mode = '100755' if name in executable else '100644'
            node[parts[-1]] = (mode, blob)

        def write_tree(node: Dict[str, object]) -> str:
            entries = []
            for name in sorted(node):
                value = node[name]
                if isinstance(value, dict):
                    entries.append(f"040000 tree {write_tree(value)}\t{name}")
                else:
                    mode, blob = value
                    entries.append(f"{mode} blob {blob}\t{name}")
            sha, _ = self._run(git_dir + ['mktree'], input='\n'.join(entries) + '\n')
            return sha

        identity = {k: v for k, v in DEFAULT_IDENTITY.items() if k not in os.environ}
        commit, _ = self._run(git_dir + ['commit-tree', write_tree(tree), '-m', message],
                              env=identity)
        self._run(git_dir + ['update-ref', f'refs/heads/{branch}', commit])
        self._run(git_dir + ['symbolic-ref', 'HEAD', f'refs/heads/{branch}'])
        return commit

