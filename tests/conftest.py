"""
Shared fixtures for repokeeper tests.
"""

import textwrap
from pathlib import Path

import pytest

from repokeeper.infra.git_client import GitError


class FakeGitClient:
    """
    Stands in for GitClient so tests do not need a git binary.

    init_bare lays out just enough of a bare repository (a hooks directory
    and HEAD) for the scanner to treat it as one.
    """

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.created = []
        self.commits = []

    def init_bare(self, path, branch=None):
        path = Path(path)
        if path.name in self.fail_for:
            raise GitError(f"git init failed for {path}", returncode=128)
        (path / 'hooks').mkdir(parents=True)
        (path / 'HEAD').write_text(f"ref: refs/heads/{branch or 'master'}\n")
        self.created.append((path, branch))

    def is_repository(self, path):
        return (Path(path) / 'HEAD').is_file()

    def commit_files(self, path, files, branch, message, executable=()):
        self.commits.append({
            'path': Path(path),
            'files': dict(files),
            'branch': branch,
            'message': message,
            'executable': set(executable),
        })
        return '0' * 40


@pytest.fixture
def fake_git():
    return FakeGitClient()


@pytest.fixture
def store(tmp_path):
    path = tmp_path / 'store'
    path.mkdir()
    return path


@pytest.fixture
def links(tmp_path):
    return tmp_path / 'links'


@pytest.fixture
def write_file(tmp_path):
    """Write a dedented file below tmp_path and return its path."""
    def write(relative, content):
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content).lstrip('\n'))
        return path
    return write
