"""
Infrastructure layer for repokeeper.

Contains abstractions for external systems:
- GitClient: Git command execution
- FileStore: Atomic filesystem mutations for the store and symlink tree

These provide clean interfaces that can be replaced with fakes for testing.
"""

from .git_client import GitClient, GitError
from .file_store import FileStore

__all__ = [
    'GitClient',
    'GitError',
    'FileStore',
]
