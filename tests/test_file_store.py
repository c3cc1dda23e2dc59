"""
Tests for FileStore, the on-disk applier.
"""

import os
import stat
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from repokeeper.infra.file_store import FileStore


@pytest.fixture
def file_store():
    return FileStore(git=MagicMock())


class TestHooks:

    def test_write_hook_is_executable(self, file_store, tmp_path):
        hook = tmp_path / 'repo' / 'hooks' / 'update'

        file_store.write_hook(hook, '#!/bin/sh\nexit 0\n')

        assert hook.read_text() == '#!/bin/sh\nexit 0\n'
        assert stat.S_IMODE(hook.stat().st_mode) == 0o755
        assert os.listdir(hook.parent) == ['update']

    def test_rewrite_replaces_the_inode(self, file_store, tmp_path):
        hook = tmp_path / 'post-receive'
        file_store.write_hook(hook, 'old\n')

        with open(hook) as running:
            file_store.write_hook(hook, 'new\n')
            # An already-open reader keeps seeing the old script
            assert running.read() == 'old\n'

        assert hook.read_text() == 'new\n'

    def test_make_executable(self, file_store, tmp_path):
        hook = tmp_path / 'update'
        hook.write_text('x')
        os.chmod(hook, 0o644)

        file_store.make_executable(hook)

        assert os.access(hook, os.X_OK)

    def test_remove_missing_file_is_fine(self, file_store, tmp_path):
        file_store.remove_file(tmp_path / 'absent')


class TestRepositories:

    def test_create_repository_uses_git(self, tmp_path):
        git = MagicMock()
        store = FileStore(git=git)

        store.create_repository(tmp_path / 'store' / 'blog', branch='main')

        git.init_bare.assert_called_once_with(tmp_path / 'store' / 'blog', branch='main')
        assert (tmp_path / 'store').is_dir()

    def test_default_branch_applies_when_none_given(self, tmp_path):
        git = MagicMock()
        store = FileStore(git=git, default_branch='trunk')

        store.create_repository(tmp_path / 'blog')
        store.create_repository(tmp_path / 'wiki', branch='main')

        assert git.init_bare.call_args_list[0].kwargs == {'branch': 'trunk'}
        assert git.init_bare.call_args_list[1].kwargs == {'branch': 'main'}


class TestSymlinks:

    def test_replace_symlink_creates_parents(self, file_store, tmp_path):
        root = tmp_path / 'links'
        link = root / 'sites' / 'blog'

        file_store.replace_symlink(link, tmp_path / 'store' / 'blog', root)

        assert os.readlink(link) == str(tmp_path / 'store' / 'blog')

    def test_replace_symlink_rebinds_existing_link(self, file_store, tmp_path):
        link = tmp_path / 'blog'
        os.symlink(tmp_path / 'old', link)

        file_store.replace_symlink(link, tmp_path / 'new', tmp_path)

        assert os.readlink(link) == str(tmp_path / 'new')
        assert [p.name for p in tmp_path.iterdir()] == ['blog']

    def test_refuses_to_create_below_a_symlinked_directory(self, file_store, tmp_path):
        root = tmp_path / 'links'
        repository = tmp_path / 'store' / 'site'
        repository.mkdir(parents=True)
        root.mkdir()
        os.symlink(repository, root / 'sites')

        with pytest.raises(OSError, match="is a symlink"):
            file_store.replace_symlink(root / 'sites' / 'blog', tmp_path / 'store' / 'blog', root)

        assert list(repository.iterdir()) == []

    def test_remove_symlink_prunes_empty_parents(self, file_store, tmp_path):
        root = tmp_path / 'links'
        (root / 'a' / 'b').mkdir(parents=True)
        (root / 'keep').mkdir()
        os.symlink(tmp_path, root / 'a' / 'b' / 'link')

        file_store.remove_symlink(root / 'a' / 'b' / 'link', root)

        assert not (root / 'a').exists()
        assert root.is_dir()
        assert (root / 'keep').is_dir()

    def test_remove_symlink_keeps_non_empty_parents(self, file_store, tmp_path):
        root = tmp_path / 'links'
        (root / 'a').mkdir(parents=True)
        os.symlink(tmp_path, root / 'a' / 'one')
        os.symlink(tmp_path, root / 'a' / 'two')

        file_store.remove_symlink(root / 'a' / 'one', root)

        assert [p.name for p in (root / 'a').iterdir()] == ['two']

    def test_remove_symlink_refuses_regular_files(self, file_store, tmp_path):
        (tmp_path / 'file').write_text('data')

        with pytest.raises(OSError, match="non-symlink"):
            file_store.remove_symlink(tmp_path / 'file', tmp_path)

        assert (tmp_path / 'file').read_text() == 'data'
