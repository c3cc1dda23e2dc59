"""
Tests for init (bootstrap of the store and admin repository).
"""

import os
import stat
from pathlib import Path

import pytest

from repokeeper.domain import HookEvent
from repokeeper.exit_codes import INIT_ERROR, InitError
from repokeeper.services.bootstrap import Bootstrap, CONFIG_FILENAME, admin_files
from repokeeper.services.config_parser import parse
from repokeeper.services.reconciler import Reconciler
from repokeeper.services.scanner import scan
from repokeeper.infra.file_store import FileStore
from repokeeper.infra.git_client import GitError

from conftest import FakeGitClient


class FailingCommitGitClient(FakeGitClient):
    """Creates repositories but cannot commit to them."""

    def commit_files(self, path, files, branch, message, executable=()):
        raise GitError("commit failed", returncode=128)


@pytest.fixture
def layout(tmp_path):
    return tmp_path / 'srv' / 'store', tmp_path / 'srv'


class TestAdminFiles:

    def test_config_declares_admin_and_its_hooks(self, tmp_path):
        files = admin_files(Path('/srv/store'), Path('/srv'), 'main', python='/usr/bin/python3')

        assert set(files) == {CONFIG_FILENAME, 'hooks/pre-receive.sh', 'hooks/post-receive.sh'}
        assert 'store="/srv/store"' in files[CONFIG_FILENAME]
        assert 'symlinks="/srv"' in files[CONFIG_FILENAME]
        assert '"/usr/bin/python3" -m repokeeper switch' in files['hooks/post-receive.sh']
        assert '"/usr/bin/python3" -m repokeeper check' in files['hooks/pre-receive.sh']
        assert 'refs/heads/main' in files['hooks/post-receive.sh']

    def test_paths_with_quotes_are_escaped(self, write_file):
        files = admin_files(Path('/srv/a "quoted" store'), Path('/srv'), 'main')
        config = write_file('config.xml', files[CONFIG_FILENAME])
        write_file('hooks/pre-receive.sh', files['hooks/pre-receive.sh'])
        write_file('hooks/post-receive.sh', files['hooks/post-receive.sh'])

        assert parse(config).store_path == Path('/srv/a "quoted" store')


class TestInit:

    def test_creates_layout(self, layout):
        store, root = layout
        git = FakeGitClient()

        result = Bootstrap(git=git).init(store, root, 'main')

        assert result.created
        assert result.admin_path == store / 'admin'
        assert os.readlink(root / 'admin') == str(store / 'admin')
        assert git.created == [(store / 'admin', 'main')]

        post = store / 'admin' / 'hooks' / 'post-receive'
        assert post.read_text() == result.files['hooks/post-receive.sh']
        assert stat.S_IMODE(post.stat().st_mode) == 0o755
        assert (store / 'admin' / 'hooks' / 'pre-receive').is_file()

    def test_commits_config_and_hook_scripts(self, layout):
        store, root = layout
        git = FakeGitClient()

        Bootstrap(git=git).init(store, root, 'trunk')

        [commit] = git.commits
        assert commit['branch'] == 'trunk'
        assert set(commit['files']) == {CONFIG_FILENAME, 'hooks/pre-receive.sh', 'hooks/post-receive.sh'}
        assert commit['executable'] == {'hooks/pre-receive.sh', 'hooks/post-receive.sh'}

    def test_second_run_is_a_no_op(self, layout):
        store, root = layout
        git = FakeGitClient()
        Bootstrap(git=git).init(store, root, 'main')

        result = Bootstrap(git=git).init(store, root, 'main')

        assert not result.created
        assert result.admin_path == store / 'admin'
        assert len(git.created) == 1
        assert len(git.commits) == 1

    def test_switch_after_init_has_nothing_to_do(self, layout, tmp_path):
        store, root = layout
        git = FakeGitClient()
        result = Bootstrap(git=git).init(store, root, 'main')

        # What the post-receive hook would check out of the admin repository
        checkout = tmp_path / 'checkout'
        for name, content in git.commits[0]['files'].items():
            (checkout / name).parent.mkdir(parents=True, exist_ok=True)
            (checkout / name).write_text(content)

        desired = parse(checkout / CONFIG_FILENAME)
        observed = scan(desired.store_path, desired.symlink_root)
        plan = Reconciler(applier=FileStore(git)).plan(desired, observed)

        assert desired.store_path == result.store_path
        assert desired.repos['admin'].hook_body(HookEvent.POST_RECEIVE) == \
            result.files['hooks/post-receive.sh']
        assert plan.empty
        assert plan.errors == {}

    def test_relative_paths_rejected(self, tmp_path):
        with pytest.raises(InitError, match="absolute") as excinfo:
            Bootstrap(git=FakeGitClient()).init(Path('store'), tmp_path, 'main')

        assert excinfo.value.exit_code == INIT_ERROR

    def test_empty_branch_rejected(self, layout):
        store, root = layout

        with pytest.raises(InitError, match="branch"):
            Bootstrap(git=FakeGitClient()).init(store, root, ' ')

    def test_git_failure_is_an_init_error(self, layout):
        store, root = layout

        with pytest.raises(InitError, match="cannot initialize admin repository"):
            Bootstrap(git=FakeGitClient(fail_for={'admin'})).init(store, root, 'main')

    def test_store_that_cannot_be_created(self, tmp_path):
        (tmp_path / 'file').write_text('')

        with pytest.raises(InitError, match="cannot create layout"):
            Bootstrap(git=FakeGitClient()).init(tmp_path / 'file' / 'store', tmp_path / 'links', 'main')


class TestInitRecovery:
    """A failed init leaves nothing that a later init mistakes for a finished one."""

    def test_failed_commit_removes_admin_repository(self, layout):
        store, root = layout

        with pytest.raises(InitError, match="commit failed"):
            Bootstrap(git=FailingCommitGitClient()).init(store, root, 'main')

        assert not os.path.lexists(store / 'admin')
        assert not os.path.lexists(root / 'admin')

    def test_init_after_failed_commit_completes(self, layout):
        store, root = layout
        with pytest.raises(InitError):
            Bootstrap(git=FailingCommitGitClient()).init(store, root, 'main')
        git = FakeGitClient()

        result = Bootstrap(git=git).init(store, root, 'main')

        assert result.created
        assert len(git.commits) == 1
        assert os.readlink(root / 'admin') == str(store / 'admin')
        assert (store / 'admin' / 'hooks' / 'post-receive').is_file()

    def test_failed_link_removes_admin_repository(self, layout):
        store, root = layout
        (root / 'admin' / 'taken').mkdir(parents=True)
        git = FakeGitClient()

        with pytest.raises(InitError, match="cannot initialize admin repository"):
            Bootstrap(git=git).init(store, root, 'main')

        assert len(git.commits) == 1
        assert not os.path.lexists(store / 'admin')
        assert (root / 'admin' / 'taken').is_dir()
