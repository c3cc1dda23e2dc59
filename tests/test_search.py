"""
Tests for searching declared repositories.
"""

from pathlib import Path, PurePosixPath

from repokeeper.domain import DesiredState, RepositorySpec
from repokeeper.services.search_service import SearchService, matches_search, search


def fleet():
    specs = [
        RepositorySpec('blog', tags=frozenset({'web', 'personal'}), alias=PurePosixPath('sites/blog')),
        RepositorySpec('shop', tags=frozenset({'web', 'lang:python'})),
        RepositorySpec('dotfiles', tags=frozenset({'personal'})),
        RepositorySpec('web-proxy'),
    ]
    return DesiredState(store_path=Path('/srv/store'), repos={s.id: s for s in specs})


class TestMatching:

    def test_all_terms_must_match_some_tag(self):
        spec = fleet().repos['blog']

        assert matches_search(spec, 'web pers')
        assert not matches_search(spec, 'web python')

    def test_id_substring_matches(self):
        assert matches_search(fleet().repos['web-proxy'], 'proxy')

    def test_empty_search_matches_everything(self):
        assert all(matches_search(spec, '') for spec in fleet().repos.values())


class TestSearchService:

    def test_search_by_tag_terms(self):
        assert [s.id for s in search(fleet(), ['web'])] == ['blog', 'shop', 'web-proxy']

    def test_tag_patterns_narrow_results(self):
        assert [s.id for s in search(fleet(), ['web'], ['lang:*'])] == ['shop']

    def test_results_carry_url_and_path(self):
        service = SearchService(fleet(), host='git@example.com')

        [result] = list(service.search('dotfiles'))

        assert result.to_dict() == {
            'id': 'dotfiles',
            'tags': ['personal'],
            'alias': None,
            'path': '/srv/store/dotfiles',
            'url': 'git+ssh://git@example.com/srv/store/dotfiles',
        }

    def test_url_without_host(self):
        assert SearchService(fleet()).url('blog') == 'git+ssh:///srv/store/blog'
