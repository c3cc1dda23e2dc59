"""
Search over the repositories a fleet config declares.

A repository matches a search string when every whitespace-separated term
is a substring of one of its tags, or when the whole string is a substring
of its id. An empty search string matches everything. Tag patterns
(`lang:python`, `topic:*`, `web/*`) narrow the result further; every
pattern must match some tag.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

from ..domain.desired import DesiredState, RepositorySpec
from ..domain.tag import filter_tags


def matches_search(spec: RepositorySpec, search: str) -> bool:
    """True when `spec` matches a free-text search string."""
    terms = search.split()
    if all(any(term in tag for tag in spec.tags) for term in terms):
        return True
    return search.strip() in spec.id


def matches_tags(spec: RepositorySpec, patterns: Iterable[str]) -> bool:
    return all(filter_tags(spec.tags, pattern) for pattern in patterns)


@dataclass(frozen=True)
class SearchResult:
    """A matching repository and how to reach it."""
    spec: RepositorySpec
    path: str
    url: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.spec.id,
            'tags': sorted(self.spec.tags),
            'alias': str(self.spec.alias) if self.spec.alias else None,
            'path': self.path,
            'url': self.url,
        }


class SearchService:
    """
    Finds declared repositories by id and tags.

    Example:
        service = SearchService(desired, host="git@example.com")
        for result in service.search("web"):
            print(result.url)
    """

    def __init__(self, desired: DesiredState, host: Optional[str] = None):
        self.desired = desired
        self.host = host or ''

    def url(self, repo_id: str) -> str:
        return f"git+ssh://{self.host}{self.desired.repository_path(repo_id).as_posix()}"

    def search(
        self,
        search: str = '',
        tag_patterns: Sequence[str] = (),
    ) -> Iterator[SearchResult]:
        """Yield matching repositories in declaration order."""
        for repo_id, spec in self.desired.repos.items():
            if not matches_search(spec, search):
                continue
            if not matches_tags(spec, tag_patterns):
                continue
            yield SearchResult(
                spec=spec,
                path=str(self.desired.repository_path(repo_id)),
                url=self.url(repo_id),
            )


def search(
    desired: DesiredState,
    terms: Sequence[str] = (),
    tag_patterns: Sequence[str] = (),
) -> List[RepositorySpec]:
    """Repositories matching `terms` (joined by spaces) and every tag pattern."""
    service = SearchService(desired)
    return [result.spec for result in service.search(' '.join(terms), tag_patterns)]
