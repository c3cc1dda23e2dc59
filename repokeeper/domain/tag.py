"""
Tag domain object for repokeeper.

Tags are opaque labels attached to repositories in the fleet config:
- Simple tags: "deprecated", "archived"
- Key-value tags: "lang:python", "team:infra"
- Hierarchical tags: "topic:ml/research"

A tag never contains whitespace. Tags are immutable value objects with
pattern matching support, used by `repokeeper search --tag`.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple


def is_valid_tag(value: str) -> bool:
    """A tag is a non-empty string with no whitespace."""
    return bool(value) and not any(c.isspace() for c in value)


@dataclass(frozen=True)
class Tag:
    """
    Structured view of a tag string.

    Examples:
        Tag.parse("deprecated")           -> Tag(value="deprecated", key=None)
        Tag.parse("lang:python")          -> Tag(value="lang:python", key="lang",
                                                 segments=("python",))
        Tag.parse("topic:ml/research")    -> Tag(value="topic:ml/research", key="topic",
                                                 segments=("ml", "research"))
    """

    value: str
    key: Optional[str] = None
    segments: Tuple[str, ...] = ()

    @classmethod
    def parse(cls, tag_string: str) -> 'Tag':
        tag_string = tag_string.strip()

        if ':' not in tag_string:
            return cls(value=tag_string)

        key, rest = tag_string.split(':', 1)
        if '/' in rest:
            segments = tuple(s for s in rest.split('/') if s)
        else:
            segments = (rest,) if rest else ()
        return cls(value=tag_string, key=key, segments=segments)

    def matches(self, pattern: str) -> bool:
        """
        Check if this tag matches a pattern.

        Supports:
            - Exact match: "lang:python"
            - Key match: "lang:*" matches any lang:X
            - Hierarchy prefix: "topic:ml/*" matches topic:ml/research
            - Simple wildcard: "*" matches everything
            - Prefix wildcard: "dep*" matches "deprecated"
        """
        pattern = pattern.strip()

        if pattern == '*' or pattern == self.value:
            return True

        if ':' in pattern:
            pattern_key, pattern_rest = pattern.split(':', 1)

            if self.key != pattern_key:
                return False

            if pattern_rest == '*':
                return True

            pattern_segments = [s for s in pattern_rest.split('/') if s]
            if pattern_segments and pattern_segments[-1] == '*':
                prefix = tuple(pattern_segments[:-1])
                return self.segments[:len(prefix)] == prefix
            return self.segments == tuple(pattern_segments)

        if pattern.endswith('*'):
            return self.value.startswith(pattern[:-1])

        return False

    def __str__(self) -> str:
        return self.value


def filter_tags(tags: Iterable[str], pattern: str) -> List[str]:
    """Return the tag strings that match a pattern."""
    return [tag for tag in tags if Tag.parse(tag).matches(pattern)]
