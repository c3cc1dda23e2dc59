"""
Fleet config parser for repokeeper.

Resolves a root config file and everything it includes into a single
DesiredState. Each element type has its own production:

    <config store=... [symlinks=...] [branch=...]>   document root
        <repo id=... [alias=...]> body </repo>       inline repository
        <repo id=... src=.../>                       body loaded from a file
        <div src=.../>                               splices a file of <repo>/<div>
        <div> ... </div>                             inline grouping

    body:  <tag>name</tag>
           <alias>path</alias>  (or <symlink>)
           <hook name="pre-receive|update|post-receive">script</hook>
           <hook name=... src="script.sh"/>

Includes are expanded eagerly, depth-first and left to right. `src` paths
resolve relative to the directory of the file that contains them. The chain
of files currently being expanded is passed down the recursion; meeting a
file that is already on the chain is an include cycle.

The parser only reads files.
"""

import logging
import os
import textwrap
from collections import OrderedDict
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple, Union

from ..domain.desired import (
    DesiredState, HookEvent, HookSpec, RepositorySpec, is_valid_repository_id
)
from ..domain.tag import is_valid_tag
from ..exit_codes import ParseError
from ..markup import Element, MarkupError, Parser, Position, Text

logger = logging.getLogger(__name__)

ROOT_ELEMENT = 'config'

Node = Union[Element, Text]
Chain = Tuple[Path, ...]


class IncludeError(MarkupError):
    """Raised when a file referenced by `src` cannot be read."""

    def __init__(self, path: Path, reason: str, position: Position):
        self.path = path
        super().__init__(f"cannot read included file '{path}': {reason}", position)


class IncludeCycleError(ParseError):
    """Raised when a config file includes itself, directly or indirectly."""

    def __init__(self, chain: Iterable[Path], position: Optional[Position] = None):
        self.chain = list(chain)
        self.position = position
        cycle = ' -> '.join(str(path) for path in self.chain)
        prefix = f"{position}: " if position else ''
        super().__init__(f"{prefix}include cycle: {cycle}")


def normalize_script(text: str) -> str:
    """
    Normalize an inline hook body.

    Leading blank lines are dropped, the common indentation is removed and
    the script ends with exactly one newline, so a hook can be indented to
    match the surrounding markup.
    """
    lines = text.split('\n')
    while lines and not lines[0].strip():
        lines.pop(0)
    return textwrap.dedent('\n'.join(lines)).rstrip() + '\n'


def parse(root_file_path: Union[str, Path]) -> DesiredState:
    """Parse a fleet config file into a DesiredState."""
    return ConfigParser().parse(root_file_path)


class ConfigParser:
    """
    Recursive-descent resolver for fleet configs.

    Example:
        desired = ConfigParser().parse("/srv/admin/config.xml")
        for repo_id, spec in desired.repos.items():
            print(repo_id, spec.alias)
    """

    def parse(self, root_file_path: Union[str, Path]) -> DesiredState:
        root_file = Path(os.path.abspath(root_file_path))
        logger.debug(f"Parsing fleet config {root_file}")

        nodes = self._load(root_file, (), None)
        root = self._root_element(nodes, root_file)
        self._check_attributes(root, {'store', 'symlinks', 'root', 'branch'})

        store_path = self._absolute_path(root, 'store', required=True)
        if root.has_attribute('symlinks') and root.has_attribute('root'):
            raise root.position.error("use either 'symlinks' or 'root', not both")
        link_attr = 'symlinks' if root.has_attribute('symlinks') else 'root'
        symlink_root = self._absolute_path(root, link_attr, required=False)

        branch = root.attribute('branch')
        if root.has_attribute('branch') and not (branch or '').strip():
            raise root.position.error("'branch' must not be empty")

        repos: Dict[str, RepositorySpec] = OrderedDict()
        positions: Dict[str, Position] = {}
        for spec, position in self._sequence(root.children, root_file.parent, (root_file,)):
            if spec.id in repos:
                raise position.error(
                    f"duplicate repository id '{spec.id}' (first declared at {positions[spec.id]})"
                )
            repos[spec.id] = spec
            positions[spec.id] = position

        self._check_aliases(repos, positions, symlink_root)

        logger.debug(f"Resolved {len(repos)} repositories from {root_file}")
        return DesiredState(
            store_path=store_path,
            symlink_root=symlink_root,
            repos=repos,
            default_branch=branch.strip() if branch else None,
        )

    # -- files ---------------------------------------------------------

    def _load(self, path: Path, chain: Chain, origin: Optional[Position]) -> List[Node]:
        """Read and tokenize one file, refusing files already being expanded."""
        identity = Path(os.path.realpath(path))
        visiting = [Path(os.path.realpath(p)) for p in chain]
        if identity in visiting:
            cycle = list(chain[visiting.index(identity):]) + [path]
            raise IncludeCycleError(cycle, origin)

        try:
            source = path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            reason = e.strerror if isinstance(e, OSError) and e.strerror else str(e)
            if origin is None:
                raise ParseError(f"cannot read config file '{path}': {reason}") from e
            raise IncludeError(path, reason, origin) from e

        return Parser(source, path=path).parse()

    def _source_path(self, element: Element, base: Path) -> Path:
        src = element.attribute('src')
        if not src or not src.strip():
            raise element.position.error(f"<{element.name}> 'src' must not be empty")
        return Path(os.path.normpath(base / src.strip()))

    # -- productions ---------------------------------------------------

    def _root_element(self, nodes: List[Node], path: Path) -> Element:
        elements = [node for node in nodes if isinstance(node, Element)]
        for node in nodes:
            if isinstance(node, Text) and node.value.strip():
                raise node.position.error("unexpected text outside <config>")
        if not elements:
            raise ParseError(f"{path}: expected <{ROOT_ELEMENT}> element")
        if len(elements) > 1:
            raise elements[1].position.error(f"only one <{ROOT_ELEMENT}> element is allowed")
        root = elements[0]
        if root.name != ROOT_ELEMENT:
            raise root.position.error(f"expected <{ROOT_ELEMENT}> element, found <{root.name}>")
        return root

    def _sequence(
        self, nodes: Iterable[Node], base: Path, chain: Chain
    ) -> Iterator[Tuple[RepositorySpec, Position]]:
        """Yield repositories from a sequence of <repo> and <div> elements."""
        for node in nodes:
            if isinstance(node, Text):
                if node.value.strip():
                    raise node.position.error("unexpected text; expected <repo> or <div>")
                continue

            if node.name == 'repo':
                yield self._repo(node, base, chain), node.position
            elif node.name == 'div':
                yield from self._div(node, base, chain)
            else:
                raise node.position.error(f"unexpected <{node.name}>; expected <repo> or <div>")

    def _div(
        self, element: Element, base: Path, chain: Chain
    ) -> Iterator[Tuple[RepositorySpec, Position]]:
        self._check_attributes(element, {'src'})
        if not element.has_attribute('src'):
            yield from self._sequence(element.children, base, chain)
            return

        self._require_empty(element)
        included = self._source_path(element, base)
        nodes = self._load(included, chain, element.position)
        yield from self._sequence(nodes, included.parent, chain + (included,))

    def _repo(self, element: Element, base: Path, chain: Chain) -> RepositorySpec:
        self._check_attributes(element, {'id', 'src', 'alias'})

        repo_id = (element.attribute('id') or '').strip()
        if not repo_id:
            raise element.position.error("<repo> requires an 'id' attribute")
        if not is_valid_repository_id(repo_id):
            raise element.position.error(
                f"invalid repository id '{repo_id}' (no whitespace, '/', '.' or '..')"
            )

        if element.has_attribute('src'):
            self._require_empty(element)
            body_file = self._source_path(element, base)
            body = self._load(body_file, chain, element.position)
            body_base = body_file.parent
        else:
            body = element.children
            body_base = base

        alias = None
        if element.has_attribute('alias'):
            alias = self._alias(element.attribute('alias') or '', element.position)

        tags: Set[str] = set()
        hooks: Dict[HookEvent, HookSpec] = {}

        for node in body:
            if isinstance(node, Text):
                if node.value.strip():
                    raise node.position.error(f"unexpected text in repository '{repo_id}'")
                continue

            if node.name == 'tag':
                tags.add(self._tag(node))
            elif node.name in ('alias', 'symlink'):
                if alias is not None:
                    raise node.position.error(f"repository '{repo_id}' declares more than one alias")
                self._check_attributes(node, set())
                self._require_text_only(node)
                alias = self._alias(node.text(), node.position)
            elif node.name == 'hook':
                hook = self._hook(node, body_base)
                if hook.event in hooks:
                    raise node.position.error(
                        f"duplicate '{hook.event.value}' hook in repository '{repo_id}'"
                    )
                hooks[hook.event] = hook
            else:
                raise node.position.error(
                    f"unexpected <{node.name}> in repository '{repo_id}'; "
                    "expected <tag>, <alias> or <hook>"
                )

        return RepositorySpec(
            id=repo_id,
            tags=frozenset(tags),
            alias=alias,
            hooks=hooks,
            source=str(element.position),
        )

    def _tag(self, element: Element) -> str:
        self._check_attributes(element, set())
        self._require_text_only(element)
        tag = element.text().strip()
        if not is_valid_tag(tag):
            raise element.position.error("expected tag to contain text with no whitespace")
        return tag

    def _alias(self, text: str, position: Position) -> PurePosixPath:
        raw = text.strip()
        if not raw:
            raise position.error("provide a path to symlink")
        path = PurePosixPath(raw)
        if path.is_absolute():
            raise position.error(f"alias '{raw}' must be relative to the symlink root")
        if '..' in path.parts:
            raise position.error(f"alias '{raw}' escapes the symlink root")
        parts = [part for part in path.parts if part != '.']
        if not parts:
            raise position.error(f"alias '{raw}' does not name a path")
        return PurePosixPath(*parts)

    def _hook(self, element: Element, base: Path) -> HookSpec:
        self._check_attributes(element, {'name', 'src'})

        name = element.attribute('name')
        if name not in HookEvent.names():
            raise element.position.error("expected 'pre-receive', 'update', or 'post-receive'")
        event = HookEvent(name)

        inline = element.text()
        if element.has_attribute('src'):
            if inline.strip() or any(True for _ in element.elements()):
                raise element.position.error("expected file content or 'src' attribute, not both")
            script = self._source_path(element, base)
            try:
                body = script.read_text(encoding='utf-8')
            except (OSError, UnicodeDecodeError) as e:
                reason = e.strerror if isinstance(e, OSError) and e.strerror else str(e)
                raise IncludeError(script, reason, element.position) from e
        else:
            self._require_text_only(element)
            if not inline.strip():
                raise element.position.error("expected file content or 'src' attribute")
            body = normalize_script(inline)

        return HookSpec(event=event, body=body)

    # -- validation ----------------------------------------------------

    def _absolute_path(self, element: Element, name: str, required: bool) -> Optional[Path]:
        value = (element.attribute(name) or '').strip()
        if not value:
            if required or element.has_attribute(name):
                raise element.position.error(f"<{element.name}> requires a non-empty '{name}' attribute")
            return None
        if not os.path.isabs(value):
            raise element.position.error(f"'{name}' must be an absolute path, got '{value}'")
        return Path(os.path.normpath(value))

    def _check_attributes(self, element: Element, allowed: Set[str]) -> None:
        for name in element.attributes:
            if name not in allowed:
                raise element.position.error(f"unexpected attribute '{name}' on <{element.name}>")

    def _require_empty(self, element: Element) -> None:
        for child in element.children:
            if isinstance(child, Element) or child.value.strip():
                raise child.position.error(
                    f"<{element.name}> with 'src' must not have an inline body"
                )

    def _require_text_only(self, element: Element) -> None:
        for child in element.elements():
            raise child.position.error(f"unexpected <{child.name}> inside <{element.name}>")

    def _check_aliases(
        self,
        repos: Dict[str, RepositorySpec],
        positions: Dict[str, Position],
        symlink_root: Optional[Path],
    ) -> None:
        owners: Dict[PurePosixPath, str] = {}
        for repo_id, spec in repos.items():
            if spec.alias is None:
                continue
            if symlink_root is None:
                raise positions[repo_id].error(
                    f"repository '{repo_id}' has an alias but <config> has no 'symlinks' root"
                )
            if spec.alias in owners:
                raise positions[repo_id].error(
                    f"alias '{spec.alias}' is already used by repository '{owners[spec.alias]}'"
                )
            owners[spec.alias] = repo_id

        for alias, repo_id in owners.items():
            for parent in alias.parents:
                if parent in owners:
                    raise positions[repo_id].error(
                        f"alias '{alias}' is nested under alias '{parent}' "
                        f"of repository '{owners[parent]}'"
                    )
