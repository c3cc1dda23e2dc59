"""
Markup reader for repokeeper fleet configs.

Parses the small XML-like language the fleet config is written in into a
tree of Element and Text nodes. It is deliberately not a full XML parser:

- Elements: <name attr="value" flag>...</name> and <name/>
- Attribute values: single or double quoted, backslash escapes for \\, \" and \'
- Text: runs up to the next '<'; the predefined entities (&lt; &gt; &amp;
  &quot; &apos;) and numeric references are decoded, any other '&' is kept
- <![CDATA[...]]> sections, <!-- comments --> and <?...?> declarations

Every node remembers where it came from so callers can report errors with a
file, line and column and an excerpt of the offending line.

Example:
    parser = Parser(Path("config.xml").read_text(), path=Path("config.xml"))
    for node in parser.parse():
        if isinstance(node, Element):
            print(node.name, node.attributes)
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from .exit_codes import ParseError

# Element and attribute names: a letter or underscore, then ASCII letters,
# digits, '.', '_' or '-'.
_NAME = re.compile(r'[^\W\d][A-Za-z0-9._\-]*')
_ENTITY = re.compile(r'&(lt|gt|amp|quot|apos|#[0-9]+|#x[0-9a-fA-F]+);')
_ENTITIES = {
    'lt': '<',
    'gt': '>',
    'amp': '&',
    'quot': '"',
    'apos': "'",
}


@dataclass(frozen=True)
class Position:
    """A location in a source file (1-based line and column)."""
    path: Optional[Path]
    line: int
    column: int
    line_text: str = field(default='', compare=False, repr=False)

    def error(self, message: str) -> 'MarkupError':
        """Build an error located at this position."""
        return MarkupError(message, self)

    def __str__(self) -> str:
        name = str(self.path) if self.path else '<string>'
        return f"{name}:{self.line}:{self.column}"


class MarkupError(ParseError):
    """A parse error tied to a position in a config file."""

    def __init__(self, message: str, position: Position):
        super().__init__(f"{position}: {message}")
        self.message = message
        self.position = position

    def excerpt(self) -> str:
        """Render the offending line with a caret under the error column."""
        if not self.position.line_text:
            return ''
        pointer = ' ' * (self.position.column - 1) + '^'
        return f"    {self.position.line_text}\n    {pointer}"


@dataclass
class Text:
    """A run of character data (including CDATA sections)."""
    value: str
    position: Position


@dataclass
class Element:
    """A markup element with its attributes and child nodes."""
    name: str
    position: Position
    attributes: Dict[str, Optional[str]] = field(default_factory=dict)
    children: List[Union['Element', Text]] = field(default_factory=list)

    def attribute(self, name: str) -> Optional[str]:
        """Get an attribute value, or None when absent or valueless."""
        return self.attributes.get(name)

    def has_attribute(self, name: str) -> bool:
        return name in self.attributes

    def elements(self) -> Iterator['Element']:
        """Iterate over child elements, skipping text."""
        for child in self.children:
            if isinstance(child, Element):
                yield child

    def text(self) -> str:
        """Concatenate all direct text children."""
        return ''.join(child.value for child in self.children if isinstance(child, Text))

    def stray_text(self) -> Optional[Text]:
        """Return the first non-whitespace text child, if any."""
        for child in self.children:
            if isinstance(child, Text) and child.value.strip():
                return child
        return None


def decode_entities(value: str) -> str:
    """Decode predefined and numeric character entities, leaving other '&' alone."""
    def replace(match: 're.Match') -> str:
        ref = match.group(1)
        if ref.startswith('#x'):
            return chr(int(ref[2:], 16))
        if ref.startswith('#'):
            return chr(int(ref[1:]))
        return _ENTITIES[ref]

    return _ENTITY.sub(replace, value)


class Parser:
    """
    Recursive-descent reader for a single markup document.

    Args:
        source: Document text
        path: File the text came from (used in error positions)
    """

    def __init__(self, source: str, path: Optional[Path] = None):
        self.source = source
        self.path = path
        self.offset = 0

    def parse(self) -> List[Union[Element, Text]]:
        """Parse the whole document into a list of top-level nodes."""
        return self._contents(None)

    # -- positions -----------------------------------------------------

    def position(self, offset: Optional[int] = None) -> Position:
        if offset is None:
            offset = self.offset
        line_start = self.source.rfind('\n', 0, offset) + 1
        line_end = self.source.find('\n', offset)
        if line_end == -1:
            line_end = len(self.source)
        return Position(
            path=self.path,
            line=self.source.count('\n', 0, offset) + 1,
            column=offset - line_start + 1,
            line_text=self.source[line_start:line_end],
        )

    def _error(self, message: str, offset: Optional[int] = None) -> MarkupError:
        return self.position(offset).error(message)

    # -- low level -----------------------------------------------------

    def _at_end(self) -> bool:
        return self.offset >= len(self.source)

    def _startswith(self, prefix: str) -> bool:
        return self.source.startswith(prefix, self.offset)

    def _skip_whitespace(self) -> bool:
        start = self.offset
        while not self._at_end() and self.source[self.offset].isspace():
            self.offset += 1
        return self.offset > start

    def _name(self) -> Optional[str]:
        match = _NAME.match(self.source, self.offset)
        if not match:
            return None
        self.offset = match.end()
        return match.group(0)

    # -- productions ---------------------------------------------------

    def _contents(self, parent: Optional[Element]) -> List[Union[Element, Text]]:
        nodes: List[Union[Element, Text]] = []
        while True:
            if self._at_end():
                if parent is not None:
                    raise self._error(
                        f"missing closing tag for <{parent.name}> opened at "
                        f"line {parent.position.line}"
                    )
                return nodes

            if self._startswith('</'):
                if parent is None:
                    raise self._error("unexpected closing tag")
                self._close_tag(parent)
                return nodes

            if self._startswith('<!--'):
                self._comment()
            elif self._startswith('<![CDATA['):
                nodes.append(self._cdata())
            elif self._startswith('<?'):
                self._declaration()
            elif self._startswith('<'):
                nodes.append(self._element())
            else:
                nodes.append(self._text())

    def _element(self) -> Element:
        start = self.offset
        self.offset += 1  # '<'

        name_offset = self.offset
        name = self._name()
        if name is None:
            raise self._error("expected element name")
        if name.lower().startswith('xml'):
            raise self._error("element names may not start with 'xml'", name_offset)

        element = Element(name=name, position=self.position(start))

        while True:
            had_space = self._skip_whitespace()
            if self._startswith('/>'):
                self.offset += 2
                return element
            if self._startswith('>'):
                self.offset += 1
                break
            if self._at_end():
                raise self._error(f"unterminated tag <{name}>")

            attr_offset = self.offset
            attr_name = self._name()
            if attr_name is None or not had_space:
                raise self._error("expected '>' or '/>'", attr_offset)
            if attr_name in element.attributes:
                raise self._error(f"duplicate attribute '{attr_name}'", attr_offset)

            value = None
            if self._startswith('='):
                self.offset += 1
                value = self._attribute_value()
            element.attributes[attr_name] = value

        element.children = self._contents(element)
        return element

    def _attribute_value(self) -> str:
        if self._at_end() or self.source[self.offset] not in '"\'':
            raise self._error("expected attribute value")
        start = self.offset
        quote = self.source[self.offset]
        self.offset += 1

        chars = []
        while True:
            if self._at_end():
                raise self._error("unterminated attribute value", start)
            char = self.source[self.offset]
            self.offset += 1
            if char == quote:
                return ''.join(chars)
            if char == '\\':
                if self._at_end():
                    raise self._error("unterminated attribute value", start)
                escaped = self.source[self.offset]
                if escaped not in '\\\'"':
                    raise self._error(f"invalid escape '\\{escaped}'", self.offset - 1)
                chars.append(escaped)
                self.offset += 1
            else:
                chars.append(char)

    def _close_tag(self, parent: Element) -> None:
        start = self.offset
        self.offset += 2  # '</'
        name = self._name()
        if name is None:
            raise self._error("expected element name")
        self._skip_whitespace()
        if not self._startswith('>'):
            raise self._error("expected '>'")
        self.offset += 1
        if name != parent.name:
            raise self._error(
                f"mismatched closing tag: expected </{parent.name}>, found </{name}>",
                start,
            )

    def _text(self) -> Text:
        start = self.offset
        end = self.source.find('<', self.offset)
        if end == -1:
            end = len(self.source)
        self.offset = end
        return Text(decode_entities(self.source[start:end]), self.position(start))

    def _cdata(self) -> Text:
        start = self.offset
        body_start = start + len('<![CDATA[')
        end = self.source.find(']]>', body_start)
        if end == -1:
            raise self._error("unterminated CDATA section", start)
        self.offset = end + len(']]>')
        return Text(self.source[body_start:end], self.position(start))

    def _comment(self) -> None:
        start = self.offset
        end = self.source.find('-->', start + len('<!--'))
        if end == -1:
            raise self._error("unterminated comment", start)
        self.offset = end + len('-->')

    def _declaration(self) -> None:
        start = self.offset
        end = self.source.find('?>', start + 2)
        if end == -1:
            raise self._error("unterminated declaration", start)
        self.offset = end + 2


def parse_file(path: Path) -> List[Union[Element, Text]]:
    """Read and parse a markup file."""
    source = Path(path).read_text(encoding='utf-8')
    return Parser(source, path=Path(path)).parse()
