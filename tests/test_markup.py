"""
Tests for the fleet config markup reader.
"""

from pathlib import Path

import pytest

from repokeeper.exit_codes import PARSE_ERROR, ParseError
from repokeeper.markup import Element, MarkupError, Parser, Text, decode_entities, parse_file


def parse_one(source):
    nodes = [n for n in Parser(source).parse() if isinstance(n, Element)]
    assert len(nodes) == 1
    return nodes[0]


class TestElements:
    """Elements, attributes and text."""

    def test_nested_elements_and_attributes(self):
        root = parse_one('<a x="1" y=\'2\'><b/>text</a>')

        assert root.name == 'a'
        assert root.attributes == {'x': '1', 'y': '2'}
        assert isinstance(root.children[0], Element)
        assert root.children[0].name == 'b'
        assert isinstance(root.children[1], Text)
        assert root.text() == 'text'

    def test_valueless_attribute(self):
        root = parse_one('<repo id="x" archived/>')

        assert root.has_attribute('archived')
        assert root.attribute('archived') is None
        assert root.attribute('missing') is None

    def test_attribute_escapes(self):
        root = parse_one(r'<a v="say \"hi\" \\ it\'s"/>')

        assert root.attribute('v') == 'say "hi" \\ it\'s'

    def test_names_allow_digits_dots_and_dashes(self):
        root = parse_one('<post-receive.v2 data-x="1"/>')

        assert root.name == 'post-receive.v2'
        assert root.attribute('data-x') == '1'

    def test_elements_skips_text(self):
        root = parse_one('<a> <b/> <c/> </a>')

        assert [e.name for e in root.elements()] == ['b', 'c']
        assert root.stray_text() is None

    def test_stray_text(self):
        root = parse_one('<a> <b/> oops </a>')

        assert root.stray_text().value.strip() == 'oops'


class TestCharacterData:
    """Entities, CDATA, comments and declarations."""

    def test_predefined_and_numeric_entities(self):
        assert decode_entities('&lt;a&gt; &amp; &quot;&apos; &#65;&#x42;') == '<a> & "\' AB'

    def test_unknown_entity_kept(self):
        assert decode_entities('a && b &nbsp;') == 'a && b &nbsp;'

    def test_cdata_is_literal(self):
        root = parse_one('<hook><![CDATA[if [ 1 -lt 2 ] && true; then echo "<ok>"; fi]]></hook>')

        assert root.text() == 'if [ 1 -lt 2 ] && true; then echo "<ok>"; fi'

    def test_comments_and_declarations_are_skipped(self):
        root = parse_one('<?xml version="1.0"?>\n<!-- top --><a><!-- inner -->x</a>')

        assert root.text() == 'x'


class TestErrors:
    """Malformed markup is rejected with a position."""

    def test_error_is_parse_error(self):
        with pytest.raises(MarkupError) as excinfo:
            Parser('<a>').parse()

        assert isinstance(excinfo.value, ParseError)
        assert excinfo.value.exit_code == PARSE_ERROR

    def test_missing_closing_tag(self):
        with pytest.raises(MarkupError, match="missing closing tag for <a>"):
            Parser('<a><b></b>').parse()

    def test_mismatched_closing_tag_position(self):
        source = '<a>\n  <b></c>\n</a>'
        with pytest.raises(MarkupError) as excinfo:
            Parser(source, path=Path('fleet.xml')).parse()

        error = excinfo.value
        assert 'mismatched closing tag' in error.message
        assert error.position.line == 2
        assert error.position.column == 6
        assert str(error).startswith('fleet.xml:2:6:')

    def test_excerpt_points_at_column(self):
        with pytest.raises(MarkupError) as excinfo:
            Parser('<a b="1" b="2"/>').parse()

        excerpt = excinfo.value.excerpt()
        assert '<a b="1" b="2"/>' in excerpt
        assert excerpt.splitlines()[1] == '    ' + ' ' * 9 + '^'

    def test_duplicate_attribute(self):
        with pytest.raises(MarkupError, match="duplicate attribute 'b'"):
            Parser('<a b="1" b="2"/>').parse()

    def test_xml_prefixed_names_rejected(self):
        with pytest.raises(MarkupError, match="may not start with 'xml'"):
            Parser('<XmlThing/>').parse()

    def test_unexpected_closing_tag(self):
        with pytest.raises(MarkupError, match="unexpected closing tag"):
            Parser('</a>').parse()

    def test_attribute_needs_whitespace(self):
        with pytest.raises(MarkupError, match="expected '>' or '/>'"):
            Parser('<a x="1"y="2"/>').parse()

    def test_invalid_escape(self):
        with pytest.raises(MarkupError, match="invalid escape"):
            Parser(r'<a x="\n"/>').parse()

    @pytest.mark.parametrize('source', [
        '<a x="1/>',
        '<a><![CDATA[never closed</a>',
        '<a><!-- never closed </a>',
    ])
    def test_unterminated_constructs(self, source):
        with pytest.raises(MarkupError, match="unterminated"):
            Parser(source).parse()


class TestParseFile:

    def test_positions_name_the_file(self, tmp_path):
        path = tmp_path / 'config.xml'
        path.write_text('<config>\n<repo id="a">\n</config>\n')

        with pytest.raises(MarkupError) as excinfo:
            parse_file(path)

        assert excinfo.value.position.path == path
        assert excinfo.value.position.line == 3
