import pytest

from brine.directives import (
    format_header, match_directive, split_header, split_lines, split_reference
)
from brine.references import ReferenceTable


@pytest.mark.parametrize('line, expected', [
    ('/*# include: lib/a.js */', ('include', 'lib/a.js')),
    ('   /*#Include:lib/a.js*/  ', ('include', 'lib/a.js')),
    ('/*# CONFIGURATION: {"MinifyCode":true} */', ('configuration', '{"MinifyCode":true}')),
    ('/*# reference: /site/a.js | a.js */', ('reference', '/site/a.js | a.js')),
    ('/*# frobnicate: x */', ('frobnicate', 'x')),
])
def test_match_block_directive(line, expected):
    directive = match_directive(line)
    assert directive is not None
    assert (directive.name, directive.value) == expected
    assert directive.line == line


@pytest.mark.parametrize('line', [
    '/* include: lib/a.js */',
    'var a = 1; /*# include: lib/a.js */',
    '/*# include lib/a.js */',
    '//# include: lib/a.js',
    '',
])
def test_non_directives(line):
    assert match_directive(line) is None


def test_line_comment_directive():
    directive = match_directive('  //# include: lib/a.js  ', line_comment=True)
    assert directive is not None
    assert (directive.name, directive.value) == ('include', 'lib/a.js')


@pytest.mark.parametrize('value, expected', [
    ('/site/a.js | a.js', ('/site/a.js', 'a.js')),
    ('/site/a.js|a.js', ('/site/a.js', 'a.js')),
    ('/site/a.js', None),
    ('/site/a.js | a.js | b.js', None),
])
def test_split_reference(value, expected):
    assert split_reference(value) == expected


def test_split_lines():
    assert split_lines('a\r\nb\n') == ['a', 'b']
    assert split_lines('a\n\nb') == ['a', '', 'b']
    assert split_lines('') == []


def test_header_round_trip():
    references = ReferenceTable([('/site/lib/a.js', 'lib/a.js'), ('/site/main.js', 'main.js')])
    body = 'var a = 1;\n/* File not found: x.js */\n'
    header = split_header(format_header('{"MinifyCode":false}', references) + body)
    assert header.configuration == '{"MinifyCode":false}'
    assert header.references == references
    assert header.body == body


def test_split_header_without_header():
    header = split_header('var a = 1;\n')
    assert header.configuration is None
    assert len(header.references) == 0
    assert header.body == 'var a = 1;\n'
