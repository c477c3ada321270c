"""
Line scanner for processing directives embedded in source comments, plus
the header format used by cache artifacts.
"""
from __future__ import annotations

import re
import typing as t

from .references import ReferenceTable


REFERENCE = 'reference'
CONFIGURATION = 'configuration'
INCLUDE = 'include'

BLOCK_DIRECTIVE_RE = re.compile(r'^\s*/\*#\s*(?P<name>\w+):\s*(?P<value>.*?)\s*\*/\s*$')
LINE_DIRECTIVE_RE = re.compile(r'^\s*//#\s*(?P<name>\w+):\s*(?P<value>.*?)\s*$')


class Directive(t.NamedTuple):
    """
    A single directive found on a line of source text. @name is lowercased.
    """
    name: str
    value: str
    line: str


def match_directive(line: str, line_comment: bool = False) -> Directive | None:
    """
    Match @line against the directive syntax. `//#` directives are only
    recognized when @line_comment is set.
    """
    match = BLOCK_DIRECTIVE_RE.match(line)
    if not match and line_comment:
        match = LINE_DIRECTIVE_RE.match(line)
    if not match:
        return None
    return Directive(match['name'].lower(), match['value'], line)


def split_reference(value: str) -> tuple[str, str] | None:
    """
    Split a `reference` directive value into an (absolute, relative) pair, or
    return None if it is malformed.
    """
    parts = value.split('|')
    if len(parts) != 2:
        return None
    return parts[0].strip(), parts[1].strip()


def split_lines(source: str) -> list[str]:
    """
    Split text into lines after dropping carriage returns. A final newline
    does not produce an extra empty line.
    """
    lines = source.replace('\r', '').split('\n')
    if lines[-1] == '':
        lines.pop()
    return lines


def format_configuration(fingerprint: str):
    return f'/*# Configuration: {fingerprint} */\n'


def format_reference(absolute_path: str, relative_path: str):
    return f'/*# Reference: {absolute_path} | {relative_path} */\n'


def format_header(fingerprint: str, references: ReferenceTable):
    """
    Render the directive header written at the top of cache artifacts.
    """
    parts = [format_configuration(fingerprint)]
    parts.extend(format_reference(a, r) for a, r in references.items())
    return ''.join(parts)


class Header(t.NamedTuple):
    configuration: str | None
    references: ReferenceTable
    body: str


def split_header(text: str) -> Header:
    """
    Separate the leading `configuration`/`reference` directives of a cache
    artifact from the merged body that follows them. The body is returned
    verbatim.
    """
    configuration = None
    references = ReferenceTable()
    pos = 0
    while pos < len(text):
        end = text.find('\n', pos)
        if end == -1:
            end = len(text)
        directive = match_directive(text[pos:end].rstrip('\r'))
        if not directive or directive.name not in (CONFIGURATION, REFERENCE):
            break
        if directive.name == CONFIGURATION:
            configuration = directive.value
        elif pair := split_reference(directive.value):
            references.add(*pair)
        pos = end + 1
    return Header(configuration, references, text[pos:])
