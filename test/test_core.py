import logging
from pathlib import Path

import pytest

from brine.config import ScriptConfiguration, StylesheetConfiguration
from brine.core import CodeFile, CodeFileNotFound, CycleError, LoadState, join_relative
from brine.processors import ResourceType


def write(path: Path, text: str):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, 'utf-8', newline='')
    return path


@pytest.fixture(autouse=True)
def brine_warnings(caplog):
    caplog.set_level(logging.WARNING, logger='brine')


def test_plain_file_round_trip(tmp_path):
    source = 'var a = 1;\n\n// not a directive\n/* nor this */\n'
    main = write(tmp_path / 'main.js', source)
    code_file = CodeFile.create(main)
    assert code_file.content == source
    assert code_file.raw_content == source
    assert code_file.state is LoadState.READY
    assert code_file.refreshed
    assert code_file.refresh_reason == 'Caching disabled'
    assert list(code_file.references.items()) == [(str(main.resolve()), 'main.js')]


def test_carriage_returns_are_dropped(tmp_path):
    main = write(tmp_path / 'main.js', 'var a = 1;\r\nvar b = 2;\r\n')
    assert CodeFile.create(main).content == 'var a = 1;\nvar b = 2;\n'


def test_byte_order_marks_are_dropped(tmp_path):
    bom = b'\xef\xbb\xbf'
    (tmp_path / 'lib').mkdir()
    (tmp_path / 'lib' / 'a.js').write_bytes(bom + b'/*# include: b.js */\nvar a;\n')
    (tmp_path / 'lib' / 'b.js').write_bytes(bom + b'var b;\n')
    main = tmp_path / 'main.js'
    main.write_bytes(bom + b'/*# include: lib/a.js */\nvar main;\n')
    code_file = CodeFile.create(main)
    assert code_file.content == 'var b;\nvar a;\nvar main;\n'
    assert '\ufeff' not in code_file.raw_content
    assert len(code_file.references) == 3


def test_include_is_inlined(tmp_path):
    write(tmp_path / 'lib' / 'a.js', 'var a = 1;\n')
    main = write(tmp_path / 'main.js', 'var before;\n/*# include: lib/a.js */\nvar after;\n')
    code_file = CodeFile.create(main)
    assert code_file.content == 'var before;\nvar a = 1;\nvar after;\n'
    assert list(code_file.references.items()) == [
        (str((tmp_path / 'lib' / 'a.js').resolve()), 'lib/a.js'),
        (str(main.resolve()), 'main.js'),
    ]


def test_nested_includes_resolve_from_including_file(tmp_path):
    write(tmp_path / 'lib' / 'util' / 'b.js', 'var b;\n')
    write(tmp_path / 'lib' / 'a.js', '/*# include: util/b.js */\nvar a;\n')
    main = write(tmp_path / 'main.js', '//# include: lib/a.js\n')
    code_file = CodeFile.create(main)
    assert code_file.content == 'var b;\nvar a;\n'
    assert [r for _, r in code_file.references.items()] == ['lib/util/b.js', 'lib/a.js', 'main.js']


def test_query_string_is_ignored(tmp_path):
    write(tmp_path / 'a.js', 'var a;\n')
    main = write(tmp_path / 'main.js', '/*# include: a.js?v=3 */\n')
    assert CodeFile.create(main).content == 'var a;\n'


def test_missing_include_leaves_marker(tmp_path, caplog):
    main = write(tmp_path / 'main.js', 'var a;\n/*# include: missing.js */\nvar b;\n')
    code_file = CodeFile.create(main)
    assert code_file.content == 'var a;\n/* File not found: missing.js */\nvar b;\n'
    assert 'missing.js' in caplog.text


def test_missing_wildcard_directory_leaves_marker(tmp_path):
    main = write(tmp_path / 'main.js', '/*# include: nowhere/*.js */\n')
    assert CodeFile.create(main).content == '/* Directory not found: nowhere/*.js */\n'


def test_wildcard_include(tmp_path):
    write(tmp_path / 'lib' / 'b.js', 'var b;\n')
    write(tmp_path / 'lib' / 'a.js', 'var a;\n')
    write(tmp_path / 'lib' / 'notes.txt', 'ignored\n')
    main = write(tmp_path / 'main.js', '/*# include: lib/*.js */\n')
    code_file = CodeFile.create(main)
    assert code_file.content == 'var a;\nvar b;\n'
    assert list(code_file.references.items()) == [
        (str((tmp_path / 'lib').resolve() / '*.js'), 'lib/*.js'),
        (str(main.resolve()), 'main.js'),
    ]


def test_wildcard_skips_including_file(tmp_path, caplog):
    write(tmp_path / 'a.js', 'var a;\n')
    main = write(tmp_path / 'main.js', '/*# include: *.js */\nvar main;\n')
    code_file = CodeFile.create(main)
    assert code_file.content == 'var a;\nvar main;\n'
    assert 'Skipping' in caplog.text


def test_self_include_is_fatal(tmp_path):
    main = write(tmp_path / 'main.js', '/*# include: main.js */\n')
    with pytest.raises(CycleError, match='cannot include itself'):
        CodeFile.create(main)


def test_nested_self_include_is_fatal(tmp_path):
    write(tmp_path / 'lib' / 'b.js', 'var b;\n/*# include: b.js */\n')
    write(tmp_path / 'lib' / 'a.js', '/*# include: b.js */\n')
    main = write(tmp_path / 'main.js', 'var main;\n/*# include: lib/a.js */\n')
    with pytest.raises(CycleError, match='cannot include itself'):
        CodeFile.create(main)


def test_include_cycle_is_fatal(tmp_path):
    a = write(tmp_path / 'a.js', '/*# include: b.js */\n')
    write(tmp_path / 'b.js', '/*# include: a.js */\n')
    with pytest.raises(CycleError) as info:
        CodeFile.create(a)
    assert info.value.path == a.resolve()


def test_repeated_include_is_not_a_cycle(tmp_path):
    write(tmp_path / 'a.js', 'var a;\n')
    main = write(tmp_path / 'main.js', '/*# include: a.js */\n/*# include: a.js */\n')
    code_file = CodeFile.create(main)
    assert code_file.content == 'var a;\nvar a;\n'
    assert len(code_file.references) == 2


def test_unknown_directive_warns(tmp_path, caplog):
    main = write(tmp_path / 'main.js', '/*# frobnicate: yes */\nvar a;\n')
    code_file = CodeFile.create(main)
    assert code_file.content == 'var a;\n'
    assert 'frobnicate' in caplog.text


def test_reference_directives(tmp_path):
    main = write(tmp_path / 'main.js', (
        '/*# reference: /elsewhere/x.js | x.js */\n'
        '/*# reference: malformed */\n'
        'var a;\n'
    ))
    code_file = CodeFile.create(main)
    assert code_file.content == 'var a;\n'
    assert code_file.references.keys() == ['/elsewhere/x.js', str(main.resolve())]


def test_missing_root_raises(tmp_path):
    with pytest.raises(CodeFileNotFound):
        CodeFile.create(tmp_path / 'missing.js')


def test_create_from_extension():
    assert CodeFile.create_from_extension('site.css').resource_type is ResourceType.STYLESHEET
    assert CodeFile.create_from_extension('site.less').resource_type is ResourceType.LESS_STYLESHEET
    assert CodeFile.create_from_extension('app.js').resource_type is ResourceType.SCRIPT
    assert CodeFile.create_from_extension('app.ts').resource_type is ResourceType.SCRIPT
    assert isinstance(CodeFile.create_from_extension('site.css').configuration, StylesheetConfiguration)


@pytest.mark.parametrize('extension, supported', [
    ('js', True),
    ('.JS', True),
    ('css', True),
    ('less', True),
    ('ts', False),
    ('png', False),
])
def test_is_extension_supported(extension, supported):
    assert CodeFile.is_extension_supported(extension) is supported


def test_add_file(tmp_path):
    main = write(tmp_path / 'main.js', 'var main;\n')
    extra = write(tmp_path / 'lib' / 'extra.js', 'var extra;\n')
    code_file = CodeFile.create(main)
    inner = code_file.add_file(extra, 'lib/extra.js')
    assert inner.parent is code_file
    assert code_file.content == 'var main;\nvar extra;\n'
    assert code_file.raw_content == 'var main;\nvar extra;\n'
    assert code_file.references.keys() == [str(extra.resolve()), str(main.resolve())]


def test_add_file_shares_configuration(tmp_path):
    configuration = ScriptConfiguration({'StripDebugStatements': False})
    main = write(tmp_path / 'main.js', 'var main;\n')
    extra = write(tmp_path / 'extra.js', 'var extra;\n')
    code_file = CodeFile.create(main, configuration=configuration)
    assert code_file.add_file(extra).configuration is configuration


def test_add_file_cycle(tmp_path):
    main = write(tmp_path / 'main.js', 'var main;\n')
    code_file = CodeFile.create(main)
    with pytest.raises(CycleError):
        code_file.add_file(main)


def test_add_file_including_ancestor(tmp_path):
    main = write(tmp_path / 'main.js', 'var main;\n')
    extra = write(tmp_path / 'extra.js', '/*# include: main.js */\n')
    code_file = CodeFile.create(main)
    with pytest.raises(CycleError):
        code_file.add_file(extra)


@pytest.mark.parametrize('folder_of, path, expected', [
    ('main.js', 'lib/a.js', 'lib/a.js'),
    ('lib/a.js', 'util/b.js', 'lib/util/b.js'),
    ('lib/a.js', '../b.js', 'b.js'),
    ('lib\\a.js', 'b.js', 'lib/b.js'),
    ('lib/a.js', '/abs/b.js', '/abs/b.js'),
])
def test_join_relative(folder_of, path, expected):
    assert join_relative(folder_of, path) == expected


def test_etag_and_last_modified(tmp_path):
    main = write(tmp_path / 'main.js', 'var a;\n')
    code_file = CodeFile.create(main)
    assert code_file.last_modified.timestamp() == pytest.approx(main.stat().st_mtime)
    assert code_file.etag == CodeFile.create(main).etag
    assert code_file.content_type == 'text/javascript'
