"""
File-type specific processing: stylesheet URL rewriting, LESS compilation,
and CSS/JavaScript minification.
"""
from __future__ import annotations

import enum
import fnmatch
import io
import logging
import posixpath
import re
import time
import typing as t
from pathlib import Path

from .config import FileTypeConfiguration, ScriptConfiguration, StylesheetConfiguration
from .dependencies import Dependency, PipDependency
from .references import reference_key

if t.TYPE_CHECKING:
    from collections.abc import Set
    from .core import CodeFile


log = logging.getLogger(__name__)

_LOCATION_RES = (
    re.compile(r'line\D{0,3}(\d+)\D+?col(?:umn)?\D{0,3}(\d+)', re.IGNORECASE),
    # calmjs.parse: "Unexpected 'x' at 1:10 between ..."
    re.compile(r'\bat (\d+):(\d+)'),
)
_SCHEME_RE = re.compile(r'^[a-zA-Z][a-zA-Z0-9+.-]*:')


class ResourceType(enum.Enum):
    SCRIPT = 'script'
    STYLESHEET = 'stylesheet'
    LESS_STYLESHEET = 'less'


class Diagnostic(t.NamedTuple):
    """
    A single problem reported by a minifier or compiler.
    """
    line: int
    column: int
    message: str

    def __str__(self):
        return f'Line {self.line}, Col {self.column}: {self.message}'


class MinificationError(Exception):
    """
    Exception raised by `Processor.minify()` carrying the diagnostics of the
    failed pass.
    """
    def __init__(self, diagnostics: list[Diagnostic]):
        self.diagnostics = diagnostics
        super().__init__('\n'.join(str(d) for d in diagnostics))

    @classmethod
    def from_exception(cls, error: Exception):
        """
        Wrap a library exception, recovering a line and column from it when
        the library provides them.
        """
        message = str(error) or error.__class__.__name__
        line = getattr(error, 'lineno', None) or getattr(error, 'line', None)
        column = getattr(error, 'colno', None) or getattr(error, 'column', None)
        if not (isinstance(line, int) and isinstance(column, int)):
            line, column = 0, 0
            for regex in _LOCATION_RES:
                if match := regex.search(message):
                    line, column = int(match[1]), int(match[2])
                    break
        return cls([Diagnostic(line, column, message)])


class Processor:
    """
    Base class for the two-step transform applied to each file type.
    `preprocess()` runs on every parsed source before its directives are
    expanded; `postprocess()` runs once on the merged content of a refreshed
    file.
    """
    resource_type: t.ClassVar[ResourceType]
    content_type: t.ClassVar[str]
    extensions: t.ClassVar[tuple[str, ...]]
    configuration_class: t.ClassVar[type[FileTypeConfiguration]] = FileTypeConfiguration
    # Whether `//#` directives are recognized.
    line_comments: t.ClassVar[bool] = False

    def __init__(self, configuration: FileTypeConfiguration | None = None):
        self.configuration = configuration or self.configuration_class()

    @classmethod
    def get_dependencies(cls) -> Set[Dependency]:
        """
        Return the libraries needed by this processor.
        """
        return set()

    @classmethod
    def is_available(cls) -> bool:
        """
        Return whether this processor's requirements are installed.
        """
        return all(d.satisfied for d in cls.get_dependencies())

    def matches_extension(self, path: Path):
        return path.suffix.lstrip('.').lower() in self.extensions

    def find_files(self, pattern_path: Path):
        """
        List the files matched by a wildcard include such as `lib/*.js`: every
        file below the pattern's directory with one of this type's extensions
        whose name fits the pattern, in sorted order.
        """
        directory = pattern_path.parent
        return sorted(
            p for p in directory.rglob('*')
            if p.is_file() and self.matches_extension(p) and fnmatch.fnmatch(p.name, pattern_path.name)
        )

    def latest_write_time(self, pattern_path: Path):
        """
        Return the newest modification time of a wildcard include's directory
        tree, covering added and removed files as well as edited ones.
        """
        directory = pattern_path.parent
        times = [directory.stat().st_mtime]
        times.extend(p.stat().st_mtime for p in directory.rglob('*') if p.is_dir())
        times.extend(p.stat().st_mtime for p in self.find_files(pattern_path))
        return max(times)

    def preprocess(self, source: str, relative_path: str | None) -> str:
        return source

    def postprocess(self, source: str, code_file: CodeFile) -> str:
        return source

    def minify(self, source: str, code_file: CodeFile) -> str:
        """
        Return the minified form of @source, raising `MinificationError` on
        failure.
        """
        return source

    def _timed_minify(self, source: str, code_file: CodeFile):
        start = time.perf_counter()
        try:
            result = self.minify(source, code_file)
        except MinificationError as e:
            details = '\n'.join(str(d) for d in e.diagnostics)
            log.error('Minifying %s file %r resulted in errors:\n%s',
                      self.resource_type.value, str(code_file.absolute_path), details)
            return source
        log.debug('Minification of %r took %.1fms',
                  str(code_file.absolute_path), (time.perf_counter() - start) * 1000)
        return result


_registry: dict[ResourceType, type[Processor]] = {}
P = t.TypeVar('P', bound=type[Processor])


def register_resource_type(cls: P) -> P:
    """
    Class decorator adding a `Processor` to the table of supported resource
    types and extensions.
    """
    _registry[cls.resource_type] = cls
    return cls


def get_processor_class(resource_type: ResourceType) -> type[Processor]:
    return _registry[resource_type]


def get_processor_classes():
    return list(_registry.values())


def is_extension_supported(extension: str):
    """
    Return whether any registered text resource type handles @extension.
    """
    extension = extension.lstrip('.').lower()
    return any(extension in cls.extensions for cls in _registry.values())


def resource_type_for_extension(extension: str) -> ResourceType | None:
    extension = extension.lstrip('.').lower()
    for cls in _registry.values():
        if extension in cls.extensions:
            return cls.resource_type
    return None


def resource_type_for_path(path: str | Path) -> ResourceType:
    """
    Choose a resource type from a path's extension. Anything not recognized
    as a stylesheet is treated as a script.
    """
    extension = Path(path).suffix.lstrip('.').lower()
    if extension.endswith('css'):
        return ResourceType.STYLESHEET
    if extension.endswith('less'):
        return ResourceType.LESS_STYLESHEET
    return ResourceType.SCRIPT


@register_resource_type
class ScriptProcessor(Processor):
    """
    JavaScript processing: ES5 validation with calmjs.parse and rjsmin
    minification.
    """
    resource_type = ResourceType.SCRIPT
    content_type = 'text/javascript'
    extensions = ('js',)
    configuration_class = ScriptConfiguration
    line_comments = True

    _debugger_re = re.compile(r'(?m)^[ \t]*debugger[ \t]*;?[ \t]*$\n?')
    _literal_res = (
        (re.compile(r'\bnew\s+Array\s*\(\s*\)'), '[]'),
        (re.compile(r'\bnew\s+Object\s*\(\s*\)'), '{}'),
    )

    @classmethod
    def get_dependencies(cls):
        return {
            PipDependency('rjsmin'),
            PipDependency('calmjs.parse'),
        }

    def rewrite(self, source: str):
        """
        Apply the source-level rewrites enabled in the configuration.
        """
        if self.configuration['StripDebugStatements']:
            source = self._debugger_re.sub('', source)
        if self.configuration['CollapseToLiteral']:
            for regex, literal in self._literal_res:
                source = regex.sub(literal, source)
        return source

    def minify(self, source: str, code_file: CodeFile):
        """
        Validate @source with an ES5 parser, then either compact it with rjsmin
        or, for `MultipleLines` output, reprint the parsed program with
        `IndentSize` spaces per level.
        """
        from calmjs.parse import es5
        from calmjs.parse.exceptions import ECMASyntaxError
        import rjsmin

        source = self.rewrite(source)
        try:
            program = es5(source)
        except ECMASyntaxError as e:
            raise MinificationError.from_exception(e) from e

        if self.configuration['OutputMode'] == 'MultipleLines':
            from calmjs.parse.unparsers.es5 import pretty_print
            return pretty_print(program, indent_str=' ' * self.configuration['IndentSize'])

        keep_bang_comments = self.configuration['CommentMode'] != 'None'
        return rjsmin.jsmin(source, keep_bang_comments=keep_bang_comments)

    def postprocess(self, source: str, code_file: CodeFile):
        if self.configuration.minification_enabled:
            return self._timed_minify(source, code_file)
        return source


def combine_urls(folder: str, url: str):
    """
    Rebase a relative @url onto @folder, collapsing `../` segments and
    duplicate slashes. Query strings and fragments are kept as-is.
    """
    if not folder:
        return url
    path, suffix = re.match(r'([^?#]*)(.*)', url, re.DOTALL).groups()
    combined = posixpath.normpath(f'{folder}/{path}')
    if path.endswith('/') and not combined.endswith('/'):
        combined += '/'
    return combined + suffix


@register_resource_type
class StylesheetProcessor(Processor):
    """
    CSS processing: relative `url()` rebasing and lightningcss minification.
    """
    resource_type = ResourceType.STYLESHEET
    content_type = 'text/css'
    extensions = ('css',)
    configuration_class = StylesheetConfiguration

    url_re = re.compile(r'''(url\s*\(\s*["']?)(.*?)(["']?\s*\))''', re.IGNORECASE)

    @classmethod
    def get_dependencies(cls):
        return {
            PipDependency('lightningcss'),
        }

    @staticmethod
    def is_absolute_url(url: str):
        return not url or url.startswith(('/', '#')) or bool(_SCHEME_RE.match(url))

    def rewrite_urls(self, source: str, relative_path: str | None):
        """
        Rebase relative `url()` references in @source so they resolve from
        the folder of the merged document rather than the folder of
        @relative_path.
        """
        if not relative_path:
            return source
        relative_path = relative_path.replace('\\', '/')
        folder = relative_path.rpartition('/')[0]
        if not folder:
            return source

        def replace(match: re.Match[str]):
            url = match[2].strip()
            if self.is_absolute_url(url):
                return match[0]
            return f'{match[1]}{combine_urls(folder, url)}{match[3]}'

        return self.url_re.sub(replace, source)

    def preprocess(self, source: str, relative_path: str | None):
        return self.rewrite_urls(source, relative_path)

    def minify(self, source: str, code_file: CodeFile):
        import lightningcss
        browsers = self.configuration['Browsers']
        try:
            return lightningcss.process_stylesheet(
                source,
                filename=str(code_file.absolute_path),
                browsers_list=[b.strip() for b in browsers.split(',')] if browsers else None,
                minify=self.configuration['OutputMode'] == 'SingleLine'
            )
        except Exception as e:
            # lightningcss reports parse failures through several exception types
            raise MinificationError.from_exception(e) from e

    def postprocess(self, source: str, code_file: CodeFile):
        if self.configuration.minification_enabled:
            return self._timed_minify(source, code_file)
        return source


@register_resource_type
class LessStylesheetProcessor(StylesheetProcessor):
    """
    LESS processing: `@import` expansion and compilation to CSS with lesscpy,
    followed by the stylesheet minification step.
    """
    resource_type = ResourceType.LESS_STYLESHEET
    extensions = ('less',)
    line_comments = True

    import_re = re.compile(
        r'''^[ \t]*@import\s*(?:\((?P<options>[^)]*)\)\s*)?'''
        r'''(?:url\(\s*)?["'](?P<path>[^"']+)["']\s*\)?(?P<media>[^;\n]*);[ \t]*$''',
        re.MULTILINE
    )

    @classmethod
    def get_dependencies(cls):
        return super().get_dependencies() | {
            PipDependency('lesscpy'),
        }

    def get_full_path(self, path: str, directory: Path) -> Path | None:
        """
        Resolve an `@import` target. Scheme-qualified URLs are left to the
        browser and return None; `/` and `~/` paths resolve against the
        configured root directory, anything else against @directory.
        """
        if ':' in path:
            return None
        if path.startswith('~/'):
            return self.configuration.root_directory / path[2:]
        if path.startswith('/'):
            return self.configuration.root_directory / path.lstrip('/')
        return directory / path

    def expand_imports(self,
                       source: str,
                       path: Path,
                       relative_path: str,
                       code_file: CodeFile,
                       seen: set[str]):
        """
        Inline LESS `@import`s of @source recursively. Each file is imported
        once, and every imported file is recorded as a reference of
        @code_file. Plain CSS imports are left for the browser.
        """
        def replace(match: re.Match[str]):
            target = match['path']
            options = (match['options'] or '').lower()
            if target.lower().endswith('.css') and 'less' not in options:
                return match[0]
            if not Path(target).suffix:
                target += '.less'

            full_path = self.get_full_path(target, path.parent)
            if full_path is None:
                return match[0]
            if not full_path.is_file():
                log.warning('LESS import %r of %r not found', target, str(path))
                return f'/* File not found: {target} */'

            key = reference_key(full_path.resolve())
            if key in seen:
                return ''
            seen.add(key)

            display = posixpath.join(posixpath.dirname(relative_path), target)
            code_file.add_reference(full_path.resolve(), display)
            imported = full_path.read_text(code_file.encoding)
            return self.expand_imports(imported, full_path, display, code_file, seen)

        return self.import_re.sub(replace, source)

    def compile(self, source: str, code_file: CodeFile):
        """
        Compile LESS @source into CSS, raising `MinificationError` with the
        compiler's diagnostics on failure.
        """
        import lesscpy
        try:
            return lesscpy.compile(io.StringIO(source), minify=False)
        except Exception as e:
            # lesscpy raises bare SyntaxError/ValueError/CompilationError types
            raise MinificationError.from_exception(e) from e

    def postprocess(self, source: str, code_file: CodeFile):
        seen = {reference_key(Path(code_file.absolute_path).resolve())}
        source = self.expand_imports(
            source,
            Path(code_file.absolute_path),
            code_file.relative_path,
            code_file,
            seen
        )
        try:
            source = self.compile(source, code_file)
        except MinificationError as e:
            details = '\n'.join(str(d) for d in e.diagnostics)
            log.error('Compiling LESS file %r resulted in errors:\n%s',
                      str(code_file.absolute_path), details)
        return super().postprocess(source, code_file)
