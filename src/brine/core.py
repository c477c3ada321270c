"""
The code file engine: loading, directive expansion, processing and caching
of merged scripts and stylesheets.
"""
from __future__ import annotations

import enum
import logging
import posixpath
import re
import typing as t
from datetime import datetime, timezone
from pathlib import Path

from . import directives
from .cache import CacheResolver
from .config import FileTypeConfiguration
from .http import get_etag
from .processors import (
    ResourceType, get_processor_class, is_extension_supported, resource_type_for_path
)
from .references import ReferenceTable, reference_key

if t.TYPE_CHECKING:
    from collections.abc import Sequence


log = logging.getLogger(__name__)

_QUERY_RE = re.compile(r'\?.*$')


class LoadState(enum.Enum):
    UNLOADED = 'unloaded'
    LOADING = 'loading'
    CACHE_HIT = 'cache_hit'
    NEEDS_REFRESH = 'needs_refresh'
    POST_PROCESSED = 'post_processed'
    READY = 'ready'


class BrineException(Exception):
    """
    Base class for errors raised while loading code files.
    """


class CodeFileNotFound(BrineException, FileNotFoundError):
    """
    Exception raised when the file requested from `CodeFile.load()` does not
    exist.
    """


class CycleError(BrineException):
    """
    Exception raised when a file includes itself, directly or through one of
    the files including it.
    """
    def __init__(self, path: Path, chain: Sequence[str], message: str):
        self.path = path
        self.chain = list(chain)
        super().__init__(message)


class ParseResult:
    """
    The merged content, references and recorded configuration produced by
    parsing one source text.
    """
    def __init__(self):
        self.parts: list[str] = []
        self.references = ReferenceTable()
        self.configuration: str | None = None

    @property
    def content(self):
        return ''.join(self.parts)

    def append_line(self, line: str):
        self.parts.append(line + '\n')

    def add_reference(self, absolute_path: str | Path, relative_path: str, chain: Sequence[str]):
        """
        Record a reference unless it names a file in the active include
        chain.
        """
        if reference_key(absolute_path) in chain:
            return
        self.references.add(str(absolute_path), relative_path)

    def merge(self, inner: ParseResult, chain: Sequence[str]):
        self.parts.append(inner.content)
        for absolute_path, relative_path in inner.references.items():
            self.add_reference(absolute_path, relative_path, chain)


def join_relative(folder_of: str, path: str):
    """
    Join @path onto the folder of the display path @folder_of.
    """
    if path.startswith('/'):
        return path
    return posixpath.normpath(posixpath.join(posixpath.dirname(folder_of.replace('\\', '/')), path))


class CodeFile:
    """
    A script or stylesheet whose content is merged from the files it
    includes, processed according to its resource type, and cached on disk.
    """
    # Sources may start with a byte order mark.
    encoding = 'utf-8-sig'

    def __init__(self,
                 resource_type: ResourceType = ResourceType.SCRIPT,
                 configuration: FileTypeConfiguration | None = None,
                 parent: CodeFile | None = None,
                 temporary_directory: Path | str | None = None,
                 caching_enabled: bool | None = None):
        self.resource_type = resource_type
        self.processor = get_processor_class(resource_type)(configuration)
        self.configuration = self.processor.configuration
        # Only used to walk the include chain and resolve relative paths.
        self.parent = parent
        self._temporary_directory = Path(temporary_directory) if temporary_directory else None
        self._caching_enabled = caching_enabled

        self.absolute_path: Path | None = None
        self.relative_path = ''
        self.content = ''
        self.raw_content = ''
        self.references = ReferenceTable()
        self.cached_configuration = ''
        self.state = LoadState.UNLOADED
        self.refreshed = False
        self.refresh_reason = ''

    def __str__(self):
        return self.relative_path

    def __repr__(self):
        return f'<{self.__class__.__name__} {self.resource_type.value} {self.relative_path!r} {self.state.value}>'

    @classmethod
    def create(cls,
               absolute_path: Path | str,
               relative_path: str | None = None,
               configuration: FileTypeConfiguration | None = None,
               temporary_directory: Path | str | None = None):
        """
        Create a code file of the type matching the extension of
        @absolute_path and load it.
        """
        result = cls.create_from_extension(absolute_path, configuration)
        if temporary_directory:
            result._temporary_directory = Path(temporary_directory)
        return result.load(absolute_path, relative_path)

    @classmethod
    def create_from_extension(cls,
                              path: Path | str,
                              configuration: FileTypeConfiguration | None = None):
        """
        Create an unloaded code file for @path. Stylesheet extensions select
        the stylesheet types; everything else is a script.
        """
        return cls.create_from_resource_type(resource_type_for_path(path), configuration)

    @classmethod
    def create_from_resource_type(cls,
                                  resource_type: ResourceType,
                                  configuration: FileTypeConfiguration | None = None):
        return cls(resource_type, configuration)

    @staticmethod
    def is_extension_supported(extension: str):
        return is_extension_supported(extension)

    @property
    def temporary_directory(self) -> Path | None:
        return self._temporary_directory or self.configuration.temporary_directory

    @property
    def caching_enabled(self) -> bool:
        if self._caching_enabled is None:
            return self.temporary_directory is not None
        return self._caching_enabled and self.temporary_directory is not None

    @caching_enabled.setter
    def caching_enabled(self, value: bool | None):
        self._caching_enabled = value

    @property
    def cache(self):
        directory = self.temporary_directory
        return CacheResolver(directory) if directory is not None else None

    @property
    def cache_name(self) -> Path | None:
        """
        Absolute path of the cache artifact for this file.
        """
        cache = self.cache
        if cache is None or self.absolute_path is None:
            return None
        return cache.cache_path(self.absolute_path)

    @property
    def content_type(self):
        return self.processor.content_type

    @property
    def dependencies(self):
        return self.references.keys()

    @property
    def last_modified(self):
        """
        Modification time of the cache artifact if there is one, otherwise the
        newest modification time of all dependencies.
        """
        cache_name = self.cache_name
        if cache_name is not None and cache_name.is_file():
            timestamp = cache_name.stat().st_mtime
        else:
            timestamp = 0.0
            for dependency in self.dependencies:
                path = Path(dependency)
                if path.name.startswith('*'):
                    path = path.parent
                if path.exists():
                    timestamp = max(timestamp, path.stat().st_mtime)
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)

    @property
    def etag(self):
        return get_etag(self.relative_path, self.last_modified)

    def include_chain(self) -> list[str]:
        """
        Reference keys of this file and every file including it, innermost
        first.
        """
        chain = []
        ancestor: CodeFile | None = self
        while ancestor is not None:
            if ancestor.absolute_path is not None:
                chain.append(reference_key(ancestor.absolute_path))
            ancestor = ancestor.parent
        return chain

    def is_path_in_include_chain(self, path: str | Path):
        return reference_key(Path(path).resolve()) in self.include_chain()

    def add_reference(self, absolute_path: str | Path, relative_path: str | None = None):
        """
        Record an extra dependency of this file, such as a LESS import found
        while post-processing.
        """
        self.references.add(str(absolute_path), relative_path)

    def load(self, absolute_path: Path | str, relative_path: str | None = None):
        """
        Load the file, either from its cache entry or by reading, parsing and
        processing its sources.
        """
        path = Path(absolute_path)
        if not path.is_file():
            suffix = f' ({relative_path})' if relative_path else ''
            raise CodeFileNotFound(f'The file {path}{suffix} does not exist')

        self.state = LoadState.LOADING
        self.absolute_path = path.resolve()
        self.relative_path = relative_path or path.name
        if self.parent is not None:
            self.relative_path = join_relative(self.parent.relative_path, self.relative_path)

        cache = self.cache
        entry = cache.load_entry(self.absolute_path) if cache and self.caching_enabled else None
        if cache is None or not self.caching_enabled:
            self.refreshed, self.refresh_reason = True, 'Caching disabled'
        else:
            self.refreshed, self.refresh_reason = cache.refresh_needed(self, entry)

        if not self.refreshed and entry is not None:
            self.state = LoadState.CACHE_HIT
            log.debug('Using cached %r for %r', str(entry.path), self.relative_path)
            self.content = entry.body
            self.raw_content = self.absolute_path.read_text(self.encoding)
            self.cached_configuration = entry.configuration or ''
            self.references = entry.references.copy()
            self.references.add(self.absolute_path, self.relative_path)
            self.state = LoadState.READY
            return self

        self.state = LoadState.NEEDS_REFRESH
        log.debug('%s, processing %r', self.refresh_reason, self.relative_path)
        self.raw_content = self.absolute_path.read_text(self.encoding)
        parent_chain = self.parent.include_chain() if self.parent else []
        result = self.parse(self.raw_content, chain=parent_chain)

        self.cached_configuration = result.configuration or ''
        self.references = result.references.copy()
        self.content = self.processor.postprocess(result.content, self)
        self.state = LoadState.POST_PROCESSED
        self.references.discard(self.absolute_path)
        self.references.add(self.absolute_path, self.relative_path)

        if cache is not None and self.caching_enabled:
            cache.write(self)
        self.state = LoadState.READY
        return self

    def add_file(self, path: Path | str, relative_path: str | None = None):
        """
        Load another file with this file as its parent and append its content
        and references to this file.
        """
        resolved = Path(path).resolve()
        if self.is_path_in_include_chain(resolved):
            log.critical('The file %r is already part of the include chain of %r',
                         str(resolved), self.relative_path)
            raise CycleError(resolved, self.include_chain(),
                             f'{resolved} is already part of the include chain')

        inner_type = resource_type_for_path(resolved)
        configuration = self.configuration
        if not isinstance(configuration, get_processor_class(inner_type).configuration_class):
            configuration = None
        inner = CodeFile(
            inner_type,
            configuration,
            parent=self,
            temporary_directory=self.temporary_directory,
            caching_enabled=self._caching_enabled
        )
        inner.load(resolved, relative_path)

        self.content += inner.content
        self.raw_content += inner.raw_content
        if self.absolute_path is None:
            self.references.update(inner.references)
        else:
            # Keep this file's own reference last.
            self.references.discard(self.absolute_path)
            self.references.update(inner.references)
            self.references.add(self.absolute_path, self.relative_path)
        return inner

    def parse(self,
              source: str,
              absolute_path: Path | None = None,
              relative_path: str | None = None,
              chain: Sequence[str] = ()):
        """
        Scan @source line by line, expanding directives. @chain holds the
        reference keys of the files currently being expanded above this one.
        """
        absolute_path = absolute_path or self.absolute_path
        if relative_path is None:
            relative_path = self.relative_path
        if absolute_path is None:
            raise ValueError('Cannot parse a code file that has not been loaded')
        chain = (*chain, reference_key(absolute_path))

        source = self.processor.preprocess(source, relative_path)
        result = ParseResult()

        for line in directives.split_lines(source):
            directive = directives.match_directive(line, self.processor.line_comments)
            if directive is None:
                result.append_line(line)
            elif directive.name == directives.REFERENCE:
                if pair := directives.split_reference(directive.value):
                    result.add_reference(pair[0], pair[1], chain)
            elif directive.name == directives.CONFIGURATION:
                result.configuration = directive.value
            elif directive.name == directives.INCLUDE:
                self._include(directive, absolute_path, relative_path, chain, result)
            else:
                log.warning('Unrecognized processing instruction %r encountered in %r',
                            directive.name, relative_path)

        return result

    def _include(self,
                 directive: directives.Directive,
                 absolute_path: Path,
                 relative_path: str,
                 chain: Sequence[str],
                 result: ParseResult):
        value = directive.value
        include_path = Path(_QUERY_RE.sub('', value))
        if not include_path.is_absolute():
            include_path = absolute_path.parent / include_path
        include_path = include_path.resolve()
        display = join_relative(relative_path, value)

        if include_path.name.startswith('*'):
            directory = include_path.parent
            if not directory.is_dir():
                log.warning('Directory of %r included from %r not found', value, relative_path)
                result.append_line(f'/* Directory not found: {value} */')
                return
            for file in self.processor.find_files(include_path):
                if reference_key(file) in chain:
                    log.warning('Skipping %r in wildcard include %r; it is already being included',
                                str(file), value)
                    continue
                file_display = join_relative(display, file.relative_to(directory).as_posix())
                inner = self.parse(file.read_text(self.encoding), file, file_display, chain)
                result.merge(inner, chain)
            result.add_reference(include_path, display, chain)

        elif include_path.is_file():
            key = reference_key(include_path)
            if key == reference_key(absolute_path):
                log.critical('The script cannot include itself. The script is: %s(%s)',
                             value, include_path)
                raise CycleError(include_path, chain, 'The script cannot include itself.')
            if key in chain:
                log.critical('Including %s(%s) from %r would create a cycle',
                             value, include_path, relative_path)
                raise CycleError(include_path, chain, f'{include_path} is already being included')

            inner = self.parse(include_path.read_text(self.encoding), include_path, display, chain)
            result.merge(inner, chain)
            result.add_reference(include_path, display, chain)

        else:
            log.warning('File %r included from %r not found', value, relative_path)
            result.append_line(f'/* File not found: {value} */')
