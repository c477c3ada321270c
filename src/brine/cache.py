"""
Persisted merge results and the freshness checks deciding when they can be
reused.
"""
from __future__ import annotations

import logging
import re
import typing as t
from pathlib import Path

from .directives import format_header, split_header
from .references import ReferenceTable

if t.TYPE_CHECKING:
    from .core import CodeFile


log = logging.getLogger(__name__)


def cache_file_name(absolute_path: str | Path):
    """
    Flatten an absolute path into a single file name by replacing path
    separators and drive colons with underscores.
    """
    return re.sub(r'[\\/:]', '_', str(absolute_path))


class CacheEntry:
    """
    A previously written merge result. Missing files produce an entry with
    `exists` set to False.
    """
    encoding = 'utf-8'

    def __init__(self, path: Path):
        self.path = path
        self.exists = path.is_file()
        self.last_modified = 0.0
        self.text = ''
        self.configuration: str | None = None
        self.references = ReferenceTable()
        self.body = ''
        if self.exists:
            with path.open(encoding=self.encoding, newline='') as file:
                self.text = file.read()
            self.last_modified = path.stat().st_mtime
            self.configuration, self.references, self.body = split_header(self.text)

    def __repr__(self):
        return f'{self.__class__.__name__}({str(self.path)!r}, exists={self.exists})'


class CacheResolver:
    """
    Reads, validates and writes cache entries in a single directory.
    """
    encoding = 'utf-8'
    newline = '\n'

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def cache_path(self, absolute_path: str | Path):
        return self.directory / cache_file_name(absolute_path)

    def load_entry(self, absolute_path: str | Path):
        return CacheEntry(self.cache_path(absolute_path))

    def refresh_needed(self, code_file: CodeFile, entry: CacheEntry | None):
        """
        Determine whether @code_file must be rebuilt from its sources rather
        than taken from @entry.

        :return: Whether a refresh is needed and a message explaining why or
            why not.
        """
        if entry is None or not entry.exists:
            return True, 'Missing cache entry'

        if entry.configuration != code_file.configuration.fingerprint():
            return True, 'Stale configuration'

        own_path = str(code_file.absolute_path)
        if own_path in entry.references and entry.references[own_path] != code_file.relative_path:
            return True, f'Changed relative path ({entry.references[own_path]})'

        for reference in entry.references:
            path = Path(reference)
            if path.name.startswith('*'):
                if not path.parent.is_dir():
                    return True, f'Missing directory ({path.parent})'
                if code_file.processor.latest_write_time(path) > entry.last_modified:
                    return True, f'Stale directory ({path.parent})'
            else:
                if not path.exists():
                    return True, f'Missing reference ({path})'
                if path.stat().st_mtime > entry.last_modified:
                    return True, f'Stale reference ({path})'

        return False, 'Up to date'

    def write(self, code_file: CodeFile):
        """
        Persist the merged content and references of @code_file. Failures are
        logged and reported through the return value only.
        """
        cache_path = self.cache_path(code_file.absolute_path)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            log.error('Could not create temporary directory %r: %s', str(self.directory), e)
            return False

        data = format_header(code_file.configuration.fingerprint(), code_file.references)
        try:
            cache_path.write_text(data + code_file.content, self.encoding, newline=self.newline)
        except OSError as e:
            log.error('Could not save the temporary file %r: %s', str(cache_path), e)
            return False

        log.debug('Saved the temporary contents of %r to %r',
                  str(code_file.absolute_path), str(cache_path))
        return True
