"""
Ordered, case-insensitive tables of the files contributing to merged output.
"""
from __future__ import annotations

import typing as t
from pathlib import Path

if t.TYPE_CHECKING:
    from collections.abc import Iterable, Iterator


def reference_key(path: str | Path) -> str:
    """
    Normalize a path into the key used for case-insensitive comparisons.
    """
    return str(path).replace('\\', '/').casefold()


class ReferenceTable:
    """
    Insertion-ordered mapping of absolute paths to display paths. The first
    spelling of a path wins; later additions differing only by case or
    separator style are ignored.
    """
    def __init__(self, items: Iterable[tuple[str, str]] | None = None):
        # key: (absolute_path, relative_path)
        self._entries: dict[str, tuple[str, str]] = {}
        if items:
            for absolute_path, relative_path in items:
                self.add(absolute_path, relative_path)

    def __len__(self):
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return (absolute for absolute, _relative in self._entries.values())

    def __contains__(self, path: object):
        return isinstance(path, (str, Path)) and reference_key(path) in self._entries

    def __getitem__(self, path: str | Path):
        return self._entries[reference_key(path)][1]

    def __eq__(self, other: object):
        if not isinstance(other, ReferenceTable):
            return NotImplemented
        return list(self.items()) == list(other.items())

    def __repr__(self):
        return f'{self.__class__.__name__}({list(self.items())!r})'

    def add(self, absolute_path: str | Path, relative_path: str | None = None):
        """
        Add a reference, returning whether it was new. @relative_path defaults
        to the file name of @absolute_path.
        """
        absolute_path = str(absolute_path)
        key = reference_key(absolute_path)
        if key in self._entries:
            return False
        if relative_path is None:
            relative_path = Path(absolute_path).name
        self._entries[key] = (absolute_path, relative_path)
        return True

    def update(self, other: ReferenceTable | Iterable[tuple[str, str]]):
        """
        Add every reference of @other, keeping this table's order first.
        """
        items = other.items() if isinstance(other, ReferenceTable) else other
        for absolute_path, relative_path in items:
            self.add(absolute_path, relative_path)

    def discard(self, absolute_path: str | Path):
        self._entries.pop(reference_key(absolute_path), None)

    def items(self):
        return iter(self._entries.values())

    def keys(self):
        return list(self)

    def clear(self):
        self._entries.clear()

    def copy(self):
        return ReferenceTable(self.items())
