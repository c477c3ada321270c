"""
Trackable library dependencies of the file-type processors.
"""
from __future__ import annotations

import abc
import importlib
from importlib.metadata import PackageNotFoundError, version


class Dependency(abc.ABC):
    """
    A base class for trackable, evaluable dependencies.
    """

    @property
    @abc.abstractmethod
    def satisfied(self) -> bool:
        """
        A bool indicating whether this dependency is met.
        """

    @property
    def needed(self) -> bool:
        """
        A bool indicating whether this dependency is needed on the current platform.
        """
        return True

    @property
    @abc.abstractmethod
    def install_hint(self) -> str:
        """
        A string giving help on how to install this dependency.
        """

    def __repr__(self):
        return f'{self.__class__.__name__}({self}, needed={self.needed}, satisfied={self.satisfied})'


class PipDependency(Dependency):
    """
    A Dependency on a pip-installable package. @check_name is the importable
    module name when it differs from the distribution @name.
    """
    def __init__(self,
                 name: str,
                 source: str | None = None,
                 check_name: str | None = None):
        self.name = name
        self.source = source or name
        self.check_name = check_name or name

    def __str__(self):
        return self.name

    def __eq__(self, other: object):
        if not isinstance(other, PipDependency):
            return NotImplemented
        return self.name == other.name

    def __hash__(self):
        return hash((self.__class__, self.name))

    @property
    def satisfied(self):
        """
        A bool indicating whether this dependency is met.
        """
        try:
            importlib.import_module(self.check_name)
        except ImportError:
            return False
        return True

    @property
    def installed_version(self) -> str | None:
        """
        The installed distribution version, if any.
        """
        try:
            return version(self.name)
        except PackageNotFoundError:
            return None

    @property
    def install_hint(self):
        """
        A string giving help on how to install this dependency.
        """
        return f'pip install {self.source}'
