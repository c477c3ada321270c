"""
Processing options for each file type, and loading them from settings
strings and TOML config files.
"""
from __future__ import annotations

import json
import sys
import typing as t
from pathlib import Path

if t.TYPE_CHECKING:
    from collections.abc import Mapping


OptionValue = t.Union[bool, int, str]

_TRUE = {'true', '1', 'yes', 'on'}
_FALSE = {'false', '0', 'no', 'off'}


class ConfigurationError(ValueError):
    """
    Exception raised for unknown option names or invalid option values.
    """


class Option(t.NamedTuple):
    """
    Declaration of a single processing option.
    """
    name: str
    default: OptionValue
    choices: tuple[str, ...] = ()
    help: str = ''

    def parse(self, value: t.Any) -> OptionValue:
        """
        Coerce @value, which may be a string from the command line, into this
        option's type.
        """
        if isinstance(self.default, bool):
            if isinstance(value, bool):
                return value
            lowered = str(value).strip().lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
            raise ConfigurationError(f'{self.name} expects true or false, got {value!r}')
        if isinstance(self.default, int):
            try:
                return int(value)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f'{self.name} expects an integer, got {value!r}') from e
        value = str(value).strip()
        if self.choices:
            for choice in self.choices:
                if choice.lower() == value.lower():
                    return choice
            raise ConfigurationError(
                f'{self.name} must be one of {"|".join(self.choices)}, got {value!r}'
            )
        return value

    def describe(self):
        if isinstance(self.default, bool):
            kind = 'true|false'
            default = str(self.default).lower()
        elif self.choices:
            kind = '|'.join(self.choices)
            default = self.default
        elif isinstance(self.default, int):
            kind = 'int'
            default = self.default
        else:
            kind = 'string'
            default = self.default
        text = f'{self.name}={kind} (default: {default})'
        return f'{text} - {self.help}' if self.help else text


class FileTypeConfiguration:
    """
    Base class for per-file-type processing options. Options are looked up
    case-insensitively and compared through `fingerprint()`.
    """
    declarations: t.ClassVar[tuple[Option, ...]] = (
        Option('MinifyCode', False, help='enable minification'),
    )

    def __init__(self,
                 options: Mapping[str, t.Any] | None = None,
                 temporary_directory: Path | str | None = None,
                 root_directory: Path | str | None = None):
        self._lookup = {o.name.lower(): o for o in self.declarations}
        self.options: dict[str, OptionValue] = {o.name: o.default for o in self.declarations}
        self.temporary_directory = Path(temporary_directory) if temporary_directory else None
        self.root_directory = Path(root_directory) if root_directory else Path.cwd()
        if options:
            self.update(options)

    def __getitem__(self, name: str):
        return self.options[self._declaration(name).name]

    def __setitem__(self, name: str, value: t.Any):
        option = self._declaration(name)
        self.options[option.name] = option.parse(value)

    def __eq__(self, other: object):
        if not isinstance(other, FileTypeConfiguration):
            return NotImplemented
        return type(self) is type(other) and self.options == other.options

    def __repr__(self):
        return f'{self.__class__.__name__}({self.options!r})'

    def __str__(self):
        return self.fingerprint()

    def _declaration(self, name: str):
        try:
            return self._lookup[name.lower()]
        except KeyError as e:
            raise ConfigurationError(
                f'Unknown {self.__class__.__name__} option {name!r}'
            ) from e

    @classmethod
    def accepts(cls, name: str):
        return any(o.name.lower() == name.lower() for o in cls.declarations)

    @classmethod
    def from_settings(cls, settings: str, **kw):
        """
        Build a configuration from a `name=value!name=value` settings string.
        """
        return cls(parse_settings(settings), **kw)

    @property
    def minification_enabled(self) -> bool:
        return bool(self.options['MinifyCode'])

    @minification_enabled.setter
    def minification_enabled(self, value: bool):
        self.options['MinifyCode'] = bool(value)

    def update(self, options: Mapping[str, t.Any]):
        for name, value in options.items():
            self[name] = value

    def copy(self):
        return self.__class__(
            self.options,
            temporary_directory=self.temporary_directory,
            root_directory=self.root_directory
        )

    def fingerprint(self):
        """
        Serialize the options into the single-line form recorded in cache
        artifacts.
        """
        return json.dumps(self.options, sort_keys=True, separators=(',', ':'))


class ScriptConfiguration(FileTypeConfiguration):
    """
    Options for JavaScript processing.
    """
    declarations = (
        Option('MinifyCode', False, help='enable minification'),
        Option('CollapseToLiteral', True, help='rewrite new Array()/new Object() as literals'),
        Option('EvalLiteralExpressions', True),
        Option('MacSafariQuirks', True),
        Option('ManualRenamesProperties', True),
        Option('PreserveFunctionNames', False),
        Option('RemoveFunctionExpressionNames', True),
        Option('RemoveUnneededCode', True),
        Option('StripDebugStatements', True, help='remove debugger statements'),
        Option('InlineSafeStrings', True),
        Option('StrictMode', False),
        Option('IndentSize', 4),
        Option('EvalTreatment', 'Ignore', ('Ignore', 'MakeAllSafe', 'MakeImmediateSafe')),
        Option('LocalRenaming', 'CrunchAll', ('CrunchAll', 'KeepAll', 'KeepLocalizationVars')),
        Option('OutputMode', 'SingleLine', ('SingleLine', 'MultipleLines')),
        Option('CommentMode', 'Important', ('All', 'Important', 'None'),
               help='Important keeps /*! */ comments when minifying'),
    )


class StylesheetConfiguration(FileTypeConfiguration):
    """
    Options for CSS and LESS processing.
    """
    declarations = (
        Option('MinifyCode', False, help='enable minification'),
        Option('MinifyExpressions', False),
        Option('TermSemicolons', True),
        Option('ColorNames', 'Strict', ('Hex', 'Major', 'Strict')),
        Option('CommentMode', 'Important', ('All', 'Hacks', 'Important', 'None')),
        Option('OutputMode', 'SingleLine', ('SingleLine', 'MultipleLines'),
               help='MultipleLines pretty-prints instead of compacting'),
        Option('Browsers', 'defaults', help='browserslist query for the CSS minifier'),
    )


def parse_settings(settings: str, separator: str = '!') -> dict[str, str]:
    """
    Parse a `name=value` list joined by @separator. Empty items are ignored.
    """
    result: dict[str, str] = {}
    for item in settings.split(separator):
        if not (item := item.strip()):
            continue
        name, eq, value = item.partition('=')
        if not eq or not name.strip():
            raise ConfigurationError(f'Malformed setting {item!r}; expected name=value')
        result[name.strip()] = value.strip()
    return result


class BrineConfig(t.TypedDict, total=False):
    """
    TypedDict for the contents of a Brine TOML config file.
    """
    temporary_directory: Path | None
    root_directory: Path | None
    script: dict[str, t.Any]
    stylesheet: dict[str, t.Any]


def load_config_file(path: Path) -> BrineConfig:
    """
    Load a TOML config file with an optional `[brine]` table for directories
    and `[script]` and `[stylesheet]` option tables.
    """
    if sys.version_info < (3, 11):
        import tomli as tomllib
    else:
        import tomllib

    try:
        with path.open('rb') as file:
            data = tomllib.load(file)
    except (OSError, ValueError) as e:
        # tomllib.TOMLDecodeError is a ValueError
        raise ConfigurationError(f'Could not load config file {path}: {e}') from e

    general = data.get('brine', {})
    config = BrineConfig(
        script=dict(data.get('script', {})),
        stylesheet=dict(data.get('stylesheet', {})),
        temporary_directory=None,
        root_directory=None,
    )
    for key in ('temporary_directory', 'root_directory'):
        if value := general.get(key):
            config[key] = (path.parent / value).resolve()
    return config
