"""
Command line interface for merging and compressing scripts and stylesheets.
"""
from __future__ import annotations

import argparse
import os
import posixpath
import sys
import typing as t
from pathlib import Path

from .config import BrineConfig, ConfigurationError, load_config_file, parse_settings
from .core import BrineException, CodeFile
from .pretty_utils import LEVELS, print_with_style, setup_logging
from .processors import (
    Processor, ResourceType, get_processor_class, get_processor_classes,
    resource_type_for_extension
)


class ProcessorUnavailableException(Exception):
    """
    Exception raised when a processor to be used is unavailable due to missing
    dependencies.
    """
    def __init__(self, processor: t.Type[Processor], *args: t.Any):
        self.processor = processor
        super().__init__(*args)


def build_parser():
    parser = argparse.ArgumentParser(
        prog='brine',
        description='Merge and/or compress scripts and stylesheets.'
    )
    parser.add_argument('files',
                        nargs='*',
                        help='files to merge; all must be scripts or all stylesheets',
                        type=Path)
    parser.add_argument('-t', '--target',
                        help='file to save the result to; defaults to standard output',
                        type=Path,
                        default=None)
    parser.add_argument('-s', '--settings',
                        help=('processing options as name=value pairs separated by "!", '
                              'e.g. minifycode=true!outputmode=singleline'),
                        action='append',
                        default=[])
    parser.add_argument('--config',
                        help='TOML file with [brine], [script] and [stylesheet] tables',
                        type=Path,
                        default=None)
    parser.add_argument('--temp-dir',
                        help='directory for cached merge results; caching is off without one',
                        type=Path,
                        dest='temporary_directory',
                        default=None)
    parser.add_argument('--no-cache',
                        help='ignore and do not write cached merge results',
                        action='store_true')
    parser.add_argument('-l', '--log',
                        help='amount of logging sent to stderr',
                        type=str.upper,
                        choices=LEVELS,
                        default='WARNING')
    parser.add_argument('--list-options',
                        help='show the available processing options and exit',
                        action='store_true')
    parser.add_argument('--audit',
                        help='show which processors have their libraries installed and exit',
                        action='store_true')
    return parser


def pprint_options():
    """
    Display the processing options of every registered file type.
    """
    seen = set()
    for processor in get_processor_classes():
        configuration_class = processor.configuration_class
        if configuration_class in seen:
            continue
        seen.add(configuration_class)
        print_with_style(f'{configuration_class.__name__} options:', style='bold')
        for option in configuration_class.declarations:
            print(f'    {option.describe()}')


def pprint_processor(processor: t.Type[Processor]):
    """
    Prettily display dependency information for the given Processor class.
    """
    missing = [
        str(d) for d in processor.get_dependencies()
        if d.needed and not d.satisfied
    ]
    if missing:
        text = ', '.join(missing)
        print_with_style(f'✗ {processor.__name__} (missing: {text})', style='red')
    else:
        print_with_style(f'✓ {processor.__name__}', style='green')


def pprint_missing_deps(processor: t.Type[Processor]):
    """
    Prettily display an error for the given Processor with missing dependencies.
    """
    print_with_style(
        f'{processor.__name__} is unavailable due to missing dependencies!',
        file='stderr',
        style='red'
    )
    for dep in processor.get_dependencies():
        missing = False
        if not dep.needed:
            style = None
        elif dep.satisfied:
            style = 'green'
        else:
            missing = True
            style = 'red'

        text = f'✗ {dep}: {dep.install_hint}' if missing else f'✓ {dep}'
        print_with_style(text, file='stderr', style=style)


def determine_resource_type(files: list[Path]) -> ResourceType:
    """
    Find the resource type shared by all @files. Stylesheets and LESS
    stylesheets may be mixed since they share options.
    """
    types = []
    for file in files:
        resource_type = resource_type_for_extension(file.suffix)
        if resource_type is None:
            raise ConfigurationError(
                f'The processing type of {file} could not be determined from its extension'
            )
        types.append(resource_type)

    configuration_classes = {get_processor_class(r).configuration_class for r in types}
    if len(configuration_classes) > 1:
        raise ConfigurationError('The files used are not of the same type')
    return types[0]


def display_path(path: Path, base: Path):
    """
    Express @path relative to @base when it lies below it, otherwise by name.
    """
    relative = os.path.relpath(path.resolve(), base.resolve())
    relative = Path(relative).as_posix()
    if relative.startswith('..'):
        return path.name
    return relative


def build(args: argparse.Namespace) -> CodeFile:
    """
    Merge the files named by parsed @args into a single CodeFile.
    """
    resource_type = determine_resource_type(args.files)
    processor = get_processor_class(resource_type)

    file_config: BrineConfig = load_config_file(args.config) if args.config else BrineConfig()
    configuration = processor.configuration_class(
        temporary_directory=args.temporary_directory or file_config.get('temporary_directory'),
        root_directory=file_config.get('root_directory')
    )
    table = 'script' if resource_type is ResourceType.SCRIPT else 'stylesheet'
    configuration.update(file_config.get(table, {}))
    for settings in args.settings:
        configuration.update(parse_settings(settings))

    if (resource_type is ResourceType.LESS_STYLESHEET or configuration.minification_enabled) \
            and not processor.is_available():
        raise ProcessorUnavailableException(processor)

    base = args.target.parent if args.target else Path.cwd()
    root_display = display_path(args.files[0], base)
    root_folder = posixpath.dirname(root_display) or '.'

    code_file = CodeFile(resource_type, configuration, caching_enabled=not args.no_cache)
    code_file.load(args.files[0], root_display)
    for path in args.files[1:]:
        relative = posixpath.relpath(display_path(path, base), root_folder)
        code_file.add_file(path, relative)
    return code_file


def write_output(code_file: CodeFile, target: Path | None):
    if target:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(code_file.content, 'utf-8', newline='\n')
    else:
        sys.stdout.write(code_file.content)
        sys.stdout.flush()


def main(arguments: list[str] | None = None):
    """
    Brine main function. Merges the given files, following their include
    directives, and writes the processed result.
    """
    parser = build_parser()
    args = parser.parse_args(arguments)
    setup_logging(args.log)

    if args.list_options:
        pprint_options()
        return
    if args.audit:
        for processor in get_processor_classes():
            pprint_processor(processor)
        return
    if not args.files:
        parser.print_usage(sys.stderr)
        sys.exit(1)

    try:
        code_file = build(args)
    except ProcessorUnavailableException as e:
        pprint_missing_deps(e.processor)
        sys.exit(1)
    except (BrineException, ConfigurationError) as e:
        print_with_style(str(e), file='stderr', style='red')
        sys.exit(1)

    write_output(code_file, args.target)
