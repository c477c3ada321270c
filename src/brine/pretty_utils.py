"""
Internal utilities for log output and pretty printing.
"""
import logging
import sys

try:
    import rich.console
    import rich.logging
    _rich_consoles = {
        'stdout': rich.console.Console(file=sys.stdout),
        'stderr': rich.console.Console(file=sys.stderr),
    }
except ImportError:
    _rich_consoles = {}


LOGGER_NAME = 'brine'
LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL', 'OFF')


def print_with_style(*args, sep=' ', end='\n', file: str = 'stdout', style=None):
    """
    Enhanced print() function which supports rich console styles and gracefully
    devolves to standard print().
    """
    if file in _rich_consoles:
        _rich_consoles[file].print(*args, sep=sep, end=end, style=style)
    else:
        print(*args, sep=sep, end=end, file=getattr(sys, file))


def setup_logging(level: str = 'WARNING') -> logging.Logger:
    """
    Configure the `brine` logger to write to stderr, through rich when it is
    installed. `OFF` silences it. Repeated calls only adjust the level.
    """
    logger = logging.getLogger(LOGGER_NAME)
    level = level.upper()
    logger.setLevel(logging.CRITICAL + 1 if level == 'OFF' else level)
    if logger.handlers:
        return logger

    if 'stderr' in _rich_consoles:
        handler: logging.Handler = rich.logging.RichHandler(
            console=_rich_consoles['stderr'],
            show_time=False,
            show_path=False
        )
        handler.setFormatter(logging.Formatter('%(message)s'))
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    logger.addHandler(handler)
    return logger
