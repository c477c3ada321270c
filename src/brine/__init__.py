"""
Brine merges chains of included scripts and stylesheets, compiles LESS,
minifies, and caches the merged result until one of its sources changes.
"""
from .cache import CacheEntry, CacheResolver
from .config import (
    ConfigurationError, FileTypeConfiguration, ScriptConfiguration, StylesheetConfiguration
)
from .core import BrineException, CodeFile, CodeFileNotFound, CycleError, LoadState
from .processors import (
    LessStylesheetProcessor, MinificationError, Processor, ResourceType, ScriptProcessor,
    StylesheetProcessor
)
from .references import ReferenceTable
