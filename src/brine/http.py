"""
Helpers for serving merged files with HTTP cache headers.
"""
from __future__ import annotations

import hashlib
import mimetypes
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from .processors import get_processor_classes


# If-Modified-Since dates within this many seconds count as unchanged.
MAX_DIFFERENCE_CACHED_DATE = 2


def _package_version():
    try:
        return version('brine')
    except PackageNotFoundError:
        return 'unknown'


def get_etag(name: str, last_modified: datetime):
    """
    Build an ETag from a file's display name, its modification time and the
    Brine version.
    """
    data = f'{name}{last_modified.isoformat()}{_package_version()}'
    return hashlib.md5(data.encode('utf-8')).hexdigest()


def get_mime_type(path: str | Path):
    """
    Return the content type for @path, preferring registered resource types.
    """
    extension = Path(path).suffix.lstrip('.').lower()
    for cls in get_processor_classes():
        if extension in cls.extensions:
            return cls.content_type
    return mimetypes.guess_type(str(path))[0] or 'application/octet-stream'


def format_http_date(moment: datetime):
    return format_datetime(moment.astimezone(timezone.utc), usegmt=True)


def is_modified_since(last_modified: datetime, if_modified_since: str | None):
    """
    Compare a file's modification time against an If-Modified-Since header
    value. Missing or unparseable headers count as modified.
    """
    if not if_modified_since:
        return True
    try:
        cached = parsedate_to_datetime(if_modified_since)
    except (TypeError, ValueError):
        return True
    if cached.tzinfo is None:
        cached = cached.replace(tzinfo=timezone.utc)
    return (last_modified - cached).total_seconds() >= MAX_DIFFERENCE_CACHED_DATE
