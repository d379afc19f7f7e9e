"""
Zip container for pack archives.

Members are written with a fixed timestamp and fixed permissions so the
same members always produce the same bytes.
"""

from __future__ import annotations
from typing import Iterable, Tuple
import io
import zipfile
import zlib


STORY_JSON = "story.json"
ASSETS_DIR = "assets/"
THUMBNAIL = "thumbnail.png"

# Earliest timestamp the zip format can represent
FIXED_DATE_TIME = (1980, 1, 1, 0, 0, 0)

# Raised while inflating a damaged or truncated member
READ_ERRORS = (zipfile.BadZipFile, zlib.error, EOFError, OSError)


def write_zip(members: Iterable[Tuple[str, bytes]], compress: bool = True) -> bytes:
    """Pack (name, bytes) members, in the given order, into zip bytes."""
    method = zipfile.ZIP_DEFLATED if compress else zipfile.ZIP_STORED
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", method) as archive:
        for name, data in members:
            info = zipfile.ZipInfo(name, date_time=FIXED_DATE_TIME)
            info.compress_type = method
            info.external_attr = 0o644 << 16
            archive.writestr(info, data)
    return buffer.getvalue()


def list_members(data: bytes) -> Tuple[str, ...]:
    """Member names of a zip. Raises zipfile.BadZipFile on garbage."""
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        return tuple(archive.namelist())


def read_member(data: bytes, name: str) -> bytes:
    """
    Read one member. Opens its own handle so several members can be read
    from worker threads at once.
    """
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        return archive.read(name)
