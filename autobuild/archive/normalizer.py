"""
Archive normalizer — rewrites ZIP entry paths to forward-slash form.

ZIPs produced by some Windows tools store entry names with backslash separators,
which unpack as flat files named ``dir\\file`` on POSIX runners. The normalizer
parses the container, rewrites every file entry's path, drops directory records
(directories are implied by the file paths), and emits a fresh DEFLATE container.

Behavior:
- Entry contents are copied byte-for-byte; CRCs are verified on read.
- Timestamps, creator system and external attributes are carried over from the
  source entry, so identical input always yields identical output.
- Two entries that normalize to the same path are not merged: the later entry in
  the source archive wins and the earlier one is discarded (logged as a warning).
- Any failure raises ArchiveFormatError and no partial output is returned.
"""

import io
import logging
import zipfile
import zlib
from collections import OrderedDict
from typing import Dict, Tuple

from autobuild.common.exceptions import ArchiveFormatError

logger = logging.getLogger(__name__)

DEFAULT_COMPRESSION_LEVEL = 6

# Errors the zipfile module raises for corrupt, encrypted or unsupported input
_PARSE_ERRORS = (
    zipfile.BadZipFile,
    zipfile.LargeZipFile,
    zlib.error,
    EOFError,
    NotImplementedError,
    RuntimeError,
    ValueError,
    OSError,
)


def normalize_path(name: str) -> str:
    """Replace every backslash in an entry name with a forward slash."""
    return name.replace("\\", "/")


def _read_entries(raw: bytes) -> "OrderedDict[str, Tuple[zipfile.ZipInfo, bytes]]":
    entries: "OrderedDict[str, Tuple[zipfile.ZipInfo, bytes]]" = OrderedDict()
    with zipfile.ZipFile(io.BytesIO(raw)) as source:
        for info in source.infolist():
            path = normalize_path(info.filename)
            if info.is_dir() or path.endswith("/"):
                continue

            content = source.read(info)
            if path in entries:
                logger.warning(f"Duplicate entry after path normalization: {path} (keeping last)")
                del entries[path]
            entries[path] = (info, content)
    return entries


def _write_entries(
    entries: Dict[str, Tuple[zipfile.ZipInfo, bytes]],
    compression_level: int,
) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(
        buffer,
        mode="w",
        compression=zipfile.ZIP_DEFLATED,
        compresslevel=compression_level,
    ) as target:
        for path, (source_info, content) in entries.items():
            info = zipfile.ZipInfo(filename=path, date_time=source_info.date_time)
            info.create_system = source_info.create_system
            info.external_attr = source_info.external_attr
            info.comment = source_info.comment
            target.writestr(
                info,
                content,
                compress_type=zipfile.ZIP_DEFLATED,
                compresslevel=compression_level,
            )
    return buffer.getvalue()


def normalize(raw: bytes, compression_level: int = DEFAULT_COMPRESSION_LEVEL) -> bytes:
    """Rebuild a ZIP archive with forward-slash entry paths.

    Raises ArchiveFormatError if ``raw`` is not a readable ZIP container or
    rebuilding fails. Callers that treat normalization as best-effort should
    fall back to the original bytes on that error.
    """
    try:
        entries = _read_entries(raw)
        normalized = _write_entries(entries, compression_level)
    except _PARSE_ERRORS as e:
        raise ArchiveFormatError(str(e) or e.__class__.__name__) from e

    logger.info(f"ZIP paths fixed for Unix compatibility ({len(entries)} entries)")
    return normalized
