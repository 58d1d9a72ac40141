"""
Bounded read access to a DOCX (OPC zip) package.

Limits are checked against the zip central directory before anything is
inflated: entry count first, then a running sum of compressed sizes against
twice the unzip budget. The compressed-size check is a cheap heuristic, not a
guarantee on inflated bytes, so every read is additionally capped per entry and
in aggregate.
"""

import zipfile
import zlib
from io import BytesIO
from typing import Dict, List, Optional

import structlog

from trackdiff.errors import ArchiveError
from trackdiff.models import ResourceLimits

logger = structlog.get_logger(__name__)

# zlib.error: damaged deflate data. RuntimeError: encrypted entry.
# NotImplementedError: unsupported compression method.
_READ_ERRORS = (
    zipfile.BadZipFile,
    zipfile.LargeZipFile,
    zlib.error,
    RuntimeError,
    NotImplementedError,
    OSError,
    EOFError,
)


class Package:
    def __init__(self, archive: zipfile.ZipFile, limits: ResourceLimits):
        self._zip = archive
        self.limits = limits
        self._entries: Dict[str, zipfile.ZipInfo] = {}
        self.unzipped_bytes = 0

        for info in archive.infolist():
            if info.filename in self._entries:
                raise ArchiveError(f"Duplicate entry in package: {info.filename}")
            self._entries[info.filename] = info

    @property
    def compressed_size(self) -> int:
        return sum(info.compress_size for info in self._entries.values())

    def names(self) -> List[str]:
        return list(self._entries)

    def __contains__(self, path: str) -> bool:
        return path in self._entries

    def read_part(self, path: str) -> Optional[bytes]:
        """
        Returns the inflated bytes of a part, or None when the package has no such entry.
        Never inflates more than max_entry_size + 1 bytes for a single read.
        """
        info = self._entries.get(path)
        if info is None:
            return None

        cap = self.limits.max_entry_size
        if info.file_size > cap:
            raise ArchiveError(f"Part {path} declares {info.file_size} bytes, over the {cap} byte entry cap")

        try:
            with self._zip.open(info) as handle:
                data = handle.read(cap + 1)
        except _READ_ERRORS as e:
            raise ArchiveError(f"Could not read {path}: {e}") from e

        if len(data) > cap:
            raise ArchiveError(f"Part {path} inflates beyond the {cap} byte entry cap")

        self.unzipped_bytes += len(data)
        if self.unzipped_bytes > self.limits.max_total_unzipped_bytes:
            raise ArchiveError(
                f"Package exceeds the {self.limits.max_total_unzipped_bytes} byte unzip cap while reading {path}"
            )
        return data

    def close(self):
        self._zip.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def open_package(data: bytes, limits: Optional[ResourceLimits] = None) -> Package:
    """
    Opens a package from raw bytes, enforcing the entry-count and approximate-size
    limits before any part is decompressed.
    """
    limits = limits or ResourceLimits()

    try:
        archive = zipfile.ZipFile(BytesIO(data))
    except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError) as e:
        raise ArchiveError(f"Not a valid DOCX package: {e}") from e

    try:
        infos = archive.infolist()
        if len(infos) > limits.max_entries:
            raise ArchiveError(f"DOCX has too many entries ({len(infos)} > {limits.max_entries})")

        approx_total = 0
        budget = limits.max_total_unzipped_bytes * 2
        for info in infos:
            approx_total += info.compress_size
            if approx_total > budget:
                raise ArchiveError("DOCX likely exceeds unzip cap")

        package = Package(archive, limits)
    except ArchiveError:
        archive.close()
        raise

    logger.debug(f"Opened package with {len(infos)} entries ({approx_total} compressed bytes)")
    return package
