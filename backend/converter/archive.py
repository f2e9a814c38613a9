"""In-memory zip writer for batch results."""
import io
import logging
import zipfile
from pathlib import PurePath

from converter.conversion.errors import ArchiveError

logger = logging.getLogger("converter.archive")


def _sanitize_entry_name(name: str) -> str:
    """Safe entry name for zip (no path separators, no empty)."""
    base = PurePath(name.replace("\\", "/")).name
    s = "".join(c for c in base if c.isalnum() or c in "._- ()").strip() or "file"
    return s[:128]


class ZipArchive:
    """add_entry(name, data) in order, then finalize() once for the archive bytes."""

    def __init__(self, compression: int = zipfile.ZIP_DEFLATED):
        self._buffer = io.BytesIO()
        self._zip = zipfile.ZipFile(self._buffer, "w", compression)
        self._names: set[str] = set()
        self._finalized = False

    def _unique(self, name: str) -> str:
        if name not in self._names:
            return name
        path = PurePath(name)
        n = 1
        while f"{path.stem} ({n}){path.suffix}" in self._names:
            n += 1
        return f"{path.stem} ({n}){path.suffix}"

    def add_entry(self, name: str, data: bytes) -> str:
        """Write one entry; returns the name used (duplicates get a ' (n)' suffix)."""
        if self._finalized:
            raise ArchiveError("Archive already finalized", filename=name)
        arcname = self._unique(_sanitize_entry_name(name))
        try:
            self._zip.writestr(arcname, data)
        except (OSError, ValueError, zipfile.LargeZipFile) as e:
            raise ArchiveError(f"Could not add {arcname} to archive: {e}", filename=name) from e
        self._names.add(arcname)
        return arcname

    def finalize(self) -> bytes:
        if not self._finalized:
            try:
                self._zip.close()
            except (OSError, ValueError) as e:
                raise ArchiveError(f"Could not finalize archive: {e}") from e
            self._finalized = True
            logger.info("Created zip with %s entries (%s bytes)", len(self._names), self._buffer.getbuffer().nbytes)
        return self._buffer.getvalue()
