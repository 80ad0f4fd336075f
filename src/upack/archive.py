"""Universal package archive reader and writer.

An archive is a zip file holding a ``upack.json`` metadata block and content
entries under the ``package/`` prefix.
"""
from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
import time
import zipfile
from dataclasses import dataclass
from typing import BinaryIO, Callable, Iterator, List, Optional

from constants import Constants
from common.errors import ConfigurationError, TransferError
from .identity import PackageIdentity
from .metadata import PackageMetadata, dumps_metadata, loads_metadata

logger = logging.getLogger(__name__)

# Windows drive prefix ("C:" or "C:/..."); other colons are legal in POSIX names.
_DRIVE_RE = re.compile(r"[A-Za-z]:(?:/|\Z)")


def _member_name(relative_path: str) -> str:
    relative_path = relative_path.replace("\\", "/").strip("/")
    return Constants.CONTENT_PREFIX + relative_path


class UniversalPackageBuilder:
    """Writes a universal package to a binary stream.

    The builder owns the stream: it is closed when the builder is closed,
    including when content writing fails part way through.
    """

    def __init__(self, stream: BinaryIO, metadata: PackageMetadata):
        self._stream = stream
        try:
            self._zip = zipfile.ZipFile(
                stream, mode="w", compression=zipfile.ZIP_DEFLATED, strict_timestamps=False
            )
            self._zip.writestr(Constants.METADATA_FILE, dumps_metadata(metadata))
        except BaseException:
            stream.close()
            raise
        self._closed = False
        self.entry_count = 0

    def add_file(self, source_path: str, relative_path: str) -> None:
        self._zip.write(source_path, _member_name(relative_path))
        self.entry_count += 1

    def add_empty_directory(self, relative_path: str) -> None:
        self._zip.writestr(_member_name(relative_path) + "/", b"")
        self.entry_count += 1

    def add_contents(
        self,
        source_dir: str,
        target_prefix: str,
        recursive: bool,
        include: Callable[[str], bool],
    ) -> int:
        """Add entries under ``source_dir`` accepted by ``include``.

        ``include`` receives full paths. Accepted directories are descended
        into; other directories only when ``recursive``. Accepted directories
        with nothing written beneath them become explicit empty entries.
        Returns the number of entries written.
        """
        return self._add_directory(source_dir, target_prefix.strip("/"), recursive, include)

    def _add_directory(self, directory: str, prefix: str, recursive: bool, include: Callable[[str], bool]) -> int:
        written = 0
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
        for entry in entries:
            rel = f"{prefix}/{entry.name}" if prefix else entry.name
            accepted = include(entry.path)
            if entry.is_dir(follow_symlinks=False):
                if accepted or recursive:
                    below = self._add_directory(entry.path, rel, recursive, include)
                    if accepted and below == 0:
                        self.add_empty_directory(rel)
                        below = 1
                    written += below
            elif accepted:
                self.add_file(entry.path, rel)
                written += 1
        return written

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._zip.close()
        finally:
            self._stream.close()

    def __enter__(self) -> "UniversalPackageBuilder":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


@dataclass(frozen=True)
class ContentEntry:
    """A content entry inside a package."""
    path: str
    is_directory: bool
    size: int


def _safe_target(target_dir: str, relative_path: str) -> str:
    """Join an entry path under ``target_dir``, refusing escapes."""
    if relative_path.startswith("/") or _DRIVE_RE.match(relative_path):
        raise TransferError(f"Package entry {relative_path!r} has an absolute path.")
    parts = [p for p in relative_path.split("/") if p]
    if any(p == ".." for p in parts):
        raise TransferError(f"Package entry {relative_path!r} escapes the target directory.")
    return os.path.join(target_dir, *parts)


class UniversalPackage:
    """Read access to a universal package held in a seekable stream."""

    def __init__(self, stream: BinaryIO):
        try:
            self._zip = zipfile.ZipFile(stream, mode="r")
        except zipfile.BadZipFile as exc:
            raise TransferError(f"Package is not a valid archive: {exc}") from exc
        try:
            raw = self._zip.read(Constants.METADATA_FILE)
            self.metadata: PackageMetadata = loads_metadata(raw.decode("utf-8-sig"))
            self.identity = PackageIdentity.create(
                self._scalar("group"), self._scalar("name"), self._scalar("version")
            )
        except KeyError as exc:
            self._zip.close()
            raise TransferError(f"Package does not contain {Constants.METADATA_FILE}.") from exc
        except (ConfigurationError, UnicodeDecodeError) as exc:
            self._zip.close()
            raise TransferError(f"Package metadata is invalid: {exc}") from exc

    def _scalar(self, key: str) -> Optional[str]:
        value = self.metadata.get(key)
        return value if isinstance(value, str) else None

    @property
    def group(self) -> Optional[str]:
        return self.identity.group

    @property
    def name(self) -> str:
        return self.identity.name

    @property
    def version(self):
        return self.identity.version

    def _content_infos(self) -> Iterator[zipfile.ZipInfo]:
        for info in self._zip.infolist():
            name = info.filename.replace("\\", "/")
            if name.startswith(Constants.CONTENT_PREFIX) and len(name) > len(Constants.CONTENT_PREFIX):
                yield info

    @property
    def entries(self) -> List[ContentEntry]:
        """Content entries with paths relative to the package root."""
        result = []
        for info in self._content_infos():
            rel = info.filename.replace("\\", "/")[len(Constants.CONTENT_PREFIX):]
            result.append(ContentEntry(path=rel.rstrip("/"), is_directory=info.is_dir(), size=info.file_size))
        return result

    def iter_extract(self, target_dir: str) -> Iterator[str]:
        """Extract content entries one at a time, yielding each written path.

        Each file is written to a temporary name beside its destination and
        renamed into place, so a failed entry never leaves a partial file.
        Entries extracted before a failure stay on disk.
        """
        os.makedirs(target_dir, exist_ok=True)
        for info in self._content_infos():
            rel = info.filename.replace("\\", "/")[len(Constants.CONTENT_PREFIX):]
            dest = _safe_target(target_dir, rel)
            try:
                if info.is_dir():
                    os.makedirs(dest, exist_ok=True)
                else:
                    self._extract_file(info, dest)
            except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
                raise TransferError(f"Could not extract {rel} to {dest}: {exc}") from exc
            yield dest

    def _extract_file(self, info: zipfile.ZipInfo, dest: str) -> None:
        os.makedirs(os.path.dirname(dest), exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".upack-", dir=os.path.dirname(dest))
        try:
            with os.fdopen(fd, "wb") as out, self._zip.open(info) as src:
                shutil.copyfileobj(src, out)
            os.replace(tmp_path, dest)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        os.chmod(dest, (info.external_attr >> 16) & 0o777 or 0o644)
        mtime = time.mktime(info.date_time + (0, 0, -1))
        os.utime(dest, (mtime, mtime))

    def extract_content_items(self, target_dir: str) -> int:
        """Extract every content entry; returns the number of entries written."""
        return sum(1 for _ in self.iter_extract(target_dir))

    def close(self) -> None:
        self._zip.close()

    def __enter__(self) -> "UniversalPackage":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
