"""Error taxonomy shared by the feed, build and install layers.

Skippable conditions (output already present, missing source directory,
empty mask match) are not exceptions: the operations log them and return
None so callers can treat them as "nothing to do".
"""
from __future__ import annotations

from typing import Optional


class UpackError(Exception):
    """Base class for all errors raised by this project."""


class ConfigurationError(UpackError):
    """Invalid or incomplete configuration; fatal and raised before any I/O."""


class NotFoundError(ConfigurationError):
    """A named package source, secure resource or credential does not exist."""

    def __init__(self, kind: str, name: str, message: Optional[str] = None):
        self.kind = kind
        self.name = name
        super().__init__(message or f"{kind} {name} was not found.")


class BuildError(UpackError):
    """Archive construction failed after validation succeeded."""


class TransferError(UpackError):
    """Network fetch or archive extraction failed."""


class InstallError(TransferError):
    """Package installation failed; carries the package and target path."""

    def __init__(self, message: str, *, package: Optional[str] = None, path: Optional[str] = None):
        self.package = package
        self.path = path
        details = ", ".join(
            f"{label}={value}" for label, value in (("package", package), ("path", path)) if value
        )
        super().__init__(f"{message} ({details})" if details else message)


class RegistryError(UpackError):
    """Local registry lock or write failure."""
