"""Package identity: group, name and semantic version."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

import semantic_version

from constants import Constants
from common.errors import ConfigurationError

_NAME_RE = re.compile(r"[0-9A-Za-z\-._]{1,50}")
_GROUP_RE = re.compile(r"[0-9A-Za-z\-._]{1,250}")


def is_valid_name(name: Optional[str]) -> bool:
    return bool(name) and _NAME_RE.fullmatch(name) is not None and name not in (".", "..")


def is_valid_group(group: Optional[str]) -> bool:
    return bool(group) and _GROUP_RE.fullmatch(group) is not None and group not in (".", "..")


def parse_version(text: Optional[str]) -> Optional[semantic_version.Version]:
    """Parse a strict three-part semantic version, or return None."""
    if not text:
        return None
    try:
        return semantic_version.Version(text.strip())
    except ValueError:
        return None


@dataclass(frozen=True)
class PackageIdentity:
    """A validated universal package identity."""
    name: str
    version: semantic_version.Version
    group: Optional[str] = None

    @classmethod
    def create(cls, group: Optional[str], name: Optional[str], version: Optional[str]) -> "PackageIdentity":
        """Validate raw values and build an identity.

        Raises:
            ConfigurationError: missing name/version, bad group or name
                characters, or a version that is not semantic.
        """
        if not name:
            raise ConfigurationError('Missing "Name" argument.')
        if not version:
            raise ConfigurationError('Missing "Version" argument.')
        if group and not is_valid_group(group):
            raise ConfigurationError(f"Invalid package group specified: {group!r}.")
        if not is_valid_name(name):
            raise ConfigurationError(f"Invalid package name specified: {name!r}.")
        parsed = parse_version(version)
        if parsed is None:
            raise ConfigurationError(f"Specified package version is not a valid semantic version: {version!r}.")
        return cls(name=name, version=parsed, group=group or None)

    @property
    def full_name(self) -> str:
        return f"{self.group}/{self.name}" if self.group else self.name

    @property
    def file_name(self) -> str:
        """Default archive file name, ``<name>-<version>.upack``."""
        return f"{self.name}-{self.version}{Constants.PACKAGE_EXTENSION}"

    def __str__(self) -> str:
        return f"{self.full_name} {self.version}"
