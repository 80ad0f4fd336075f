"""Data models for feed configuration, package sources and credentials."""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Dict, Optional, Union

from common.logging_utils import redact


@dataclass
class FeedConfiguration:
    """Connection details for a feed.

    Fields left as None are filled in by the credential resolver; values set
    by the caller are never overwritten by a package source.
    """
    api_url: Optional[str] = None
    feed_name: Optional[str] = None
    user_name: Optional[str] = None
    password: Optional[str] = None
    api_key: Optional[str] = None
    package_source_name: Optional[str] = None
    feed_url: Optional[str] = None

    def redacted(self) -> Dict[str, Optional[str]]:
        """Return a dict view safe for printing and logging."""
        view: Dict[str, Optional[str]] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in ("password", "api_key") and value:
                value = redact(value)
            view[f.name] = value
        return view


# Package source identifiers. The union below is closed: the resolver
# dispatches on exactly these four shapes.

@dataclass(frozen=True)
class SecureResourceRef:
    """Source backed by a named secure resource (feed URL plus credentials)."""
    resource_name: str


@dataclass(frozen=True)
class ProGetServiceRef:
    """Source backed by named service credentials and a feed on that service."""
    credential_name: str
    feed_name: str


@dataclass(frozen=True)
class UrlRef:
    """Source given directly as an API URL."""
    url: str


@dataclass(frozen=True)
class NoSource:
    """No package source configured."""


PackageSourceReference = Union[SecureResourceRef, ProGetServiceRef, UrlRef, NoSource]


@dataclass(frozen=True)
class PackageSource:
    """A named package source as configured."""
    name: str
    source_id: PackageSourceReference


# Credentials

@dataclass(frozen=True)
class UsernamePasswordCredentials:
    user_name: str
    password: str


@dataclass(frozen=True)
class TokenCredentials:
    token: str


@dataclass(frozen=True)
class ProGetServiceCredentials:
    """Service-level credentials: service URL plus API key and/or login."""
    service_url: Optional[str] = None
    api_key: Optional[str] = None
    user_name: Optional[str] = None
    password: Optional[str] = None


Credentials = Union[UsernamePasswordCredentials, TokenCredentials, ProGetServiceCredentials]


# Secure resources

@dataclass(frozen=True)
class SecureResource:
    """A named connection definition; ``credential_name`` points at Credentials."""
    name: str
    credential_name: Optional[str] = None


@dataclass(frozen=True)
class UniversalPackageSource(SecureResource):
    api_endpoint_url: str = ""


@dataclass(frozen=True)
class NuGetPackageSource(SecureResource):
    api_endpoint_url: str = ""


@dataclass(frozen=True)
class GenericResource(SecureResource):
    """Any resource type this project cannot use as a feed (git repos, etc.)."""
    resource_type: str = "Generic"
    properties: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)
