"""Named package sources, secure resources and credentials.

The context is the lookup surface the credential resolver consumes. It is
normally built from the ``package_sources``, ``secure_resources`` and
``credentials`` sections of the YAML configuration file.
"""
from __future__ import annotations

import base64
import binascii
import logging
import os
from typing import Any, Callable, Dict, Mapping, Optional

from common.errors import ConfigurationError
from .models import (
    Credentials,
    GenericResource,
    NoSource,
    NuGetPackageSource,
    PackageSource,
    PackageSourceReference,
    ProGetServiceCredentials,
    ProGetServiceRef,
    SecureResource,
    SecureResourceRef,
    TokenCredentials,
    UniversalPackageSource,
    UrlRef,
    UsernamePasswordCredentials,
)

logger = logging.getLogger(__name__)

SOURCE_ID_SEPARATOR = "::"


def unprotect(value: Optional[str]) -> Optional[str]:
    """Decode a stored secret.

    ``b64:<data>`` is base64-decoded, ``env:<NAME>`` is read from the
    environment, anything else is returned as-is.
    """
    if value is None:
        return None
    if value.startswith("b64:"):
        try:
            return base64.b64decode(value[4:], validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise ConfigurationError("Protected value is not valid base64.") from exc
    if value.startswith("env:"):
        name = value[4:]
        if name not in os.environ:
            raise ConfigurationError(f"Environment variable {name} referenced by a protected value is not set.")
        return os.environ[name]
    return value


def parse_package_source_id(text: Optional[str]) -> PackageSourceReference:
    """Parse ``SecureResource::x``, ``ProGetFeed::creds::feed`` or ``Url::u``.

    Blank input means no source. Any other prefix is a configuration error.
    """
    if text is None or not text.strip():
        return NoSource()
    parts = text.strip().split(SOURCE_ID_SEPARATOR)
    kind = parts[0]
    if kind == "SecureResource" and len(parts) == 2 and parts[1]:
        return SecureResourceRef(resource_name=parts[1])
    if kind == "ProGetFeed" and len(parts) == 3 and parts[1] and parts[2]:
        return ProGetServiceRef(credential_name=parts[1], feed_name=parts[2])
    if kind == "Url" and len(parts) >= 2:
        # URLs may legitimately contain "::" (IPv6 literals)
        url = SOURCE_ID_SEPARATOR.join(parts[1:])
        if url:
            return UrlRef(url=url)
    raise ConfigurationError(f"Unsupported package source format: {text}")


def _credentials_from_config(name: str, entry: Mapping[str, Any]) -> Credentials:
    kind = str(entry.get("type", "")).lower()
    if kind in ("usernamepassword", "username_password"):
        return UsernamePasswordCredentials(
            user_name=str(entry.get("username", "")),
            password=str(entry.get("password", "")),
        )
    if kind == "token":
        return TokenCredentials(token=str(entry.get("token", "")))
    if kind in ("progetservice", "proget_service", "proget"):
        return ProGetServiceCredentials(
            service_url=entry.get("service_url"),
            api_key=entry.get("api_key"),
            user_name=entry.get("username"),
            password=entry.get("password"),
        )
    raise ConfigurationError(f"Credentials {name} have unsupported type {entry.get('type')!r}.")


def _resource_from_config(name: str, entry: Mapping[str, Any]) -> SecureResource:
    kind = str(entry.get("type", ""))
    credential_name = entry.get("credentials")
    if kind.lower() in ("universalpackagesource", "upack"):
        return UniversalPackageSource(name=name, credential_name=credential_name,
                                      api_endpoint_url=str(entry.get("url", "")))
    if kind.lower() in ("nugetpackagesource", "nuget"):
        return NuGetPackageSource(name=name, credential_name=credential_name,
                                  api_endpoint_url=str(entry.get("url", "")))
    props = {k: str(v) for k, v in entry.items() if k not in ("type", "credentials")}
    return GenericResource(name=name, credential_name=credential_name,
                           resource_type=kind or "Generic", properties=props)


class CredentialContext:
    """Lookup of package sources, secure resources and credentials by name."""

    def __init__(
        self,
        package_sources: Optional[Dict[str, PackageSource]] = None,
        secure_resources: Optional[Dict[str, SecureResource]] = None,
        credentials: Optional[Dict[str, Credentials]] = None,
        unprotect_func: Callable[[Optional[str]], Optional[str]] = unprotect,
    ):
        self._package_sources = dict(package_sources or {})
        self._secure_resources = dict(secure_resources or {})
        self._credentials = dict(credentials or {})
        self.unprotect = unprotect_func

    @classmethod
    def from_config(cls, config: Optional[Mapping[str, Any]]) -> "CredentialContext":
        """Build a context from the parsed YAML configuration mapping."""
        config = config or {}
        sources: Dict[str, PackageSource] = {}
        for name, text in (config.get("package_sources") or {}).items():
            sources[name] = PackageSource(name=name, source_id=parse_package_source_id(text))
        resources = {
            name: _resource_from_config(name, entry or {})
            for name, entry in (config.get("secure_resources") or {}).items()
        }
        creds = {
            name: _credentials_from_config(name, entry or {})
            for name, entry in (config.get("credentials") or {}).items()
        }
        logger.debug(
            "Loaded %d package source(s), %d secure resource(s), %d credential(s)",
            len(sources), len(resources), len(creds),
        )
        return cls(sources, resources, creds)

    def get_package_source(self, name: str) -> Optional[PackageSource]:
        return self._package_sources.get(name)

    def get_secure_resource(self, name: str) -> Optional[SecureResource]:
        return self._secure_resources.get(name)

    def get_credentials(self, name: Optional[str]) -> Optional[Credentials]:
        if not name:
            return None
        return self._credentials.get(name)

    def package_source_names(self):
        return sorted(self._package_sources)
