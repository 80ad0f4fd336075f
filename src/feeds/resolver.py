"""Resolve a package source reference into a complete feed configuration.

Resolution runs in two stages:

1. The package source is dispatched on its identifier format and fills in
   whatever the caller left empty (caller-supplied values always win).
2. If the API URL or feed name is still missing, the configuration's
   ``feed_url`` is parsed as a fallback and both fields are taken from it.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional, Union

from common.errors import ConfigurationError, NotFoundError
from common.logging_utils import extra_context, is_debug_enabled
from .context import CredentialContext
from .locator import parse_feed_url
from .models import (
    FeedConfiguration,
    NoSource,
    NuGetPackageSource,
    PackageSourceReference,
    ProGetServiceCredentials,
    ProGetServiceRef,
    SecureResourceRef,
    TokenCredentials,
    UniversalPackageSource,
    UrlRef,
    UsernamePasswordCredentials,
)

logger = logging.getLogger(__name__)


def fill_if_absent(config: FeedConfiguration, **values: Union[Optional[str], Callable[[], Optional[str]]]) -> None:
    """Set each named field on ``config`` only if it is currently empty.

    A callable value is only invoked for fields that will actually be set,
    so protected secrets are decoded on demand.
    """
    for name, value in values.items():
        if not getattr(config, name):
            setattr(config, name, value() if callable(value) else value)


def lookup_package_source(name: Optional[str], context: CredentialContext) -> PackageSourceReference:
    """Return the identifier of the named package source.

    A blank name means no source; an unknown name is an error.
    """
    if name is None or not name.strip():
        return NoSource()
    source = context.get_package_source(name)
    if source is None:
        raise NotFoundError("Package source", name)
    return source.source_id


def _apply_secure_resource(config: FeedConfiguration, ref: SecureResourceRef, context: CredentialContext) -> None:
    resource = context.get_secure_resource(ref.resource_name)
    if resource is None:
        raise NotFoundError("Secure resource", ref.resource_name)

    if isinstance(resource, (UniversalPackageSource, NuGetPackageSource)):
        endpoint = resource.api_endpoint_url
    else:
        raise ConfigurationError(
            f"Secure resource {ref.resource_name} was not a supported type "
            f"({getattr(resource, 'resource_type', type(resource).__name__)})."
        )

    location = parse_feed_url(endpoint)
    if location is None:
        raise ConfigurationError(f"Secure resource {ref.resource_name} does not refer to a valid feed URL.")

    fill_if_absent(config, api_url=location.service_root, feed_name=location.feed_name)

    credentials = context.get_credentials(resource.credential_name)
    if credentials is None and resource.credential_name:
        logger.warning(
            "Credentials %s referenced by secure resource %s were not found; continuing without them.",
            resource.credential_name, ref.resource_name,
        )
    if isinstance(credentials, UsernamePasswordCredentials):
        config.user_name = credentials.user_name
        config.password = context.unprotect(credentials.password)
    elif isinstance(credentials, TokenCredentials):
        config.api_key = context.unprotect(credentials.token)


def _apply_service_credentials(config: FeedConfiguration, ref: ProGetServiceRef, context: CredentialContext) -> None:
    credentials = context.get_credentials(ref.credential_name)
    if credentials is None:
        raise NotFoundError(
            "Service credentials", ref.credential_name,
            f"Service credentials {ref.credential_name} not found.",
        )
    if not isinstance(credentials, ProGetServiceCredentials):
        raise ConfigurationError(f"{ref.credential_name} is not a service credential.")

    fill_if_absent(
        config,
        api_url=credentials.service_url,
        api_key=lambda: context.unprotect(credentials.api_key),
        user_name=credentials.user_name,
        password=lambda: context.unprotect(credentials.password),
        feed_name=ref.feed_name,
    )


def resolve_feed_config(
    config: FeedConfiguration,
    source_ref: PackageSourceReference,
    context: CredentialContext,
) -> FeedConfiguration:
    """Populate ``config`` in place from ``source_ref`` and return it.

    Raises:
        NotFoundError: the secure resource or service credentials are missing.
        ConfigurationError: the source is unusable, or no API URL and feed
            name can be determined.
    """
    if isinstance(source_ref, SecureResourceRef):
        _apply_secure_resource(config, source_ref, context)
    elif isinstance(source_ref, ProGetServiceRef):
        _apply_service_credentials(config, source_ref, context)
    elif isinstance(source_ref, UrlRef):
        fill_if_absent(config, api_url=source_ref.url)
    elif isinstance(source_ref, NoSource):
        pass
    else:
        raise ConfigurationError(f"Unsupported package source format: {type(source_ref).__name__}")

    if not config.api_url or not config.feed_name:
        location = parse_feed_url(config.feed_url)
        if location is None:
            raise ConfigurationError("ServiceUrl and FeedName are required.")
        config.api_url = location.service_root
        config.feed_name = location.feed_name

    if is_debug_enabled(logger):
        logger.debug(
            "Feed configuration resolved",
            extra=extra_context(
                event="resolve",
                component="resolver",
                action="resolve_feed_config",
                outcome="success",
                source=type(source_ref).__name__,
                target=config.api_url,
                feed=config.feed_name,
            ),
        )
    return config


def ensure_connection_info(config: FeedConfiguration, context: CredentialContext) -> FeedConfiguration:
    """Resolve ``config`` using its own ``package_source_name``."""
    return resolve_feed_config(config, lookup_package_source(config.package_source_name, context), context)
