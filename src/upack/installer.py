"""Download a package from a feed, extract it and record the installation."""
from __future__ import annotations

import asyncio
import logging
import os
import tempfile
import urllib.parse
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from constants import Constants, LocalRegistryScope
from common.errors import ConfigurationError, InstallError, TransferError
from common.logging_utils import Timer
from feeds.client import FeedClient
from feeds.context import CredentialContext
from feeds.models import FeedConfiguration
from feeds.resolver import ensure_connection_info
from .archive import UniversalPackage
from .local_registry import InstalledPackageRecord, PackageRegistry

logger = logging.getLogger(__name__)


@dataclass
class PackageInstallRequest:
    """What to install and where it comes from."""
    feed: FeedConfiguration
    name: str
    version: str
    group: Optional[str] = None


def installed_feed_url(config: FeedConfiguration) -> str:
    """Feed URL recorded in the registry: ``<api>/upack/<escaped feed>``."""
    feed = urllib.parse.quote(config.feed_name or "", safe="")
    return f"{(config.api_url or '').rstrip('/')}/upack/{feed}"


async def install_package(
    request: PackageInstallRequest,
    target_dir: str,
    registry_scope: LocalRegistryScope = LocalRegistryScope.NONE,
    *,
    context: Optional[CredentialContext] = None,
    client: Optional[FeedClient] = None,
    registry: Optional[PackageRegistry] = None,
) -> InstalledPackageRecord:
    """Install a package into ``target_dir``.

    With a ``context`` the feed configuration is resolved first. ``registry``
    overrides the registry chosen by ``registry_scope``. Cancelling
    the calling task stops the download, extraction or registry wait; files
    already extracted are left in place.

    Raises:
        ConfigurationError: the feed cannot be resolved.
        InstallError: download or extraction failed.
        RegistryError: the registry could not be locked or written.
    """
    if context is not None:
        ensure_connection_info(request.feed, context)
    if not request.feed.api_url or not request.feed.feed_name:
        raise ConfigurationError("ServiceUrl and FeedName are required.")

    label = f"{request.group + '/' if request.group else ''}{request.name} {request.version}"
    owns_client = client is None
    client = client or FeedClient(request.feed)
    try:
        if request.version.lower() == "latest":
            latest = await asyncio.to_thread(client.latest_version, request.name, request.group)
            if latest is None:
                raise InstallError("No stable version is available on the feed", package=request.name)
            logger.info("Latest version of %s is %s.", request.name, latest)
            request.version = latest
            label = f"{request.group + '/' if request.group else ''}{request.name} {latest}"

        with tempfile.TemporaryFile(prefix="upack-") as spool:
            with Timer() as t:
                try:
                    size = await client.download_to(spool, request.name, request.version, request.group)
                except TransferError as exc:
                    raise InstallError(str(exc), package=label) from exc
            logger.debug("Package downloaded (%d bytes in %d ms).", size, t.duration_ms())

            logger.info("Installing package to %s...", target_dir)
            spool.seek(0)
            try:
                with UniversalPackage(spool) as package:
                    for _ in package.iter_extract(target_dir):
                        await asyncio.sleep(0)
                    identity = package.identity
            except (TransferError, OSError) as exc:
                raise InstallError(str(exc), package=label, path=target_dir) from exc
        logger.info("Package installed.")
    finally:
        if owns_client:
            await client.stop()

    record = InstalledPackageRecord(
        group=identity.group,
        name=identity.name,
        version=str(identity.version),
        install_path=os.path.abspath(target_dir),
        feed_url=installed_feed_url(request.feed),
        installation_date=datetime.now().astimezone().isoformat(),
        installed_using=Constants.INSTALLED_USING,
    )

    if registry_scope != LocalRegistryScope.NONE:
        logger.debug("Recording installation in package registry...")
        registry = registry or PackageRegistry.for_scope(registry_scope)
        async with registry.locked():
            registry.register(record)

    logger.info("Package installation complete.")
    return record
