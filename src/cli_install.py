"""CLI entry points for feed resolution, installation and registry listing."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from constants import ExitCodes, LocalRegistryScope
from cli_config import feed_config_from_args
from common.errors import NotFoundError
from feeds.context import CredentialContext
from feeds.resolver import ensure_connection_info
from upack.installer import PackageInstallRequest, install_package
from upack.local_registry import PackageRegistry

logger = logging.getLogger(__name__)


def run_resolve(args: Any, context: CredentialContext) -> int:
    """Print the resolved feed configuration with secrets masked."""
    if getattr(args, "LIST_SOURCES", False):
        for name in context.package_source_names():
            print(name)
        return ExitCodes.SUCCESS.value
    config = ensure_connection_info(feed_config_from_args(args), context)
    print(json.dumps(config.redacted(), indent=2))
    return ExitCodes.SUCCESS.value


def run_install(args: Any, context: CredentialContext) -> int:
    """Install the requested package; errors propagate to the caller."""
    request = PackageInstallRequest(
        feed=feed_config_from_args(args),
        name=args.NAME,
        version=args.VERSION,
        group=getattr(args, "GROUP", None),
    )
    scope = LocalRegistryScope(getattr(args, "REGISTRY", LocalRegistryScope.NONE.value))
    record = asyncio.run(install_package(request, args.TARGET_DIR, scope, context=context))
    logger.info("Installed %s %s to %s", record.name, record.version, record.install_path)
    return ExitCodes.SUCCESS.value


def run_list_installed(args: Any) -> int:
    """Print the records of a local registry as JSON.

    With ``--name`` only the most recent installation of that package is
    printed; an unknown package is a not-found error.
    """
    registry = PackageRegistry.for_scope(LocalRegistryScope(args.REGISTRY))
    name = getattr(args, "NAME", None)
    if name:
        group = getattr(args, "GROUP", None)
        record = registry.find_installed(name, group)
        if record is None:
            raise NotFoundError("Installed package", f"{group}/{name}" if group else name)
        print(json.dumps(record.to_json(), indent=2))
        return ExitCodes.SUCCESS.value
    records = [r.to_json() for r in registry.get_installed_packages()]
    print(json.dumps(records, indent=2))
    return ExitCodes.SUCCESS.value
