"""Build a universal package from a directory.

Conditions that mean "nothing to build" (output already exists without
overwrite, missing source directory, masks matching nothing) are logged and
return None instead of raising.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Iterable, Mapping, Optional

from constants import Constants
from common.errors import BuildError
from common.logging_utils import Timer
from .archive import UniversalPackageBuilder
from .identity import PackageIdentity
from .masks import MaskingContext, enumerate_matches
from .metadata import merge_metadata

logger = logging.getLogger(__name__)


def resolve_output_path(output: Optional[str], identity: PackageIdentity) -> str:
    """Return the archive file path for ``output``.

    A path that is an existing directory, or does not end in ``.upack``,
    is treated as a directory to hold ``<name>-<version>.upack``.
    """
    output = output or os.getcwd()
    if os.path.isdir(output) or not output.lower().endswith(Constants.PACKAGE_EXTENSION):
        return os.path.join(output, identity.file_name)
    return output


def build_package(
    source_dir: str,
    *,
    name: str,
    version: str,
    group: Optional[str] = None,
    includes: Optional[Iterable[str]] = None,
    excludes: Optional[Iterable[str]] = None,
    metadata: Optional[Mapping[str, Any]] = None,
    output: Optional[str] = None,
    overwrite: bool = False,
) -> Optional[PackageIdentity]:
    """Create a package from ``source_dir``.

    Returns:
        The package identity, or None when there was nothing to build.

    Raises:
        ConfigurationError: invalid identity or metadata (before any file is touched).
        BuildError: writing the archive failed; the partial file is kept.
    """
    identity = PackageIdentity.create(group, name, version)
    mask = MaskingContext(includes, excludes)

    output_file = resolve_output_path(output, identity)
    logger.debug("Package file name: %s", output_file)
    logger.debug("Source directory: %s", source_dir)

    if not overwrite and os.path.exists(output_file):
        logger.error("%s already exists and overwrite is set to false.", output_file)
        return None

    if not os.path.isdir(source_dir):
        logger.warning("Source directory %s does not exist.", source_dir)
        return None

    matches = {entry.full_path for entry in enumerate_matches(source_dir, mask)}
    if not matches:
        logger.warning("Nothing was captured in %s using the specified mask.", source_dir)
        return None

    package_metadata = merge_metadata(identity, metadata)

    parent = os.path.dirname(output_file)
    if parent:
        os.makedirs(parent, exist_ok=True)

    logger.debug("Adding %d items to package...", len(matches))
    try:
        with Timer() as t:
            stream = open(output_file, "wb" if overwrite else "xb")  # pylint: disable=consider-using-with
            with UniversalPackageBuilder(stream, package_metadata) as package:
                package.add_contents(source_dir, "", mask.recurse, matches.__contains__)
    except FileExistsError:
        logger.error("%s already exists and overwrite is set to false.", output_file)
        return None
    except OSError as exc:
        raise BuildError(f"Could not write package {identity} to {output_file}: {exc}") from exc

    logger.info("Package created: %s (%d entries, %d ms).", output_file, package.entry_count, t.duration_ms())
    return identity
