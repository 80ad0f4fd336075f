"""CLI entry point for building packages."""

from __future__ import annotations

import logging
from typing import Any

from constants import ExitCodes
from cli_config import parse_metadata_pairs
from upack.builder import build_package

logger = logging.getLogger(__name__)


def run_pack(args: Any) -> int:
    """Build a package from parsed CLI arguments and return an exit code.

    A skipped build (output exists, missing source, nothing captured) exits
    successfully unless ``--fail-on-skip`` was given.
    """
    identity = build_package(
        args.SOURCE_DIR,
        group=getattr(args, "GROUP", None),
        name=args.NAME,
        version=args.VERSION,
        includes=getattr(args, "INCLUDES", None),
        excludes=getattr(args, "EXCLUDES", None),
        metadata=parse_metadata_pairs(getattr(args, "METADATA", []) or []),
        output=getattr(args, "OUTPUT", None),
        overwrite=bool(getattr(args, "OVERWRITE", False)),
    )
    if identity is None:
        if getattr(args, "FAIL_ON_SKIP", False):
            return ExitCodes.SKIPPED.value
        return ExitCodes.SUCCESS.value
    print(f"{identity.full_name} {identity.version}")
    return ExitCodes.SUCCESS.value
