"""Configuration loading and CLI overrides.

The YAML file supplies named package sources, secure resources, credentials
and registry locations. CLI flags pre-populate the feed configuration, which
gives them precedence over anything a package source would fill in.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

import yaml

from constants import Constants
from common.errors import ConfigurationError
from feeds.context import CredentialContext
from feeds.models import FeedConfiguration

logger = logging.getLogger(__name__)


def load_config(config_path: Optional[str]) -> Dict[str, Any]:
    """Load the YAML configuration file.

    A missing file yields an empty configuration with a warning; a file that
    cannot be parsed is a configuration error.
    """
    config_path = config_path or os.environ.get(Constants.ENV_CONFIG)
    if not config_path:
        return {}

    if not os.path.isfile(config_path):
        logger.warning("Config file not found: %s", config_path)
        return {}

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load config {config_path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config {config_path} must contain a mapping at the top level.")
    return data


def apply_registry_overrides(config: Dict[str, Any]) -> None:
    """Apply registry root locations from the ``registry`` section."""
    section = config.get("registry") or {}
    if section.get("machine_root"):
        Constants.MACHINE_REGISTRY_ROOT = str(section["machine_root"])
    if section.get("user_root"):
        Constants.USER_REGISTRY_ROOT = str(section["user_root"])


def build_context(config: Dict[str, Any]) -> CredentialContext:
    return CredentialContext.from_config(config)


def feed_config_from_args(args) -> FeedConfiguration:
    """Build a feed configuration pre-populated from CLI flags."""
    return FeedConfiguration(
        api_url=getattr(args, "API_URL", None),
        feed_name=getattr(args, "FEED_NAME", None),
        user_name=getattr(args, "USER_NAME", None),
        password=getattr(args, "PASSWORD", None),
        api_key=getattr(args, "API_KEY", None),
        package_source_name=getattr(args, "SOURCE", None),
        feed_url=getattr(args, "FEED_URL", None),
    )


def parse_metadata_pairs(pairs: List[str]) -> Dict[str, Any]:
    """Turn ``KEY=VALUE`` strings into a mapping.

    Values starting with ``[`` or ``{`` are parsed as YAML flow collections,
    so ``tags=[a, b]`` gives a list; anything else stays a string.
    """
    metadata: Dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise ConfigurationError(f"Metadata entry {pair!r} is not in KEY=VALUE format.")
        key, raw = pair.split("=", 1)
        key = key.strip()
        if not key:
            raise ConfigurationError(f"Metadata entry {pair!r} has an empty key.")
        value: Any = raw
        if raw.strip().startswith(("[", "{")):
            try:
                value = yaml.safe_load(raw)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Metadata entry {key!r} is not a valid list or mapping: {e}") from e
        metadata[key] = value
    return metadata
