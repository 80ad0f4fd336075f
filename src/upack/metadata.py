"""Package metadata: identity fields plus caller-supplied extra keys.

Metadata values form a closed variant: a string, a list of values, or a
string-keyed mapping of values. Scalars such as numbers and booleans are
converted to strings on the way in.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from constants import Constants
from common.errors import ConfigurationError
from .identity import PackageIdentity

logger = logging.getLogger(__name__)

MetadataValue = Union[str, List["MetadataValue"], Dict[str, "MetadataValue"]]
PackageMetadata = Dict[str, MetadataValue]


def to_metadata_value(value: Any) -> MetadataValue:
    """Convert a runtime value into the metadata variant.

    Raises:
        ConfigurationError: for values with no metadata representation.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, Mapping):
        return {str(k): to_metadata_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_metadata_value(v) for v in value]
    raise ConfigurationError(f"Unsupported metadata value of type {type(value).__name__}.")


def to_json_value(value: MetadataValue) -> Any:
    """Serialize one metadata value to plain JSON-compatible data."""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return [to_json_value(v) for v in value]
    if isinstance(value, dict):
        return {k: to_json_value(v) for k, v in value.items()}
    raise TypeError(f"Not a metadata value: {type(value).__name__}")


def is_reserved_key(key: str) -> bool:
    return key.lower() in Constants.RESERVED_METADATA_KEYS


def merge_metadata(identity: PackageIdentity, extra: Optional[Mapping[str, Any]] = None) -> PackageMetadata:
    """Seed metadata from the identity and merge ``extra`` on top.

    Keys equal to group/name/version in any case are ignored with a warning.
    """
    metadata: PackageMetadata = {}
    if identity.group:
        metadata["group"] = identity.group
    metadata["name"] = identity.name
    metadata["version"] = str(identity.version)

    if extra:
        logger.debug("Additional metadata is specified.")
        for key, value in extra.items():
            if is_reserved_key(key):
                logger.warning('Property "%s" specified in metadata will be ignored.', key)
                continue
            logger.debug('Setting "%s" = %r...', key, value)
            metadata[key] = to_metadata_value(value)
    return metadata


def dumps_metadata(metadata: PackageMetadata) -> str:
    """Render metadata as the archive's JSON metadata block."""
    return json.dumps({k: to_json_value(v) for k, v in metadata.items()}, indent=2)


def loads_metadata(text: str) -> PackageMetadata:
    """Parse a JSON metadata block.

    Raises:
        ConfigurationError: when the block is not a JSON object.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Package metadata is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError("Package metadata must be a JSON object.")
    return {str(k): to_metadata_value(v) for k, v in data.items() if v is not None}
