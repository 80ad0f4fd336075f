"""Constants used in the project."""

import os
from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    CONFIG_ERROR = 3
    NOT_FOUND = 4
    REGISTRY_ERROR = 5
    SKIPPED = 6


class LocalRegistryScope(Enum):
    """Where an installation is recorded.

    Args:
        Enum (string): Registry scope names accepted on the command line.
    """

    NONE = "none"
    MACHINE = "machine"
    USER = "user"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    PRODUCT_NAME = "upackctl"
    PRODUCT_VERSION = "1.0.0"
    INSTALLED_USING = f"{PRODUCT_NAME}/{PRODUCT_VERSION}"

    PACKAGE_EXTENSION = ".upack"
    METADATA_FILE = "upack.json"
    CONTENT_PREFIX = "package/"
    RESERVED_METADATA_KEYS = ("group", "name", "version")
    DEFAULT_INCLUDES = ["*"]

    REGISTRY_FILE = "installedPackages.json"
    REGISTRY_LOCK_FILE = ".lock"
    MACHINE_REGISTRY_ROOT = os.environ.get("UPACKCTL_MACHINE_REGISTRY", "/var/lib/upack")
    USER_REGISTRY_ROOT = os.path.join("~", ".upack")
    REGISTRY_LOCK_POLL_SEC = 0.1

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    ENV_LOG_LEVEL = "UPACKCTL_LOG_LEVEL"
    ENV_CONFIG = "UPACKCTL_CONFIG"

    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    DOWNLOAD_CHUNK_SIZE = 64 * 1024
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    HTTP_CACHE_TTL_SEC = 300
    API_KEY_HEADER = "X-ApiKey"
