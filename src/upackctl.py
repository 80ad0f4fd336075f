"""upackctl - build, resolve and install universal packages."""

import logging
import sys

from constants import ExitCodes
from args import parse_args
from cli_config import apply_registry_overrides, build_context, load_config
from common.errors import (
    ConfigurationError,
    NotFoundError,
    RegistryError,
    TransferError,
    UpackError,
)
from common.logging_utils import configure_logging, extra_context, is_debug_enabled

logger = logging.getLogger(__name__)


def _setup_logging(args) -> None:
    """Configure logging from --loglevel/--logfile."""
    configure_logging(getattr(args, "LOG_LEVEL", None))
    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logging.getLogger().addHandler(file_handler)
        logger.info("Logging to file: %s", log_file)


def _exit_code_for(exc: UpackError) -> int:
    if isinstance(exc, NotFoundError):
        return ExitCodes.NOT_FOUND.value
    if isinstance(exc, ConfigurationError):
        return ExitCodes.CONFIG_ERROR.value
    if isinstance(exc, TransferError):
        return ExitCodes.CONNECTION_ERROR.value
    if isinstance(exc, RegistryError):
        return ExitCodes.REGISTRY_ERROR.value
    return ExitCodes.FILE_ERROR.value


def run(args) -> int:
    """Dispatch a parsed command and return its exit code."""
    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action=args.COMMAND)
        )
    try:
        config = load_config(getattr(args, "CONFIG", None))
        apply_registry_overrides(config)

        if args.COMMAND == "pack":
            from cli_pack import run_pack  # pylint: disable=import-outside-toplevel
            return run_pack(args)

        # Lazy import to avoid loading aiohttp for pack
        import cli_install  # pylint: disable=import-outside-toplevel
        if args.COMMAND == "list-installed":
            return cli_install.run_list_installed(args)
        context = build_context(config)
        if args.COMMAND == "resolve":
            return cli_install.run_resolve(args, context)
        if args.COMMAND == "install":
            return cli_install.run_install(args, context)
    except UpackError as exc:
        logger.error("%s", exc)
        return _exit_code_for(exc)
    except KeyboardInterrupt:
        logger.error("Interrupted.")
        return ExitCodes.FILE_ERROR.value

    logger.error("Unknown command: %s", args.COMMAND)
    return ExitCodes.FILE_ERROR.value


def main():
    """Main function of the program."""
    args = parse_args()
    _setup_logging(args)
    sys.exit(run(args))


if __name__ == "__main__":
    main()
