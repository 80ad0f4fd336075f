"""Argument parsing functionality for upackctl."""

import argparse

from constants import Constants, LocalRegistryScope


def _add_common(parser):
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML). Defaults to $UPACKCTL_CONFIG.",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default=None)
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)


def _add_feed(parser):
    parser.add_argument("-s", "--source",
                        dest="SOURCE",
                        help="Name of a configured package source",
                        action="store", type=str)
    parser.add_argument("--feed-url",
                        dest="FEED_URL",
                        help="Feed URL, e.g. https://proget.local/upack/Internal",
                        action="store", type=str)
    parser.add_argument("--api-url",
                        dest="API_URL",
                        help="Service root URL; takes precedence over the package source",
                        action="store", type=str)
    parser.add_argument("--feed",
                        dest="FEED_NAME",
                        help="Feed name; takes precedence over the package source",
                        action="store", type=str)
    parser.add_argument("--api-key",
                        dest="API_KEY",
                        help="API key for the feed",
                        action="store", type=str)
    parser.add_argument("--user",
                        dest="USER_NAME",
                        help="User name for the feed",
                        action="store", type=str)
    parser.add_argument("--password",
                        dest="PASSWORD",
                        help="Password for the feed",
                        action="store", type=str)


def _add_identity(parser, version_help):
    parser.add_argument("--group",
                        dest="GROUP",
                        help="Package group",
                        action="store", type=str)
    parser.add_argument("--name",
                        dest="NAME",
                        help="Package name",
                        action="store", type=str, required=True)
    parser.add_argument("--version",
                        dest="VERSION",
                        help=version_help,
                        action="store", type=str, required=True)


def build_parser():
    """Build the top-level parser with its subcommands."""
    parser = argparse.ArgumentParser(
        prog="upackctl",
        description="Build, resolve and install universal packages",
        add_help=True,
    )
    sub = parser.add_subparsers(dest="COMMAND", required=True)

    pack = sub.add_parser("pack", help="Create a universal package from a directory")
    _add_common(pack)
    _add_identity(pack, "Package version (semantic version)")
    pack.add_argument("--from",
                      dest="SOURCE_DIR",
                      help="Source directory (default: current directory)",
                      action="store", type=str, default=".")
    pack.add_argument("--to",
                      dest="OUTPUT",
                      help=f"Output file ending in {Constants.PACKAGE_EXTENSION}, or a directory",
                      action="store", type=str)
    pack.add_argument("--include",
                      dest="INCLUDES",
                      help="Include mask; may be repeated (default: * top-level items)",
                      action="append", type=str, default=[])
    pack.add_argument("--exclude",
                      dest="EXCLUDES",
                      help="Exclude mask; may be repeated",
                      action="append", type=str, default=[])
    pack.add_argument("--metadata",
                      dest="METADATA",
                      help="Additional metadata as KEY=VALUE; may be repeated",
                      action="append", type=str, default=[])
    pack.add_argument("--overwrite",
                      dest="OVERWRITE",
                      help="Overwrite the output file if it exists",
                      action="store_true")
    pack.add_argument("--fail-on-skip",
                      dest="FAIL_ON_SKIP",
                      help="Exit non-zero when nothing was built",
                      action="store_true")

    install = sub.add_parser("install", help="Download and install a package from a feed")
    _add_common(install)
    _add_feed(install)
    _add_identity(install, "Package version, or 'latest'")
    install.add_argument("--target",
                         dest="TARGET_DIR",
                         help="Directory to extract the package into",
                         action="store", type=str, required=True)
    install.add_argument("--registry",
                         dest="REGISTRY",
                         help="Record the installation in the machine or user registry",
                         action="store", type=str,
                         choices=[s.value for s in LocalRegistryScope],
                         default=LocalRegistryScope.NONE.value)

    resolve = sub.add_parser("resolve", help="Print the resolved feed configuration")
    _add_common(resolve)
    _add_feed(resolve)
    resolve.add_argument("--list-sources",
                         dest="LIST_SOURCES",
                         help="List the configured package source names and exit",
                         action="store_true")

    listing = sub.add_parser("list-installed", help="List packages recorded in a local registry")
    _add_common(listing)
    listing.add_argument("--registry",
                         dest="REGISTRY",
                         help="Registry to read",
                         action="store", type=str,
                         choices=[LocalRegistryScope.MACHINE.value, LocalRegistryScope.USER.value],
                         default=LocalRegistryScope.USER.value)
    listing.add_argument("--name",
                         dest="NAME",
                         help="Show only the most recent installation of this package",
                         action="store", type=str)
    listing.add_argument("--group",
                         dest="GROUP",
                         help="Package group used with --name",
                         action="store", type=str)
    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
