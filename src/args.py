"""Argument parsing functionality for bindalign."""

import argparse
from constants import Constants


def build_parser():
    """Builds the command-line parser."""
    parser = argparse.ArgumentParser(
        prog="bindalign",
        description=(
            "bindalign - Reconcile NuGet dependency versions across a workspace "
            "and synthesize assembly binding redirects"
        ),
        add_help=True,
    )

    parser.add_argument("-d", "--directory",
                        dest="ROOT",
                        help="Workspace root directory to scan for project files",
                        action="store", type=str,
                        required=True)
    parser.add_argument("--mode",
                        dest="MODE",
                        help="Version selection mode (default: aligned)",
                        action="store", type=str.lower,
                        choices=Constants.SUPPORTED_MODES)
    parser.add_argument("-u", "--upgrade",
                        dest="UPGRADES",
                        help="Upgrade a package before reconciling, as NAME:SPEC (SPEC: exact version, "
                             "'latest', or a range); can be used multiple times",
                        action="append", type=str,
                        default=[])

    parser.add_argument("--nuget",
                        dest="NUGET",
                        help="Path to the nuget executable",
                        action="store", type=str)
    parser.add_argument("--nuget-source",
                        dest="NUGET_SOURCE",
                        help="Package source passed to nuget install",
                        action="store", type=str)
    parser.add_argument("--tf",
                        dest="TF",
                        help="Path to a version-control tool used to check out touched files",
                        action="store", type=str)
    parser.add_argument("--workers",
                        dest="WORKERS",
                        help="Number of parallel registry queries (default: 1)",
                        action="store", type=int)

    parser.add_argument("-o", "--output",
                        dest="OUTPUT",
                        help="Path to a JSON run summary",
                        action="store",
                        type=str)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML)",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'])
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("--error-on-warnings",
                        dest="ERROR_ON_WARNINGS",
                        help="Exit with a non-zero status code if any package was skipped.",
                        action="store_true")
    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
