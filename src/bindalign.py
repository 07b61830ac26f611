"""bindalign: reconcile NuGet dependency versions and synthesize binding redirects.

Pipeline: inventory -> manifest aggregation -> (optional) upgrades ->
reconciliation -> redirect synthesis -> (optional) checkout of touched files.
"""
import json
import logging
import os
import shutil
import sys
from typing import List, Optional

from args import parse_args
from cli_config import ConfigError, apply_cli_overrides, load_and_apply_config
from constants import Constants, ExitCodes
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from reconcile.engine import ReconciliationEngine, RunSummary
from redirects.synthesizer import STATUS_CHANGED, STATUS_CREATED, BindingRedirectSynthesizer
from registry.nuget import NuGetCli, PackageMetadataResolver, resolve_upgrade
from vcs.checkout import CheckoutTool, ToolNotFoundError
from versioning.models import ReconcileMode, UpgradeRequest
from versioning.parser import parse_upgrade_token
from workspace.assets import aggregate_workspace
from workspace.inventory import Project, WorkspaceError, discover_projects
from workspace.package_refs import pin_package_references

logger = logging.getLogger(__name__)


def nuget_available(command: str) -> bool:
    """True when ``command`` is an existing file or resolvable on PATH."""
    return os.path.isfile(command) or shutil.which(command) is not None


def build_upgrades(tokens: List[str]) -> List[UpgradeRequest]:
    """Parse ``NAME:SPEC`` tokens and resolve each spec to a published version.

    Raises:
        ValueError: If a token has no package name
    """
    upgrades = []
    for token in tokens:
        req = parse_upgrade_token(token)
        if resolve_upgrade(req) is None:
            logger.error("Skipping upgrade %s.", token)
            continue
        upgrades.append(req)
    return upgrades


def apply_upgrades(projects: List[Project], upgrades: List[UpgradeRequest], summary: RunSummary) -> None:
    """Pin upgraded packages in every project file that references them."""
    project_files = [p.path for p in projects]
    for upgrade in upgrades:
        for path in pin_package_references(project_files, upgrade.name, upgrade.resolved_version):
            if path not in summary.upgraded_files:
                summary.upgraded_files.append(path)


def synthesize_redirects(projects: List[Project], summary: RunSummary) -> None:
    synthesizer = BindingRedirectSynthesizer()
    for project in projects:
        for outcome in synthesizer.apply(project):
            if outcome.status == STATUS_CREATED:
                summary.created_files.append(outcome.path)
            elif outcome.status == STATUS_CHANGED:
                summary.changed_files.append(outcome.path)


def export_json(summary: RunSummary, path: str) -> None:
    """Write the run summary to a JSON file."""
    try:
        with open(path, "w", encoding="utf-8") as file:
            json.dump(summary.to_dict(), file, ensure_ascii=False, indent=4)
        logging.info("JSON file has been successfully exported at: %s", path)
    except OSError as e:
        logging.error("JSON file couldn't be written to disk: %s", e)


def log_summary(summary: RunSummary) -> None:
    for name, version, full_version in summary.reconciled.values():
        logger.info("Reconciled %s %s -> %s", name, version, full_version)
    if summary.skipped:
        logger.warning("The following packages were skipped:")
        for name, version in summary.skipped.values():
            logger.warning("  %s %s", name, version or "(no version)")
    logger.info(
        "%d configuration file(s) changed, %d created, %d project file(s) upgraded.",
        len(summary.changed_files), len(summary.created_files), len(summary.upgraded_files),
    )


def run(args) -> int:
    """Execute one reconciliation run.

    Returns:
        Process exit code
    """
    try:
        load_and_apply_config(getattr(args, "CONFIG", None))
    except ConfigError as e:
        logger.error("%s", e)
        return ExitCodes.FILE_ERROR.value
    apply_cli_overrides(args)

    if is_debug_enabled(logger):
        logger.debug("CLI start", extra=extra_context(
            event="function_entry", component="cli", action="run",
            target=args.ROOT, mode=Constants.DEFAULT_MODE, workers=Constants.RESOLVER_MAX_WORKERS,
        ))

    checkout_tool: Optional[CheckoutTool] = None
    if Constants.CHECKOUT_TOOL:
        try:
            checkout_tool = CheckoutTool(Constants.CHECKOUT_TOOL)
        except ToolNotFoundError as e:
            logger.error("%s", e)
            return ExitCodes.FILE_ERROR.value

    try:
        projects = discover_projects(args.ROOT)
    except WorkspaceError as e:
        logger.error("%s", e)
        return ExitCodes.FILE_ERROR.value

    workspace = aggregate_workspace(projects)
    tokens = getattr(args, "UPGRADES", None) or []
    if (workspace or tokens) and not nuget_available(Constants.NUGET_COMMAND):
        logger.error("Could not find nuget executable [%s].", Constants.NUGET_COMMAND)
        return ExitCodes.FILE_ERROR.value

    summary = RunSummary()
    try:
        upgrades = build_upgrades(tokens)
    except ValueError as e:
        logger.error("Invalid upgrade argument: %s", e)
        return ExitCodes.FILE_ERROR.value
    apply_upgrades(projects, upgrades, summary)

    resolver = PackageMetadataResolver(query=NuGetCli())
    engine = ReconciliationEngine(
        resolver,
        mode=ReconcileMode(Constants.DEFAULT_MODE),
        max_workers=Constants.RESOLVER_MAX_WORKERS,
    )
    engine.reconcile(projects, workspace, upgrades=upgrades, summary=summary)
    logger.info("Registry queried %d time(s).", resolver.query_count)

    synthesize_redirects(projects, summary)

    if checkout_tool is not None:
        checkout_tool.checkout(summary.upgraded_files + summary.changed_files)
        checkout_tool.add(summary.created_files)

    log_summary(summary)
    if getattr(args, "OUTPUT", None):
        export_json(summary, args.OUTPUT)

    if summary.skipped and getattr(args, "ERROR_ON_WARNINGS", False):
        logging.error("Warnings present, exiting with non-zero status code.")
        return ExitCodes.EXIT_WARNINGS.value
    return ExitCodes.SUCCESS.value


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    # Honor CLI --loglevel by passing it to centralized logger via env
    if getattr(args, "LOG_LEVEL", None):
        os.environ[Constants.ENV_LOG_LEVEL] = str(args.LOG_LEVEL).upper()
    configure_logging(getattr(args, "LOG_FILE", None))
    sys.exit(run(args))


if __name__ == "__main__":
    main()
