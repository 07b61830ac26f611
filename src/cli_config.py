"""Configuration file loading and CLI overrides for runtime tunables.

Precedence, lowest to highest: built-in ``Constants`` defaults, the YAML
configuration file, command-line flags. Example file::

    nuget:
      command: C:/tools/nuget.exe
      timeout: 600
      extra_args: ["-Source", "https://api.nuget.org/v3/index.json"]
    checkout:
      tool: tf
      batch_size: 100
    resolver:
      max_workers: 4
    reconcile:
      mode: aligned
    http:
      timeout: 30
      retries: 3
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import yaml

from constants import Constants

logger = logging.getLogger(__name__)

# section -> key -> (Constants attribute, converter)
_CONFIG_MAP = {
    "nuget": {
        "command": ("NUGET_COMMAND", str),
        "timeout": ("NUGET_TIMEOUT_SEC", int),
        "extra_args": ("NUGET_EXTRA_ARGS", lambda v: [str(a) for a in v]),
    },
    "checkout": {
        "tool": ("CHECKOUT_TOOL", str),
        "batch_size": ("CHECKOUT_BATCH_SIZE", int),
        "timeout": ("CHECKOUT_TIMEOUT_SEC", int),
    },
    "resolver": {
        "max_workers": ("RESOLVER_MAX_WORKERS", int),
    },
    "reconcile": {
        "mode": ("DEFAULT_MODE", lambda v: str(v).lower()),
    },
    "http": {
        "timeout": ("REQUEST_TIMEOUT", int),
        "retries": ("HTTP_RETRY_MAX", int),
        "registry_url": ("REGISTRY_URL_NUGET_V3", str),
    },
}


class ConfigError(ValueError):
    """Raised when an explicitly requested configuration file cannot be used."""


def find_config_path(explicit: Optional[str] = None) -> Optional[str]:
    """Locate the configuration file: ``--config``, then the environment, then defaults."""
    if explicit:
        return explicit
    from_env = os.environ.get(Constants.ENV_CONFIG)
    if from_env:
        return from_env
    for candidate in Constants.DEFAULT_CONFIG_LOCATIONS:
        if os.path.isfile(candidate):
            return candidate
    return None


def load_config_file(path: str) -> Dict[str, Any]:
    """Read a YAML configuration file.

    Raises:
        ConfigError: If the file is missing, unreadable, or not a mapping
    """
    if not os.path.isfile(path):
        raise ConfigError(f"Config file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to load config {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must contain a mapping at the top level")
    return data


def apply_config(data: Dict[str, Any]) -> None:
    """Copy recognised settings from a loaded configuration onto ``Constants``.

    Unknown sections and keys are ignored; malformed values are logged and skipped.
    """
    for section, keys in _CONFIG_MAP.items():
        values = data.get(section)
        if not isinstance(values, dict):
            continue
        for key, (attr, convert) in keys.items():
            if values.get(key) is None:
                continue
            try:
                setattr(Constants, attr, convert(values[key]))
            except (TypeError, ValueError) as e:
                logger.warning("Ignoring invalid config value %s.%s=%r: %s", section, key, values[key], e)

    if Constants.DEFAULT_MODE not in Constants.SUPPORTED_MODES:
        logger.warning("Unknown reconcile mode %r in config; using aligned.", Constants.DEFAULT_MODE)
        Constants.DEFAULT_MODE = "aligned"


def load_and_apply_config(explicit: Optional[str] = None) -> Optional[str]:
    """Find, load and apply the configuration file.

    Returns:
        The path that was applied, or None when no file was found
    """
    path = find_config_path(explicit)
    if not path:
        return None
    apply_config(load_config_file(path))
    logger.info("Loaded configuration from %s.", path)
    return path


def apply_cli_overrides(args) -> None:
    """Apply command-line flags with highest precedence."""
    if getattr(args, "NUGET", None):
        Constants.NUGET_COMMAND = args.NUGET
    if getattr(args, "NUGET_SOURCE", None):
        Constants.NUGET_EXTRA_ARGS = list(Constants.NUGET_EXTRA_ARGS) + ["-Source", args.NUGET_SOURCE]
    if getattr(args, "TF", None):
        Constants.CHECKOUT_TOOL = args.TF
    if getattr(args, "WORKERS", None) is not None:
        Constants.RESOLVER_MAX_WORKERS = max(1, int(args.WORKERS))
    if getattr(args, "MODE", None):
        Constants.DEFAULT_MODE = args.MODE
