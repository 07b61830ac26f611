"""Tests for argument parsing, configuration and the CLI run."""

import argparse
import json
from unittest.mock import patch

import pytest

import bindalign
from args import parse_args
from cli_config import (
    ConfigError,
    apply_cli_overrides,
    apply_config,
    find_config_path,
    load_config_file,
)
from constants import Constants, ExitCodes
from registry.nuget.client import PackageMetadataResolver
from versioning.models import StrongNameIdentity

from fakes import FakeInspector, FakeQuery

TUNABLES = [
    "NUGET_COMMAND", "NUGET_TIMEOUT_SEC", "NUGET_EXTRA_ARGS", "CHECKOUT_TOOL", "CHECKOUT_BATCH_SIZE",
    "CHECKOUT_TIMEOUT_SEC", "RESOLVER_MAX_WORKERS", "DEFAULT_MODE", "REQUEST_TIMEOUT", "HTTP_RETRY_MAX",
    "REGISTRY_URL_NUGET_V3",
]


@pytest.fixture(autouse=True)
def restore_constants(monkeypatch, tmp_path):
    """Keep Constants changes local to each test and ignore stray config files."""
    for name in TUNABLES:
        monkeypatch.setattr(Constants, name, getattr(Constants, name))
    monkeypatch.delenv(Constants.ENV_CONFIG, raising=False)
    monkeypatch.chdir(tmp_path)


def namespace(**overrides):
    values = {
        "ROOT": ".", "MODE": None, "UPGRADES": [], "NUGET": None, "NUGET_SOURCE": None, "TF": None,
        "WORKERS": None, "OUTPUT": None, "CONFIG": None, "LOG_LEVEL": None, "LOG_FILE": None,
        "ERROR_ON_WARNINGS": False,
    }
    values.update(overrides)
    return argparse.Namespace(**values)


class TestParseArgs:
    """Command-line flags."""

    def test_flags(self):
        """Flags land on upper-case destinations."""
        args = parse_args(["-d", "ws", "-u", "Polly:7.2.4", "-u", "Newtonsoft.Json",
                           "--mode", "EXPLICIT", "--workers", "3", "--error-on-warnings"])
        assert args.ROOT == "ws"
        assert args.UPGRADES == ["Polly:7.2.4", "Newtonsoft.Json"]
        assert args.MODE == "explicit"
        assert args.WORKERS == 3
        assert args.ERROR_ON_WARNINGS is True

    def test_directory_required(self):
        """The workspace root is mandatory."""
        with pytest.raises(SystemExit):
            parse_args([])


class TestConfigFile:
    """YAML configuration."""

    def test_values_applied(self, tmp_path):
        """Known settings are copied onto Constants."""
        path = tmp_path / "bindalign.yml"
        path.write_text(
            "nuget:\n  command: /opt/nuget.exe\n  timeout: 60\n  extra_args: ['-Source', 'local']\n"
            "checkout:\n  tool: tf\n  batch_size: 50\n"
            "resolver:\n  max_workers: 4\n"
            "reconcile:\n  mode: Explicit\n",
            encoding="utf-8",
        )
        apply_config(load_config_file(str(path)))

        assert Constants.NUGET_COMMAND == "/opt/nuget.exe"
        assert Constants.NUGET_TIMEOUT_SEC == 60
        assert Constants.NUGET_EXTRA_ARGS == ["-Source", "local"]
        assert Constants.CHECKOUT_TOOL == "tf"
        assert Constants.CHECKOUT_BATCH_SIZE == 50
        assert Constants.RESOLVER_MAX_WORKERS == 4
        assert Constants.DEFAULT_MODE == "explicit"

    def test_invalid_value_ignored(self):
        """Bad values are skipped, the default stays."""
        default = Constants.NUGET_TIMEOUT_SEC
        apply_config({"nuget": {"timeout": "soon"}, "unknown": {"x": 1}})
        assert Constants.NUGET_TIMEOUT_SEC == default

    def test_unknown_mode_falls_back(self):
        """An unsupported mode reverts to aligned."""
        apply_config({"reconcile": {"mode": "sideways"}})
        assert Constants.DEFAULT_MODE == "aligned"

    def test_missing_file(self, tmp_path):
        """An explicit path that does not exist is an error."""
        with pytest.raises(ConfigError):
            load_config_file(str(tmp_path / "nope.yml"))

    def test_not_a_mapping(self, tmp_path):
        """The top level must be a mapping."""
        path = tmp_path / "list.yml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config_file(str(path))

    def test_empty_file(self, tmp_path):
        """An empty file configures nothing."""
        path = tmp_path / "empty.yml"
        path.write_text("", encoding="utf-8")
        assert load_config_file(str(path)) == {}

    def test_path_precedence(self, tmp_path, monkeypatch):
        """--config beats the environment, which beats the default file."""
        assert find_config_path() is None
        (tmp_path / "bindalign.yml").write_text("{}", encoding="utf-8")
        assert find_config_path() == "bindalign.yml"
        monkeypatch.setenv(Constants.ENV_CONFIG, "/etc/from-env.yml")
        assert find_config_path() == "/etc/from-env.yml"
        assert find_config_path("cli.yml") == "cli.yml"


class TestCliOverrides:
    """Flags win over configuration."""

    def test_overrides(self):
        """Each flag sets its tunable."""
        apply_config({"nuget": {"command": "from-config"}})
        apply_cli_overrides(namespace(NUGET="from-cli", NUGET_SOURCE="https://feed", TF="tf.exe",
                                      WORKERS=0, MODE="explicit"))
        assert Constants.NUGET_COMMAND == "from-cli"
        assert Constants.NUGET_EXTRA_ARGS[-2:] == ["-Source", "https://feed"]
        assert Constants.CHECKOUT_TOOL == "tf.exe"
        assert Constants.RESOLVER_MAX_WORKERS == 1
        assert Constants.DEFAULT_MODE == "explicit"


def make_workspace(root):
    for name, version in (("A", "12.0.1"), ("B", "13.0.1")):
        directory = root / "ws" / name
        (directory / "obj").mkdir(parents=True)
        (directory / f"{name}.csproj").write_text("<Project />", encoding="utf-8")
        lockfile = {"targets": {"net48": {
            f"Newtonsoft.Json/{version}": {"type": "package"},
            "Broken.Package/1.0.0": {"type": "package"},
        }}}
        (directory / "obj" / "project.assets.json").write_text(json.dumps(lockfile), encoding="utf-8")
    return root / "ws"


def fake_resolver(query=None):
    return PackageMetadataResolver(query=FakeQuery(), inspector=FakeInspector({
        ("newtonsoft.json", "13.0.1"): StrongNameIdentity("13.0.1.0", "30ad4fe6b2a6aeed"),
    }))


class TestRun:
    """Whole-run behaviour and exit codes."""

    def test_missing_root(self, tmp_path):
        """A missing workspace root is fatal."""
        assert bindalign.run(namespace(ROOT=str(tmp_path / "nope"))) == ExitCodes.FILE_ERROR.value

    def test_empty_workspace(self, tmp_path):
        """Nothing to do is a success without needing nuget."""
        with patch("bindalign.nuget_available", return_value=False):
            assert bindalign.run(namespace(ROOT=str(tmp_path))) == ExitCodes.SUCCESS.value

    def test_missing_nuget(self, tmp_path):
        """Dependencies without a nuget executable are fatal."""
        root = make_workspace(tmp_path)
        with patch("bindalign.nuget_available", return_value=False):
            assert bindalign.run(namespace(ROOT=str(root))) == ExitCodes.FILE_ERROR.value

    def test_missing_checkout_tool(self, tmp_path):
        """A requested checkout tool that does not exist is fatal."""
        root = make_workspace(tmp_path)
        code = bindalign.run(namespace(ROOT=str(root), TF=str(tmp_path / "no-tf")))
        assert code == ExitCodes.FILE_ERROR.value

    def test_full_run(self, tmp_path):
        """Redirects are written and the JSON summary lists the outcome."""
        root = make_workspace(tmp_path)
        output = tmp_path / "summary.json"
        with patch("bindalign.nuget_available", return_value=True), \
                patch("bindalign.PackageMetadataResolver", side_effect=fake_resolver):
            code = bindalign.run(namespace(ROOT=str(root), OUTPUT=str(output)))

        assert code == ExitCodes.SUCCESS.value
        summary = json.loads(output.read_text(encoding="utf-8"))
        assert summary["reconciled"] == [
            {"name": "Newtonsoft.Json", "version": "13.0.1", "full_version": "13.0.1.0"}]
        assert summary["skipped"] == [{"name": "Broken.Package", "version": "1.0.0"}]
        assert sorted(summary["created_files"]) == [
            str(root / "A" / "app.config"), str(root / "B" / "app.config")]
        assert 'newVersion="13.0.1.0"' in (root / "A" / "app.config").read_text(encoding="utf-8")

    def test_error_on_warnings(self, tmp_path):
        """Skipped packages fail the run when requested."""
        root = make_workspace(tmp_path)
        with patch("bindalign.nuget_available", return_value=True), \
                patch("bindalign.PackageMetadataResolver", side_effect=fake_resolver):
            code = bindalign.run(namespace(ROOT=str(root), ERROR_ON_WARNINGS=True))
        assert code == ExitCodes.EXIT_WARNINGS.value

    def test_invalid_config(self, tmp_path):
        """An unusable configuration file is fatal."""
        code = bindalign.run(namespace(ROOT=str(tmp_path), CONFIG=str(tmp_path / "missing.yml")))
        assert code == ExitCodes.FILE_ERROR.value
