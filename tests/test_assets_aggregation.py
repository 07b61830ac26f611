"""Tests for project.assets.json aggregation."""

import json
import logging

import pytest

from versioning.models import PackageVersionRecord
from workspace.assets import (
    ManifestParseError,
    aggregate_manifest,
    aggregate_workspace,
    load_manifest,
    merge_range,
    merge_version,
)
from workspace.inventory import Project

LOCKFILE = {
    "version": 3,
    "targets": {
        ".NETFramework,Version=v4.8": {
            "Newtonsoft.Json/12.0.1": {"type": "package"},
            "Polly/7.2.4": {
                "type": "package",
                "dependencies": {
                    "Newtonsoft.Json": "13.0.1",
                    "System.Memory": "[4.5.0, 5.0.0)",
                },
            },
            "Shared.Library/1.0.0": {"type": "project"},
        },
        "net6.0": {
            "Newtonsoft.Json/12.0.3": {"type": "package"},
        },
    },
}


def write_manifest(directory, document):
    obj = directory / "obj"
    obj.mkdir(parents=True, exist_ok=True)
    path = obj / "project.assets.json"
    path.write_text(json.dumps(document), encoding="utf-8")
    return str(path)


class TestLoadManifest:
    """Manifest validation."""

    def test_missing_file(self, tmp_path):
        """An unreadable file raises ManifestParseError."""
        with pytest.raises(ManifestParseError):
            load_manifest(str(tmp_path / "missing.json"))

    def test_invalid_json(self, tmp_path):
        """Broken JSON raises ManifestParseError."""
        path = tmp_path / "project.assets.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ManifestParseError):
            load_manifest(str(path))

    def test_missing_targets(self, tmp_path):
        """A document without a targets mapping is rejected."""
        path = tmp_path / "project.assets.json"
        path.write_text(json.dumps({"targets": []}), encoding="utf-8")
        with pytest.raises(ManifestParseError):
            load_manifest(str(path))

    def test_byte_order_mark(self, tmp_path):
        """Lockfiles written with a UTF-8 BOM load fine."""
        path = tmp_path / "project.assets.json"
        path.write_bytes(b"\xef\xbb\xbf" + json.dumps(LOCKFILE).encode("utf-8"))
        assert load_manifest(str(path))["version"] == 3


class TestAggregateManifest:
    """Merging one manifest into the project and workspace maps."""

    def test_versions_merge_by_maximum(self):
        """Own versions and pinned dependency versions merge by maximum."""
        project, workspace = {}, {}
        stats = aggregate_manifest(LOCKFILE, project, workspace)

        assert stats.packages == 3
        assert stats.excluded == 1
        assert project["Newtonsoft.Json"].version == "13.0.1"
        assert workspace["Newtonsoft.Json"].version == "13.0.1"
        assert project["Polly"].version == "7.2.4"

    def test_non_package_entries_excluded(self):
        """Project references never become package records."""
        project, workspace = {}, {}
        aggregate_manifest(LOCKFILE, project, workspace)
        assert "Shared.Library" not in project
        assert "Shared.Library" not in workspace

    def test_range_dependency_narrows(self):
        """A range-valued dependency sets a range and no pinned version."""
        project, workspace = {}, {}
        aggregate_manifest(LOCKFILE, project, workspace)
        record = project["System.Memory"]
        assert record.version is None
        assert record.version_range.min_version == "4.5.0"
        assert record.version_range.max_version == "5.0.0"
        assert record.effective_version == "4.5.0"

    def test_project_and_workspace_records_are_independent(self):
        """The two maps never share record objects."""
        project, workspace = {}, {}
        aggregate_manifest(LOCKFILE, project, workspace)
        assert project["Polly"] is not workspace["Polly"]
        project["Polly"].set_version("8.0.0")
        assert workspace["Polly"].version == "7.2.4"

    def test_malformed_entries_skipped(self):
        """Keys without a version and non-mapping entries are ignored."""
        document = {"targets": {"net48": {"NoVersion": {"type": "package"}, "A/1.0": "junk", "B/2.0": {}}}}
        project, workspace = {}, {}
        stats = aggregate_manifest(document, project, workspace)
        assert stats.packages == 1
        assert list(project) == ["B"]

    def test_ids_differing_in_case_share_one_record(self):
        """A dependency spelled in another case merges into the existing record."""
        document = {"targets": {"net48": {
            "Newtonsoft.Json/13.0.1": {"type": "package"},
            "Some.Lib/1.0.0": {"type": "package", "dependencies": {"newtonsoft.json": "12.0.1"}},
        }}}
        project, workspace = {}, {}
        aggregate_manifest(document, project, workspace)

        assert sorted(workspace) == ["Newtonsoft.Json", "Some.Lib"]
        assert sorted(project) == ["Newtonsoft.Json", "Some.Lib"]
        assert workspace["Newtonsoft.Json"].version == "13.0.1"

    def test_case_variant_range_narrows_existing_record(self):
        """Ranges also find the record regardless of spelling."""
        packages = {}
        merge_version(packages, "System.Memory", "4.5.5")
        merge_range(packages, "SYSTEM.MEMORY", "[4.5.0, 5.0.0)")
        assert list(packages) == ["System.Memory"]
        assert packages["System.Memory"].version_range.min_version == "4.5.0"


class TestMergeHelpers:
    """merge_version and merge_range."""

    def test_tie_keeps_existing(self):
        """Equal versions keep the first spelling."""
        packages = {}
        merge_version(packages, "A", "1.0.ABC")
        merge_version(packages, "A", "1.0.abc")
        assert packages["A"].version == "1.0.ABC"

    def test_lower_version_ignored(self):
        """Versions only go up."""
        packages = {"A": PackageVersionRecord("A", "2.0")}
        merge_version(packages, "A", "1.5")
        assert packages["A"].version == "2.0"

    def test_empty_range_kept_with_warning(self, caplog):
        """Disjoint ranges are preserved and reported."""
        packages = {}
        merge_range(packages, "A", "[3.0, 4.0]")
        with caplog.at_level(logging.WARNING, logger="workspace.assets"):
            merge_range(packages, "A", "[1.0, 2.0]")
        assert packages["A"].version_range.is_empty
        assert "empty interval" in caplog.text


class TestAggregateWorkspace:
    """Driving aggregation across projects."""

    def test_two_projects(self, tmp_path):
        """The workspace map holds the maximum; projects keep their own versions."""
        a_dir, b_dir = tmp_path / "A", tmp_path / "B"
        a = Project("A", str(a_dir / "A.csproj"), manifest_path=write_manifest(
            a_dir, {"targets": {"net48": {"Newtonsoft.Json/12.0.1": {"type": "package"}}}}))
        b = Project("B", str(b_dir / "B.csproj"), manifest_path=write_manifest(
            b_dir, {"targets": {"net48": {"Newtonsoft.Json/13.0.1": {"type": "package"}}}}))

        workspace = aggregate_workspace([a, b])

        assert workspace["Newtonsoft.Json"].version == "13.0.1"
        assert a.packages["Newtonsoft.Json"].version == "12.0.1"
        assert b.packages["Newtonsoft.Json"].version == "13.0.1"

    def test_broken_manifest_skipped(self, tmp_path):
        """A manifest that fails to parse does not stop the run."""
        bad_dir, good_dir = tmp_path / "Bad", tmp_path / "Good"
        (bad_dir / "obj").mkdir(parents=True)
        bad_path = bad_dir / "obj" / "project.assets.json"
        bad_path.write_text("oops", encoding="utf-8")
        bad = Project("Bad", str(bad_dir / "Bad.csproj"), manifest_path=str(bad_path))
        good = Project("Good", str(good_dir / "Good.csproj"), manifest_path=write_manifest(
            good_dir, {"targets": {"net48": {"Polly/7.2.4": {"type": "package"}}}}))
        no_manifest = Project("Empty", str(tmp_path / "Empty" / "Empty.csproj"))

        workspace = aggregate_workspace([bad, good, no_manifest])

        assert list(workspace) == ["Polly"]
        assert bad.packages == {}
        assert no_manifest.packages == {}
