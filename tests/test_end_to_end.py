"""Workspace-level scenario: inventory through redirect synthesis."""

import json
import xml.etree.ElementTree as ET

from reconcile.engine import ReconciliationEngine
from redirects.synthesizer import BindingRedirectSynthesizer
from registry.nuget.client import PackageMetadataResolver
from versioning.models import StrongNameIdentity
from workspace.assets import aggregate_workspace
from workspace.inventory import discover_projects

from fakes import FakeInspector, FakeQuery

NS = {"asm": "urn:schemas-microsoft-com:asm.v1"}


def make_project(root, name, newtonsoft_version):
    return make_project_with(root, name, {f"Newtonsoft.Json/{newtonsoft_version}": {"type": "package"}})


def make_project_with(root, name, entries):
    directory = root / name
    (directory / "obj").mkdir(parents=True)
    (directory / f"{name}.csproj").write_text("<Project />", encoding="utf-8")
    lockfile = {"version": 3, "targets": {"net48": entries}}
    (directory / "obj" / "project.assets.json").write_text(json.dumps(lockfile), encoding="utf-8")
    return directory


def run_workspace(root, resolver):
    projects = discover_projects(str(root))
    workspace = aggregate_workspace(projects)
    summary = ReconciliationEngine(resolver).reconcile(projects, workspace)
    synthesizer = BindingRedirectSynthesizer()
    for project in projects:
        synthesizer.apply(project)
    return summary


def redirects_in(path):
    root = ET.parse(path).getroot()
    result = []
    for dependent in root.findall(".//asm:dependentAssembly", NS):
        identity = dependent.find("asm:assemblyIdentity", NS).attrib
        redirect = dependent.find("asm:bindingRedirect", NS).attrib
        result.append((identity["name"], redirect["newVersion"]))
    return result


class TestTwoProjectWorkspace:
    """Two projects pinning different Newtonsoft.Json versions."""

    def test_both_projects_redirect_to_newest(self, tmp_path):
        """Aligned mode writes the 13.0.1 identity into both projects."""
        make_project(tmp_path, "A", "12.0.1")
        make_project(tmp_path, "B", "13.0.1")
        query = FakeQuery()
        resolver = PackageMetadataResolver(query=query, inspector=FakeInspector({
            ("newtonsoft.json", "13.0.1"): StrongNameIdentity("13.0.1.0", "30ad4fe6b2a6aeed"),
        }))

        projects = discover_projects(str(tmp_path))
        workspace = aggregate_workspace(projects)
        summary = ReconciliationEngine(resolver).reconcile(projects, workspace)
        synthesizer = BindingRedirectSynthesizer()
        for project in projects:
            synthesizer.apply(project)

        assert query.calls == [("Newtonsoft.Json", "13.0.1")]
        assert not summary.skipped
        for name in ("A", "B"):
            root = ET.parse(tmp_path / name / "app.config").getroot()
            entries = root.findall(".//asm:dependentAssembly", NS)
            assert len(entries) == 1
            identity = entries[0].find("asm:assemblyIdentity", NS).attrib
            redirect = entries[0].find("asm:bindingRedirect", NS).attrib
            assert identity["name"] == "Newtonsoft.Json"
            assert identity["publicKeyToken"] == "30ad4fe6b2a6aeed"
            assert identity["culture"] == "neutral"
            assert redirect == {"oldVersion": "0.0.0.0-13.0.1.0", "newVersion": "13.0.1.0"}


class TestFailingQuery:
    """A package the registry never delivers, next to one it does."""

    def test_failed_package_skipped_once_and_never_redirected(self, tmp_path):
        """Only the resolvable package gets redirects; the failure is reported once."""
        for name, newtonsoft in (("A", "12.0.1"), ("B", "13.0.1")):
            make_project_with(tmp_path, name, {
                f"Newtonsoft.Json/{newtonsoft}": {"type": "package"},
                "Internal.Tools/2.1.0": {"type": "package"},
            })
        query = FakeQuery(failing=["Internal.Tools"])
        resolver = PackageMetadataResolver(query=query, inspector=FakeInspector({
            ("newtonsoft.json", "13.0.1"): StrongNameIdentity("13.0.1.0", "30ad4fe6b2a6aeed"),
        }))

        summary = run_workspace(tmp_path, resolver)

        assert sorted(query.calls) == [("Internal.Tools", "2.1.0"), ("Newtonsoft.Json", "13.0.1")]
        assert list(summary.skipped.values()) == [("Internal.Tools", "2.1.0")]
        for name in ("A", "B"):
            redirects = redirects_in(tmp_path / name / "app.config")
            assert redirects == [("Newtonsoft.Json", "13.0.1.0")]


class TestIdSpelling:
    """Package ids are matched regardless of case."""

    def test_case_variant_dependency_gives_one_redirect(self, tmp_path):
        """A dependency spelled in lower case does not add a second entry."""
        make_project_with(tmp_path, "A", {
            "Newtonsoft.Json/13.0.1": {"type": "package"},
            "Some.Lib/1.0.0": {"type": "package", "dependencies": {"newtonsoft.json": "12.0.1"}},
        })
        resolver = PackageMetadataResolver(query=FakeQuery(), inspector=FakeInspector({
            ("newtonsoft.json", "13.0.1"): StrongNameIdentity("13.0.1.0", "30ad4fe6b2a6aeed"),
            ("some.lib", "1.0.0"): StrongNameIdentity("1.0.0.0", "b77a5c561934e089"),
        }))

        run_workspace(tmp_path, resolver)

        assert redirects_in(tmp_path / "A" / "app.config") == [
            ("Newtonsoft.Json", "13.0.1.0"), ("Some.Lib", "1.0.0.0")]
