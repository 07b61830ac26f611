"""Binding redirect synthesis for app.config / web.config documents.

Every ``dependentAssembly`` entry in a document is replaced by one freshly built
entry per resolved package usage::

    <dependentAssembly>
      <assemblyIdentity name="Newtonsoft.Json" publicKeyToken="30ad4fe6b2a6aeed" culture="neutral" />
      <bindingRedirect oldVersion="0.0.0.0-13.0.0.0" newVersion="13.0.0.0" />
    </dependentAssembly>

Hand-written redirects for packages outside the reconciled set are dropped as
well. A document is only written when its redirect set actually changes.
"""
from __future__ import annotations

import codecs
import io
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from constants import Constants
from common.fs_utils import write_file
from common.logging_utils import extra_context, is_debug_enabled
from versioning.models import PackageVersionRecord, ResolutionState

logger = logging.getLogger(__name__)

SKELETON_DOCUMENT = f"""<?xml version="1.0" encoding="utf-8"?>
<configuration>
  <runtime>
    <assemblyBinding xmlns="{Constants.ASM_V1_NAMESPACE}">
    </assemblyBinding>
  </runtime>
</configuration>
"""

XML_DECLARATION = b"<?xml version='1.0' encoding='utf-8'?>\n"
INDENT = "  "

_DECLARATION_RE = re.compile(rb"\s*<\?xml\b.*?\?>", re.S)
_PROLOG_ITEM_RE = re.compile(rb"\s*(?:<!--.*?-->|<\?.*?\?>)", re.S)

STATUS_CREATED = "created"
STATUS_CHANGED = "changed"
STATUS_UNCHANGED = "unchanged"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"

# (name, publicKeyToken, culture, oldVersion, newVersion)
RedirectEntry = Tuple[str, str, str, str, str]


@dataclass
class DocumentOutcome:
    """Result of synthesizing one configuration document."""

    path: str
    status: str
    redirects: int = 0
    error: Optional[str] = None


def _localize_namespaces(elem: ET.Element, inherited: str = "") -> None:
    """Strip namespace URIs from tags, keeping them as plain ``xmlns`` attributes.

    ElementTree would otherwise re-serialize namespaced tags with generated
    ``ns0:`` prefixes; a literal default-namespace declaration where the
    namespace changes round-trips the document as written.
    """
    if not isinstance(elem.tag, str):
        return
    namespace = ""
    if elem.tag.startswith("{"):
        namespace, elem.tag = elem.tag[1:].split("}", 1)
    if namespace != inherited:
        elem.set("xmlns", namespace)
    for child in elem:
        _localize_namespaces(child, namespace)


class ConfigDocument(ET.ElementTree):
    """ElementTree that also remembers what was written ahead of the root element.

    ``prolog`` holds the comments and processing instructions between the XML
    declaration and the root (the stock ``web.config`` header comment, for one);
    ElementTree drops them on parse.
    """

    prolog = b""


def leading_misc(data: bytes) -> bytes:
    """Return the comments and processing instructions preceding the root element."""
    if data.startswith(codecs.BOM_UTF8):
        data = data[len(codecs.BOM_UTF8):]
    match = _DECLARATION_RE.match(data)
    start = pos = match.end() if match else 0
    while True:
        match = _PROLOG_ITEM_RE.match(data, pos)
        if match is None:
            break
        pos = match.end()
    return data[start:pos].strip()


def parse_document(source) -> ConfigDocument:
    """Parse a configuration document (path or file object), keeping comments."""
    if hasattr(source, "read"):
        data = source.read()
    else:
        with open(source, "rb") as f:
            data = f.read()
    if isinstance(data, str):
        data = data.encode("utf-8")

    parser = ET.XMLParser(target=ET.TreeBuilder(insert_comments=True))
    parser.feed(data)
    tree = ConfigDocument(parser.close())
    tree.prolog = leading_misc(data)
    _localize_namespaces(tree.getroot())
    return tree


def serialize_document(tree: ET.ElementTree) -> bytes:
    buffer = io.BytesIO()
    buffer.write(XML_DECLARATION)
    prolog = getattr(tree, "prolog", b"")
    if prolog:
        buffer.write(prolog + b"\n")
    tree.write(buffer, encoding="utf-8", xml_declaration=False)
    return buffer.getvalue() + b"\n"


def _depth(root: ET.Element, target: ET.Element) -> int:
    parents: Dict[ET.Element, ET.Element] = {child: parent for parent in root.iter() for child in parent}
    depth = 0
    while target in parents:
        target = parents[target]
        depth += 1
    return depth


def _append_child(parent: ET.Element, tag: str, attrib: Dict[str, str], level: int) -> ET.Element:
    """Append a new last child to ``parent``, lined up with its siblings at ``level``."""
    elem = ET.Element(tag, attrib)
    if len(parent):
        last = parent[-1]
        elem.tail = last.tail
        last.tail = "\n" + INDENT * level
    else:
        elem.tail = "\n" + INDENT * (level - 1)
        parent.text = "\n" + INDENT * level
    parent.append(elem)
    return elem


def find_or_create_container(root: ET.Element) -> Tuple[ET.Element, ET.Element]:
    """Return the first ``assemblyBinding`` element, creating ``runtime/assemblyBinding`` if absent.

    Returns:
        Tuple of (container, outermost element to indent when entries are added)
    """
    for elem in root.iter("assemblyBinding"):
        return elem, elem
    runtime = root.find("runtime")
    if runtime is None:
        runtime = _append_child(root, "runtime", {}, 1)
        container = ET.SubElement(runtime, "assemblyBinding", {"xmlns": Constants.ASM_V1_NAMESPACE})
        return container, runtime
    container = _append_child(
        runtime, "assemblyBinding", {"xmlns": Constants.ASM_V1_NAMESPACE}, _depth(root, runtime) + 1,
    )
    return container, container


def read_redirects(root: ET.Element) -> List[RedirectEntry]:
    """List the redirect entries currently declared anywhere in the document."""
    entries: List[RedirectEntry] = []
    for binding in root.iter("assemblyBinding"):
        for dependent in binding.findall("dependentAssembly"):
            identity = dependent.find("assemblyIdentity")
            redirect = dependent.find("bindingRedirect")
            identity_attrs = identity.attrib if identity is not None else {}
            redirect_attrs = redirect.attrib if redirect is not None else {}
            entries.append((
                identity_attrs.get("name", ""),
                identity_attrs.get("publicKeyToken", ""),
                identity_attrs.get("culture", ""),
                redirect_attrs.get("oldVersion", ""),
                redirect_attrs.get("newVersion", ""),
            ))
    return entries


def remove_redirects(root: ET.Element) -> int:
    """Delete every ``dependentAssembly`` entry. Returns how many were removed."""
    removed = 0
    for binding in list(root.iter("assemblyBinding")):
        for dependent in binding.findall("dependentAssembly"):
            binding.remove(dependent)
            removed += 1
    return removed


def redirect_entry(record: PackageVersionRecord) -> RedirectEntry:
    """Build the redirect entry for a resolved usage."""
    full_version = record.full_version or ""
    return (
        record.name,
        record.public_key_token or "",
        record.culture or Constants.NEUTRAL_CULTURE,
        f"{Constants.REDIRECT_LOWER_BOUND}-{full_version}",
        full_version,
    )


def add_redirect(container: ET.Element, entry: RedirectEntry) -> ET.Element:
    name, token, culture, old_version, new_version = entry
    dependent = ET.SubElement(container, "dependentAssembly")
    identity_attrs = {"name": name}
    if token:
        identity_attrs["publicKeyToken"] = token
    identity_attrs["culture"] = culture
    ET.SubElement(dependent, "assemblyIdentity", identity_attrs)
    ET.SubElement(dependent, "bindingRedirect", {"oldVersion": old_version, "newVersion": new_version})
    return dependent


def redirect_candidates(project) -> List[PackageVersionRecord]:
    """Usages carrying a resolved identity, sorted by name."""
    resolved = [r for r in project.packages.values() if r.state == ResolutionState.RESOLVED and r.identity]
    return sorted(resolved, key=lambda r: r.name.lower())


class BindingRedirectSynthesizer:
    """Rebuilds the redirect section of each of a project's configuration documents."""

    def synthesize(self, tree: ET.ElementTree, candidates: List[PackageVersionRecord]) -> Tuple[bool, int]:
        """Replace all redirects in ``tree`` with ones built from ``candidates``.

        Returns:
            Tuple of (redirect set differs from before, number of entries written)
        """
        root = tree.getroot()
        before = read_redirects(root)
        wanted = [redirect_entry(record) for record in candidates]

        remove_redirects(root)
        container, outermost = find_or_create_container(root)
        for entry in wanted:
            add_redirect(container, entry)
        if wanted:
            ET.indent(outermost, space=INDENT, level=_depth(root, outermost))

        return before != read_redirects(root), len(wanted)

    def apply_document(
        self,
        path: str,
        candidates: List[PackageVersionRecord],
        create: bool = False,
    ) -> DocumentOutcome:
        """Synthesize one document and persist it if it changed."""
        try:
            if create:
                tree = parse_document(io.StringIO(SKELETON_DOCUMENT))
            else:
                tree = parse_document(path)
        except (ET.ParseError, OSError) as e:
            logger.warning("Couldn't parse configuration file %s: %s", path, e)
            return DocumentOutcome(path, STATUS_SKIPPED, error=str(e))

        changed, count = self.synthesize(tree, candidates)
        if not candidates or not (changed or create):
            logger.info("No changes made to [%s].", path)
            return DocumentOutcome(path, STATUS_UNCHANGED, count)

        try:
            write_file(path, serialize_document(tree))
        except OSError as e:
            logger.error("Update of the file [%s] failed: %s", path, e)
            return DocumentOutcome(path, STATUS_FAILED, count, error=str(e))

        status = STATUS_CREATED if create else STATUS_CHANGED
        logger.info("%s [%s] with %d binding redirect(s).", "Created" if create else "Updated", path, count)
        if is_debug_enabled(logger):
            logger.debug("Configuration saved", extra=extra_context(
                event="saved", component="synthesizer", action="apply_document",
                target=path, outcome=status, count=count,
            ))
        return DocumentOutcome(path, status, count)

    def apply(self, project) -> List[DocumentOutcome]:
        """Synthesize every configuration document of ``project``.

        A project without any document gets a new ``app.config`` when it has
        at least one resolved usage.
        """
        candidates = redirect_candidates(project)
        if project.needs_new_config:
            if not candidates:
                return []
            outcome = self.apply_document(project.default_config_path, candidates, create=True)
            if outcome.status == STATUS_CREATED:
                project.config_paths.append(outcome.path)
            return [outcome]
        return [self.apply_document(path, candidates) for path in list(project.config_paths)]
