"""OPF package document rendering: metadata, manifest, spine and guide."""

from __future__ import annotations

import dataclasses
import locale
import logging
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from lxml import etree

from epub2_config import (
    DC_NS,
    NCX_MEDIA_TYPE,
    OPF_NS,
    OPF_VERSION,
    SPINE_MEDIA_TYPES,
    XML_NS,
    BuildPlan,
    CustomMetadata,
    DcMetadata,
    Epub2Config,
    ManifestItem,
    Metadata,
)
from epub2_container import serialize_document
from epub_errors import StructuralError, UnresolvedReferenceError
from epub_paths import relative_href

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled"
DEFAULT_LANGUAGE = "en"
UUID_SCHEME = "UUID"

# Optional attributes each DC element accepts besides ``id``
_LANG_ELEMENTS = {
    "title",
    "creator",
    "subject",
    "description",
    "publisher",
    "contributor",
    "source",
    "relation",
    "coverage",
    "rights",
}
_AGENT_ELEMENTS = {"creator", "contributor"}


@dataclass(frozen=True)
class ResolvedMetadata:
    """Metadata with required elements filled in."""

    items: Tuple[Metadata, ...]
    unique_id: str
    identifier: str
    title: str


def default_language() -> str:
    """The host locale as a BCP 47 tag, or ``en``."""
    language, _encoding = locale.getlocale()
    if not language or language in ("C", "POSIX"):
        return DEFAULT_LANGUAGE
    return language.partition("@")[0].replace("_", "-")


def _first(items: List[Metadata], name: str) -> Optional[int]:
    for index, item in enumerate(items):
        if isinstance(item, DcMetadata) and item.name == name:
            return index
    return None


def resolve_metadata(config: Epub2Config, safe_uid: str) -> ResolvedMetadata:
    items: List[Metadata] = list(config.metadata or ())

    if _first(items, "title") is None:
        items.append(DcMetadata(name="title", content=DEFAULT_TITLE))
    if _first(items, "identifier") is None:
        items.append(
            DcMetadata(
                name="identifier",
                content=str(uuid.uuid4()),
                id=safe_uid,
                scheme=UUID_SCHEME,
            )
        )
    if _first(items, "language") is None:
        items.append(DcMetadata(name="language", content=default_language()))

    unique_index = next(
        (
            index
            for index, item in enumerate(items)
            if isinstance(item, DcMetadata) and item.name == "identifier" and item.id
        ),
        None,
    )
    if unique_index is None:
        unique_index = _first(items, "identifier")
        items[unique_index] = dataclasses.replace(items[unique_index], id=safe_uid)

    identifier = items[unique_index]
    title = items[_first(items, "title")]
    return ResolvedMetadata(
        items=tuple(items),
        unique_id=identifier.id,
        identifier=identifier.content,
        title=title.content,
    )


def falls_back_to_spine_type(config: Epub2Config, item: ManifestItem) -> bool:
    """Whether ``item`` is, or falls back to, a document allowed in the spine."""
    visited: Set[str] = set()
    current = item
    while current.media_type not in SPINE_MEDIA_TYPES:
        if current.fallback is None:
            return False
        visited.add(current.id)
        if current.fallback in visited:
            raise StructuralError(
                f"Manifest item '{item.id}' has a fallback cycle through '{current.fallback}'."
            )
        following = config.manifest_item(current.fallback)
        if following is None:
            raise UnresolvedReferenceError(
                f"Idref '{current.fallback}' used as fallback of manifest item "
                f"'{current.id}' not found in manifest."
            )
        current = following
    return True


def first_spine_eligible_item(config: Epub2Config) -> ManifestItem:
    for item in config.manifest:
        if falls_back_to_spine_type(config, item):
            return item
    raise StructuralError("Manifest contains no items legally placeable within the spine.")


def spine_entries(config: Epub2Config) -> List[Tuple[str, Optional[bool]]]:
    """``(idref, linear)`` pairs in reading order, defaulting to one eligible item."""
    if config.spine is None:
        return [(first_spine_eligible_item(config).id, None)]
    return [(itemref.idref, itemref.linear) for itemref in config.spine]


def first_linear_idref(config: Epub2Config) -> str:
    for idref, linear in spine_entries(config):
        if linear is not False:
            return idref
    raise StructuralError("Spine contains no linear items.")


def _dc_attributes(item: DcMetadata) -> Dict[str, str]:
    attributes: Dict[str, str] = {}
    if item.id:
        attributes["id"] = item.id
    dropped = []
    optional = (
        ("scheme", item.scheme, f"{{{OPF_NS}}}scheme", item.name == "identifier"),
        ("file-as", item.file_as, f"{{{OPF_NS}}}file-as", item.name in _AGENT_ELEMENTS),
        ("role", item.role, f"{{{OPF_NS}}}role", item.name in _AGENT_ELEMENTS),
        ("event", item.event, f"{{{OPF_NS}}}event", item.name == "date"),
        ("lang", item.lang, f"{{{XML_NS}}}lang", item.name in _LANG_ELEMENTS),
    )
    for key, value, attribute, applicable in optional:
        if value is None:
            continue
        if applicable:
            attributes[attribute] = value
        else:
            dropped.append(key)
    if dropped:
        logger.warning(
            "Ignoring %s on dc:%s; not applicable to this element.",
            ", ".join(dropped),
            item.name,
        )
    return attributes


def _add_metadata(package: etree._Element, metadata: ResolvedMetadata) -> None:
    element = etree.SubElement(
        package, f"{{{OPF_NS}}}metadata", nsmap={"dc": DC_NS, "opf": OPF_NS}
    )
    for item in metadata.items:
        if isinstance(item, CustomMetadata):
            etree.SubElement(element, f"{{{OPF_NS}}}meta", name=item.name, content=item.content)
            continue
        dc = etree.SubElement(element, f"{{{DC_NS}}}{item.name}", _dc_attributes(item))
        dc.text = item.content


def _add_manifest(package: etree._Element, config: Epub2Config, plan: BuildPlan) -> None:
    manifest = etree.SubElement(package, f"{{{OPF_NS}}}manifest")
    ncx = etree.SubElement(manifest, f"{{{OPF_NS}}}item", id=plan.ncx_id)
    ncx.set("href", relative_href(plan.opf_path, plan.ncx_path))
    ncx.set("media-type", NCX_MEDIA_TYPE)
    for item in config.manifest:
        entry = etree.SubElement(manifest, f"{{{OPF_NS}}}item", id=item.id)
        entry.set("href", relative_href(plan.opf_path, plan.item_path(item.id, "manifest")))
        entry.set("media-type", item.media_type)
        optional = (
            ("fallback", item.fallback),
            ("fallback-style", item.fallback_style),
            ("required-namespace", item.required_namespace),
            ("required-modules", item.required_modules),
        )
        for attribute, value in optional:
            if value is not None:
                entry.set(attribute, value)


def _add_spine(package: etree._Element, config: Epub2Config, plan: BuildPlan) -> None:
    spine = etree.SubElement(package, f"{{{OPF_NS}}}spine", toc=plan.ncx_id)
    for idref, linear in spine_entries(config):
        plan.item_path(idref, "spine")
        itemref = etree.SubElement(spine, f"{{{OPF_NS}}}itemref", idref=idref)
        if linear is False:
            itemref.set("linear", "no")


def _add_guide(package: etree._Element, config: Epub2Config, plan: BuildPlan) -> None:
    if config.guide is None:
        return
    guide = etree.SubElement(package, f"{{{OPF_NS}}}guide")
    for reference in config.guide:
        element = etree.SubElement(guide, f"{{{OPF_NS}}}reference", type=reference.type)
        if reference.title is not None:
            element.set("title", reference.title)
        element.set(
            "href", plan.href(plan.opf_path, reference.idref, reference.fragment, "guide")
        )


def render_opf_xml(config: Epub2Config, plan: BuildPlan, metadata: ResolvedMetadata) -> str:
    package = etree.Element(
        f"{{{OPF_NS}}}package",
        nsmap={None: OPF_NS},
        version=OPF_VERSION,
    )
    package.set("unique-identifier", metadata.unique_id)
    _add_metadata(package, metadata)
    _add_manifest(package, config, plan)
    _add_spine(package, config, plan)
    _add_guide(package, config, plan)
    return serialize_document(package)
