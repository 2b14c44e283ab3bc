"""Typed EPUB2 configuration and the parser that builds it from a recipe body."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ebooklib import epub

from epub_errors import ConfigError, SchemaError, UnresolvedReferenceError
from epub_paths import normalize_inside_path, parent_dir, relative_href
from epub_types import (
    Epub2RecipeBody,
    ManifestItemRecord,
    NavPointRecord,
)

CONTAINER_NS = epub.NAMESPACES["CONTAINERNS"]
CONTAINER_VERSION = "1.0"
OPF_NS = epub.NAMESPACES["OPF"]
OPF_VERSION = "2.0"
DC_NS = epub.NAMESPACES["DC"]
NCX_NS = epub.NAMESPACES["DAISY"]
NCX_VERSION = "2005-1"
XML_NS = epub.NAMESPACES["XML"]

EPUB_MIMETYPE = "application/epub+zip"
MIMETYPE_PATH = "mimetype"
CONTAINER_PATH = "META-INF/container.xml"
OPF_MEDIA_TYPE = "application/oebps-package+xml"
NCX_MEDIA_TYPE = "application/x-dtbncx+xml"
DEFAULT_OPF_PATH = "OEBPS/content.opf"
DEFAULT_NCX_ID = "ncx"
DEFAULT_NCX_PATH_FROM_OPF = "toc.ncx"

SPINE_MEDIA_TYPES = ("application/xhtml+xml", "application/x-dtbook+xml")
PAGE_TARGET_TYPES = ("front", "normal", "special")

# Characters outside the XML 1.0 Char production
XML_ILLEGAL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")

DC_ELEMENTS = (
    "title",
    "identifier",
    "language",
    "creator",
    "subject",
    "description",
    "publisher",
    "contributor",
    "date",
    "type",
    "format",
    "source",
    "relation",
    "coverage",
    "rights",
)


# Container


@dataclass(frozen=True)
class Rootfile:
    path: str
    media_type: str


# OPF


@dataclass(frozen=True)
class DcMetadata:
    name: str
    content: str
    id: Optional[str] = None
    scheme: Optional[str] = None
    file_as: Optional[str] = None
    role: Optional[str] = None
    event: Optional[str] = None
    lang: Optional[str] = None


@dataclass(frozen=True)
class CustomMetadata:
    name: str
    content: str


Metadata = Union[DcMetadata, CustomMetadata]


@dataclass(frozen=True)
class ManifestItem:
    outside_path: str
    inside_path_from_opf: str
    media_type: str
    id: str
    fallback: Optional[str] = None
    fallback_style: Optional[str] = None
    required_namespace: Optional[str] = None
    required_modules: Optional[str] = None


@dataclass(frozen=True)
class RawIdref:
    """Spine entry given as a bare idref; always linear."""

    idref: str

    @property
    def linear(self) -> Optional[bool]:
        return None


@dataclass(frozen=True)
class AnnotatedIdref:
    idref: str
    linear: Optional[bool] = None


Itemref = Union[RawIdref, AnnotatedIdref]


@dataclass(frozen=True)
class Reference:
    type: str
    idref: str
    title: Optional[str] = None
    fragment: Optional[str] = None


# NCX


@dataclass(frozen=True)
class NcxMeta:
    manifest_id: Optional[str] = None
    manifest_path_from_opf: Optional[str] = None


@dataclass(frozen=True)
class NavLabel:
    label: str
    lang: Optional[str] = None


@dataclass(frozen=True)
class SimpleLabel:
    text: str

    def nav_labels(self) -> Tuple[NavLabel, ...]:
        return (NavLabel(self.text),)


@dataclass(frozen=True)
class ComplexLabels:
    labels: Tuple[NavLabel, ...]

    def nav_labels(self) -> Tuple[NavLabel, ...]:
        return self.labels


Label = Union[SimpleLabel, ComplexLabels]


@dataclass(frozen=True)
class NavPoint:
    label: Label
    idref: str
    fragment: Optional[str] = None
    children: Tuple[int, ...] = ()


@dataclass(frozen=True)
class NavMap:
    """Navigation tree stored as an arena; ``roots`` and ``children`` index ``points``."""

    points: Tuple[NavPoint, ...] = ()
    roots: Tuple[int, ...] = ()

    def depth(self) -> int:
        deepest = 0
        stack = [(index, 1) for index in self.roots]
        while stack:
            index, level = stack.pop()
            deepest = max(deepest, level)
            stack.extend((child, level + 1) for child in self.points[index].children)
        return deepest


@dataclass(frozen=True)
class PageTarget:
    label: Label
    id: str
    type: str
    idref: str
    value: Optional[str] = None
    fragment: Optional[str] = None


@dataclass(frozen=True)
class NavTarget:
    label: Label
    idref: str
    fragment: Optional[str] = None


@dataclass(frozen=True)
class NavList:
    label: Label
    targets: Tuple[NavTarget, ...]


# Misc


@dataclass(frozen=True)
class NonmanifestFile:
    outside_path: str
    inside_path: str


@dataclass(frozen=True)
class Epub2Config:
    manifest: Tuple[ManifestItem, ...]
    rootfiles: Optional[Tuple[Rootfile, ...]] = None
    metadata: Optional[Tuple[Metadata, ...]] = None
    spine: Optional[Tuple[Itemref, ...]] = None
    guide: Optional[Tuple[Reference, ...]] = None
    ncx_meta: Optional[NcxMeta] = None
    navmap: Optional[NavMap] = None
    pagelist: Optional[Tuple[PageTarget, ...]] = None
    navlists: Optional[Tuple[NavList, ...]] = None
    nonmanifest_files: Tuple[NonmanifestFile, ...] = field(default_factory=tuple)

    def manifest_item(self, idref: str) -> Optional[ManifestItem]:
        for item in self.manifest:
            if item.id == idref:
                return item
        return None


@dataclass(frozen=True)
class BuildPlan:
    """Locations and ids derived from a config before anything is rendered."""

    opf_path: str
    ncx_id: str
    ncx_path: str
    add_opf_to_rootfiles: bool
    item_paths: Mapping[str, str]

    @property
    def opf_dir(self) -> str:
        return parent_dir(self.opf_path)

    def item_path(self, idref: str, context: str) -> str:
        try:
            return self.item_paths[idref]
        except KeyError:
            raise UnresolvedReferenceError(
                f"Idref '{idref}' used in {context} not found in manifest."
            ) from None

    def href(
        self, from_path: str, idref: str, fragment: Optional[str], context: str
    ) -> str:
        href = relative_href(from_path, self.item_path(idref, context))
        if fragment:
            return f"{href}#{fragment}"
        return href


# Parsing


def _where(context: str, index: int) -> str:
    return f"{context}[{index}]"


def _require_table(value: Any, context: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ConfigError(f"{context} must be a table, got {type(value).__name__}")
    return value


def _require_list(value: Any, context: str) -> Sequence[Any]:
    if not isinstance(value, list):
        raise ConfigError(f"{context} must be a list, got {type(value).__name__}")
    return value


def _required_str(entry: Mapping[str, Any], key: str, context: str) -> str:
    if key not in entry:
        raise ConfigError(f"{context} is missing required field '{key}'")
    value = entry[key]
    if not isinstance(value, str):
        raise ConfigError(f"{context}.{key} must be a string, got {type(value).__name__}")
    illegal = XML_ILLEGAL_CHARS.search(value)
    if illegal:
        raise ConfigError(
            f"{context}.{key} contains character {illegal.group()!r}, which XML does not allow"
        )
    return value


def _optional_str(entry: Mapping[str, Any], key: str, context: str) -> Optional[str]:
    if entry.get(key) is None:
        return None
    return _required_str(entry, key, context)


def _optional_bool(entry: Mapping[str, Any], key: str, context: str) -> Optional[bool]:
    value = entry.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ConfigError(f"{context}.{key} must be a boolean, got {type(value).__name__}")
    return value


def _optional_list(body: Mapping[str, Any], key: str) -> Optional[Sequence[Any]]:
    if body.get(key) is None:
        return None
    return _require_list(body[key], key)


def parse_label(entry: Mapping[str, Any], context: str) -> Label:
    if "label" in entry and "labels" in entry:
        raise ConfigError(f"{context} has both 'label' and 'labels'; use one")
    if "label" in entry:
        return SimpleLabel(_required_str(entry, "label", context))
    if "labels" in entry:
        raw_labels = _require_list(entry["labels"], f"{context}.labels")
        if not raw_labels:
            raise ConfigError(f"{context}.labels must not be empty")
        labels = []
        for index, raw in enumerate(raw_labels):
            where = _where(f"{context}.labels", index)
            raw = _require_table(raw, where)
            labels.append(
                NavLabel(_required_str(raw, "label", where), _optional_str(raw, "lang", where))
            )
        return ComplexLabels(tuple(labels))
    raise ConfigError(f"{context} needs either 'label' or 'labels'")


def parse_metadata_item(entry: Mapping[str, Any], context: str) -> Metadata:
    if "custom_name" in entry:
        return CustomMetadata(
            name=_required_str(entry, "custom_name", context),
            content=_required_str(entry, "content", context),
        )
    name = _required_str(entry, "name", context)
    if name not in DC_ELEMENTS:
        raise SchemaError(
            f"Unrecognized DC metadata name: '{name}' in {context}; if using custom "
            "metadata names, please use the attribute custom_name in place of name."
        )
    return DcMetadata(
        name=name,
        content=_required_str(entry, "content", context),
        id=_optional_str(entry, "id", context),
        scheme=_optional_str(entry, "scheme", context),
        file_as=_optional_str(entry, "file-as", context),
        role=_optional_str(entry, "role", context),
        event=_optional_str(entry, "event", context),
        lang=_optional_str(entry, "lang", context),
    )


def parse_manifest_item(entry: ManifestItemRecord, context: str) -> ManifestItem:
    inside_path = _required_str(entry, "inside_path_from_opf", context)
    if not normalize_inside_path(inside_path):
        raise ConfigError(f"{context}.inside_path_from_opf {inside_path!r} names no file")
    return ManifestItem(
        outside_path=_required_str(entry, "outside_path", context),
        inside_path_from_opf=inside_path,
        media_type=_required_str(entry, "media-type", context),
        id=_required_str(entry, "id", context),
        fallback=_optional_str(entry, "fallback", context),
        fallback_style=_optional_str(entry, "fallback-style", context),
        required_namespace=_optional_str(entry, "required-namespace", context),
        required_modules=_optional_str(entry, "required-modules", context),
    )


def parse_itemref(entry: Any, context: str) -> Itemref:
    if isinstance(entry, str):
        return RawIdref(entry)
    entry = _require_table(entry, context)
    return AnnotatedIdref(
        idref=_required_str(entry, "idref", context),
        linear=_optional_bool(entry, "linear", context),
    )


def parse_reference(entry: Mapping[str, Any], context: str) -> Reference:
    return Reference(
        type=_required_str(entry, "type", context),
        idref=_required_str(entry, "idref", context),
        title=_optional_str(entry, "title", context),
        fragment=_optional_str(entry, "fragment", context),
    )


def parse_navmap(entries: Sequence[Any]) -> NavMap:
    """Flatten nested navPoint tables into an arena, preserving document order."""
    points: List[Optional[NavPoint]] = []

    def _add(raw: NavPointRecord, context: str) -> int:
        raw = _require_table(raw, context)
        index = len(points)
        points.append(None)
        children = []
        raw_children = raw.get("children")
        if raw_children is not None:
            raw_children = _require_list(raw_children, f"{context}.children")
            for child_index, child in enumerate(raw_children):
                children.append(_add(child, _where(f"{context}.children", child_index)))
        points[index] = NavPoint(
            label=parse_label(raw, context),
            idref=_required_str(raw, "idref", context),
            fragment=_optional_str(raw, "fragment", context),
            children=tuple(children),
        )
        return index

    roots = tuple(_add(entry, _where("navmap", index)) for index, entry in enumerate(entries))
    return NavMap(points=tuple(point for point in points if point is not None), roots=roots)


def parse_page_target(entry: Mapping[str, Any], context: str) -> PageTarget:
    target_type = _required_str(entry, "type", context)
    if target_type not in PAGE_TARGET_TYPES:
        raise ConfigError(
            f"{context}.type must be one of {', '.join(PAGE_TARGET_TYPES)}, got '{target_type}'"
        )
    value = entry.get("value")
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    elif isinstance(value, str):
        value = _required_str(entry, "value", context)
    elif value is not None:
        raise ConfigError(f"{context}.value must be a string or integer")
    return PageTarget(
        label=parse_label(entry, context),
        id=_required_str(entry, "id", context),
        type=target_type,
        idref=_required_str(entry, "idref", context),
        value=value,
        fragment=_optional_str(entry, "fragment", context),
    )


def parse_nav_list(entry: Mapping[str, Any], context: str) -> NavList:
    if "list" not in entry:
        raise ConfigError(f"{context} is missing required field 'list'")
    targets = []
    for index, raw in enumerate(_require_list(entry["list"], f"{context}.list")):
        where = _where(f"{context}.list", index)
        raw = _require_table(raw, where)
        targets.append(
            NavTarget(
                label=parse_label(raw, where),
                idref=_required_str(raw, "idref", where),
                fragment=_optional_str(raw, "fragment", where),
            )
        )
    return NavList(label=parse_label(entry, context), targets=tuple(targets))


def parse_epub2_body(body: Epub2RecipeBody | Mapping[str, Any]) -> Epub2Config:
    """Build an :class:`Epub2Config` from an already-loaded recipe table."""
    body = _require_table(body, "recipe")
    if "manifest" not in body:
        raise ConfigError("recipe is missing required field 'manifest'")

    def _tables(key: str) -> Optional[List[Tuple[Mapping[str, Any], str]]]:
        raw = _optional_list(body, key)
        if raw is None:
            return None
        return [
            (_require_table(entry, _where(key, index)), _where(key, index))
            for index, entry in enumerate(raw)
        ]

    rootfiles = _tables("rootfiles")
    metadata = _tables("metadata")
    guide = _tables("guide")
    pagelist = _tables("pagelist")
    navlists = _tables("navlists")
    nonmanifest = _tables("nonmanifest_files") or []
    spine = _optional_list(body, "spine")
    navmap = _optional_list(body, "navmap")

    ncx_meta = None
    if body.get("ncx_meta") is not None:
        raw_meta = _require_table(body["ncx_meta"], "ncx_meta")
        ncx_meta = NcxMeta(
            manifest_id=_optional_str(raw_meta, "manifest_id", "ncx_meta"),
            manifest_path_from_opf=_optional_str(raw_meta, "manifest_path_from_opf", "ncx_meta"),
        )

    return Epub2Config(
        manifest=tuple(
            parse_manifest_item(entry, where) for entry, where in _tables("manifest") or []
        ),
        rootfiles=None
        if rootfiles is None
        else tuple(
            Rootfile(_required_str(entry, "path", where), _required_str(entry, "media-type", where))
            for entry, where in rootfiles
        ),
        metadata=None
        if metadata is None
        else tuple(parse_metadata_item(entry, where) for entry, where in metadata),
        spine=None
        if spine is None
        else tuple(parse_itemref(entry, _where("spine", index)) for index, entry in enumerate(spine)),
        guide=None if guide is None else tuple(parse_reference(entry, where) for entry, where in guide),
        ncx_meta=ncx_meta,
        navmap=parse_navmap(navmap) if navmap else None,
        pagelist=None
        if pagelist is None
        else tuple(parse_page_target(entry, where) for entry, where in pagelist),
        navlists=None
        if navlists is None
        else tuple(parse_nav_list(entry, where) for entry, where in navlists),
        nonmanifest_files=tuple(
            NonmanifestFile(
                _required_str(entry, "outside_path", where),
                _required_str(entry, "inside_path", where),
            )
            for entry, where in nonmanifest
        ),
    )


def parse_epub2_recipe(recipe: Any) -> Epub2Config:
    """Parse the body of an ``epub2`` recipe (anything with a ``body`` mapping)."""
    return parse_epub2_body(recipe.body)


def config_summary(config: Epub2Config) -> Dict[str, int]:
    return {
        "manifest": len(config.manifest),
        "nonmanifest_files": len(config.nonmanifest_files),
        "spine": len(config.spine or ()),
        "navpoints": len(config.navmap.points) if config.navmap else 0,
        "pagetargets": len(config.pagelist or ()),
    }
