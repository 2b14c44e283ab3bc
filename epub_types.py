"""Type definitions for raw recipe files and EPUB2 recipe bodies."""

from __future__ import annotations

from typing import Any, Dict, TypedDict, Union


# Raw structures as they come out of a TOML or JSON recipe file. Keys that are
# not valid Python identifiers (``media-type`` and friends) are listed in the
# docstrings and read with ``.get``.


class RecipeRecord(TypedDict, total=False):
    """One named entry of a recipe file."""

    name: str
    format: str
    recipe: Dict[str, Any]


class RecipeFile(TypedDict, total=False):
    """Top level of a recipe file."""

    recipes: list[RecipeRecord]


class RootfileRecord(TypedDict, total=False):
    """Container rootfile; also carries ``media-type``."""

    path: str


class DcMetadataRecord(TypedDict, total=False):
    """Dublin Core metadata entry; also carries ``file-as``."""

    name: str
    content: str
    id: str
    scheme: str
    role: str
    event: str
    lang: str


class CustomMetadataRecord(TypedDict):
    """Free-form ``<meta>`` entry."""

    custom_name: str
    content: str


class ManifestItemRecord(TypedDict, total=False):
    """Manifest entry; also carries ``media-type``, ``fallback-style``,
    ``required-namespace`` and ``required-modules``."""

    outside_path: str
    inside_path_from_opf: str
    id: str
    fallback: str


class ItemrefRecord(TypedDict, total=False):
    """Annotated spine entry."""

    idref: str
    linear: bool


class ReferenceRecord(TypedDict, total=False):
    """Guide entry; ``type`` is read with ``.get``."""

    title: str
    idref: str
    fragment: str


class NcxMetaRecord(TypedDict, total=False):
    """Override of the NCX's own manifest id and location."""

    manifest_id: str
    manifest_path_from_opf: str


class NavLabelRecord(TypedDict, total=False):
    """One label of a multi-label navigation entry."""

    label: str
    lang: str


class NavPointRecord(TypedDict, total=False):
    """Navigation map entry, nested through ``children``."""

    label: str
    labels: list[NavLabelRecord]
    idref: str
    fragment: str
    children: list[NavPointRecord]


class PageTargetRecord(TypedDict, total=False):
    """Page list entry; ``type`` is read with ``.get``."""

    label: str
    labels: list[NavLabelRecord]
    id: str
    value: str
    idref: str
    fragment: str


class NavTargetRecord(TypedDict, total=False):
    """Entry of a named navigation list."""

    label: str
    labels: list[NavLabelRecord]
    idref: str
    fragment: str


class NavListRecord(TypedDict, total=False):
    """Named navigation list."""

    label: str
    labels: list[NavLabelRecord]
    list: list[NavTargetRecord]


class NonmanifestFileRecord(TypedDict):
    """File copied into the archive without a manifest entry."""

    outside_path: str
    inside_path: str


class Epub2RecipeBody(TypedDict, total=False):
    """Complete ``recipe`` table of an ``epub2`` recipe."""

    rootfiles: list[RootfileRecord]
    metadata: list[MetadataRecord]
    manifest: list[ManifestItemRecord]
    spine: list[ItemrefEntry]
    guide: list[ReferenceRecord]
    ncx_meta: NcxMetaRecord
    navmap: list[NavPointRecord]
    pagelist: list[PageTargetRecord]
    navlists: list[NavListRecord]
    nonmanifest_files: list[NonmanifestFileRecord]


MetadataRecord = Union[DcMetadataRecord, CustomMetadataRecord]

# A spine entry is either a bare idref or an annotated table
ItemrefEntry = Union[str, ItemrefRecord]
