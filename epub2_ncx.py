"""NCX navigation document rendering."""

from __future__ import annotations

from typing import Dict, Iterable, Set

from lxml import etree

from epub2_config import (
    NCX_NS,
    NCX_VERSION,
    XML_NS,
    BuildPlan,
    Epub2Config,
    Label,
    NavMap,
    NavPoint,
    SimpleLabel,
)
from epub2_container import serialize_document
from epub2_opf import ResolvedMetadata
from epub_paths import safe_unique_id


def _ncx(tag: str) -> str:
    return f"{{{NCX_NS}}}{tag}"


class PlayOrder:
    """Assigns ``playOrder`` by first appearance; equal targets share a number."""

    def __init__(self) -> None:
        self._orders: Dict[str, int] = {}

    def __call__(self, href: str) -> str:
        if href not in self._orders:
            self._orders[href] = len(self._orders) + 1
        return str(self._orders[href])


class GeneratedIds:
    """Hands out ``prefix-N`` ids that avoid every id already in the document."""

    def __init__(self, taken: Iterable[str]) -> None:
        self._taken: Set[str] = set(taken)
        self._counters: Dict[str, int] = {}

    def __call__(self, prefix: str) -> str:
        self._counters[prefix] = self._counters.get(prefix, 0) + 1
        candidate = safe_unique_id(f"{prefix}-{self._counters[prefix]}", self._taken)
        self._taken.add(candidate)
        return candidate


def _add_labels(parent: etree._Element, label: Label) -> None:
    for nav_label in label.nav_labels():
        element = etree.SubElement(parent, _ncx("navLabel"))
        if nav_label.lang is not None:
            element.set(f"{{{XML_NS}}}lang", nav_label.lang)
        etree.SubElement(element, _ncx("text")).text = nav_label.label


def _add_content(parent: etree._Element, src: str) -> None:
    etree.SubElement(parent, _ncx("content"), src=src)


def _add_head(root: etree._Element, config: Epub2Config, uid: str, depth: int) -> None:
    head = etree.SubElement(root, _ncx("head"))
    pages = config.pagelist or ()
    numbers = [int(page.value) for page in pages if page.value and page.value.isdecimal()]
    metas = (
        ("dtb:uid", uid),
        ("dtb:depth", str(depth)),
        ("dtb:totalPageCount", str(len(pages))),
        ("dtb:maxPageNumber", str(max(numbers, default=0))),
    )
    for name, content in metas:
        etree.SubElement(head, _ncx("meta"), name=name, content=content)


def _add_navmap(
    root: etree._Element,
    navmap: NavMap,
    plan: BuildPlan,
    play_order: PlayOrder,
    generated_ids: GeneratedIds,
) -> None:
    element = etree.SubElement(root, _ncx("navMap"))

    def _add_point(parent: etree._Element, index: int) -> None:
        point = navmap.points[index]
        src = plan.href(plan.ncx_path, point.idref, point.fragment, "navmap")
        nav_point = etree.SubElement(parent, _ncx("navPoint"), id=generated_ids("navPoint"))
        nav_point.set("playOrder", play_order(src))
        _add_labels(nav_point, point.label)
        _add_content(nav_point, src)
        for child in point.children:
            _add_point(nav_point, child)

    for root_index in navmap.roots:
        _add_point(element, root_index)


def _add_pagelist(
    root: etree._Element, config: Epub2Config, plan: BuildPlan, play_order: PlayOrder
) -> None:
    if config.pagelist is None:
        return
    element = etree.SubElement(root, _ncx("pageList"))
    for page in config.pagelist:
        src = plan.href(plan.ncx_path, page.idref, page.fragment, f"pagelist entry '{page.id}'")
        target = etree.SubElement(element, _ncx("pageTarget"), id=page.id, type=page.type)
        if page.value is not None:
            target.set("value", page.value)
        target.set("playOrder", play_order(src))
        _add_labels(target, page.label)
        _add_content(target, src)


def _add_navlists(
    root: etree._Element,
    config: Epub2Config,
    plan: BuildPlan,
    play_order: PlayOrder,
    generated_ids: GeneratedIds,
) -> None:
    for nav_list in config.navlists or ():
        element = etree.SubElement(root, _ncx("navList"))
        _add_labels(element, nav_list.label)
        for nav_target in nav_list.targets:
            src = plan.href(plan.ncx_path, nav_target.idref, nav_target.fragment, "navlists")
            target = etree.SubElement(element, _ncx("navTarget"), id=generated_ids("navTarget"))
            target.set("playOrder", play_order(src))
            _add_labels(target, nav_target.label)
            _add_content(target, src)


def default_navmap(title: str, first_linear_idref: str) -> NavMap:
    return NavMap(points=(NavPoint(SimpleLabel(title), first_linear_idref),), roots=(0,))


def render_ncx_xml(
    config: Epub2Config,
    plan: BuildPlan,
    metadata: ResolvedMetadata,
    first_linear_idref: str,
) -> str:
    navmap = config.navmap or default_navmap(metadata.title, first_linear_idref)
    play_order = PlayOrder()
    generated_ids = GeneratedIds(page.id for page in config.pagelist or ())

    root = etree.Element(_ncx("ncx"), nsmap={None: NCX_NS}, version=NCX_VERSION)
    _add_head(root, config, metadata.identifier, navmap.depth())
    doc_title = etree.SubElement(root, _ncx("docTitle"))
    etree.SubElement(doc_title, _ncx("text")).text = metadata.title
    _add_navmap(root, navmap, plan, play_order, generated_ids)
    _add_pagelist(root, config, plan, play_order)
    _add_navlists(root, config, plan, play_order, generated_ids)
    return serialize_document(root)
