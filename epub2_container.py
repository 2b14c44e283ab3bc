"""META-INF/container.xml rendering."""

from __future__ import annotations

from lxml import etree

from epub2_config import (
    CONTAINER_NS,
    CONTAINER_VERSION,
    DEFAULT_OPF_PATH,
    OPF_MEDIA_TYPE,
    Epub2Config,
)
from epub_paths import normalize_inside_path


def serialize_document(root: etree._Element) -> str:
    return etree.tostring(
        root, xml_declaration=True, encoding="UTF-8", pretty_print=True
    ).decode("utf-8")


def render_container_xml(config: Epub2Config, add_opf_to_rootfiles: bool) -> str:
    root = etree.Element(
        f"{{{CONTAINER_NS}}}container",
        nsmap={None: CONTAINER_NS},
        version=CONTAINER_VERSION,
    )
    rootfiles = etree.SubElement(root, f"{{{CONTAINER_NS}}}rootfiles")
    entries = [
        (normalize_inside_path(rootfile.path), rootfile.media_type)
        for rootfile in config.rootfiles or ()
    ]
    if add_opf_to_rootfiles:
        entries.append((DEFAULT_OPF_PATH, OPF_MEDIA_TYPE))
    for full_path, media_type in entries:
        rootfile = etree.SubElement(rootfiles, f"{{{CONTAINER_NS}}}rootfile")
        rootfile.set("full-path", full_path)
        rootfile.set("media-type", media_type)
    return serialize_document(root)
