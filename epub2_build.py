"""Compile an EPUB2 recipe into a zip archive held in memory."""

from __future__ import annotations

import logging
from typing import Any, Iterator, List, Optional, Tuple, Union

from epub2_config import (
    CONTAINER_PATH,
    DEFAULT_NCX_ID,
    DEFAULT_NCX_PATH_FROM_OPF,
    DEFAULT_OPF_PATH,
    MIMETYPE_PATH,
    OPF_MEDIA_TYPE,
    BuildPlan,
    DcMetadata,
    Epub2Config,
    config_summary,
    parse_epub2_recipe,
)
from epub2_container import render_container_xml
from epub2_ncx import render_ncx_xml
from epub2_opf import (
    falls_back_to_spine_type,
    first_linear_idref,
    first_spine_eligible_item,
    render_opf_xml,
    resolve_metadata,
)
from epub_paths import (
    check_inside_path_is_valid,
    check_no_duplicate_ids,
    check_no_duplicate_inside_paths,
    join_inside_path,
    normalize_inside_path,
    parent_dir,
    safe_unique_id,
)
from epub_zip import EpubArchiveWriter, FilesystemReader

logger = logging.getLogger(__name__)

SAFE_UID_BASE = "BookId"


def plan_build(config: Epub2Config) -> BuildPlan:
    """Decide where the OPF and NCX live and where every manifest item lands."""
    opf_rootfile = next(
        (rootfile for rootfile in config.rootfiles or () if rootfile.media_type == OPF_MEDIA_TYPE),
        None,
    )
    if opf_rootfile is None:
        add_opf_to_rootfiles, opf_path = True, DEFAULT_OPF_PATH
    else:
        add_opf_to_rootfiles, opf_path = False, normalize_inside_path(opf_rootfile.path)
    opf_dir = parent_dir(opf_path)

    ncx_meta = config.ncx_meta
    ncx_id = (ncx_meta and ncx_meta.manifest_id) or DEFAULT_NCX_ID
    ncx_path_from_opf = (ncx_meta and ncx_meta.manifest_path_from_opf) or DEFAULT_NCX_PATH_FROM_OPF

    return BuildPlan(
        opf_path=opf_path,
        ncx_id=ncx_id,
        ncx_path=join_inside_path(opf_dir, ncx_path_from_opf),
        add_opf_to_rootfiles=add_opf_to_rootfiles,
        item_paths={
            item.id: join_inside_path(opf_dir, item.inside_path_from_opf)
            for item in config.manifest
        },
    )


def copied_file_pairs(config: Epub2Config, plan: BuildPlan) -> List[Tuple[str, str]]:
    """``(outside_path, inside_path)`` for every file copied verbatim."""
    pairs = [
        (item.outside_path, join_inside_path(plan.opf_dir, item.inside_path_from_opf))
        for item in config.manifest
    ]
    pairs.extend(
        (entry.outside_path, normalize_inside_path(entry.inside_path))
        for entry in config.nonmanifest_files
    )
    return pairs


def generated_paths(plan: BuildPlan) -> List[str]:
    return [MIMETYPE_PATH, CONTAINER_PATH, plan.opf_path, plan.ncx_path]


def check_archive_paths(paths: List[str]) -> None:
    for path in paths:
        check_inside_path_is_valid(path)
    check_no_duplicate_inside_paths(paths)


def opf_ids(config: Epub2Config, plan: BuildPlan) -> List[str]:
    ids = [item.id for item in config.manifest]
    ids.append(plan.ncx_id)
    ids.extend(
        item.id for item in config.metadata or () if isinstance(item, DcMetadata) and item.id
    )
    return ids


def _idrefs(config: Epub2Config) -> Iterator[Tuple[str, str]]:
    for itemref in config.spine or ():
        yield itemref.idref, "spine"
    for reference in config.guide or ():
        yield reference.idref, "guide"
    if config.navmap is not None:
        for point in config.navmap.points:
            yield point.idref, "navmap"
    for page in config.pagelist or ():
        yield page.idref, f"pagelist entry '{page.id}'"
    for nav_list in config.navlists or ():
        for target in nav_list.targets:
            yield target.idref, "navlists"


def check_references(config: Epub2Config, plan: BuildPlan) -> None:
    for idref, context in _idrefs(config):
        plan.item_path(idref, context)
    for item in config.manifest:
        falls_back_to_spine_type(config, item)


def validate(config: Epub2Config, plan: BuildPlan) -> None:
    """Run every check over the whole recipe; nothing is written before this passes."""
    check_archive_paths(
        [inside for _outside, inside in copied_file_pairs(config, plan)] + generated_paths(plan)
    )
    check_no_duplicate_ids(opf_ids(config, plan), "OPF")
    check_no_duplicate_ids((page.id for page in config.pagelist or ()), "NCX page list")
    check_references(config, plan)
    first_spine_eligible_item(config)
    first_linear_idref(config)


def read_copied_files(
    config: Epub2Config, plan: BuildPlan, reader: FilesystemReader
) -> List[Tuple[str, bytes]]:
    """Read every copied file, expanding directories, and re-check the expanded paths."""
    entries: List[Tuple[str, bytes]] = []
    for outside, inside in copied_file_pairs(config, plan):
        entries.extend(reader.walk(outside, inside))
    check_archive_paths([inside for inside, _data in entries] + generated_paths(plan))
    return entries


def build_epub2(
    config: Union[Epub2Config, Any], reader: Optional[FilesystemReader] = None
) -> bytes:
    """Build the complete EPUB2 archive for a config (or a recipe with a ``body``)."""
    if not isinstance(config, Epub2Config):
        config = parse_epub2_recipe(config)
    reader = reader or FilesystemReader()
    logger.debug("Recipe contents: %s", config_summary(config))

    plan = plan_build(config)
    logger.debug("OPF at %s, NCX '%s' at %s", plan.opf_path, plan.ncx_id, plan.ncx_path)
    validate(config, plan)

    safe_uid = safe_unique_id(SAFE_UID_BASE, opf_ids(config, plan))
    metadata = resolve_metadata(config, safe_uid)
    linear_idref = first_linear_idref(config)
    copied = read_copied_files(config, plan, reader)

    container_xml = render_container_xml(config, plan.add_opf_to_rootfiles)
    opf_xml = render_opf_xml(config, plan, metadata)
    ncx_xml = render_ncx_xml(config, plan, metadata, linear_idref)

    with EpubArchiveWriter() as writer:
        writer.write_mimetype()
        for inside, data in copied:
            writer.write_entry(inside, data)
        writer.write_entry(CONTAINER_PATH, container_xml.encode("utf-8"))
        writer.write_entry(plan.opf_path, opf_xml.encode("utf-8"))
        writer.write_entry(plan.ncx_path, ncx_xml.encode("utf-8"))
        archive = writer.finish()
    logger.info("Built '%s': %d entries, %d bytes", metadata.title, len(copied) + 4, len(archive))
    return archive
