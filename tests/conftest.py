import io
import os
import zipfile
from pathlib import Path

import pytest
from lxml import etree

from epub2_config import CONTAINER_NS, DC_NS, NCX_NS, OPF_NS
from epub_zip import FilesystemReader

NS = {"c": CONTAINER_NS, "opf": OPF_NS, "dc": DC_NS, "ncx": NCX_NS}

CHAPTER_TEMPLATE = """<?xml version="1.0" encoding="utf-8"?>
<html xmlns="http://www.w3.org/1999/xhtml">
<head><title>{title}</title></head>
<body><h1>{title}</h1>{paragraphs}</body>
</html>
"""


def chapter_bytes(title: str) -> bytes:
    paragraphs = "".join(f"<p>Paragraph {index} of {title}.</p>" for index in range(40))
    return CHAPTER_TEMPLATE.format(title=title, paragraphs=paragraphs).encode("utf-8")


@pytest.fixture
def content_dir(tmp_path: Path) -> Path:
    base = tmp_path / "content"
    base.mkdir()
    (base / "ch1.xhtml").write_bytes(chapter_bytes("Chapter One"))
    (base / "ch2.xhtml").write_bytes(chapter_bytes("Chapter Two"))
    (base / "style.css").write_text("body { margin: 0; }\n" * 20, encoding="utf-8")
    (base / "cover.png").write_bytes(os.urandom(4096))
    fonts = base / "fonts"
    fonts.mkdir()
    (fonts / "b.ttf").write_bytes(os.urandom(512))
    (fonts / "a.ttf").write_bytes(os.urandom(512))
    return base


@pytest.fixture
def reader(content_dir: Path) -> FilesystemReader:
    return FilesystemReader(content_dir)


@pytest.fixture
def xhtml_item():
    def _make(item_id: str = "c1", outside: str = "ch1.xhtml", inside: str = "ch1.xhtml", **extra):
        item = {
            "outside_path": outside,
            "inside_path_from_opf": inside,
            "media-type": "application/xhtml+xml",
            "id": item_id,
        }
        item.update(extra)
        return item

    return _make


@pytest.fixture
def read_xml():
    def _read(archive: bytes, name: str) -> etree._Element:
        with zipfile.ZipFile(io.BytesIO(archive)) as zf:
            return etree.fromstring(zf.read(name))

    return _read


@pytest.fixture
def ns():
    return NS
