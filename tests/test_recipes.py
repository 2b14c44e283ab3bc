"""Tests for recipe files and the bookfactory command."""

import io
import json
import zipfile

import pytest

import build_epub
from epub_errors import BookIOError, ConfigError
from recipes import Recipe, build_recipe, find_recipe, load_recipes, parse_recipes

RECIPE_TOML = """
[[recipes]]
name = "sample"
format = "epub2"

[recipes.recipe]
spine = ["c1", "c2"]

[[recipes.recipe.metadata]]
name = "title"
content = "Sample Book"

[[recipes.recipe.metadata]]
name = "identifier"
content = "urn:uuid:00000000-0000-4000-8000-000000000000"

[[recipes.recipe.metadata]]
name = "language"
content = "en"

[[recipes.recipe.manifest]]
outside_path = "ch1.xhtml"
inside_path_from_opf = "text/ch1.xhtml"
media-type = "application/xhtml+xml"
id = "c1"

[[recipes.recipe.manifest]]
outside_path = "ch2.xhtml"
inside_path_from_opf = "text/ch2.xhtml"
media-type = "application/xhtml+xml"
id = "c2"

[[recipes.recipe.navmap]]
label = "Chapter One"
idref = "c1"

[[recipes.recipe.navmap.children]]
label = "Opening"
idref = "c1"
fragment = "start"

[[recipes.recipe.navmap]]
label = "Chapter Two"
idref = "c2"

[[recipes]]
name = "pdf"
format = "pdf"

[recipes.recipe]
manifest = []
"""


@pytest.fixture
def recipe_file(content_dir):
    path = content_dir / "book.toml"
    path.write_text(RECIPE_TOML, encoding="utf-8")
    return path


def test_load_toml_recipes(recipe_file):
    recipes = load_recipes(recipe_file)
    assert [(r.name, r.format) for r in recipes] == [("sample", "epub2"), ("pdf", "pdf")]
    sample = find_recipe(recipes, "sample")
    assert sample.body["manifest"][1]["id"] == "c2"
    assert sample.body["navmap"][0]["children"][0]["fragment"] == "start"


def test_load_json_recipes(tmp_path):
    path = tmp_path / "book.json"
    path.write_text(
        json.dumps({"recipes": [{"name": "j", "format": "epub2", "recipe": {"manifest": []}}]}),
        encoding="utf-8",
    )
    assert load_recipes(path) == [Recipe(name="j", format="epub2", body={"manifest": []})]


def test_missing_recipe_name(recipe_file):
    with pytest.raises(ConfigError, match="Recipe nope not found"):
        find_recipe(load_recipes(recipe_file), "nope", str(recipe_file))


def test_unknown_format(recipe_file):
    recipe = find_recipe(load_recipes(recipe_file), "pdf")
    with pytest.raises(ConfigError, match="Format pdf not recognized in recipe pdf"):
        build_recipe(recipe)


def test_malformed_toml(tmp_path):
    path = tmp_path / "broken.toml"
    path.write_text("[[recipes]\nname = ", encoding="utf-8")
    with pytest.raises(ConfigError, match="Failed to parse"):
        load_recipes(path)


def test_missing_recipe_file(tmp_path):
    with pytest.raises(BookIOError):
        load_recipes(tmp_path / "absent.toml")


@pytest.mark.parametrize(
    "data, message",
    [
        ({}, "'recipes' list"),
        ({"recipes": ["x"]}, "must be a table"),
        ({"recipes": [{"name": "a", "recipe": {}}]}, "'format'"),
        ({"recipes": [{"name": "a", "format": "epub2"}]}, "'recipe' table"),
    ],
)
def test_parse_recipes_rejects_bad_structure(data, message):
    with pytest.raises(ConfigError, match=message):
        parse_recipes(data)


def test_build_recipe_from_file(recipe_file, reader, read_xml, ns):
    archive = build_recipe(find_recipe(load_recipes(recipe_file), "sample"), reader)
    ncx = read_xml(archive, "OEBPS/toc.ncx")
    points = ncx.findall("ncx:navMap/ncx:navPoint", ns)
    assert [p.findtext("ncx:navLabel/ncx:text", namespaces=ns) for p in points] == [
        "Chapter One",
        "Chapter Two",
    ]
    child = points[0].find("ncx:navPoint", ns)
    assert child.find("ncx:content", ns).get("src") == "text/ch1.xhtml#start"
    assert ncx.find("ncx:head/ncx:meta[@name='dtb:depth']", ns).get("content") == "2"


def test_command_line_build(recipe_file, tmp_path):
    output = tmp_path / "sample.epub"
    build_epub.main(
        ["--recipe-file", str(recipe_file), "--recipe", "sample", "--output", str(output)]
    )
    with zipfile.ZipFile(io.BytesIO(output.read_bytes())) as zf:
        assert zf.namelist()[0] == "mimetype"
        assert "OEBPS/text/ch2.xhtml" in zf.namelist()


def test_command_line_builds_are_identical(recipe_file, tmp_path):
    first, second = tmp_path / "a.epub", tmp_path / "b.epub"
    for output in (first, second):
        build_epub.main(
            ["--recipe-file", str(recipe_file), "--recipe", "sample", "--output", str(output)]
        )
    assert first.read_bytes() == second.read_bytes()


def test_command_line_base_dir(recipe_file, tmp_path, content_dir):
    moved = tmp_path / "elsewhere" / "book.toml"
    moved.parent.mkdir()
    moved.write_text(recipe_file.read_text(encoding="utf-8"), encoding="utf-8")
    output = tmp_path / "sample.epub"
    build_epub.main(
        [
            "--recipe-file",
            str(moved),
            "--recipe",
            "sample",
            "--output",
            str(output),
            "--base-dir",
            str(content_dir),
        ]
    )
    assert output.exists()


def test_command_line_reports_errors(recipe_file, tmp_path):
    with pytest.raises(SystemExit, match="not found"):
        build_epub.main(
            ["--recipe-file", str(recipe_file), "--recipe", "nope", "--output", str(tmp_path / "x.epub")]
        )
    assert not (tmp_path / "x.epub").exists()
