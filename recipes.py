"""Recipe files: named, format-tagged book recipes in TOML or JSON."""

from __future__ import annotations

import json
import logging
import pathlib
import tomllib
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from epub2_build import build_epub2
from epub_errors import BookIOError, ConfigError
from epub_types import RecipeFile
from epub_zip import FilesystemReader

logger = logging.getLogger(__name__)

EPUB2_FORMAT = "epub2"


@dataclass(frozen=True)
class Recipe:
    name: str
    format: str
    body: Mapping[str, Any]


def _read_recipe_file(path: pathlib.Path) -> RecipeFile:
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise BookIOError(f"Failed to read recipe file {path}: {exc}") from exc
    try:
        if path.suffix.lower() == ".json":
            return json.loads(raw.decode("utf-8"))
        return tomllib.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Failed to parse recipe file {path}: {exc}") from exc


def parse_recipes(data: Mapping[str, Any], source: str = "recipe file") -> List[Recipe]:
    entries = data.get("recipes")
    if not isinstance(entries, list):
        raise ConfigError(f"{source} must contain a 'recipes' list")
    recipes: List[Recipe] = []
    for index, entry in enumerate(entries):
        context = f"{source}: recipes[{index}]"
        if not isinstance(entry, Mapping):
            raise ConfigError(f"{context} must be a table")
        for key in ("name", "format"):
            if not isinstance(entry.get(key), str):
                raise ConfigError(f"{context} needs a string '{key}'")
        body = entry.get("recipe")
        if not isinstance(body, Mapping):
            raise ConfigError(f"{context} needs a 'recipe' table")
        recipes.append(Recipe(name=entry["name"], format=entry["format"], body=body))
    return recipes


def load_recipes(path: pathlib.Path | str) -> List[Recipe]:
    path = pathlib.Path(path)
    recipes = parse_recipes(_read_recipe_file(path), str(path))
    logger.debug("Loaded %d recipes from %s", len(recipes), path)
    return recipes


def find_recipe(recipes: List[Recipe], name: str, source: str = "recipe file") -> Recipe:
    for recipe in recipes:
        if recipe.name == name:
            return recipe
    raise ConfigError(f"Recipe {name} not found in {source}.")


def build_recipe(recipe: Recipe, reader: Optional[FilesystemReader] = None) -> bytes:
    """Build ``recipe`` with the builder for its format."""
    builders: Dict[str, Any] = {EPUB2_FORMAT: build_epub2}
    builder = builders.get(recipe.format)
    if builder is None:
        raise ConfigError(f"Format {recipe.format} not recognized in recipe {recipe.name}")
    logger.info("Building recipe '%s' (%s)", recipe.name, recipe.format)
    return builder(recipe, reader)
