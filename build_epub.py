#!/usr/bin/env python3
"""Build an ebook from a named recipe in a recipe file, optionally validating it with epubcheck."""

from __future__ import annotations

import argparse
import logging
import pathlib
import subprocess
import sys
from typing import List, Optional, Sequence

from epub_errors import BookBuildError
from epub_zip import FilesystemReader
from recipes import build_recipe, find_recipe, load_recipes

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--recipe-file", required=True, help="TOML or JSON file holding the recipes")
    parser.add_argument("--recipe", required=True, help="Name of the recipe to build")
    parser.add_argument("--output", required=True, help="Destination EPUB file path")
    parser.add_argument(
        "--base-dir",
        help="Directory that outside paths are relative to (default: the recipe file's directory)",
    )
    parser.add_argument("--verbose", action="store_true", help="Log every archive entry")
    parser.add_argument("--epubcheck", help="Path to epubcheck CLI binary to validate the output file")
    parser.add_argument(
        "--epubcheck-args",
        nargs=argparse.REMAINDER,
        help="Arguments passed to epubcheck after the binary and before the EPUB path",
    )
    return parser.parse_args(argv)


def run_epubcheck(epubcheck: str, additional_args: List[str], output_path: pathlib.Path) -> None:
    cmd = [epubcheck, *(additional_args or []), str(output_path)]
    logger.info("Running epubcheck: %s", " ".join(cmd))
    result = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)
    print(result.stdout)
    if result.returncode != 0:
        raise SystemExit(f"epubcheck failed with exit code {result.returncode}")


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    recipe_path = pathlib.Path(args.recipe_file).expanduser().resolve()
    output_path = pathlib.Path(args.output).expanduser().resolve()
    base_dir = (
        pathlib.Path(args.base_dir).expanduser().resolve() if args.base_dir else recipe_path.parent
    )

    try:
        recipe = find_recipe(load_recipes(recipe_path), args.recipe, str(recipe_path))
        book = build_recipe(recipe, FilesystemReader(base_dir))
        output_path.write_bytes(book)
    except (BookBuildError, OSError) as exc:
        raise SystemExit(str(exc)) from exc
    logger.info("Wrote EPUB to %s", output_path)

    if args.epubcheck:
        additional = args.epubcheck_args or []
        run_epubcheck(args.epubcheck, additional, output_path)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        sys.exit(130)
