#!/usr/bin/env python3
"""Zip files and directories behind an EPUB mimetype entry."""

from __future__ import annotations

import argparse
import io
import logging
import pathlib
import sys
import zipfile
import zlib
from typing import List, Optional, Sequence, Tuple

from epub2_config import EPUB_MIMETYPE, MIMETYPE_PATH
from epub_errors import BookBuildError, BookIOError, PathError
from epub_paths import (
    check_inside_path_is_valid,
    check_no_duplicate_inside_paths,
    join_inside_path,
    normalize_inside_path,
)

logger = logging.getLogger(__name__)

# Fixed timestamp keeps archives reproducible
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


def choose_encoding(data: bytes) -> int:
    """Return ZIP_DEFLATED when raw DEFLATE makes ``data`` strictly smaller."""
    compressor = zlib.compressobj(zlib.Z_DEFAULT_COMPRESSION, zlib.DEFLATED, -15)
    compressed = compressor.compress(data) + compressor.flush()
    if len(compressed) < len(data):
        return zipfile.ZIP_DEFLATED
    return zipfile.ZIP_STORED


class FilesystemReader:
    """Reads external files and directory trees, relative to ``base_dir``."""

    def __init__(self, base_dir: pathlib.Path | str | None = None) -> None:
        self.base_dir = pathlib.Path(base_dir) if base_dir is not None else pathlib.Path.cwd()

    def resolve(self, outside_path: str) -> pathlib.Path:
        return self.base_dir / pathlib.Path(outside_path).expanduser()

    def is_dir(self, outside_path: str) -> bool:
        return self.resolve(outside_path).is_dir()

    def read(self, outside_path: str) -> bytes:
        path = self.resolve(outside_path)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise BookIOError(f"Failed to read {path}: {exc}") from exc

    def list_children(self, outside_path: str) -> List[Tuple[str, str]]:
        path = self.resolve(outside_path)
        try:
            children = sorted(path.iterdir(), key=lambda child: child.name)
        except OSError as exc:
            raise BookIOError(f"Failed to list {path}: {exc}") from exc
        return [(child.name, str(child)) for child in children]

    def walk(self, outside_path: str, inside_path: str) -> List[Tuple[str, bytes]]:
        """Expand a file or directory into ``(inside_path, contents)`` pairs."""
        if not self.is_dir(outside_path):
            return [(inside_path, self.read(outside_path))]
        entries: List[Tuple[str, bytes]] = []
        for name, child_path in self.list_children(outside_path):
            entries.extend(self.walk(child_path, join_inside_path(inside_path, name)))
        return entries


class EpubArchiveWriter:
    """In-memory zip writer; use as a context manager and call :meth:`finish`."""

    def __init__(self) -> None:
        self._buffer = io.BytesIO()
        self._zip = zipfile.ZipFile(self._buffer, mode="w")
        self._entry: Optional[io.BufferedIOBase] = None
        self._finished = False

    def __enter__(self) -> "EpubArchiveWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def start_entry(self, archive_path: str, compression: int) -> None:
        self._close_entry()
        info = zipfile.ZipInfo(archive_path, date_time=ZIP_EPOCH)
        info.compress_type = compression
        info.external_attr = 0o644 << 16
        try:
            self._entry = self._zip.open(info, mode="w")
        except (OSError, ValueError) as exc:
            raise BookIOError(f"Failed to start archive entry {archive_path}: {exc}") from exc

    def write(self, data: bytes) -> None:
        if self._entry is None:
            raise BookIOError("No archive entry has been started")
        try:
            self._entry.write(data)
        except (OSError, ValueError) as exc:
            raise BookIOError(f"Failed to write archive entry: {exc}") from exc

    def write_entry(self, archive_path: str, data: bytes) -> int:
        compression = choose_encoding(data)
        logger.debug(
            "%s: %s (%d bytes)",
            archive_path,
            "deflated" if compression == zipfile.ZIP_DEFLATED else "stored",
            len(data),
        )
        self.start_entry(archive_path, compression)
        self.write(data)
        return compression

    def write_mimetype(self) -> None:
        # Must be the first entry and never compressed
        self.start_entry(MIMETYPE_PATH, zipfile.ZIP_STORED)
        self.write(EPUB_MIMETYPE.encode("ascii"))

    def _close_entry(self) -> None:
        if self._entry is not None:
            self._entry.close()
            self._entry = None

    def finish(self) -> bytes:
        self._close_entry()
        try:
            self._zip.close()
        except OSError as exc:
            raise BookIOError(f"Failed to finish archive: {exc}") from exc
        self._finished = True
        return self._buffer.getvalue()

    def close(self) -> None:
        """Release the writer; an unfinished archive is discarded."""
        if self._finished:
            return
        try:
            self._close_entry()
            self._zip.close()
        finally:
            self._buffer = io.BytesIO()
            self._finished = True


def zip_with_epub_mimetype(
    in_paths: Sequence[str], reader: Optional[FilesystemReader] = None
) -> bytes:
    """Zip each path (file or directory) under its own base name, mimetype first."""
    reader = reader or FilesystemReader()
    entries: List[Tuple[str, bytes]] = []
    for path in in_paths:
        name = pathlib.PurePath(path).name
        if not name:
            raise PathError(f"Ill-formed path without a final name: {path!r}")
        entries.extend(reader.walk(path, normalize_inside_path(name)))
    inside_paths = [inside for inside, _ in entries]
    for inside in inside_paths:
        check_inside_path_is_valid(inside)
    check_no_duplicate_inside_paths([MIMETYPE_PATH, *inside_paths])

    with EpubArchiveWriter() as writer:
        writer.write_mimetype()
        for inside, data in entries:
            writer.write_entry(inside, data)
        return writer.finish()


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--output", required=True, help="Destination EPUB file path")
    parser.add_argument("paths", nargs="+", help="Files and directories to place at the archive root")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    output_path = pathlib.Path(args.output).expanduser().resolve()
    try:
        data = zip_with_epub_mimetype(args.paths)
        output_path.write_bytes(data)
    except (BookBuildError, OSError) as exc:
        raise SystemExit(str(exc)) from exc
    logger.info("Wrote EPUB to %s", output_path)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        sys.exit(130)
