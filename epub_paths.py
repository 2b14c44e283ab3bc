"""Archive path and identifier validation, plus relative href computation."""

from __future__ import annotations

import posixpath
from typing import Iterable, List, Sequence, Set

from epub_errors import CollisionError, PathError

INVALID_COMPONENT_CHARS = ('/', '"', "*", ":", "<", ">", "?", "\\")
MAX_FILENAME_BYTES = 255
MAX_PATH_BYTES = 65535

_ASCII_FOLD = str.maketrans(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ", "abcdefghijklmnopqrstuvwxyz"
)


def ascii_fold(value: str) -> str:
    """Lower-case ASCII letters only; other characters compare exactly."""
    return value.translate(_ASCII_FOLD)


def normalize_inside_path(path: str) -> str:
    """Lexically resolve ``.`` and ``..`` segments of an archive path.

    Backslashes are left alone so that validation reports them; the result
    never ends with a separator.
    """
    if not path:
        return ""
    normalized = posixpath.normpath(path)
    return "" if normalized == "." else normalized


def join_inside_path(directory: str, path: str) -> str:
    if not directory:
        return normalize_inside_path(path)
    return normalize_inside_path(f"{directory}/{path}")


def parent_dir(path: str) -> str:
    return posixpath.dirname(normalize_inside_path(path))


def _components(path: str) -> List[str]:
    path = normalize_inside_path(path.replace("\\", "/"))
    return [part for part in path.split("/") if part]


def check_inside_path_is_valid(path: str) -> None:
    """Raise :class:`PathError` unless ``path`` may name an archive entry."""
    try:
        encoded = path.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise PathError(f"Invalid non-UTF-8 path: {path!r}") from exc
    if path.startswith("/"):
        raise PathError(f"Invalid absolute path {path!r}; archive paths are relative.")
    components = path.split("/")
    filename = components[-1]
    if not filename or filename == "..":
        raise PathError(f"Invalid path without a file name: {path!r}")
    if len(filename.encode("utf-8")) > MAX_FILENAME_BYTES:
        raise PathError(f"Invalid filename of length >{MAX_FILENAME_BYTES} bytes: {filename}")
    if len(encoded) > MAX_PATH_BYTES:
        raise PathError(f"Invalid path of length >{MAX_PATH_BYTES} bytes: {path}")
    for component in components:
        if not component:
            raise PathError(f"Path {path!r} contains an empty component.")
        for char in INVALID_COMPONENT_CHARS:
            if char in component:
                raise PathError(f"Path {path!r} contains invalid character '{char}'.")
        if component.endswith("."):
            raise PathError(f"Path {path!r} has component {component!r} ending with '.'.")


def check_no_duplicate_inside_paths(paths: Iterable[str]) -> None:
    """Raise :class:`CollisionError` if two paths differ only by ASCII case."""
    folded = sorted((ascii_fold(path), path) for path in paths)
    for (left_key, left), (right_key, right) in zip(folded, folded[1:]):
        if left_key == right_key:
            raise CollisionError(
                "Attempted to store multiple files at the same inside path, or at inside "
                f"paths differing only by case: {left!r} and {right!r}"
            )


def check_no_duplicate_ids(ids: Iterable[str], namespace: str) -> None:
    folded = sorted((ascii_fold(value), value) for value in ids)
    for (left_key, left), (right_key, right) in zip(folded, folded[1:]):
        if left_key == right_key:
            raise CollisionError(
                f"Duplicate identifier in {namespace}: {left!r} collides with {right!r}"
            )


def safe_unique_id(base: str, taken: Iterable[str]) -> str:
    """Return ``base``, or ``base_1``, ``base_2``... whichever is first unused."""
    folded: Set[str] = {ascii_fold(value) for value in taken}
    candidate = base
    counter = 0
    while ascii_fold(candidate) in folded:
        counter += 1
        candidate = f"{base}_{counter}"
    return candidate


def _common_prefix_length(left: Sequence[str], right: Sequence[str]) -> int:
    length = 0
    for a, b in zip(left, right):
        if a != b:
            break
        length += 1
    return length


def relative_href(from_path: str, to_path: str) -> str:
    """Href that, resolved against the directory of ``from_path``, names ``to_path``.

    Both arguments are archive paths of files. Used for OPF hrefs (relative to
    the OPF) and NCX content hrefs (relative to the NCX), which differ whenever
    the two documents live in different directories.
    """
    from_dir = _components(from_path)[:-1]
    target = _components(to_path)
    if not target:
        raise PathError(f"Cannot reference a path without a file name: {to_path!r}")
    target_dir, filename = target[:-1], target[-1]

    # Same directory
    if target_dir == from_dir:
        return filename

    # The referencing document sits below the target's directory
    if target_dir and from_dir[: len(target_dir)] == target_dir:
        return "../" * (len(from_dir) - len(target_dir)) + filename

    # Climb to the deepest common ancestor, then descend
    common = _common_prefix_length(from_dir, target_dir)
    if common:
        return "../" * (len(from_dir) - common) + "/".join(target[common:])

    # Nothing shared below the archive root
    return "../" * len(from_dir) + "/".join(target)


def join_href(from_path: str, href: str) -> str:
    """Resolve ``href`` against the directory of ``from_path``; inverse of :func:`relative_href`."""
    return join_inside_path(parent_dir(from_path), href)
