"""Errors raised while compiling a recipe into an EPUB package."""

from __future__ import annotations


class BookBuildError(Exception):
    """Base class for every failure that aborts a build."""


class ConfigError(BookBuildError):
    """The recipe does not parse into the typed configuration."""


class PathError(BookBuildError):
    """An archive-internal path is malformed."""


class CollisionError(BookBuildError):
    """Two archive paths or two identifiers collide case-insensitively."""


class UnresolvedReferenceError(BookBuildError):
    """An idref does not name any manifest item."""


class SchemaError(BookBuildError):
    """A Dublin Core element name is not recognized."""


class StructuralError(BookBuildError):
    """The package cannot be given a valid reading order."""


class BookIOError(BookBuildError, OSError):
    """Reading an external path or writing the archive failed."""
