"""Error types shared by the registry editor, notes store and HTTP boundary."""

from __future__ import annotations


class GalleryError(Exception):
    """Base class. ``message`` is safe to show to a client (no paths)."""

    status = 500
    default_message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidArgument(GalleryError):
    """Malformed classification, empty title, unsafe id or request body."""

    status = 400
    default_message = "Invalid argument"


class NotFound(GalleryError):
    """Id absent from the registry, or its companion import is missing."""

    status = 404
    default_message = "Version not found"


class DuplicateRecord(GalleryError):
    """The same id appears in more than one record block."""

    status = 409
    default_message = "Version id is ambiguous"


class StorageError(GalleryError):
    """Read/write failure, or a file that does not parse or validate."""

    status = 500
    default_message = "Storage error"
