"""Companion files: the component modules imported by the registry."""

from __future__ import annotations

import logging
from pathlib import Path

from gallery.errors import InvalidArgument

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = (".tsx", ".ts", ".jsx", ".js")


def check_id(version_id: str) -> str:
    """Reject ids that could escape the versions directory."""
    if not isinstance(version_id, str) or not version_id.strip():
        raise InvalidArgument("Missing version id")
    if (
        "/" in version_id
        or "\\" in version_id
        or ".." in version_id
        or "\0" in version_id
        or version_id.startswith(".")
    ):
        raise InvalidArgument("Invalid version id")
    return version_id


class CompanionFiles:
    """Resolve import paths to files under ``root`` and remove them."""

    def __init__(
        self, root: Path, extensions: list[str] | tuple[str, ...] = DEFAULT_EXTENSIONS
    ) -> None:
        self.root = root
        self.extensions = tuple(extensions)

    def resolve(self, import_path: str) -> Path | None:
        """Map ``./name`` to an existing file under root, or None if absent."""
        if not import_path.startswith("./"):
            raise InvalidArgument("Companion import must be relative")
        root = self.root.resolve()
        base = (root / import_path).resolve()
        if not base.is_relative_to(root) or base == root:
            raise InvalidArgument("Companion import escapes the versions directory")

        candidates = [base] + [base.with_name(base.name + ext) for ext in self.extensions]
        for candidate in candidates:
            if candidate.is_file():
                return candidate
        return None

    def remove(self, import_path: str) -> bool:
        """Delete the file behind ``import_path``. Best-effort: returns success."""
        path = self.resolve(import_path)
        if path is None:
            logger.warning("Companion file for %s not found under %s", import_path, self.root)
            return False
        try:
            path.unlink()
        except OSError as exc:
            logger.warning("Failed to remove companion file %s: %s", path, exc)
            return False
        logger.info("Removed companion file: %s", path.name)
        return True
