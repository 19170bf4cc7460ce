"""Notes store — one JSON document mapping version id to its note.

Whole-file replace semantics: ``replace_all`` overwrites the document with
exactly what the caller sends. Notes for deleted versions are kept.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TypedDict

from gallery.errors import InvalidArgument, StorageError
from gallery.fileio import read_text, write_atomic

logger = logging.getLogger(__name__)


class NoteEntry(TypedDict, total=False):
    notes: str
    source: str
    approvedAt: str


class NotesStore:
    """Read/replace access to the notes document."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def get_all(self) -> dict[str, NoteEntry]:
        """Return the persisted mapping, or {} if nothing was written yet."""
        if not self.path.exists():
            return {}
        raw = read_text(self.path)
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error("Notes file %s is not valid JSON: %s", self.path, exc)
            raise StorageError() from exc
        if not isinstance(data, dict):
            logger.error("Notes file %s does not hold a JSON object", self.path)
            raise StorageError()
        return data

    def replace_all(self, mapping: object) -> None:
        """Overwrite the document. No merge with the previous contents."""
        if not isinstance(mapping, dict):
            raise InvalidArgument("Notes must be a JSON object")
        for key, entry in mapping.items():
            if not isinstance(key, str) or not isinstance(entry, dict):
                raise InvalidArgument("Each note must be an object keyed by version id")

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("Cannot create notes directory %s: %s", self.path.parent, exc)
            raise StorageError() from exc
        write_atomic(self.path, json.dumps(mapping, indent=2, ensure_ascii=False))
        logger.info("Saved notes for %d versions", len(mapping))
