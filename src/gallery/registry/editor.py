"""Registry mutators — reclassify, rename and delete version records.

Each mutator is one transaction against the registry file:

1. validate arguments (no I/O yet)
2. take the per-file lock
3. read the file, locate the record, compute the new buffer
4. re-scan the new buffer and check it still describes a valid registry
5. write it back atomically

The registry file is the source of truth. Companion file removal in ``delete``
happens after the registry write and never rolls it back.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from gallery.errors import InvalidArgument, NotFound, StorageError
from gallery.fileio import read_text, write_atomic
from gallery.registry.companion import CompanionFiles, check_id
from gallery.registry.scanner import (
    RegistryDocument,
    Span,
    expand_to_lines,
    quote,
    replace,
    scan,
)

logger = logging.getLogger(__name__)


class Classification(str, Enum):
    FINAL = "final"
    PAGE = "page"
    ELEMENT = "element"

    @classmethod
    def parse(cls, value: object) -> Classification:
        try:
            return cls(value)
        except (ValueError, TypeError):
            raise InvalidArgument("Invalid version type") from None


@dataclass
class VersionRecord:
    """One entry of the registry as seen by callers."""

    id: str
    title: str | None
    type: str | None
    component: str | None = None
    source: str | None = None  # import path of the companion module

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "type": self.type,
            "component": self.component,
            "source": self.source,
        }


@dataclass
class DeleteOutcome:
    """Separately reported phases of a delete."""

    id: str
    registry_updated: bool
    file_removed: bool

    @property
    def partial(self) -> bool:
        return self.registry_updated and not self.file_removed


# One lock per registry file per process.
_locks: dict[Path, threading.RLock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    key = path.resolve()
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = _locks[key] = threading.RLock()
        return lock


class RegistryEditor:
    """Targeted edits to the version registry source file."""

    def __init__(
        self,
        registry_path: Path,
        companions: CompanionFiles | None = None,
        list_name: str = "versions",
    ) -> None:
        self.registry_path = registry_path
        self.companions = companions or CompanionFiles(registry_path.parent)
        self.list_name = list_name
        self._lock = _lock_for(registry_path)

    @contextmanager
    def _locked(self) -> Iterator[None]:
        with self._lock:
            yield

    def _read(self) -> RegistryDocument:
        if not self.registry_path.exists():
            logger.error("Registry file missing: %s", self.registry_path)
            raise StorageError()
        return scan(read_text(self.registry_path), self.list_name)

    # ── Reads ────────────────────────────────────────────────

    def list_versions(self) -> list[VersionRecord]:
        doc = self._read()
        result = []
        for record in doc.records:
            if record.id is None:
                continue
            component = record.value("component")
            imp = doc.import_for(component) if component else None
            result.append(
                VersionRecord(
                    id=record.id,
                    title=record.value("title"),
                    type=record.value("type"),
                    component=component,
                    source=imp.source if imp else None,
                )
            )
        return result

    def get(self, version_id: str) -> VersionRecord:
        for record in self.list_versions():
            if record.id == version_id:
                return record
        raise NotFound()

    # ── Field edits ──────────────────────────────────────────

    def _set_string_field(self, version_id: str, field_name: str, value: str) -> bool:
        """Replace one string field. Returns False when it already held ``value``."""
        with self._locked():
            doc = self._read()
            record = doc.find(version_id)
            current = record.fields.get(field_name)
            if current is None:
                raise NotFound()
            if current.kind == "string" and current.value == value:
                return False

            new_text = replace(doc.text, current.span, quote(value, current.quote or '"'))

            check = scan(new_text, self.list_name)
            if (
                len(check.records) != len(doc.records)
                or check.find(version_id).value(field_name) != value
            ):
                logger.error("Edit of %s.%s failed validation; not written", version_id, field_name)
                raise StorageError()

            write_atomic(self.registry_path, new_text)
            return True

    def reclassify(self, version_id: str, classification: str) -> Classification:
        """Change a record's ``type``. Same-type requests leave the file untouched."""
        check_id(version_id)
        target = Classification.parse(classification)
        changed = self._set_string_field(version_id, "type", target.value)
        if changed:
            logger.info("Reclassified version %s -> %s", version_id, target.value)
        return target

    def rename(self, version_id: str, title: object) -> str:
        """Change a record's ``title``."""
        check_id(version_id)
        if not isinstance(title, str) or not title.strip():
            raise InvalidArgument("Title must not be empty")
        title = title.strip()
        changed = self._set_string_field(version_id, "title", title)
        if changed:
            logger.info("Renamed version %s -> %r", version_id, title)
        return title

    # ── Delete ───────────────────────────────────────────────

    def delete(self, version_id: str) -> DeleteOutcome:
        """Remove the record, its import line and then its companion file."""
        check_id(version_id)
        with self._locked():
            doc = self._read()
            record = doc.find(version_id)

            binding = record.value("component")
            imp = doc.import_for(binding) if binding else None
            if imp is None:
                raise NotFound("Import not found for version")
            # The import may still be used by another record.
            shared = any(
                r is not record and r.value("component") == binding for r in doc.records
            )

            edits = [self._record_removal(doc, record.span, record.comma, record.prev_comma)]
            if not shared:
                edits.append((expand_to_lines(doc.text, imp.span), ""))
            new_text = doc.text
            # Apply from the end so earlier offsets stay valid.
            for span, replacement in sorted(edits, key=lambda e: e[0].start, reverse=True):
                new_text = replace(new_text, span, replacement)

            self._validate_delete(doc, new_text, version_id, imp.source, shared)
            write_atomic(self.registry_path, new_text)
            logger.info("Deleted version %s from registry", version_id)

            if shared:
                logger.info("Import %s still referenced; companion kept", imp.source)
                file_removed = False
            else:
                try:
                    file_removed = self.companions.remove(imp.source)
                except InvalidArgument:
                    logger.warning("Refusing to remove companion %s for %s", imp.source, version_id)
                    file_removed = False

        outcome = DeleteOutcome(id=version_id, registry_updated=True, file_removed=file_removed)
        if outcome.partial:
            logger.warning("Version %s deleted but companion file was not removed", version_id)
        return outcome

    def _record_removal(
        self, doc: RegistryDocument, span: Span, comma: Span | None, prev_comma: Span | None
    ) -> tuple[Span, str]:
        if doc.element_count == 1:
            return doc.list_span, "[]"
        if comma is not None:
            # Take the element with its own comma.
            return expand_to_lines(doc.text, Span(span.start, comma.end)), ""
        # Last element without a trailing comma: the previous comma would dangle.
        if prev_comma is None:
            raise StorageError()
        return Span(prev_comma.start, span.end), ""

    def _validate_delete(
        self, before: RegistryDocument, new_text: str, version_id: str, source: str, shared: bool
    ) -> None:
        after = scan(new_text, self.list_name)
        expected_imports = len(before.imports) - (0 if shared else 1)
        ok = (
            len(after.records) == len(before.records) - 1
            and all(r.id != version_id for r in after.records)
            and len(after.imports) == expected_imports
            and (shared or all(i.source != source for i in after.imports))
            and (after.element_count == 0 or after.trailing_comma == before.trailing_comma)
        )
        if not ok:
            logger.error("Delete of %s failed validation; not written", version_id)
            raise StorageError()
