"""HTTP boundary — aiohttp routes for notes and version edits.

Routes (under ``config.server.api_prefix``):
- GET    /notes                  full notes mapping
- POST   /notes                  replace the notes mapping
- GET    /versions               registry records
- POST   /versions/{id}/type     reclassify
- POST   /versions/{id}/title    rename
- DELETE /versions/{id}          delete record, import and companion file

Anything else falls through to aiohttp's default 404.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

from aiohttp import web

from gallery.config import GalleryConfig
from gallery.errors import GalleryError
from gallery.notes import NotesStore
from gallery.registry.companion import CompanionFiles
from gallery.registry.editor import RegistryEditor

logger = logging.getLogger(__name__)


class GalleryAPI:
    """Request handlers. File work runs in a worker thread."""

    def __init__(self, editor: RegistryEditor, notes: NotesStore) -> None:
        self.editor = editor
        self.notes = notes

    def register(self, app: web.Application, prefix: str = "/api") -> None:
        prefix = prefix.rstrip("/")
        app.router.add_get(f"{prefix}/notes", self._handle_get_notes)
        app.router.add_post(f"{prefix}/notes", self._handle_post_notes)
        app.router.add_get(f"{prefix}/versions", self._handle_list_versions)
        app.router.add_post(f"{prefix}/versions/{{id}}/type", self._handle_reclassify)
        app.router.add_post(f"{prefix}/versions/{{id}}/title", self._handle_rename)
        app.router.add_delete(f"{prefix}/versions/{{id}}", self._handle_delete)

    # ── Helpers ──────────────────────────────────────────────

    async def _call(self, fallback: str, func: Callable[..., Any], *args: Any) -> Any:
        """Run ``func`` off the event loop, mapping failures to HTTP errors."""
        try:
            return await asyncio.to_thread(func, *args)
        except GalleryError as exc:
            if exc.status >= 500:
                logger.error("%s: %s", fallback, exc.message)
                raise _error(exc.status, fallback) from exc
            logger.warning("%s: %s", fallback, exc.message)
            raise _error(exc.status, exc.message) from exc
        except Exception as exc:
            logger.exception("%s: unexpected error", fallback)
            raise _error(500, fallback) from exc

    async def _json_object(self, request: web.Request) -> dict:
        try:
            payload = await request.json()
        except ValueError:
            raise _error(400, "Expected JSON body") from None
        if not isinstance(payload, dict):
            raise _error(400, "Body must be a JSON object")
        return payload

    # ── Notes ────────────────────────────────────────────────

    async def _handle_get_notes(self, request: web.Request) -> web.Response:
        data = await self._call("Failed to read notes", self.notes.get_all)
        return web.json_response(data)

    async def _handle_post_notes(self, request: web.Request) -> web.Response:
        payload = await self._json_object(request)
        await self._call("Failed to write notes", self.notes.replace_all, payload)
        return web.json_response({"success": True})

    # ── Versions ─────────────────────────────────────────────

    async def _handle_list_versions(self, request: web.Request) -> web.Response:
        records = await self._call("Failed to read versions", self.editor.list_versions)
        return web.json_response({"versions": [r.to_dict() for r in records]})

    async def _handle_reclassify(self, request: web.Request) -> web.Response:
        version_id = request.match_info["id"]
        payload = await self._json_object(request)
        target = await self._call(
            "Failed to update version type",
            self.editor.reclassify,
            version_id,
            payload.get("type"),
        )
        return web.json_response({"success": True, "id": version_id, "type": target.value})

    async def _handle_rename(self, request: web.Request) -> web.Response:
        version_id = request.match_info["id"]
        payload = await self._json_object(request)
        title = await self._call(
            "Failed to update version title",
            self.editor.rename,
            version_id,
            payload.get("title"),
        )
        return web.json_response({"success": True, "id": version_id, "title": title})

    async def _handle_delete(self, request: web.Request) -> web.Response:
        version_id = request.match_info["id"]
        outcome = await self._call("Failed to delete version", self.editor.delete, version_id)
        return web.json_response(
            {"success": True, "id": version_id, "fileRemoved": outcome.file_removed}
        )


def _error(status: int, message: str) -> web.HTTPException:
    exc_class = {
        400: web.HTTPBadRequest,
        404: web.HTTPNotFound,
        409: web.HTTPConflict,
    }.get(status, web.HTTPInternalServerError)
    return exc_class(text=json.dumps({"error": message}), content_type="application/json")


def create_app(config: GalleryConfig) -> web.Application:
    """Build the aiohttp application for ``config``."""
    registry = config.registry
    editor = RegistryEditor(
        registry.registry_path,
        CompanionFiles(registry.versions_dir, registry.companion_extensions),
        list_name=registry.list_name,
    )
    api = GalleryAPI(editor, NotesStore(config.notes.notes_file))

    app = web.Application()
    api.register(app, config.server.api_prefix)
    logger.info(
        "Serving registry %s and notes %s under %s",
        registry.registry_path,
        config.notes.notes_file,
        config.server.api_prefix,
    )
    return app

