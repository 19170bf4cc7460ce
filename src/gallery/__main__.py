"""Entry point: python -m gallery [serve|list]

- "serve" (default): HTTP API for notes and version edits
- "list":            Print the registry records
"""

from __future__ import annotations

import asyncio
import logging
import sys

from gallery.config import load_config
from gallery.errors import GalleryError


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _run_serve() -> None:
    """Server mode — blocks until SIGINT/SIGTERM."""
    config = load_config()
    _setup_logging(config.log_level)

    from gallery.daemon import GalleryDaemon

    daemon = GalleryDaemon(config)
    asyncio.run(daemon.run())


def _run_list() -> None:
    config = load_config()
    _setup_logging(config.log_level)

    from gallery.registry.companion import CompanionFiles
    from gallery.registry.editor import RegistryEditor

    registry = config.registry
    editor = RegistryEditor(
        registry.registry_path,
        CompanionFiles(registry.versions_dir, registry.companion_extensions),
        list_name=registry.list_name,
    )
    try:
        records = editor.list_versions()
    except GalleryError as e:
        print(f"Cannot read registry: {e.message}", file=sys.stderr)
        sys.exit(1)

    if not records:
        print("No versions yet.")
    for record in records:
        print(f"{record.id:<12} {record.type or '-':<8} {record.title or ''}")


def main() -> None:
    cmd = sys.argv[1] if len(sys.argv) > 1 else "serve"

    if cmd == "serve":
        _run_serve()
    elif cmd in ("list", "ls"):
        _run_list()
    else:
        print("Usage: python -m gallery [serve|list]")
        print("  serve  — HTTP API for notes and version edits (default)")
        print("  list   — Print the version registry")
        sys.exit(1)


if __name__ == "__main__":
    main()
