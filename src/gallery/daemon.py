"""Server process — runs the HTTP boundary until SIGTERM/SIGINT.

Usage: python -m gallery serve

Manages:
- PID file (prevent duplicate instances on the same registry)
- aiohttp runner/site lifecycle
- Graceful shutdown (SIGTERM/SIGINT)
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys

from aiohttp import web

from gallery.config import GalleryConfig, load_config
from gallery.server import create_app

logger = logging.getLogger(__name__)


class GalleryDaemon:
    """Always-on gallery API server."""

    def __init__(self, config: GalleryConfig | None = None) -> None:
        self.config = config or load_config()
        self._shutdown_event = asyncio.Event()
        self._runner: web.AppRunner | None = None

    # ── PID file management ──────────────────────────────────

    def _write_pid(self) -> None:
        self.config.pid_file.parent.mkdir(parents=True, exist_ok=True)
        self.config.pid_file.write_text(str(os.getpid()))
        logger.info("PID file written: %s (pid=%d)", self.config.pid_file, os.getpid())

    def _remove_pid(self) -> None:
        if self.config.pid_file.exists():
            self.config.pid_file.unlink()

    def _check_existing(self) -> None:
        if not self.config.pid_file.exists():
            return
        try:
            pid = int(self.config.pid_file.read_text().strip())
            os.kill(pid, 0)  # Check if process exists
            print(f"Gallery server already running (pid={pid}). Exiting.", file=sys.stderr)
            sys.exit(1)
        except (ProcessLookupError, ValueError):
            # Stale PID file
            self._remove_pid()

    # ── Signal handling ──────────────────────────────────────

    def _setup_signals(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_signal, sig)

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("Received %s, shutting down...", sig.name)
        self._shutdown_event.set()

    # ── HTTP site ────────────────────────────────────────────

    async def _start_site(self) -> None:
        app = create_app(self.config)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.config.server.host, self.config.server.port)
        await site.start()
        logger.info(
            "Gallery API listening on http://%s:%d%s",
            self.config.server.host,
            self.config.server.port,
            self.config.server.api_prefix,
        )

    # ── Main run loop ────────────────────────────────────────

    async def run(self) -> None:
        self._check_existing()
        self._write_pid()
        self._setup_signals()

        try:
            await self._start_site()
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            if self._runner is not None:
                await self._runner.cleanup()
            self._remove_pid()
            logger.info("Gallery server stopped.")

    def stop(self) -> None:
        self._shutdown_event.set()
