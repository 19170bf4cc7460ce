"""Configuration loading from environment variables and gallery.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

from gallery.registry.companion import DEFAULT_EXTENSIONS

_DEFAULT_HOME = Path.home() / ".gallery"
_CONFIG_FILENAME = "gallery.toml"


@dataclass
class RegistryConfig:
    """Where the version registry and its companion files live."""

    versions_dir: Path = Path("versions")
    registry_file: str = "index.ts"
    list_name: str = "versions"
    companion_extensions: list[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))

    @property
    def registry_path(self) -> Path:
        return self.versions_dir / self.registry_file


@dataclass
class NotesConfig:
    """Notes document location."""

    notes_file: Path = Path("versions") / "notes.json"


@dataclass
class ServerConfig:
    """HTTP boundary configuration."""

    host: str = "127.0.0.1"
    port: int = 5174
    api_prefix: str = "/api"


@dataclass
class GalleryConfig:
    """Top-level gallery configuration."""

    registry: RegistryConfig = field(default_factory=RegistryConfig)
    notes: NotesConfig = field(default_factory=NotesConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    pid_file: Path = _DEFAULT_HOME / "gallery.pid"
    log_level: str = "INFO"


def load_config(config_path: Path | None = None) -> GalleryConfig:
    """Load configuration from environment variables and optional gallery.toml.

    Priority: environment variables > gallery.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.gallery/
        for candidate in [Path.cwd() / _CONFIG_FILENAME, _DEFAULT_HOME / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    registry_data = file_data.get("registry", {})
    notes_data = file_data.get("notes", {})
    server_data = file_data.get("server", {})

    versions_dir = Path(
        os.getenv("GALLERY_VERSIONS_DIR", registry_data.get("versions_dir", "versions"))
    )
    notes_default = notes_data.get("notes_file", str(versions_dir / "notes.json"))

    config = GalleryConfig(
        registry=RegistryConfig(
            versions_dir=versions_dir,
            registry_file=os.getenv(
                "GALLERY_REGISTRY_FILE", registry_data.get("registry_file", "index.ts")
            ),
            list_name=registry_data.get("list_name", "versions"),
            companion_extensions=registry_data.get(
                "companion_extensions", list(DEFAULT_EXTENSIONS)
            ),
        ),
        notes=NotesConfig(
            notes_file=Path(os.getenv("GALLERY_NOTES_FILE", notes_default)),
        ),
        server=ServerConfig(
            host=os.getenv("GALLERY_HOST", server_data.get("host", "127.0.0.1")),
            port=int(os.getenv("GALLERY_PORT", server_data.get("port", 5174))),
            api_prefix=server_data.get("api_prefix", "/api"),
        ),
        pid_file=Path(
            os.getenv("GALLERY_PID_FILE", file_data.get("pid_file", str(_DEFAULT_HOME / "gallery.pid")))
        ),
        log_level=os.getenv("GALLERY_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    return config
