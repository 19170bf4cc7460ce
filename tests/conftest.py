"""Shared fixtures: a versions directory with a two-record registry."""

from __future__ import annotations

from pathlib import Path

import pytest

REGISTRY = """\
import type { ComponentType } from "react"
import V1Draft from "./v1-draft"
import V2Hero from "./v2-hero"

export type VariantType = "final" | "page" | "element"

export const versions: { id: string; title: string; type: VariantType; component: ComponentType }[] = [
  { id: "v1", title: "Draft", type: "page", component: V1Draft },
  { id: "v2", title: "Hero", type: "final", component: V2Hero },
]
"""


@pytest.fixture
def versions_dir(tmp_path: Path) -> Path:
    root = tmp_path / "versions"
    root.mkdir()
    (root / "index.ts").write_text(REGISTRY, encoding="utf-8")
    (root / "v1-draft.tsx").write_text("export default function V1Draft() {}\n", encoding="utf-8")
    (root / "v2-hero.tsx").write_text("export default function V2Hero() {}\n", encoding="utf-8")
    return root


@pytest.fixture
def registry_path(versions_dir: Path) -> Path:
    return versions_dir / "index.ts"
