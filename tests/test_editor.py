"""Tests for the registry mutators and companion file handling."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from gallery.errors import DuplicateRecord, InvalidArgument, NotFound, StorageError
from gallery.registry.companion import CompanionFiles, check_id
from gallery.registry.editor import Classification, RegistryEditor
from gallery.registry.scanner import scan


@pytest.fixture
def editor(registry_path: Path, versions_dir: Path) -> RegistryEditor:
    return RegistryEditor(registry_path, CompanionFiles(versions_dir, [".tsx", ".ts"]))


def _read(path: Path) -> bytes:
    return path.read_bytes()


class TestListVersions:
    def test_records(self, editor: RegistryEditor):
        records = editor.list_versions()
        assert [(r.id, r.title, r.type) for r in records] == [
            ("v1", "Draft", "page"),
            ("v2", "Hero", "final"),
        ]
        assert records[0].component == "V1Draft"
        assert records[0].source == "./v1-draft"

    def test_missing_registry(self, tmp_path: Path):
        editor = RegistryEditor(tmp_path / "nope" / "index.ts")
        with pytest.raises(StorageError):
            editor.list_versions()

    def test_get_unknown(self, editor: RegistryEditor):
        with pytest.raises(NotFound):
            editor.get("v3")


class TestReclassify:
    @pytest.mark.parametrize("target", ["final", "page", "element"])
    def test_changes_only_type(self, editor: RegistryEditor, target: str):
        before = editor.get("v1")
        editor.reclassify("v1", target)
        after = editor.get("v1")
        assert after.type == target
        assert (after.title, after.component, after.source) == (
            before.title,
            before.component,
            before.source,
        )
        assert editor.get("v2").type == "final"

    def test_same_type_is_byte_identical(self, editor: RegistryEditor, registry_path: Path):
        before = _read(registry_path)
        assert editor.reclassify("v1", "page") is Classification.PAGE
        assert _read(registry_path) == before

    def test_invalid_type(self, editor: RegistryEditor, registry_path: Path):
        before = _read(registry_path)
        with pytest.raises(InvalidArgument):
            editor.reclassify("v1", "draft")
        assert _read(registry_path) == before

    def test_invalid_type_checked_before_storage(self, tmp_path: Path):
        editor = RegistryEditor(tmp_path / "missing.ts")
        with pytest.raises(InvalidArgument):
            editor.reclassify("v1", "bogus")

    def test_unknown_id(self, editor: RegistryEditor, registry_path: Path):
        before = _read(registry_path)
        with pytest.raises(NotFound):
            editor.reclassify("v9", "final")
        assert _read(registry_path) == before

    def test_round_trip_all_transitions(self, editor: RegistryEditor):
        for target in ["element", "final", "page", "element"]:
            editor.reclassify("v2", target)
            assert editor.get("v2").type == target

    def test_duplicate_id(self, editor: RegistryEditor, registry_path: Path):
        text = registry_path.read_text(encoding="utf-8").replace('{ id: "v2"', '{ id: "v1"')
        registry_path.write_text(text, encoding="utf-8")
        with pytest.raises(DuplicateRecord):
            editor.reclassify("v1", "element")
        assert registry_path.read_text(encoding="utf-8") == text


class TestRename:
    def test_rename(self, editor: RegistryEditor):
        assert editor.rename("v2", "Hero Section") == "Hero Section"
        assert editor.get("v2").title == "Hero Section"
        assert editor.get("v2").type == "final"

    @pytest.mark.parametrize("title", ["", "   ", None, 42])
    def test_empty_title(self, editor: RegistryEditor, registry_path: Path, title):
        before = _read(registry_path)
        with pytest.raises(InvalidArgument):
            editor.rename("v1", title)
        assert _read(registry_path) == before

    def test_title_trimmed(self, editor: RegistryEditor):
        assert editor.rename("v1", "  Padded  ") == "Padded"
        assert editor.get("v1").title == "Padded"

    @pytest.mark.parametrize(
        "title",
        ['The "Big" One', "It's \\ fine", 'mixed \'single\' and "double"', "line\nbreak"],
    )
    def test_quotes_round_trip(self, editor: RegistryEditor, registry_path: Path, title: str):
        editor.rename("v1", title)
        assert editor.get("v1").title == title
        # file must still scan cleanly
        assert len(scan(registry_path.read_text(encoding="utf-8")).records) == 2

    def test_single_quoted_style_preserved(self, editor: RegistryEditor, registry_path: Path):
        text = registry_path.read_text(encoding="utf-8").replace('title: "Draft"', "title: 'Draft'")
        registry_path.write_text(text, encoding="utf-8")
        editor.rename("v1", "Don't")
        assert "title: 'Don\\'t'" in registry_path.read_text(encoding="utf-8")
        assert editor.get("v1").title == "Don't"

    def test_unknown_id(self, editor: RegistryEditor, registry_path: Path):
        before = _read(registry_path)
        with pytest.raises(NotFound):
            editor.rename("nope", "Title")
        assert _read(registry_path) == before

    def test_other_records_untouched(self, editor: RegistryEditor, registry_path: Path):
        editor.rename("v1", "Hero")
        text = registry_path.read_text(encoding="utf-8")
        assert '{ id: "v2", title: "Hero", type: "final", component: V2Hero },' in text


class TestDelete:
    def test_delete_removes_record_import_and_file(
        self, editor: RegistryEditor, registry_path: Path, versions_dir: Path
    ):
        outcome = editor.delete("v1")
        assert outcome.registry_updated is True
        assert outcome.file_removed is True
        assert not outcome.partial

        text = registry_path.read_text(encoding="utf-8")
        assert "V1Draft" not in text
        assert "./v1-draft" not in text
        assert [r.id for r in editor.list_versions()] == ["v2"]
        assert not (versions_dir / "v1-draft.tsx").exists()
        assert (versions_dir / "v2-hero.tsx").exists()

    def test_delete_exact_text(self, editor: RegistryEditor, registry_path: Path):
        original = registry_path.read_text(encoding="utf-8")
        editor.delete("v1")
        expected = original.replace('import V1Draft from "./v1-draft"\n', "").replace(
            '  { id: "v1", title: "Draft", type: "page", component: V1Draft },\n', ""
        )
        assert registry_path.read_text(encoding="utf-8") == expected

    def test_delete_last_without_trailing_comma(self, editor: RegistryEditor, registry_path: Path):
        text = registry_path.read_text(encoding="utf-8").replace("V2Hero },\n]", "V2Hero }\n]")
        registry_path.write_text(text, encoding="utf-8")
        editor.delete("v2")
        out = registry_path.read_text(encoding="utf-8")
        assert '{ id: "v1", title: "Draft", type: "page", component: V1Draft }\n]' in out
        assert scan(out).trailing_comma is False

    def test_delete_all_collapses_list(self, editor: RegistryEditor, registry_path: Path):
        editor.delete("v1")
        editor.delete("v2")
        text = registry_path.read_text(encoding="utf-8")
        assert text.rstrip().endswith("= []")
        assert 'import type { ComponentType } from "react"' in text
        assert editor.list_versions() == []

    def test_delete_inline_list(self, tmp_path: Path):
        root = tmp_path / "inline"
        root.mkdir()
        registry = root / "index.ts"
        registry.write_text(
            'import A from "./a"\nimport B from "./b"\n'
            'export const versions = [{ id: "a", title: "A", type: "page", component: A }, '
            '{ id: "b", title: "B", type: "element", component: B }]\n',
            encoding="utf-8",
        )
        (root / "a.tsx").write_text("", encoding="utf-8")
        editor = RegistryEditor(registry, CompanionFiles(root, [".tsx"]))
        editor.delete("a")
        assert registry.read_text(encoding="utf-8") == (
            'import B from "./b"\n'
            'export const versions = [{ id: "b", title: "B", type: "element", component: B }]\n'
        )

    def test_second_delete_not_found(self, editor: RegistryEditor, registry_path: Path):
        editor.delete("v1")
        before = _read(registry_path)
        with pytest.raises(NotFound):
            editor.delete("v1")
        assert _read(registry_path) == before

    def test_missing_import(self, editor: RegistryEditor, registry_path: Path):
        text = registry_path.read_text(encoding="utf-8").replace(
            'import V1Draft from "./v1-draft"\n', ""
        )
        registry_path.write_text(text, encoding="utf-8")
        with pytest.raises(NotFound):
            editor.delete("v1")
        assert registry_path.read_text(encoding="utf-8") == text

    def test_companion_already_gone_is_partial(
        self, editor: RegistryEditor, versions_dir: Path
    ):
        (versions_dir / "v1-draft.tsx").unlink()
        outcome = editor.delete("v1")
        assert outcome.registry_updated is True
        assert outcome.file_removed is False
        assert outcome.partial
        assert [r.id for r in editor.list_versions()] == ["v2"]

    def test_companion_removal_denied_is_partial(
        self,
        editor: RegistryEditor,
        versions_dir: Path,
        monkeypatch: pytest.MonkeyPatch,
    ):
        def deny(self, missing_ok=False):
            raise PermissionError("read-only")

        monkeypatch.setattr(Path, "unlink", deny)
        outcome = editor.delete("v1")
        monkeypatch.undo()

        assert outcome.registry_updated is True
        assert outcome.file_removed is False
        assert outcome.partial is True
        assert [r.id for r in editor.list_versions()] == ["v2"]
        assert (versions_dir / "v1-draft.tsx").exists()

    def test_same_line_comments_removed(self, editor: RegistryEditor, registry_path: Path):
        text = (
            registry_path.read_text(encoding="utf-8")
            .replace('/v1-draft"\n', '/v1-draft" // draft\n')
            .replace("component: V1Draft },\n", "component: V1Draft }, // first pass\n")
        )
        registry_path.write_text(text, encoding="utf-8")
        editor.delete("v1")
        out = registry_path.read_text(encoding="utf-8")
        assert "//" not in out
        assert [r.id for r in editor.list_versions()] == ["v2"]

    def test_shared_import_kept(self, editor: RegistryEditor, registry_path: Path, versions_dir: Path):
        text = registry_path.read_text(encoding="utf-8").replace(
            "component: V2Hero", "component: V1Draft"
        )
        registry_path.write_text(text, encoding="utf-8")
        outcome = editor.delete("v1")
        assert outcome.file_removed is False
        out = registry_path.read_text(encoding="utf-8")
        assert 'import V1Draft from "./v1-draft"' in out
        assert (versions_dir / "v1-draft.tsx").exists()

    def test_prefix_ids(self, editor: RegistryEditor, registry_path: Path, versions_dir: Path):
        text = registry_path.read_text(encoding="utf-8").replace('{ id: "v2"', '{ id: "v10"')
        registry_path.write_text(text, encoding="utf-8")
        editor.delete("v1")
        assert [r.id for r in editor.list_versions()] == ["v10"]
        assert (versions_dir / "v2-hero.tsx").exists()

    def test_traversal_id_rejected(self, editor: RegistryEditor, registry_path: Path):
        before = _read(registry_path)
        with pytest.raises(InvalidArgument):
            editor.delete("../index")
        assert _read(registry_path) == before


class TestScenario:
    def test_walkthrough(self, editor: RegistryEditor, versions_dir: Path):
        editor.reclassify("v1", "final")
        assert editor.get("v1").type == "final"
        assert editor.get("v2").type == "final"

        editor.rename("v2", "Hero Section")
        assert editor.get("v2").title == "Hero Section"

        editor.delete("v1")
        assert [r.id for r in editor.list_versions()] == ["v2"]
        assert not (versions_dir / "v1-draft.tsx").exists()
        with pytest.raises(NotFound):
            editor.delete("v1")


class TestConcurrency:
    def test_parallel_edits_are_not_lost(self, tmp_path: Path):
        root = tmp_path / "many"
        root.mkdir()
        rows = "".join(
            f'  {{ id: "r{i}", title: "T{i}", type: "page", component: R{i} }},\n'
            for i in range(12)
        )
        imports = "".join(f'import R{i} from "./r{i}"\n' for i in range(12))
        registry = root / "index.ts"
        registry.write_text(f"{imports}\nexport const versions = [\n{rows}]\n", encoding="utf-8")

        editors = [RegistryEditor(registry, CompanionFiles(root)) for _ in range(3)]
        threads = [
            threading.Thread(target=editors[i % 3].rename, args=(f"r{i}", f"Renamed {i}"))
            for i in range(12)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        titles = {r.id: r.title for r in editors[0].list_versions()}
        assert titles == {f"r{i}": f"Renamed {i}" for i in range(12)}


class TestCompanionFiles:
    @pytest.mark.parametrize("bad", ["", "  ", "../x", "a/b", "a\\b", ".hidden", "a\0b"])
    def test_check_id_rejects(self, bad: str):
        with pytest.raises(InvalidArgument):
            check_id(bad)

    def test_check_id_accepts(self):
        assert check_id("v1-draft_2") == "v1-draft_2"

    def test_resolve_with_extension(self, versions_dir: Path):
        files = CompanionFiles(versions_dir, [".ts", ".tsx"])
        assert files.resolve("./v1-draft") == (versions_dir / "v1-draft.tsx").resolve()

    def test_resolve_exact(self, versions_dir: Path):
        files = CompanionFiles(versions_dir)
        assert files.resolve("./v2-hero.tsx") == (versions_dir / "v2-hero.tsx").resolve()

    def test_resolve_missing(self, versions_dir: Path):
        assert CompanionFiles(versions_dir).resolve("./nothing") is None

    @pytest.mark.parametrize("bad", ["./../outside", "../outside", "/etc/passwd", "react", "./"])
    def test_resolve_refuses_outside_root(self, versions_dir: Path, bad: str):
        (versions_dir.parent / "outside.tsx").write_text("", encoding="utf-8")
        with pytest.raises(InvalidArgument):
            CompanionFiles(versions_dir).resolve(bad)
        assert (versions_dir.parent / "outside.tsx").exists()

    def test_default_extensions_cover_ts_and_js(self, tmp_path: Path):
        (tmp_path / "plain.ts").write_text("", encoding="utf-8")
        (tmp_path / "legacy.js").write_text("", encoding="utf-8")
        files = CompanionFiles(tmp_path)
        assert files.resolve("./plain") == (tmp_path / "plain.ts").resolve()
        assert files.resolve("./legacy") == (tmp_path / "legacy.js").resolve()

    def test_editor_default_companions_remove_ts(self, tmp_path: Path):
        registry = tmp_path / "index.ts"
        registry.write_text(
            'import A from "./a"\nexport const versions = [{ id: "a", component: A }]\n',
            encoding="utf-8",
        )
        (tmp_path / "a.ts").write_text("", encoding="utf-8")
        outcome = RegistryEditor(registry).delete("a")
        assert outcome.file_removed is True
        assert not (tmp_path / "a.ts").exists()

    def test_remove(self, versions_dir: Path):
        files = CompanionFiles(versions_dir)
        assert files.remove("./v1-draft") is True
        assert not (versions_dir / "v1-draft.tsx").exists()
        assert files.remove("./v1-draft") is False
