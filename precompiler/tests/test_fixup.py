# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from pathlib import Path

import pytest

import precompiler.fixup as fixup
from precompiler.assembly_map import save_module_map
from precompiler.errors import PrecompError
from precompiler.fixup import (
	FixupOptions,
	collect_documents,
	fixup_project,
	load_identity_table,
	normalize_extensions,
	rewrite_documents,
	rewrite_text,
	scan_references,
)
from precompiler.graph import IdentityTable, Module, SourceFile

OLD = "abcd1234" * 4
OTHER = "0000eeee" * 4
NEW = "ffff0000" * 4


def _module(*files: SourceFile, name: str = "Game", guid: str = NEW) -> Module:
	return Module(name=name, new_identity=guid, files=list(files))


def _file(guid: str = OLD, file_id: int = -205, name: str = "Player") -> SourceFile:
	return SourceFile(path=Path(f"Scripts/{name}.cs"), original_identity=guid, class_name=name, new_local_id=file_id)


@pytest.fixture
def table() -> IdentityTable:
	return IdentityTable.build([_module(_file())])


def test_rewrite_text_repoints_sentinel_reference(table: IdentityTable) -> None:
	data = f"  m_Script: {{fileID: 11500000, guid: {OLD}, type: 3}}\n".encode()
	out, count = rewrite_text(data, table)
	assert out == f"  m_Script: {{fileID: -205, guid: {NEW}, type: 3}}\n".encode()
	assert count == 1


@pytest.mark.parametrize(
	"ref",
	[
		f"{{fileID: 0, guid: {OLD}, type: 3}}",
		f"{{fileID: 11400000, guid: {OLD}, type: 3}}",
		f"{{fileID: 11500000, guid: {OLD}, type: 2}}",
		f"{{fileID: 11500000, guid: {OTHER}, type: 3}}",
		f"{{fileID: -205, guid: {NEW}, type: 3}}",
	],
)
def test_rewrite_text_leaves_other_references_alone(table: IdentityTable, ref: str) -> None:
	data = f"m_Script: {ref}\n".encode()
	assert rewrite_text(data, table) == (data, 0)


def test_rewrite_text_preserves_surrounding_bytes(table: IdentityTable) -> None:
	ref = f"{{fileID: 11500000, guid: {OLD}, type: 3}}"
	data = f"%YAML 1.1\r\n--- !u!114 &1\r\nMonoBehaviour:\r\n  m_Script: {ref}\r\n  m_Name: café\r\n  other: {ref}\r\n".encode()
	out, count = rewrite_text(data, table)
	new_ref = f"{{fileID: -205, guid: {NEW}, type: 3}}"
	assert count == 2
	assert out == data.replace(ref.encode(), new_ref.encode())
	assert out.count(b"\r\n") == data.count(b"\r\n")


def test_rewrite_text_is_idempotent(table: IdentityTable) -> None:
	data = f"a: {{fileID: 11500000, guid: {OLD}, type: 3}}\n".encode()
	once, _ = rewrite_text(data, table)
	twice, count = rewrite_text(once, table)
	assert twice == once
	assert count == 0


def test_rewrite_text_skips_entries_without_file_id() -> None:
	unresolved = SourceFile(path=Path("X.cs"), original_identity=OLD)
	table = IdentityTable.build([_module(unresolved)])
	data = f"{{fileID: 11500000, guid: {OLD}, type: 3}}".encode()
	assert rewrite_text(data, table) == (data, 0)


def test_scan_references_reports_positions() -> None:
	data = f"x {{fileID: 11500000, guid: {OLD}, type: 3}} y {{fileID: 7, guid: {OTHER}, type: 3}}".encode()
	refs = scan_references(data)
	assert [(r.file_id, r.guid) for r in refs] == [("11500000", OLD), ("7", OTHER)]
	assert data[refs[0].start : refs[0].end].startswith(b"{fileID: 11500000")
	assert data[refs[1].end - 1 : refs[1].end] == b"}"


def test_normalize_extensions() -> None:
	assert normalize_extensions(["unity", ".Prefab", " mat ", ""]) == frozenset({".unity", ".prefab", ".mat"})


def _doc(root: Path, rel: str, text: str) -> Path:
	p = root / rel
	p.parent.mkdir(parents=True, exist_ok=True)
	p.write_bytes(text.encode("utf-8"))
	return p


def test_rewrite_documents_filters_extensions_case_insensitively(tmp_path: Path, table: IdentityTable) -> None:
	ref = f"{{fileID: 11500000, guid: {OLD}, type: 3}}"
	prefab = _doc(tmp_path, "Thing.PREFAB", ref)
	notes = _doc(tmp_path, "notes.txt", ref)
	ctrl = _doc(tmp_path, "Anim/Move.overrideController", ref)

	report = rewrite_documents([prefab, notes, ctrl], table, jobs=2)

	assert report.patched_count == 2
	assert report.substitution_count == 2
	assert notes.read_text(encoding="utf-8") == ref
	assert NEW in prefab.read_text(encoding="utf-8")
	assert NEW in ctrl.read_text(encoding="utf-8")
	assert report.to_dict()["scanned_count"] == 2


def test_collect_documents_uses_extension_list(tmp_path: Path) -> None:
	_doc(tmp_path, "Scenes/Main.unity", "")
	_doc(tmp_path, "Prefabs/A.prefab", "")
	_doc(tmp_path, "Scripts/A.cs", "")
	found = collect_documents(tmp_path, ["unity"])
	assert [p.relative_to(tmp_path).as_posix() for p in found] == ["Scenes/Main.unity"]
	found = collect_documents(tmp_path)
	assert [p.name for p in found] == ["A.prefab", "Main.unity"]


def test_second_pass_writes_nothing(tmp_path: Path, table: IdentityTable, monkeypatch: pytest.MonkeyPatch) -> None:
	ref = f"{{fileID: 11500000, guid: {OLD}, type: 3}}"
	scene = _doc(tmp_path, "Main.unity", f"m_Script: {ref}\n")
	untouched = _doc(tmp_path, "Other.unity", "m_Script: {fileID: 11500000, guid: 1234, type: 3}\n")

	first = rewrite_documents([scene, untouched], table)
	assert first.changed == {str(scene): True, str(untouched): False}
	after_first = scene.read_bytes()

	writes: list[Path] = []
	monkeypatch.setattr(fixup, "write_bytes_atomic", lambda path, data: writes.append(path))
	second = rewrite_documents([scene, untouched], table)

	assert writes == []
	assert second.patched_count == 0
	assert second.substitution_count == 0
	assert scene.read_bytes() == after_first


def _project_with_map(tmp_path: Path, *modules: Module) -> Path:
	dst = tmp_path / "dst"
	plugins = dst / "Assets" / "Plugins"
	for m in modules:
		save_module_map(plugins / f"{m.name}.map", m)
	return dst


def test_fixup_project_end_to_end(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
	dst = _project_with_map(tmp_path, _module(_file()))
	scene = _doc(dst, "Assets/Scenes/Main.unity", f"m_Script: {{fileID: 11500000, guid: {OLD}, type: 3}}\n")
	mat = _doc(dst, "Assets/Materials/M.mat", "m_Shader: {fileID: 46, guid: 0000000000000000f000000000000000, type: 0}\n")

	report = fixup_project(FixupOptions(project_dir=dst))

	assert scene.read_text(encoding="utf-8") == f"m_Script: {{fileID: -205, guid: {NEW}, type: 3}}\n"
	assert report.to_dict() == {
		"patched_count": 1,
		"substitution_count": 1,
		"patched": [str(scene)],
		"scanned_count": 2,
	}
	assert mat.read_text(encoding="utf-8").startswith("m_Shader: {fileID: 46")
	out = capsys.readouterr().out
	assert "[Fixup]" in out
	assert f"Fixing up {scene}" in out
	assert "Fixup Complete." in out


def test_fixup_project_json_is_quiet(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
	dst = _project_with_map(tmp_path, _module(_file()))
	_doc(dst, "Assets/Scenes/Main.unity", "")
	fixup_project(FixupOptions(project_dir=dst, json=True))
	assert capsys.readouterr().out == ""


def test_fixup_project_without_maps_changes_nothing(tmp_path: Path) -> None:
	dst = tmp_path / "dst"
	text = f"m_Script: {{fileID: 11500000, guid: {OLD}, type: 3}}\n"
	scene = _doc(dst, "Assets/Main.unity", text)
	report = fixup_project(FixupOptions(project_dir=dst, json=True))
	assert report.patched_count == 0
	assert scene.read_text(encoding="utf-8") == text


def test_fixup_project_collision_aborts_before_writing(tmp_path: Path) -> None:
	dst = _project_with_map(
		tmp_path,
		_module(_file(name="A"), name="ModA", guid="aa" * 16),
		_module(_file(name="B"), name="ModB", guid="bb" * 16),
	)
	text = f"m_Script: {{fileID: 11500000, guid: {OLD}, type: 3}}\n"
	scene = _doc(dst, "Assets/Main.unity", text)

	with pytest.raises(PrecompError) as ei:
		fixup_project(FixupOptions(project_dir=dst, json=True))

	assert ei.value.reason_code == "IDENTITY_COLLISION"
	assert {ei.value.module, ei.value.other_module} == {"ModA", "ModB"}
	assert scene.read_text(encoding="utf-8") == text


def test_fixup_project_requires_assets_dir(tmp_path: Path) -> None:
	with pytest.raises(PrecompError) as ei:
		fixup_project(FixupOptions(project_dir=tmp_path / "nowhere"))
	assert ei.value.reason_code == "MISSING_ASSETS_DIR"


def test_load_identity_table_reads_every_map(tmp_path: Path) -> None:
	dst = _project_with_map(
		tmp_path,
		_module(_file(), name="ModA", guid="aa" * 16),
		_module(_file(guid=OTHER, name="B", file_id=12), name="ModB", guid="bb" * 16),
	)
	table = load_identity_table(dst / "Assets" / "Plugins")
	assert table[OLD].module.new_identity == "aa" * 16
	assert table[OTHER].file.new_local_id == 12
