# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Module map artifact (v0).

One map is written next to each precompiled binary. It records the module's
new guid and, for every script compiled into it, the original guid and the new
local file id, so the fixup pass can run later (and on its own) without
re-resolving any source.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from precompiler.errors import PrecompError
from precompiler.graph import Module, SourceFile

MAP_FORMAT = "precompiler-map"
MAP_VERSION = 0
MAP_SUFFIX = ".map"


def canonical_json_bytes(obj: Any) -> bytes:
	"""
	Render JSON deterministically.

	Rules:
	- UTF-8
	- no insignificant whitespace
	- stable key ordering
	"""
	return json.dumps(obj, sort_keys=True, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def write_bytes_atomic(path: Path, data: bytes) -> None:
	path.parent.mkdir(parents=True, exist_ok=True)
	tmp = path.with_name(path.name + f".tmp.{os.getpid()}")
	tmp.write_bytes(data)
	os.replace(tmp, path)


def _rel_posix(path: Path, root: Path | None) -> str:
	if root is not None and path.is_relative_to(root):
		path = path.relative_to(root)
	return path.as_posix()


def module_map_to_dict(module: Module, *, relative_to: Path | None = None) -> dict[str, Any]:
	return {
		"format": MAP_FORMAT,
		"version": MAP_VERSION,
		"name": module.name,
		"guid": module.new_identity,
		"files": [
			{
				"path": _rel_posix(f.path, relative_to),
				"original_guid": f.original_identity,
				"class_namespace": f.class_namespace,
				"class_name": f.class_name,
				"class_full_name": f.full_name,
				"file_id": f.new_local_id,
				"execution_order": f.execution_order,
			}
			for f in module.files
		],
	}


def save_module_map(path: Path, module: Module, *, relative_to: Path | None = None) -> None:
	write_bytes_atomic(path, canonical_json_bytes(module_map_to_dict(module, relative_to=relative_to)))


def module_from_map_dict(data: Any, *, path: str | None = None) -> Module:
	def _err(msg: str) -> PrecompError:
		return PrecompError(reason_code="BAD_MAP", message=msg, path=path)

	if not isinstance(data, dict):
		raise _err("module map must be a JSON object")
	if data.get("format") != MAP_FORMAT or data.get("version") != MAP_VERSION:
		raise _err("unsupported module map format/version")
	name = data.get("name")
	guid = data.get("guid")
	raw_files = data.get("files")
	if not isinstance(name, str) or not name:
		raise _err("module map is missing name")
	if not isinstance(guid, str) or not guid:
		raise _err(f"module map for '{name}' is missing guid")
	if not isinstance(raw_files, list):
		raise _err(f"module map for '{name}' files must be a list")

	files: list[SourceFile] = []
	for raw in raw_files:
		if not isinstance(raw, dict):
			raise _err(f"module map for '{name}' file entries must be objects")
		file_path = raw.get("path")
		original = raw.get("original_guid")
		ns = raw.get("class_namespace")
		cls_name = raw.get("class_name")
		file_id = raw.get("file_id")
		order = raw.get("execution_order", 0)
		if not isinstance(file_path, str) or not file_path:
			raise _err(f"module map for '{name}' has a file without path")
		if not isinstance(original, str) or not original:
			raise _err(f"module map for '{name}' file '{file_path}' is missing original_guid")
		if ns is not None and not isinstance(ns, str):
			raise _err(f"module map for '{name}' file '{file_path}' class_namespace must be a string or null")
		if not isinstance(cls_name, str) or not cls_name:
			raise _err(f"module map for '{name}' file '{file_path}' is missing class_name")
		# bool is an int subclass; reject it explicitly.
		if not isinstance(file_id, int) or isinstance(file_id, bool):
			raise _err(f"module map for '{name}' file '{file_path}' file_id must be an integer")
		if not isinstance(order, int) or isinstance(order, bool):
			raise _err(f"module map for '{name}' file '{file_path}' execution_order must be an integer")
		files.append(
			SourceFile(
				path=Path(file_path),
				original_identity=original,
				execution_order=order,
				class_namespace=ns,
				class_name=cls_name,
				new_local_id=file_id,
			)
		)

	return Module(name=name, new_identity=guid, files=files)


def load_module_map(path: Path) -> Module:
	try:
		data = json.loads(path.read_text(encoding="utf-8"))
	except json.JSONDecodeError as err:
		raise PrecompError(reason_code="BAD_MAP", message=f"invalid JSON: {err}", path=str(path)) from err
	return module_from_map_dict(data, path=str(path))


def discover_module_maps(plugins_dir: Path) -> list[Path]:
	"""Map artifacts under `plugins_dir`, sorted."""
	if not plugins_dir.exists():
		return []
	return sorted(p for p in plugins_dir.rglob("*" + MAP_SUFFIX) if p.is_file())
