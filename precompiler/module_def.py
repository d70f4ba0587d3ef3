# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Module definitions (`*.asmdef`).

A module definition is a JSON object; its directory is the module's scope.
Only the fields the precompiler consumes are validated, the rest (references,
auto-referencing, ...) are ignored:

  name                 required, non-empty
  includePlatforms     [str]
  excludePlatforms     [str]
  defineConstraints    [str]
  versionDefines       [{name, expression, define}]
"""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from precompiler.errors import PrecompError

MODULE_DEF_SUFFIX = ".asmdef"


@dataclass(frozen=True)
class VersionDefine:
	name: str
	expression: str
	define: str


@dataclass(frozen=True)
class ModuleDefinition:
	name: str
	include_platforms: list[str] = field(default_factory=list)
	exclude_platforms: list[str] = field(default_factory=list)
	define_constraints: list[str] = field(default_factory=list)
	version_defines: list[VersionDefine] = field(default_factory=list)

	def to_dict(self) -> dict[str, Any]:
		return {
			"name": self.name,
			"includePlatforms": list(self.include_platforms),
			"excludePlatforms": list(self.exclude_platforms),
			"defineConstraints": list(self.define_constraints),
			"versionDefines": [
				{"name": v.name, "expression": v.expression, "define": v.define} for v in self.version_defines
			],
		}


def _str_list(data: dict[str, Any], key: str, *, path: str | None) -> list[str]:
	raw = data.get(key)
	if raw is None:
		return []
	if not isinstance(raw, list) or not all(isinstance(v, str) for v in raw):
		raise PrecompError(
			reason_code="BAD_MODULE_DEFINITION",
			message=f"module definition '{key}' must be a list of strings",
			path=path,
		)
	return list(raw)


def parse_module_definition(data: Any, *, path: str | None = None) -> ModuleDefinition:
	def _err(msg: str) -> PrecompError:
		return PrecompError(reason_code="BAD_MODULE_DEFINITION", message=msg, path=path)

	if not isinstance(data, dict):
		raise _err("module definition must be a JSON object")
	name = data.get("name")
	if not isinstance(name, str) or not name.strip():
		raise _err("module definition is missing name")

	version_defines: list[VersionDefine] = []
	raw_vd = data.get("versionDefines")
	if raw_vd is not None:
		if not isinstance(raw_vd, list):
			raise _err("module definition 'versionDefines' must be a list")
		for entry in raw_vd:
			if not isinstance(entry, dict):
				raise _err("module definition 'versionDefines' entries must be objects")
			vals = [entry.get(k, "") for k in ("name", "expression", "define")]
			if not all(isinstance(v, str) for v in vals):
				raise _err("module definition 'versionDefines' fields must be strings")
			version_defines.append(VersionDefine(name=vals[0], expression=vals[1], define=vals[2]))

	return ModuleDefinition(
		name=name,
		include_platforms=_str_list(data, "includePlatforms", path=path),
		exclude_platforms=_str_list(data, "excludePlatforms", path=path),
		define_constraints=_str_list(data, "defineConstraints", path=path),
		version_defines=version_defines,
	)


def load_module_definition(path: Path) -> ModuleDefinition:
	try:
		# Definitions written by the editor may carry a BOM.
		data = json.loads(path.read_text(encoding="utf-8-sig"))
	except json.JSONDecodeError as err:
		raise PrecompError(
			reason_code="BAD_MODULE_DEFINITION",
			message=f"invalid JSON: {err}",
			path=str(path),
		) from err
	return parse_module_definition(data, path=str(path))


def is_git_ignored(path: Path, *, cwd: Path) -> bool:
	"""Ask git whether `path` is ignored (without consulting the index)."""
	proc = subprocess.run(
		["git", "check-ignore", "--no-index", str(path)],
		cwd=cwd,
		text=True,
		capture_output=True,
	)
	return any(line.strip() for line in proc.stdout.splitlines())


def discover_module_definitions(scan_root: Path, *, check_gitignore: bool = False) -> list[Path]:
	"""
	Find module definition files under `scan_root`.

	The returned list is sorted, so module order (and every report derived from
	it) is deterministic.
	"""
	out: list[Path] = []
	for p in sorted(scan_root.rglob("*" + MODULE_DEF_SUFFIX)):
		if not p.is_file():
			continue
		if check_gitignore and is_git_ignored(p, cwd=scan_root):
			print(f"Ignoring .gitignored module definition at {p}", flush=True)
			continue
		out.append(p)
	return out
