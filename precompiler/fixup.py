# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Repoint script references in serialized asset documents.

A reference to a loose script looks like

  {fileID: 11500000, guid: <script guid>, type: 3}

where 11500000 is the id of the only object a single-script file produces.
After precompilation the same class lives inside a module, so the reference
becomes

  {fileID: <local file id>, guid: <module guid>, type: 3}

Only references carrying the sentinel file id *and* a guid present in the
identity table are touched; every other byte of a document is preserved.
Because the table is keyed by original script guids only, a second pass over
already repointed documents finds nothing to do and writes nothing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

from precompiler.assembly_map import discover_module_maps, load_module_map, write_bytes_atomic
from precompiler.errors import PrecompError
from precompiler.graph import IdentityEntry, IdentityTable
from precompiler.workers import parallel_map

# File id of the default object of a single-script source file.
LOCAL_FILE_ID = "11500000"

DEFAULT_EXTENSIONS: tuple[str, ...] = (
	".unity",
	".prefab",
	".mat",
	".asset",
	".cubemap",
	".flare",
	".compute",
	".controller",
	".anim",
	".overrideController",
	".mask",
	".physicsMaterial",
	".physicsMaterial2D",
	".guiskin",
	".fontsettings",
)

# type 3: reference into an external (script) asset.
REFERENCE_RE = re.compile(rb"\{fileID: ([0-9]+), guid: ([0-9a-f]+), type: 3\}")


@dataclass(frozen=True)
class ReferenceToken:
	"""A candidate script reference located in a document."""

	file_id: str
	guid: str
	start: int
	end: int


@dataclass(frozen=True)
class FixupOptions:
	project_dir: Path
	plugins_dir: str = "Plugins"
	extensions: tuple[str, ...] | None = None
	jobs: int | None = None
	json: bool = False


@dataclass
class FixupReport:
	patched_count: int = 0
	substitution_count: int = 0
	changed: dict[str, bool] = field(default_factory=dict)

	def to_dict(self) -> dict[str, Any]:
		return {
			"patched_count": self.patched_count,
			"substitution_count": self.substitution_count,
			"patched": sorted(p for p, c in self.changed.items() if c),
			"scanned_count": len(self.changed),
		}


def normalize_extensions(extensions: Iterable[str]) -> frozenset[str]:
	"""Lower-case extensions with a leading dot (`Prefab` -> `.prefab`)."""
	out: set[str] = set()
	for ext in extensions:
		ext = ext.strip()
		if not ext:
			continue
		out.add((ext if ext.startswith(".") else "." + ext).lower())
	return frozenset(out)


def has_candidate_extension(path: Path, extensions: frozenset[str]) -> bool:
	return path.suffix.lower() in extensions


def collect_documents(assets_dir: Path, extensions: Iterable[str] = DEFAULT_EXTENSIONS) -> list[Path]:
	exts = normalize_extensions(extensions)
	return sorted(p for p in assets_dir.rglob("*") if p.is_file() and has_candidate_extension(p, exts))


def scan_references(data: bytes) -> list[ReferenceToken]:
	return [
		ReferenceToken(
			file_id=m.group(1).decode("ascii"),
			guid=m.group(2).decode("ascii"),
			start=m.start(),
			end=m.end(),
		)
		for m in REFERENCE_RE.finditer(data)
	]


def rewrite_text(data: bytes, table: Mapping[str, IdentityEntry]) -> tuple[bytes, int]:
	"""Return (rewritten bytes, number of substitutions)."""
	count = 0

	def _sub(m: re.Match[bytes]) -> bytes:
		nonlocal count
		if m.group(1).decode("ascii") != LOCAL_FILE_ID:
			return m.group(0)
		entry = table.get(m.group(2).decode("ascii"))
		if entry is None or entry.file.new_local_id is None:
			return m.group(0)
		count += 1
		return f"{{fileID: {entry.file.new_local_id}, guid: {entry.module.new_identity}, type: 3}}".encode("utf-8")

	out = REFERENCE_RE.sub(_sub, data)
	return out, count


def rewrite_document(path: Path, table: Mapping[str, IdentityEntry]) -> int:
	"""Rewrite one document in place; it is only written when something changed."""
	data = path.read_bytes()
	out, count = rewrite_text(data, table)
	if count:
		write_bytes_atomic(path, out)
	return count


def rewrite_documents(
	document_paths: Iterable[Path],
	table: Mapping[str, IdentityEntry],
	extensions: Iterable[str] = DEFAULT_EXTENSIONS,
	*,
	jobs: int | None = None,
) -> FixupReport:
	"""
	Rewrite every candidate document.

	Documents are independent and are processed in parallel; the table is only
	read. Paths whose extension is not a candidate are ignored.
	"""
	exts = normalize_extensions(extensions)
	candidates = [p for p in document_paths if has_candidate_extension(p, exts)]
	counts = parallel_map(lambda p: rewrite_document(p, table), candidates, jobs=jobs)

	report = FixupReport()
	for path, count in zip(candidates, counts):
		report.changed[str(path)] = count > 0
		if count:
			report.patched_count += 1
			report.substitution_count += count
	return report


def load_identity_table(plugins_dir: Path) -> IdentityTable:
	"""Build the identity table from every module map under `plugins_dir`."""
	modules = [load_module_map(p) for p in discover_module_maps(plugins_dir)]
	return IdentityTable.build(modules)


def fixup_project(opts: FixupOptions) -> FixupReport:
	assets_dir = opts.project_dir / "Assets"
	if not assets_dir.is_dir():
		raise PrecompError(
			reason_code="MISSING_ASSETS_DIR",
			message=f"{opts.project_dir} is not a project directory (no Assets directory)",
			path=str(opts.project_dir),
		)
	plugins_dir = assets_dir / opts.plugins_dir
	extensions = opts.extensions if opts.extensions else DEFAULT_EXTENSIONS

	if not opts.json:
		print("[Fixup]", flush=True)
		print("  Fixing up script guid in assets.", flush=True)
		print(f"  - dstDir: {opts.project_dir}", flush=True)

	table = load_identity_table(plugins_dir)
	docs = collect_documents(assets_dir, extensions)
	report = rewrite_documents(docs, table, extensions, jobs=opts.jobs)

	if not opts.json:
		for path, changed in sorted(report.changed.items()):
			if changed:
				print(f"Fixing up {path}", flush=True)
		print("Fixup Complete.", flush=True)
	return report
