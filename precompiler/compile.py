# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Compile step: turn prebuilt module binaries into importable plugins.

The binaries themselves come from the external build (one `<name>.dll` per
module definition, in the configuration's output directory). This step builds
the module graph, and only once it is complete and consistent writes, per
module, into `<dst>/Assets/<plugins_dir>/`:

  <name>.dll        copied binary
  <name>.pdb        copied debug symbols, when the build produced them
  <name>.dll.meta   importer sidecar with the module's new guid
  <name>.map        module map consumed by the fixup step
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from precompiler.assembly_map import MAP_SUFFIX, save_module_map, write_bytes_atomic
from precompiler.errors import PrecompError
from precompiler.graph import BINARY_SUFFIX, BuildOptions, BuildResult, BuildWarning, Module, build_module_graph
from precompiler.plugin_meta import render_plugin_meta
from precompiler.workers import parallel_map

PDB_SUFFIX = ".pdb"
META_SUFFIX = ".meta"


@dataclass(frozen=True)
class CompileOptions:
	src_dir: Path
	dst_dir: Path
	defines: tuple[str, ...] = ()
	configuration: str = "Debug"
	filter_dir: str | None = None
	plugins_dir: str = "Plugins"
	bin_dir: Path | None = None
	check_gitignore: bool = False
	jobs: int | None = None
	json: bool = False

	@property
	def scan_root(self) -> Path:
		assets = self.src_dir / "Assets"
		return assets / self.filter_dir if self.filter_dir else assets

	@property
	def binaries_dir(self) -> Path:
		if self.bin_dir is not None:
			return self.bin_dir
		return self.src_dir / "Temp" / "bin" / self.configuration

	@property
	def dst_plugins_dir(self) -> Path:
		return self.dst_dir / "Assets" / self.plugins_dir


@dataclass
class CompileReport:
	modules: list[dict[str, Any]] = field(default_factory=list)
	warnings: list[BuildWarning] = field(default_factory=list)

	def to_dict(self) -> dict[str, Any]:
		return {
			"ok": True,
			"module_count": len(self.modules),
			"modules": sorted(self.modules, key=lambda m: str(m.get("name") or "")),
			"warning_count": len(self.warnings),
			"warnings": [w.to_dict() for w in self.warnings],
		}


def format_module_progress(module: Module, warnings: list[BuildWarning]) -> str:
	out = f"Processing {module.name}..."
	if not warnings:
		return out + "OK\n"
	out += "OK With Warnings (Maybe you didn't pass in the right defines?)\n"
	for w in warnings:
		out += f"  - {w.message}\n"
	return out


def write_module_artifacts(module: Module, plugins_dir: Path, *, relative_to: Path | None = None) -> Path:
	"""Copy the module's binary into `plugins_dir` and write its sidecars."""
	if module.compiled_binary_path is None:
		raise PrecompError(
			reason_code="MISSING_BINARY",
			message=f"module '{module.name}' has no compiled binary",
			module=module.name,
			path=str(module.definition_path) if module.definition_path is not None else None,
		)
	plugins_dir.mkdir(parents=True, exist_ok=True)
	dst_binary = plugins_dir / module.compiled_binary_path.name
	shutil.copyfile(module.compiled_binary_path, dst_binary)

	src_pdb = module.compiled_binary_path.with_suffix(PDB_SUFFIX)
	if src_pdb.is_file():
		shutil.copyfile(src_pdb, dst_binary.with_suffix(PDB_SUFFIX))

	meta_path = dst_binary.with_name(dst_binary.name + META_SUFFIX)
	write_bytes_atomic(meta_path, render_plugin_meta(module).encode("utf-8"))
	save_module_map(plugins_dir / (module.name + MAP_SUFFIX), module, relative_to=relative_to)
	return dst_binary


def compile_project(opts: CompileOptions) -> CompileReport:
	if not opts.json:
		print("[Compiling]", flush=True)
		print(f" - srcPath: {opts.src_dir}", flush=True)
		print(f" - dstPath: {opts.dst_dir}", flush=True)
		print(f" - defines: {' '.join(opts.defines)}", flush=True)

	result: BuildResult = build_module_graph(
		BuildOptions(
			scan_root=opts.scan_root,
			binaries_dir=opts.binaries_dir,
			defines=opts.defines,
			check_gitignore=opts.check_gitignore,
			jobs=opts.jobs,
		)
	)

	if not opts.json:
		for module in result.modules:
			print(format_module_progress(module, result.warnings_for(module.name)), end="", flush=True)

	# The graph is complete and consistent at this point; only now touch dst.
	plugins_dir = opts.dst_plugins_dir
	parallel_map(
		lambda m: write_module_artifacts(m, plugins_dir, relative_to=opts.scan_root),
		result.modules,
		jobs=opts.jobs,
	)

	report = CompileReport(warnings=list(result.warnings))
	for module in result.modules:
		report.modules.append(
			{
				"name": module.name,
				"guid": module.new_identity,
				"file_count": len(module.files),
				"binary": str(plugins_dir / (module.name + BINARY_SUFFIX)),
			}
		)
	if not opts.json:
		print("Compile Complete.", flush=True)
	return report
