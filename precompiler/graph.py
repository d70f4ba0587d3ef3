# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Module graph: which script belongs to which module, and under which ids.

Build order (each step relies on the previous one being complete):

1. collect scripts under each module definition's directory, with sidecars,
2. hand every script to the most specific (deepest) enclosing module,
3. resolve each script's class and compute its local file id,
4. give every module a fresh guid,
5. index every script by its original guid (the identity table).

Everything here is computed in memory; nothing is written. Any fatal problem
(missing sidecar, missing binary, guid collision, ...) raises `PrecompError`
before the caller has a chance to write a single artifact.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from pathlib import Path, PurePath
from typing import Callable, Iterator, Mapping, NamedTuple, Sequence, TypeVar

from precompiler.errors import PrecompError
from precompiler.file_id import compute_file_id
from precompiler.module_def import ModuleDefinition, discover_module_definitions, load_module_definition
from precompiler.preprocessor import PreprocessorError
from precompiler.sidecar import read_sidecar
from precompiler.symbols import SKIP_CLASSLESS, ResolvedType, resolve
from precompiler.workers import parallel_map

SOURCE_SUFFIX = ".cs"
BINARY_SUFFIX = ".dll"

F = TypeVar("F")


@dataclass(frozen=True)
class SourceFile:
	"""A script and the identities it has before and after precompilation."""

	path: Path
	original_identity: str
	execution_order: int = 0
	class_namespace: str | None = None
	# Nested class name (`Outer+Inner`), without namespace.
	class_name: str | None = None
	new_local_id: int | None = None

	@property
	def full_name(self) -> str | None:
		if self.class_name is None:
			return None
		return ResolvedType(namespace=self.class_namespace, name=self.class_name).full_name


@dataclass
class Module:
	"""A precompiled module and the scripts compiled into it."""

	name: str
	new_identity: str
	files: list[SourceFile] = field(default_factory=list)
	definition: ModuleDefinition | None = None
	definition_path: Path | None = None
	scope_dir: Path | None = None
	compiled_binary_path: Path | None = None


class IdentityEntry(NamedTuple):
	file: SourceFile
	module: Module


class IdentityTable(Mapping[str, IdentityEntry]):
	"""
	Original script guid -> (script, owning module).

	Injective by construction: a guid claimed by two scripts makes every
	reference to it ambiguous, so `build` refuses to produce a table at all.
	"""

	def __init__(self, entries: Mapping[str, IdentityEntry] | None = None) -> None:
		self._entries: dict[str, IdentityEntry] = dict(entries or {})

	@classmethod
	def build(cls, modules: Sequence[Module]) -> "IdentityTable":
		entries: dict[str, IdentityEntry] = {}
		for module in modules:
			for file in module.files:
				prev = entries.get(file.original_identity)
				if prev is not None:
					raise PrecompError(
						reason_code="IDENTITY_COLLISION",
						message=f"Collision: {file.original_identity}",
						module=module.name,
						path=str(file.path),
						other_module=prev.module.name,
						other_path=str(prev.file.path),
					)
				entries[file.original_identity] = IdentityEntry(file=file, module=module)
		return cls(entries)

	def __getitem__(self, guid: str) -> IdentityEntry:
		return self._entries[guid]

	def __iter__(self) -> Iterator[str]:
		return iter(self._entries)

	def __len__(self) -> int:
		return len(self._entries)


@dataclass(frozen=True)
class BuildWarning:
	module: str
	path: str
	reason_code: str
	message: str

	def to_dict(self) -> dict[str, str]:
		return {"module": self.module, "path": self.path, "reason_code": self.reason_code, "message": self.message}


@dataclass(frozen=True)
class BuildOptions:
	scan_root: Path
	binaries_dir: Path
	defines: tuple[str, ...] = ()
	check_gitignore: bool = False
	jobs: int | None = None


@dataclass(frozen=True)
class BuildResult:
	modules: list[Module]
	table: IdentityTable
	warnings: list[BuildWarning]

	def warnings_for(self, module_name: str) -> list[BuildWarning]:
		return [w for w in self.warnings if w.module == module_name]


def new_module_identity() -> str:
	"""A fresh guid for a module; not stable across runs."""
	return uuid.uuid4().hex


def resolve_nesting(
	scoped_files: Mapping[PurePath, Sequence[F]],
	scan_root: PurePath,
	*,
	key: Callable[[F], object] = lambda f: f.path,  # type: ignore[attr-defined]
) -> dict[PurePath, list[F]]:
	"""
	Remove every file owned by a nested module from all its ancestor modules.

	Pure path arithmetic: for each scope, walk up to `scan_root` and check every
	ancestor directory (nesting may skip levels), not just the parent.
	"""
	out: dict[PurePath, list[F]] = {scope: list(files) for scope, files in scoped_files.items()}
	root_depth = len(scan_root.parts)
	for scope, files in scoped_files.items():
		child_keys = {key(f) for f in files}
		path = scope
		while len(path.parts) > root_depth:
			path = path.parent
			if path in out:
				out[path] = [f for f in out[path] if key(f) not in child_keys]
	return out


def collect_sources(scope_dir: Path) -> list[SourceFile]:
	"""All scripts under `scope_dir` with their sidecar data, in path order."""
	out: list[SourceFile] = []
	for p in sorted(scope_dir.rglob("*" + SOURCE_SUFFIX)):
		if not p.is_file():
			continue
		sidecar = read_sidecar(p)
		out.append(SourceFile(path=p, original_identity=sidecar.guid, execution_order=sidecar.execution_order))
	return out


@dataclass(frozen=True)
class _FileOutcome:
	file: SourceFile
	resolved: SourceFile | None
	skip_reason: str | None


def _resolve_file(file: SourceFile, defines: tuple[str, ...]) -> _FileOutcome:
	try:
		text = file.path.read_text(encoding="utf-8-sig")
	except UnicodeDecodeError as err:
		raise PrecompError(reason_code="BAD_SOURCE", message=f"source is not UTF-8: {err}", path=str(file.path)) from err
	try:
		res = resolve(text, file.path.stem, defines=defines)
	except PreprocessorError as err:
		raise PrecompError(reason_code="BAD_SOURCE", message=str(err), path=str(file.path)) from err

	if not isinstance(res, ResolvedType):
		return _FileOutcome(file=file, resolved=None, skip_reason=res.reason)
	resolved = replace(
		file,
		class_namespace=res.namespace,
		class_name=res.name,
		new_local_id=compute_file_id(res.namespace, res.name),
	)
	return _FileOutcome(file=file, resolved=resolved, skip_reason=None)


def build_modules(
	definitions: Sequence[tuple[Path, ModuleDefinition]],
	scan_root: Path,
	binaries_dir: Path,
	*,
	defines: Sequence[str] = (),
	jobs: int | None = None,
	identity_factory: Callable[[], str] = new_module_identity,
) -> BuildResult:
	"""
	Build modules from (definition path, definition) pairs.

	A definition's scope is the directory that contains it. Raises
	`PrecompError` on the first fatal problem.
	"""
	by_scope: dict[Path, tuple[Path, ModuleDefinition]] = {}
	by_name: dict[str, Path] = {}
	for def_path, definition in definitions:
		scope = def_path.parent
		if scope in by_scope:
			raise PrecompError(
				reason_code="DUPLICATE_MODULE",
				message=f"more than one module definition in {scope}",
				module=definition.name,
				path=str(def_path),
				other_module=by_scope[scope][1].name,
				other_path=str(by_scope[scope][0]),
			)
		if definition.name in by_name:
			raise PrecompError(
				reason_code="DUPLICATE_MODULE",
				message=f"module name '{definition.name}' is defined twice",
				module=definition.name,
				path=str(def_path),
				other_module=definition.name,
				other_path=str(by_name[definition.name]),
			)
		by_scope[scope] = (def_path, definition)
		by_name[definition.name] = def_path

	for scope, (def_path, definition) in by_scope.items():
		binary = binaries_dir / (definition.name + BINARY_SUFFIX)
		if not binary.is_file():
			raise PrecompError(
				reason_code="MISSING_BINARY",
				message=f"Expected '{definition.name}' to have compiled binary {binary}, but not available",
				module=definition.name,
				path=str(def_path),
			)

	scopes = list(by_scope)
	collected = parallel_map(collect_sources, scopes, jobs=jobs)
	owned = resolve_nesting(dict(zip(scopes, collected)), scan_root)

	flat: list[tuple[Path, SourceFile]] = [(scope, f) for scope in scopes for f in owned[scope]]
	define_set = tuple(defines)
	outcomes = parallel_map(lambda item: _resolve_file(item[1], define_set), flat, jobs=jobs)

	# Reduce per-file outcomes into modules, in scope order.
	files_by_scope: dict[Path, list[SourceFile]] = {scope: [] for scope in scopes}
	warnings: list[BuildWarning] = []
	for (scope, _), outcome in zip(flat, outcomes):
		if outcome.resolved is not None:
			files_by_scope[scope].append(outcome.resolved)
		elif outcome.skip_reason == SKIP_CLASSLESS:
			warnings.append(
				BuildWarning(
					module=by_scope[scope][1].name,
					path=str(outcome.file.path),
					reason_code="CLASSLESS_FILE",
					message=f"Skipping classless file: {outcome.file.path}",
				)
			)

	modules: list[Module] = []
	for scope in scopes:
		def_path, definition = by_scope[scope]
		modules.append(
			Module(
				name=definition.name,
				new_identity=identity_factory(),
				files=files_by_scope[scope],
				definition=definition,
				definition_path=def_path,
				scope_dir=scope,
				compiled_binary_path=binaries_dir / (definition.name + BINARY_SUFFIX),
			)
		)

	table = IdentityTable.build(modules)
	return BuildResult(modules=modules, table=table, warnings=warnings)


def build_module_graph(opts: BuildOptions) -> BuildResult:
	"""Discover module definitions under the scan root and build the graph."""
	if not opts.scan_root.is_dir():
		raise PrecompError(reason_code="MISSING_SOURCE_DIR", message=f"Can't find {opts.scan_root}", path=str(opts.scan_root))
	def_paths = discover_module_definitions(opts.scan_root, check_gitignore=opts.check_gitignore)
	definitions = [(p, load_module_definition(p)) for p in def_paths]
	return build_modules(
		definitions,
		opts.scan_root,
		opts.binaries_dir,
		defines=opts.defines,
		jobs=opts.jobs,
	)
