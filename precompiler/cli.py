# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from precompiler.compile import CompileOptions, compile_project
from precompiler.errors import PrecompError
from precompiler.fixup import FixupOptions, fixup_project


def _split_words(text: str | None) -> tuple[str, ...]:
	return tuple(w for w in (text or "").split() if w)


def _add_compile_args(p: argparse.ArgumentParser) -> None:
	p.add_argument("-s", "--src", dest="src", type=Path, required=True, help="Path to source project directory")
	p.add_argument(
		"--defines",
		type=str,
		default="",
		help='Preprocessor defines used to determine class info. Space separated, e.g. "UNITY_EDITOR UNITY_WSA"',
	)
	p.add_argument("-c", "--configuration", type=str, default="Debug", help="Build configuration of the binaries (Debug/Release)")
	p.add_argument("-f", "--filter-dir", type=str, default=None, help="Optional subdirectory of Assets to filter to")
	p.add_argument(
		"--bin-dir",
		type=Path,
		default=None,
		help="Directory holding the compiled module binaries (default: <src>/Temp/bin/<configuration>)",
	)
	p.add_argument(
		"--check-gitignore",
		action="store_true",
		help="Skip module definitions that git reports as ignored",
	)


def _add_fixup_args(p: argparse.ArgumentParser) -> None:
	p.add_argument(
		"-x",
		"--extensions",
		type=str,
		default=None,
		help='Only fix up these extensions. Space separated, e.g. "unity prefab mat asset"',
	)


def _add_common_args(p: argparse.ArgumentParser) -> None:
	p.add_argument("-d", "--dst", dest="dst", type=Path, required=True, help="Path to destination project directory")
	p.add_argument(
		"-p",
		"--plugins-dir",
		type=str,
		default="Plugins",
		help="Plugin directory relative to Assets in the destination project (default: Plugins)",
	)
	p.add_argument("-j", "--jobs", type=int, default=None, help="Worker threads (default: CPU count)")
	p.add_argument("--json", action="store_true", help="Emit machine-readable JSON report")


def _build_parser() -> argparse.ArgumentParser:
	p = argparse.ArgumentParser(prog="precompiler", description="Precompile loose scripts into modules and repoint asset references")
	sub = p.add_subparsers(dest="cmd", required=True)

	compile_p = sub.add_parser("compile", help="Install prebuilt module binaries as plugins and write module maps")
	_add_compile_args(compile_p)
	_add_common_args(compile_p)

	fixup_p = sub.add_parser("fixup", help="Repoint script references in assets to the precompiled modules")
	_add_fixup_args(fixup_p)
	_add_common_args(fixup_p)

	all_p = sub.add_parser("all", help="compile, then fixup")
	_add_compile_args(all_p)
	_add_fixup_args(all_p)
	_add_common_args(all_p)
	return p


def _compile_opts(args: argparse.Namespace) -> CompileOptions:
	return CompileOptions(
		src_dir=args.src,
		dst_dir=args.dst,
		defines=_split_words(args.defines),
		configuration=args.configuration,
		filter_dir=args.filter_dir or None,
		plugins_dir=args.plugins_dir,
		bin_dir=args.bin_dir,
		check_gitignore=bool(args.check_gitignore),
		jobs=args.jobs,
		json=bool(args.json),
	)


def _fixup_opts(args: argparse.Namespace) -> FixupOptions:
	return FixupOptions(
		project_dir=args.dst,
		plugins_dir=args.plugins_dir,
		extensions=_split_words(args.extensions) or None,
		jobs=args.jobs,
		json=bool(args.json),
	)


def _emit_json(report: dict[str, Any]) -> None:
	print(json.dumps(report, sort_keys=True, separators=(",", ":")), flush=True)


def main(argv: list[str] | None = None) -> int:
	p = _build_parser()
	args = p.parse_args(argv)
	report: dict[str, Any] = {"ok": True, "cmd": args.cmd}

	try:
		if args.cmd in ("compile", "all"):
			report["compile"] = compile_project(_compile_opts(args)).to_dict()
		if args.cmd in ("fixup", "all"):
			report["fixup"] = fixup_project(_fixup_opts(args)).to_dict()
	except PrecompError as err:
		if args.json:
			_emit_json({"ok": False, "cmd": args.cmd, "error": err.to_dict()})
		else:
			print(f"{args.cmd}: {err.format_human()}", file=sys.stderr, flush=True)
		return 2

	if args.json:
		_emit_json(report)
	return 0


if __name__ == "__main__":
	raise SystemExit(main())
