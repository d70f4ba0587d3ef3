# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Script sidecars (`<script>.cs.meta`).

Only three facts are read from a sidecar:

  fileFormatVersion: 2        (line 1, pinned)
  guid: <hex>                 (line 2, the script's original identity)
  executionOrder: <int>       (optional, anywhere below)

Anything else in the file is ignored. A missing or malformed sidecar is fatal:
without the guid, references to the script can never be repointed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from precompiler.errors import PrecompError

SIDECAR_SUFFIX = ".meta"
FILE_FORMAT_VERSION_LINE = "fileFormatVersion: 2"

_GUID_RE = re.compile(r"^[0-9a-f]+$")
_INT_RE = re.compile(r"^[+-]?[0-9]+$")


@dataclass(frozen=True)
class ScriptSidecar:
	guid: str
	execution_order: int = 0


def sidecar_path(source_path: Path) -> Path:
	return source_path.with_name(source_path.name + SIDECAR_SUFFIX)


def parse_sidecar(text: str, *, path: str | None = None) -> ScriptSidecar:
	lines = text.splitlines()
	if not lines or lines[0] != FILE_FORMAT_VERSION_LINE:
		raise PrecompError(
			reason_code="BAD_SIDECAR_VERSION",
			message=f"sidecar is not '{FILE_FORMAT_VERSION_LINE}'",
			path=path,
		)
	if len(lines) < 2:
		raise PrecompError(reason_code="MALFORMED_SIDECAR", message="sidecar has no guid line", path=path)
	key, sep, value = lines[1].partition(":")
	guid = value.strip()
	if key.strip() != "guid" or not sep or not _GUID_RE.match(guid):
		raise PrecompError(
			reason_code="MALFORMED_SIDECAR",
			message=f"expected 'guid: <hex>' on line 2, got '{lines[1]}'",
			path=path,
		)

	execution_order = 0
	for line in lines[2:]:
		stripped = line.strip()
		if not stripped.startswith("executionOrder:"):
			continue
		raw = stripped.split(":", 1)[1].strip()
		if not _INT_RE.match(raw):
			raise PrecompError(
				reason_code="BAD_EXECUTION_ORDER",
				message=f"executionOrder is expected to be an integer, was '{raw}'",
				path=path,
			)
		execution_order = int(raw)
		break

	return ScriptSidecar(guid=guid, execution_order=execution_order)


def read_sidecar(source_path: Path) -> ScriptSidecar:
	"""Read the sidecar next to `source_path`."""
	meta = sidecar_path(source_path)
	if not meta.is_file():
		raise PrecompError(
			reason_code="MISSING_SIDECAR",
			message=f"{meta} doesn't exist",
			path=str(source_path),
		)
	return parse_sidecar(meta.read_text(encoding="utf-8-sig"), path=str(meta))
