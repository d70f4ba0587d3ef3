# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class PrecompError(Exception):
	"""
	A structured, serializable error for the precompiler.

	Every error raised by the compile/fixup pipeline is fatal: the run stops
	before any map artifact or patched document is written.
	"""

	reason_code: str
	message: str
	path: str | None = None
	module: str | None = None
	# Second party of a conflict (collisions, duplicate definitions).
	other_path: str | None = None
	other_module: str | None = None

	def __str__(self) -> str:
		return self.format_human()

	def to_dict(self) -> dict[str, Any]:
		return {
			"reason_code": self.reason_code,
			"message": self.message,
			"path": self.path,
			"module": self.module,
			"other_path": self.other_path,
			"other_module": self.other_module,
		}

	def format_human(self) -> str:
		parts: list[str] = [f"[{self.reason_code}] {self.message}"]
		if self.module:
			parts.append(f"module={self.module}")
		if self.path:
			parts.append(f"path={self.path}")
		if self.other_module is not None or self.other_path is not None:
			parts.append(f"conflicts_with=({self.other_module or '?'} > {self.other_path or '?'})")
		return " ".join(parts)
