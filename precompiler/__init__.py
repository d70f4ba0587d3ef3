# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
precompiler: re-package loose scripts into precompiled modules.

Pipeline:
  compile: group scripts by module definition, assign each class a local file id
           and each module a fresh guid, write map + importer sidecars.
  fixup:   repoint script references in serialized asset documents from the
           per-script guid to (module guid, local file id).
"""
