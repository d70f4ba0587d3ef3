# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Importer sidecar for a precompiled module (`<name>.dll.meta`).

The sidecar pins the module's new guid (the one every repointed reference uses)
and carries over what the engine used to read from the loose scripts and the
module definition: script execution orders, define constraints and platform
selection.
"""

from __future__ import annotations

from precompiler.graph import Module
from precompiler.module_def import ModuleDefinition

# Platform names as they appear in module definitions.
PLATFORM_EDITOR = "Editor"
PLATFORM_WSA = "WSA"
PLATFORM_WIN32 = "WindowsStandalone32"
PLATFORM_WIN64 = "WindowsStandalone64"


def _platform_excludes(definition: ModuleDefinition) -> dict[str, int]:
	"""
	Map each supported platform to its `Exclude` flag.

	A non-empty include list wins: only listed platforms are enabled. Otherwise
	the exclude list disables the listed platforms.
	"""
	has_include = len(definition.include_platforms) > 0
	listed = set(definition.include_platforms if has_include else definition.exclude_platforms)
	on_flag = 0 if has_include else 1
	off_flag = 1 if has_include else 0
	return {
		p: (on_flag if p in listed else off_flag)
		for p in (PLATFORM_EDITOR, PLATFORM_WSA, PLATFORM_WIN32, PLATFORM_WIN64)
	}


def render_plugin_meta(module: Module) -> str:
	definition = module.definition or ModuleDefinition(name=module.name)
	lines: list[str] = [
		"fileFormatVersion: 2",
		f"guid: {module.new_identity}",
		"PluginImporter:",
		"  externalObjects: {}",
		"  serializedVersion: 2",
		"  iconMap: {}",
	]

	ordered = [f for f in module.files if f.execution_order != 0]
	if ordered:
		lines.append("  executionOrder:")
		lines.extend(f"    {f.full_name}: {f.execution_order}" for f in ordered)
	else:
		lines.append("  executionOrder: {}")

	defines = [v.define for v in definition.version_defines] + list(definition.define_constraints)
	if defines:
		lines.append("  defineConstraints:")
		lines.extend(f"    - {d}" for d in defines)
	else:
		lines.append("  defineConstraints: []")

	lines += [
		"  isPreloaded: 0",
		"  isOverridable: 0",
		"  isExplicitlyReferenced: 0",
		"  validateReferences: 1",
	]

	excl = _platform_excludes(definition)
	enabled = {p: 1 - v for p, v in excl.items()}
	lines += [
		"  platformData:",
		"  - first:",
		"      : Any",
		"    second:",
		"      enabled: 0",
		"      settings:",
		f"        Exclude Editor: {excl[PLATFORM_EDITOR]}",
		"        Exclude Linux64: 1",
		"        Exclude OSXUniversal: 1",
		f"        Exclude Win: {excl[PLATFORM_WIN32]}",
		f"        Exclude Win64: {excl[PLATFORM_WIN64]}",
		f"        Exclude WindowsStoreApps: {excl[PLATFORM_WSA]}",
		"  - first:",
		"      Editor: Editor",
		"    second:",
		f"      enabled: {enabled[PLATFORM_EDITOR]}",
		"      settings:",
		"        CPU: AnyCPU",
		"        DefaultValueInitialized: true",
		"        OS: AnyOS",
		"  - first:",
		"      Standalone: Linux64",
		"    second:",
		"      enabled: 0",
		"      settings:",
		"        CPU: x86_64",
		"  - first:",
		"      Standalone: OSXUniversal",
		"    second:",
		"      enabled: 0",
		"      settings:",
		"        CPU: x86_64",
		"  - first:",
		"      Standalone: Win",
		"    second:",
		f"      enabled: {enabled[PLATFORM_WIN32]}",
		"      settings:",
		"        CPU: x86",
		"  - first:",
		"      Standalone: Win64",
		"    second:",
		f"      enabled: {enabled[PLATFORM_WIN64]}",
		"      settings:",
		"        CPU: x86_64",
		"  - first:",
		"      Windows Store Apps: WindowsStoreApps",
		"    second:",
		f"      enabled: {enabled[PLATFORM_WSA]}",
		"      settings:",
		"        CPU: AnyCPU",
		"        DontProcess: false",
		"        PlaceholderPath:",
		"        SDK: AnySDK",
		"        ScriptingBackend: AnyScriptingBackend",
		"  userData:",
		"  assetBundleName:",
		"  assetBundleVariant:",
	]
	return "\n".join(lines) + "\n"
