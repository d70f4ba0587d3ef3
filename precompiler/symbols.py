# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Type declaration lookup for script sources.

This is not a C# parser. It lexes the source (so comments, strings and inactive
`#if` regions cannot fool it), tracks brace nesting, and records each
`class`/`struct`/`interface`/`enum` declaration together with its enclosing
namespaces and classes. That is all the information needed to compute the
full name the engine uses for a script class:

  Namespace.Outer+Inner

A file is resolved by its first class declaration only. Files declaring several
top-level classes are identified by the first one; the others get no file id.

Nested block namespaces are joined (`namespace A { namespace B { ... } }` is
`A.B`), which is the name the compiler gives the class. The older precompile
tool reported only the innermost namespace (`B`); do not change this back.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Literal

from lark import Lark, Token

from precompiler.preprocessor import active_tokens

NESTED_CLASS_DELIMITER = "+"
NAMESPACE_CLASS_DELIMITER = "."

# Base name of generated assembly metadata (AssemblyInfo.cs). Matched by
# file name only.
KNOWN_GENERATED_NAMES = frozenset({"AssemblyInfo"})

TypeKind = Literal["class", "struct", "interface", "enum"]
_TYPE_KEYWORDS = frozenset({"class", "struct", "interface", "enum"})
# Contextual keywords that can follow a type keyword but never name a type.
_CONTEXTUAL_NAMES = frozenset({"where"})

SkipReason = Literal["non-class-type", "known-generated", "classless"]
SKIP_NON_CLASS: SkipReason = "non-class-type"
SKIP_KNOWN_GENERATED: SkipReason = "known-generated"
SKIP_CLASSLESS: SkipReason = "classless"

_GRAMMAR_PATH = Path(__file__).with_name("csharp_decls.lark")
_LEXER = Lark(
	_GRAMMAR_PATH.read_text(encoding="utf-8"),
	parser="lalr",
	lexer="basic",
)


@dataclass(frozen=True)
class TypeDecl:
	"""A type declaration found in a source file."""

	kind: TypeKind
	name: str
	# Enclosing class names, outermost first.
	enclosing: tuple[str, ...]
	namespace: str | None
	line: int | None = None

	@property
	def qualified_name(self) -> str:
		return NESTED_CLASS_DELIMITER.join((*self.enclosing, self.name))

	@property
	def full_name(self) -> str:
		if self.namespace:
			return f"{self.namespace}{NAMESPACE_CLASS_DELIMITER}{self.qualified_name}"
		return self.qualified_name


@dataclass(frozen=True)
class ResolvedType:
	"""The class a script file compiles to."""

	namespace: str | None
	name: str

	@property
	def full_name(self) -> str:
		if self.namespace:
			return f"{self.namespace}{NAMESPACE_CLASS_DELIMITER}{self.name}"
		return self.name


@dataclass(frozen=True)
class Skip:
	"""A script file that has no class to identify."""

	reason: SkipReason


@dataclass
class _Frame:
	kind: str  # "namespace" | TypeKind | "block"
	name: str | None


def _enclosing_of(frames: list[_Frame], file_namespace: list[str]) -> tuple[tuple[str, ...], str | None]:
	"""
	Compute (enclosing class names, namespace) for a declaration opened at the
	current nesting.

	Enclosing classes are the run of class frames directly around the
	declaration. The namespace is only reported when that run sits directly in a
	namespace (or at file scope); a class nested in a struct or interface has
	none.
	"""
	classes: list[str] = []
	idx = len(frames) - 1
	while idx >= 0 and frames[idx].kind == "class":
		classes.append(frames[idx].name or "")
		idx -= 1
	classes.reverse()

	if idx >= 0 and frames[idx].kind != "namespace":
		return tuple(classes), None

	parts = list(file_namespace)
	parts.extend(f.name or "" for f in frames[: idx + 1])
	namespace = NAMESPACE_CLASS_DELIMITER.join(parts) if parts else None
	return tuple(classes), namespace


def lex(source_text: str, defines: Iterable[str] = ()) -> list[Token]:
	"""Lex `source_text`, dropping comments and inactive preprocessor regions."""
	return list(active_tokens(_LEXER.lex(source_text), defines))


def declarations(source_text: str, defines: Iterable[str] = ()) -> list[TypeDecl]:
	"""Return every type declaration in `source_text`, in document order."""
	toks = lex(source_text, defines)
	out: list[TypeDecl] = []
	frames: list[_Frame] = []
	file_namespace: list[str] = []
	pending: tuple[TypeKind, str, int | None] | None = None
	namespace_parts: list[str] | None = None

	for idx, tok in enumerate(toks):
		if namespace_parts is not None:
			if tok.type == "NAME":
				namespace_parts.append(tok.value)
				continue
			if tok.type == "DOT":
				continue
			if tok.type == "LBRACE":
				frames.append(_Frame("namespace", NAMESPACE_CLASS_DELIMITER.join(namespace_parts)))
				namespace_parts = None
				continue
			if tok.type == "SEMI":
				# File-scoped namespace: applies to the rest of the file.
				file_namespace = namespace_parts
				namespace_parts = None
				continue
			namespace_parts = None

		if tok.type == "NAME":
			if tok.value == "namespace":
				namespace_parts = []
			elif tok.value in _TYPE_KEYWORDS and pending is None:
				nxt = toks[idx + 1] if idx + 1 < len(toks) else None
				# Constraint keywords (`where T : class where U : struct`) only
				# appear while a declaration is pending, before its `{`.
				if nxt is not None and nxt.type == "NAME" and nxt.value not in _CONTEXTUAL_NAMES:
					pending = (tok.value, nxt.value, tok.line)  # type: ignore[assignment]
		elif tok.type == "LBRACE":
			if pending is not None:
				kind, name, line = pending
				enclosing, namespace = _enclosing_of(frames, file_namespace)
				out.append(TypeDecl(kind=kind, name=name, enclosing=enclosing, namespace=namespace, line=line))
				frames.append(_Frame(kind, name))
				pending = None
			else:
				frames.append(_Frame("block", None))
		elif tok.type == "RBRACE":
			if frames:
				frames.pop()
			pending = None
		elif tok.type == "SEMI":
			pending = None

	return out


def resolve(source_text: str, file_base_name: str, *, defines: Iterable[str] = ()) -> ResolvedType | Skip:
	"""
	Resolve the class a script file declares.

	Returns the first class declaration's namespace and nested name, or a
	`Skip` explaining why the file has no class:

	- `non-class-type`: only structs/enums/interfaces (expected, silent),
	- `known-generated`: generated metadata such as AssemblyInfo (silent),
	- `classless`: nothing at all; usually a sign of missing defines.

	Raises `PreprocessorError` for malformed conditional compilation.
	"""
	decls = declarations(source_text, defines)
	first_class = next((d for d in decls if d.kind == "class"), None)
	if first_class is not None:
		return ResolvedType(namespace=first_class.namespace, name=first_class.qualified_name)
	if decls:
		return Skip(SKIP_NON_CLASS)
	if file_base_name in KNOWN_GENERATED_NAMES:
		return Skip(SKIP_KNOWN_GENERATED)
	return Skip(SKIP_CLASSLESS)
