# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Conditional compilation for the declaration scanner.

Declarations hidden behind `#if` must be invisible to the symbol resolver, the
same way the compiler never sees them; otherwise a file could be assigned the
file id of a class that is not in the binary. Supported directives:

- `#if` / `#elif` / `#else` / `#endif` with the full condition grammar,
- `#define` / `#undef` (scoped to the file being scanned).

Every other directive (`#region`, `#pragma`, `#nullable`, ...) is ignored.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Iterator

from lark import Lark, Token, Transformer
from lark.exceptions import UnexpectedInput

_GRAMMAR_PATH = Path(__file__).with_name("pp_condition.lark")
_CONDITION_PARSER = Lark(
	_GRAMMAR_PATH.read_text(encoding="utf-8"),
	parser="lalr",
	maybe_placeholders=False,
)


class PreprocessorError(ValueError):
	"""Malformed conditional-compilation structure or condition."""

	def __init__(self, message: str, *, line: int | None = None) -> None:
		if line is not None:
			message = f"line {line}: {message}"
		super().__init__(message)
		self.line = line


class _ConditionEval(Transformer):
	def __init__(self, symbols: set[str]) -> None:
		super().__init__()
		self._symbols = symbols

	def symbol(self, children: list[Token]) -> bool:
		name = str(children[0])
		if name == "true":
			return True
		if name == "false":
			return False
		return name in self._symbols

	def not_(self, children: list[bool]) -> bool:
		return not children[0]

	def and_(self, children: list[bool]) -> bool:
		return children[0] and children[1]

	def or_(self, children: list[bool]) -> bool:
		return children[0] or children[1]

	def eq(self, children: list[bool]) -> bool:
		return children[0] == children[1]

	def ne(self, children: list[bool]) -> bool:
		return children[0] != children[1]


def evaluate_condition(expr: str, symbols: Iterable[str]) -> bool:
	"""Evaluate a `#if` condition against the set of defined symbols."""
	try:
		tree = _CONDITION_PARSER.parse(expr)
	except UnexpectedInput as err:
		raise PreprocessorError(f"invalid preprocessor condition '{expr}'") from err
	return bool(_ConditionEval(set(symbols)).transform(tree))


def _split_directive(text: str) -> tuple[str, str]:
	body = text[1:]
	comment = body.find("//")
	if comment >= 0:
		body = body[:comment]
	parts = body.split(None, 1)
	if not parts:
		return "", ""
	return parts[0], (parts[1].strip() if len(parts) > 1 else "")


def active_tokens(tokens: Iterable[Token], defines: Iterable[str] = ()) -> Iterator[Token]:
	"""
	Filter a token stream down to the tokens the compiler would see.

	`DIRECTIVE` tokens are consumed; every other token is yielded only when all
	enclosing conditional sections are active.
	"""
	symbols = set(defines)
	# Each frame: [parent_active, branch_taken, active]
	stack: list[list[bool]] = []
	active = True

	for tok in tokens:
		if tok.type != "DIRECTIVE":
			if active:
				yield tok
			continue

		keyword, rest = _split_directive(tok.value)
		line = tok.line

		if keyword == "if":
			cond = evaluate_condition(rest, symbols) if active else False
			stack.append([active, cond, active and cond])
		elif keyword == "elif":
			if not stack:
				raise PreprocessorError("#elif without matching #if", line=line)
			frame = stack[-1]
			parent_active, taken, _ = frame
			if parent_active and not taken and evaluate_condition(rest, symbols):
				frame[1] = True
				frame[2] = True
			else:
				frame[2] = False
		elif keyword == "else":
			if not stack:
				raise PreprocessorError("#else without matching #if", line=line)
			frame = stack[-1]
			frame[2] = frame[0] and not frame[1]
			frame[1] = True
		elif keyword == "endif":
			if not stack:
				raise PreprocessorError("#endif without matching #if", line=line)
			stack.pop()
		elif keyword == "define":
			if active:
				symbols.add(rest)
		elif keyword == "undef":
			if active:
				symbols.discard(rest)

		active = stack[-1][2] if stack else True

	if stack:
		raise PreprocessorError("unterminated #if at end of file")
