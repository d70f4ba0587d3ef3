# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import pytest

from precompiler.preprocessor import PreprocessorError, evaluate_condition
from precompiler.symbols import declarations, lex


@pytest.mark.parametrize(
	"expr, symbols, expected",
	[
		("A", {"A"}, True),
		("A", set(), False),
		("!A", set(), True),
		("A && !B", {"A"}, True),
		("A && !B", {"A", "B"}, False),
		("A || B", set(), False),
		("A || B", {"B"}, True),
		("(A || B) && C", {"B", "C"}, True),
		("A || B && C", {"A"}, True),
		("A == false", set(), True),
		("A != B", {"A"}, True),
		("true", set(), True),
		("false || UNITY_EDITOR", {"UNITY_EDITOR"}, True),
	],
)
def test_evaluate_condition(expr: str, symbols: set[str], expected: bool) -> None:
	assert evaluate_condition(expr, symbols) is expected


@pytest.mark.parametrize("expr", ["", "A &&", "(A", "A B", "&& A"])
def test_evaluate_condition_rejects_malformed(expr: str) -> None:
	with pytest.raises(PreprocessorError, match=r"invalid preprocessor condition"):
		evaluate_condition(expr, set())


_BRANCHES = """\
#if A
class X {}
#elif B
class Y {}
#else
class Z {}
#endif
"""


@pytest.mark.parametrize(
	"defines, expected",
	[
		((), ["Z"]),
		(("B",), ["Y"]),
		(("A", "B"), ["X"]),
	],
)
def test_only_taken_branch_is_visible(defines: tuple[str, ...], expected: list[str]) -> None:
	assert [d.name for d in declarations(_BRANCHES, defines)] == expected


def test_nested_inactive_section_stays_inactive() -> None:
	src = "#if A\n#if B\nclass Q {}\n#endif\n#else\nclass R {}\n#endif\n"
	assert [d.name for d in declarations(src, ("B",))] == ["R"]
	assert [d.name for d in declarations(src, ("A", "B"))] == ["Q"]
	assert [d.name for d in declarations(src, ("A",))] == []


def test_define_and_undef_are_file_scoped() -> None:
	src = "#define FEATURE\n#if FEATURE\nclass F {}\n#endif\n#undef FEATURE\n#if FEATURE\nclass G {}\n#endif\n"
	assert [d.name for d in declarations(src)] == ["F"]


def test_define_inside_inactive_section_is_ignored() -> None:
	src = "#if NOPE\n#define FEATURE\n#endif\n#if FEATURE\nclass F {}\n#endif\n"
	assert declarations(src) == []


def test_other_directives_are_ignored() -> None:
	src = "#region Things\n#pragma warning disable 0649\nclass G {}\n#endregion\n"
	assert [d.name for d in declarations(src)] == ["G"]


def test_trailing_comment_on_directive() -> None:
	src = "#if A // only in A\nclass G {}\n#endif // A\n"
	assert [d.name for d in declarations(src, ("A",))] == ["G"]


def test_directive_tokens_are_consumed() -> None:
	toks = lex("#if A\nclass G {}\n#endif\n", ("A",))
	assert "DIRECTIVE" not in {t.type for t in toks}


@pytest.mark.parametrize(
	"src, pattern",
	[
		("#if A\nclass G {}\n", r"unterminated #if"),
		("class G {}\n#endif\n", r"line 2: #endif without matching #if"),
		("#else\n", r"#else without matching #if"),
		("#elif A\n", r"#elif without matching #if"),
	],
)
def test_unbalanced_sections_raise(src: str, pattern: str) -> None:
	with pytest.raises(PreprocessorError, match=pattern):
		declarations(src)
