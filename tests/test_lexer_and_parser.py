import pytest
from hypothesis import given, strategies as st

from kiln.errors import KilnSyntaxError
from kiln.reader.parser import CONSTANTS, lex, read_program, TokenStream
from kiln.reader.printer import to_source
from kiln.types.symbol import Symbol
from kiln.types.unit import Unit


@pytest.mark.parametrize(
    "source,expected",
    [
        ("a", [("symbol", "a")]),
        ("(a b c)", [("lparen", "("), ("symbol", "a"), ("symbol", "b"), ("symbol", "c"), ("rparen", ")")]),
        ('"hello"', [("string", '"hello"')]),
        ('"say \\"hi\\""', [("string", '"say \\"hi\\""')]),
        (" ; comment\n a b", [("symbol", "a"), ("symbol", "b")]),
        ("$(cc main.c)", [("shell", "$("), ("symbol", "cc"), ("symbol", "main.c"), ("rparen", ")")]),
        ("($ cc)", [("lparen", "("), ("symbol", "$"), ("symbol", "cc"), ("rparen", ")")]),
        (":reads", [("symbol", ":reads")]),
    ]
)
def test_lexer_basic(source, expected):
    assert list(lex(source)) == expected


@pytest.mark.parametrize(
    "source, expected",
    [
        ("123", 123),
        ("-45", -45),
        ("true", True),
        ("false", False),
        ("unit", Unit),
        ('"a\\nb"', "a\nb"),
        ("foo-bar", Symbol("foo-bar")),
        ("(f 1 \"x\")", [Symbol("f"), 1, "x"]),
        ("(a (b c) ())", [Symbol("a"), [Symbol("b"), Symbol("c")], []]),
        ('$(echo "hi")', [Symbol("$"), Symbol("echo"), "hi"]),
    ]
)
def test_parser_basic(source, expected):
    stream = TokenStream(lex(source))
    assert stream.parse_expr() == expected


def test_read_program_returns_every_top_level_form():
    forms = read_program("(define a 1)\n; note\n(define b 2)\nb")
    assert forms == [
        [Symbol("define"), Symbol("a"), 1],
        [Symbol("define"), Symbol("b"), 2],
        Symbol("b"),
    ]


def test_booleans_are_not_ints():
    assert read_program("true 1")[0] is True
    assert type(read_program("true 1")[1]) is int


@pytest.mark.parametrize("source", ["(a b", ")", "'a", '"unterminated'])
def test_syntax_errors(source):
    with pytest.raises(KilnSyntaxError):
        read_program(source)


names = st.from_regex(r"[a-z][a-z0-9\-]{0,6}", fullmatch=True).filter(
    lambda s: s not in CONSTANTS
).map(Symbol)
atoms = st.one_of(names, st.integers(), st.booleans(), st.text(max_size=8))
forms = st.recursive(atoms, lambda children: st.lists(children, max_size=4), max_leaves=12)


@given(forms)
def test_printed_source_reads_back_to_the_same_form(form):
    assert read_program(to_source(form)) == [form]
