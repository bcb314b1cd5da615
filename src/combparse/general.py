"""
General purpose parsers built from the combinators. Also serve as examples.
"""

from __future__ import annotations
from typing import Any

from combparse import *

# quoted string

GENERAL_ESCAPES = {
    '"': '"',
    "'": "'",
    '\\': '\\',
    '/': '/',
    'b': '\b',
    'f': '\f',
    'n': '\n',
    'r': '\r',
    't': '\t',
}

@do
def unicode_escape():
    """The `XXXX` part of a `\\uXXXX` escape."""
    code = yield take(4)
    if not all(c in const.HEXADECIMAL for c in code):
        yield never(f"Expected 4 hexadecimal characters after unicode escape sequence, got {code!r}.")
    return chr(int(code, base=16))

def _escaped(char: str) -> Parser[str]:
    if char == "u":
        return unicode_escape
    if char in GENERAL_ESCAPES:
        return always(GENERAL_ESCAPES[char])
    return never(f"Unknown escape sequence `\\{char}`.")

def quoted_string(quote: str = '"', escape: str = '\\') -> Parser[str]:
    """Parser factory. Matches a quoted string and decodes its escape sequences."""
    escape_sequence = bind(pipe(literal(escape), any_char), lambda r: _escaped(r[1]))
    plain = fmap(pipe(lookahead(not_literal(escape)), not_literal(quote)), lambda r: r[1])
    # an escape left over after the body is a bad one; report why
    closing = bind(
        lookahead(optional(literal(escape))),
        lambda e: escape_sequence if e else literal(quote),
    )
    return fmap(
        pipe(
            literal(quote),
            many(oneof(escape_sequence, plain)),
            closing,
        ),
        lambda r: "".join(r[1]),
    )

def raw_quoted_string(quote: str = '"') -> Parser[str]:
    """Parser factory. Matches a quoted string without interpreting escapes."""
    return fmap(pipe(literal(quote), search(quote)), lambda r: r[1])

# json

json_bool: Parser[bool] = fmap(oneof(literal("true"), literal("false")), lambda s: s == "true")

json_null: Parser[None] = fmap(literal("null"), lambda _: None)

json_number: Parser[int | float] = fmap(
    pipe(optional(literal("-")), number),
    lambda r: -r[1] if r[0] else r[1],
)

json_string: Parser[str] = quoted_string('"')

_comma = pipe(ws0, literal(","), ws0)

@deferred
def json_array() -> Parser[list[Any]]:
    return fmap(
        pipe(literal("["), ws0, sep_by(json_value, _comma), ws0, literal("]")),
        lambda r: r[2],
    )

@deferred
def json_object() -> Parser[dict[str, Any]]:
    member = record(
        ("key", json_string),
        ("", ws0),
        ("", literal(":")),
        ("", ws0),
        ("value", json_value),
    )
    return fmap(
        pipe(literal("{"), ws0, sep_by(member, _comma), ws0, literal("}")),
        lambda r: {m["key"]: m["value"] for m in r[2]},
    )

json_value: Parser[Any] = oneof(json_object, json_array, json_string, json_number, json_bool, json_null)

json_document: Parser[Any] = fmap(pipe(ws0, json_value, ws0, end_of_input), lambda r: r[1])
