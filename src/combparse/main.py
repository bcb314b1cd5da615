"""
The implementations of the result model, the primitive parsers and the combinators.

A parser is any callable that takes the remaining text and returns either a
`Success` (truthy) or a `Failure` (falsy). Parsers hold no state, so the same
parser can be applied to any number of texts.
"""

from __future__ import annotations
from typing import Any, Self, Literal, TypeVar, Generic, Final, Callable, Protocol

import enum
import logging

import combparse.const as const


log = logging.getLogger("combparse")


_T = TypeVar("_T")
_U = TypeVar("_U")
_CT = TypeVar("_CT", covariant=True)
_DataCovT = TypeVar("_DataCovT", covariant=True)


def truncate(text: str) -> str:
    """The part of `text` that's shown in diagnostics."""
    return text[:const.DIAGNOSTIC_LIMIT]



class ErrorKind(enum.Enum):
    """Why a parser failed."""
    END_OF_INPUT = "END_OF_INPUT"
    LITERAL_MISMATCH = "LITERAL_MISMATCH"
    SUBSTRING_NOT_FOUND = "SUBSTRING_NOT_FOUND"
    NOT_WHITESPACE = "NOT_WHITESPACE"
    NOT_NUMBER = "NOT_NUMBER"
    GENERIC_FAILURE = "GENERIC_FAILURE"
    UNEXPECTED_TRAILING_INPUT = "UNEXPECTED_TRAILING_INPUT"


class Success(Generic[_DataCovT]):
    """
    When returned from a parser, indicates that it has succeeded.

    ```
    r = parser(text)
    if r:
        r.value, r.remaining    # `r` is a `Success` object
    else:
        r.kind, r.message       # `r` is a `Failure` object
    ```

    `remaining` is always a suffix of the text the parser was given.
    """

    __slots__ = ("value", "remaining")

    def __init__(self, value: _DataCovT, remaining: str) -> None:
        self.value: Final[_DataCovT] = value
        self.remaining: Final[str] = remaining

    def with_value(self, value: _T) -> Success[_T]:
        """Creates a copy of this success holding another value."""
        return Success(value, self.remaining)

    def __bool__(self) -> Literal[True]:
        return True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Success):
            return NotImplemented
        return self.value == other.value and self.remaining == other.remaining

    def __repr__(self) -> str:
        return f"Success({self.value!r}, {truncate(self.remaining)!r})"


class Failure:
    """
    When returned from a parser, indicates that it has failed. Can be converted into a `ParseError`.

    Failures are propagated verbatim by every combinator that sequences parsers.
    """

    __slots__ = ("kind", "message", "rest")

    def __init__(self, kind: ErrorKind, message: str = "", rest: str | None = None) -> None:
        """
        `kind`: The reason category.
        `message`: A human readable explanation.
        `rest`: The text that was remaining where the failure happened, if known. Only used for diagnostics.
        """
        self.kind: Final[ErrorKind] = kind
        self.message: Final[str] = message
        self.rest: Final[str | None] = rest

    def error(self, src: str | None = None) -> ParseError:
        """
        Converts this to a `ParseError`.

        If `src` (the whole text given to the outermost parser) is supplied, the error gets a positioned note.
        """
        pos = None
        if src is not None and self.rest is not None and src.endswith(self.rest):
            pos = len(src) - len(self.rest)
        return ParseError(self.kind, self.message, src, pos)

    def __bool__(self) -> Literal[False]:
        return False

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Failure):
            return NotImplemented
        return self.kind == other.kind and self.message == other.message

    def __repr__(self) -> str:
        return f"Failure({self.kind.name}, {self.message!r})"


Outcome = Success[_T] | Failure


class ParseError(Exception):
    """
    The exception that's raised by `parse()` when the parser fails.

    Carries the `ErrorKind` and the message of the failure.
    """

    def __init__(self, kind: ErrorKind, message: str = "", src: str | None = None, pos: int | None = None) -> None:
        """
        `kind`: The reason category.
        `message`: The reason for the error.
        `src`: The string that was being parsed.
        `pos`: The position of the error, if known.
        """
        super().__init__(f"{kind.value}: {message}" if message else kind.value)
        self.kind: ErrorKind = kind
        self.message: str = message
        self.src: str | None = src
        self.pos: int | None = pos
        if src is not None and pos is not None:
            self.append_pos_note(pos)

    def append_pos_note(self, pos: int, msg: str | None = None) -> Self:
        if self.src is None:
            raise ValueError("A positioned note needs the source string.")
        note: list[str] = [] if msg is None else [msg]

        pos = min(pos, len(self.src))
        # should still work with CRLF
        line = self.src.count("\n", 0, pos) + 1
        column = pos - self.src.rfind("\n", 0, pos) # works even when rfind returns -1
        note.append(f"At position {pos} (line {line}, column {column})")

        lines = self.src.splitlines()
        if len(lines) > line-1:
            line_str = lines[line-1]
            if len(line_str) >= column:
                if column <= 20:
                    note.append(f"{line_str[:40]}\n{' '*(column-1)}^")
                else:
                    note.append(f"{line_str[(column-20):(column+20)]}\n{' '*20}^")
        self.add_note("\n".join(note))
        return self



class Parser(Protocol[_CT]):
    """
    A protocol for parsers: callables from the remaining text to an outcome.

    Plain functions and lambdas satisfy it.
    """
    def __call__(self, text: str, /) -> Success[_CT] | Failure: ...


class Deferred(Generic[_T]):
    """
    A parser that's constructed on demand.

    Used for grammar rules that refer to themselves, which would recurse forever if constructed eagerly.
    The thunk is called once per application and its result is never cached.

    ```
    @deferred
    def nested() -> Parser[list]:
        return pipe(literal("("), many(nested), literal(")"))
    ```
    """

    __slots__ = ("thunk",)

    def __init__(self, thunk: Callable[[], Parser[_T]]) -> None:
        self.thunk: Final[Callable[[], Parser[_T]]] = thunk

    def __repr__(self) -> str:
        return f"Deferred({getattr(self.thunk, '__name__', self.thunk)!r})"


ParserLike = Parser[_T] | Deferred[_T]


def deferred(thunk: Callable[[], Parser[_T]]) -> Deferred[_T]:
    """Decorator form of `Deferred`."""
    return Deferred(thunk)

def resolve(parser: ParserLike[_T]) -> Parser[_T]:
    """Turns a `Deferred` into the parser it stands for. Other parsers are returned as-is."""
    if isinstance(parser, Deferred):
        return parser.thunk()
    return parser



def literal(value: str) -> Parser[str]:
    """Parser factory. Matches `value` exactly. Case sensitive."""
    def inner(text: str) -> Success[str] | Failure:
        if text.startswith(value):
            return Success(value, text[len(value):])
        return Failure(
            ErrorKind.LITERAL_MISMATCH,
            f"Expected {value!r}, got {text[:len(value)]!r} in {truncate(text)!r}",
            text,
        )
    return inner

def not_literal(value: str) -> Parser[str]:
    """
    Parser factory. Consumes a single character, as long as the text doesn't start with `value`.

    Fails with `END_OF_INPUT` on empty text.
    """
    def inner(text: str) -> Success[str] | Failure:
        if text.startswith(value):
            return Failure(ErrorKind.LITERAL_MISMATCH, f"Expected anything but {value!r}", text)
        if not text:
            return Failure(ErrorKind.END_OF_INPUT, f"Expected a character other than {value!r}", text)
        return Success(text[0], text[1:])
    return inner

def any_char(text: str) -> Success[str] | Failure:
    """A pre-defined parser (not a factory). Consumes a single character."""
    if not text:
        return Failure(ErrorKind.END_OF_INPUT, "Expected a character", text)
    return Success(text[0], text[1:])

def take(amount: int) -> Parser[str]:
    """Parser factory. Consumes exactly `amount` characters."""
    if amount < 0:
        raise ValueError("Can't take a negative amount of characters.")
    def inner(text: str) -> Success[str] | Failure:
        if len(text) < amount:
            return Failure(ErrorKind.END_OF_INPUT, f"Expected {amount} characters, {len(text)} left", text)
        return Success(text[:amount], text[amount:])
    return inner

def ws(text: str) -> Success[str] | Failure:
    """A pre-defined parser (not a factory). Matches a single whitespace."""
    if text[:1] not in const.WHITESPACES:
        return Failure(ErrorKind.NOT_WHITESPACE, f"Expected whitespace, got {text[:1]!r}", text)
    return Success(text[0], text[1:])

def ws0(text: str) -> Success[None]:
    """A pre-defined parser (not a factory). Matches zero or more whitespaces. Never fails."""
    i = 0
    while i < len(text) and text[i] in const.WHITESPACES:
        i += 1
    return Success(None, text[i:])

def search(value: str) -> Parser[str]:
    """
    Parser factory. Skips to the first occurrence of `value`.

    Consumes everything up to and including the occurrence, and returns the text before it.
    """
    def inner(text: str) -> Success[str] | Failure:
        i = text.find(value)
        if i == -1:
            return Failure(
                ErrorKind.SUBSTRING_NOT_FOUND,
                f"Expected to find {value!r} in {truncate(text)!r}",
                text,
            )
        return Success(text[:i], text[i+len(value):])
    return inner

def break_to_end(text: str) -> Success[str]:
    """A pre-defined parser (not a factory). Consumes and returns the rest of the text."""
    return Success(text, "")

def end_of_input(text: str) -> Success[None] | Failure:
    """A pre-defined parser (not a factory). Matches only if there's no text left."""
    if text:
        return Failure(
            ErrorKind.UNEXPECTED_TRAILING_INPUT,
            f"Expected end of input, {len(text)} characters left: {truncate(text)!r}",
            text,
        )
    return Success(None, "")

def number(text: str) -> Success[int | float] | Failure:
    """
    A pre-defined parser (not a factory). Matches a run of digits and dots starting with a digit.

    Returns a `float` if there was a dot, otherwise an `int`.
    """
    if not text:
        return Failure(ErrorKind.END_OF_INPUT, "Expected a number", text)
    if text[0] not in const.DECIMAL:
        return Failure(ErrorKind.NOT_NUMBER, f"Expected a digit, got {text[0]!r}", text)
    has_dot = False
    i = 1
    while i < len(text):
        if text[i] == ".":
            has_dot = True
        elif text[i] not in const.DECIMAL:
            break
        i += 1
    span = text[:i]
    if has_dot:
        try:
            return Success(float(span), text[i:])
        except ValueError:
            # "1.2.3" reads as 1.2, but the whole run is consumed
            return Success(float(span[:span.index(".", span.index(".")+1)]), text[i:])
    return Success(_to_int(span), text[i:])

def _to_int(digits: str) -> int:
    # int(str) refuses very long digit strings, so convert in chunks
    value = 0
    for i in range(0, len(digits), _INT_CHUNK):
        chunk = digits[i:i+_INT_CHUNK]
        value = value * 10**len(chunk) + int(chunk)
    return value

_INT_CHUNK: Final[int] = 1000

def always(value: _T) -> Parser[_T]:
    """Parser factory. Succeeds with `value` without consuming anything."""
    return lambda text: Success(value, text)

def never(message: str = "") -> Parser[Any]:
    """Parser factory. Fails with `GENERIC_FAILURE` without consuming anything."""
    return lambda text: Failure(ErrorKind.GENERIC_FAILURE, message, text)

pure = always
fail = never



def fmap(parser: ParserLike[_T], func: Callable[[_T], _U]) -> Parser[_U]:
    """Parser factory. Transforms the value of a successful match with `func`."""
    def inner(text: str) -> Success[_U] | Failure:
        r = resolve(parser)(text)
        if not r:
            return r
        return r.with_value(func(r.value))
    return inner

def bind(parser: ParserLike[_T], func: Callable[[_T], ParserLike[_U]]) -> Parser[_U]:
    """
    Parser factory. Monadic bind.

    Applies `parser`, then applies the parser that `func` builds from its value to the rest of the text.
    """
    def inner(text: str) -> Success[_U] | Failure:
        r = resolve(parser)(text)
        if not r:
            return r
        return resolve(func(r.value))(r.remaining)
    return inner

def lookahead(parser: ParserLike[_T]) -> Parser[_T]:
    """Parser factory. Matches without advancing. The value is kept."""
    def inner(text: str) -> Success[_T] | Failure:
        r = resolve(parser)(text)
        if not r:
            return r
        return Success(r.value, text)
    return inner


def oneof(*parsers: ParserLike[Any]) -> Parser[Any]:
    """
    Parser factory.

    Attempts to match each of the parsers against the same text, in order, until one matches.
    If none match, returns the failure of the last one.
    """
    if len(parsers) <= 0:
        raise ValueError("At least one parser required.")
    def inner(text: str) -> Success[Any] | Failure:
        for parser in parsers:
            r = resolve(parser)(text)
            if r:
                return r
        return r
    return inner

def nearest(*parsers: ParserLike[Any]) -> Parser[Any]:
    """
    Parser factory.

    Applies every parser to the same text and picks the success that consumed the least.
    Useful with `search()` to find whichever of several terminators comes first.
    Ties go to the earlier parser.
    """
    if len(parsers) <= 0:
        raise ValueError("At least one parser required.")
    def inner(text: str) -> Success[Any] | Failure:
        best: Success[Any] | None = None
        for parser in parsers:
            r = resolve(parser)(text)
            if r and (best is None or len(r.remaining) > len(best.remaining)):
                best = r
        if best is None:
            return Failure(ErrorKind.GENERIC_FAILURE, f"None of the {len(parsers)} alternatives matched", text)
        return best
    return inner


def compose(*parsers: ParserLike[Any]) -> Parser[tuple[Any, ...]]:
    """
    Parser factory.

    Applies the parsers from the last to the first, each to what the previous one left.
    The values are returned in argument order.

    `compose(a, b)` applies `b`, then `a`, and returns `(a_value, b_value)`.
    """
    if len(parsers) <= 0:
        raise ValueError("At least one parser required.")
    def inner(text: str) -> Success[tuple[Any, ...]] | Failure:
        values: list[Any] = []
        for parser in reversed(parsers):
            r = resolve(parser)(text)
            if not r:
                return r
            values.append(r.value)
            text = r.remaining
        values.reverse()
        return Success(tuple(values), text)
    return inner

def pipe(*parsers: ParserLike[Any]) -> Parser[tuple[Any, ...]]:
    """
    Parser factory.

    All the given parsers must match in sequence, from the first to the last.
    """
    if len(parsers) <= 0:
        raise ValueError("At least one parser required.")
    def inner(text: str) -> Success[tuple[Any, ...]] | Failure:
        values: list[Any] = []
        for parser in parsers:
            r = resolve(parser)(text)
            if not r:
                return r
            values.append(r.value)
            text = r.remaining
        return Success(tuple(values), text)
    return inner

def record(*steps: tuple[str | None, ParserLike[Any]]) -> Parser[dict[str, Any]]:
    """
    Parser factory.

    Like `pipe()`, but collects the values into a dict. Each step is a `(key, parser)` pair.
    Steps with an empty (or `None`) key are matched but their values are discarded.

    ```
    pair = record(("key", json_string), ("", literal(":")), ("value", json_value))
    ```
    """
    if len(steps) <= 0:
        raise ValueError("At least one step required.")
    def inner(text: str) -> Success[dict[str, Any]] | Failure:
        values: dict[str, Any] = {}
        for key, parser in steps:
            r = resolve(parser)(text)
            if not r:
                return r
            if key:
                values[key] = r.value
            text = r.remaining
        return Success(values, text)
    return inner


def many(parser: ParserLike[_T]) -> Parser[list[_T]]:
    """
    Parser factory.

    Repeatedly matches the given parser until it fails. Never fails.
    """
    def inner(text: str) -> Success[list[_T]]:
        values: list[_T] = []
        while r := resolve(parser)(text):
            values.append(r.value)
            text = r.remaining
        return Success(values, text)
    return inner

def repeat1(parser: ParserLike[_T]) -> Parser[list[_T]]:
    """
    Parser factory.

    Repeatedly matches the given parser until it fails. Succeeds if at least one iteration matches.
    """
    def inner(text: str) -> Success[list[_T]] | Failure:
        r = resolve(parser)(text)
        if not r:
            return r
        rest = many(parser)(r.remaining)
        return Success([r.value, *rest.value], rest.remaining)
    return inner

def many_until(parser: ParserLike[_T], end: ParserLike[Any]) -> Parser[list[_T]]:
    """
    Parser factory.

    Repeatedly matches the given parser until `end` matches or the parser fails. Never fails.
    `end` isn't consumed.
    """
    def inner(text: str) -> Success[list[_T]]:
        values: list[_T] = []
        while not resolve(end)(text):
            r = resolve(parser)(text)
            if not r:
                break
            values.append(r.value)
            text = r.remaining
        return Success(values, text)
    return inner

def sep_by(parser: ParserLike[_T], separator: ParserLike[Any]) -> Parser[list[_T]]:
    """
    Parser factory.

    Matches zero or more occurrences of the parser, separated by `separator`. Never fails.
    A trailing separator is left unconsumed.
    """
    def inner(text: str) -> Success[list[_T]]:
        r = resolve(parser)(text)
        if not r:
            return Success([], text)
        values: list[_T] = [r.value]
        text = r.remaining
        while True:
            s = resolve(separator)(text)
            if not s:
                break
            r = resolve(parser)(s.remaining)
            if not r:
                break
            values.append(r.value)
            text = r.remaining
        return Success(values, text)
    return inner

def optional(parser: ParserLike[_T]) -> Parser[_T | None]:
    """
    Parser factory.

    Returns `None` without consuming anything if the parser fails.
    """
    def inner(text: str) -> Success[_T | None]:
        r = resolve(parser)(text)
        if not r:
            return Success(None, text)
        return r
    return inner


def before(parser: ParserLike[_T], marker: ParserLike[Any]) -> Parser[_T]:
    """
    Parser factory.

    Locates a reference point with `marker`, then applies `parser` only to the text up to
    and including the marker's match. What `parser` leaves of that span is the remaining text;
    the text after the marker is not reachable through this parser.
    """
    def inner(text: str) -> Success[_T] | Failure:
        m = resolve(marker)(text)
        if not m:
            return m
        offset = len(text) - len(m.remaining)
        r = resolve(parser)(text[:offset])
        if not r:
            # `rest` would be a suffix of the span, not of the outer text
            return Failure(r.kind, r.message)
        return r
    return inner


def traced(parser: ParserLike[_T], prefix: str = "trace=", log_result: bool = False) -> Parser[_T]:
    """
    Parser factory. Logs the start of the text at the DEBUG level before applying the parser.

    If `log_result` is true, the outcome is logged too.
    """
    def inner(text: str) -> Success[_T] | Failure:
        log.debug("%s%s", prefix, truncate(text))
        r = resolve(parser)(text)
        if log_result:
            log.debug("%s%r", prefix, r)
        return r
    return inner



def run(parser: ParserLike[_T], text: str) -> Success[_T] | Failure:
    """Applies the parser to the text and returns the outcome."""
    r = resolve(parser)(text)
    if not r:
        log.debug("parse failed: %s %s", r.kind.name, r.message)
    return r

def parse(parser: ParserLike[_T], text: str) -> _T:
    """
    Applies the parser to the text and returns the value.

    Raises a `ParseError` if the parser fails.
    """
    r = run(parser, text)
    if not r:
        raise r.error(text)
    return r.value
