"""
Library for building parsers by combining small parsing functions.

See the objects for more explanations.

See the `combparse.general` module for general purpose parsers you can use as examples.

Defining parsers:
```
greeting = fmap(
    pipe(literal("hello"), ws0, search("!")),
    lambda r: r[2],
)

@do
def assignment():
    name = yield search("=")
    yield ws0
    value = yield number
    return (name.strip(), value)
```

Using parsers:
```
result = run(greeting, "hello world!")
if result:
    ... # `result` is a `Success` object
else:
    ... # `result` is a `Failure` object

value = parse(greeting, "hello world!")     # raises `ParseError` on failure
```
"""

import combparse.const as const
import combparse.main
from combparse.main import (
    log,
    truncate,
    ErrorKind,
    Success,
    Failure,
    Outcome,
    ParseError,
    Parser,
    Deferred,
    ParserLike,
    deferred,
    resolve,
    literal,
    not_literal,
    any_char,
    take,
    ws,
    ws0,
    search,
    break_to_end,
    end_of_input,
    number,
    always,
    never,
    pure,
    fail,
    fmap,
    bind,
    lookahead,
    oneof,
    nearest,
    compose,
    pipe,
    record,
    many,
    repeat1,
    many_until,
    sep_by,
    optional,
    before,
    traced,
    run,
    parse,
)
import combparse.notation
from combparse.notation import (
    State,
    Suspend,
    Done,
    Procedure,
    Interpreter,
    interpret,
    Do,
    do,
)
import combparse.general as general
