"""
Do-notation: a chain of binds written as a linear list of steps.

A procedure hands the interpreter one parser at a time (a `Suspend`), and gets resumed
with that parser's value. When it's finished, it hands back its result (a `Done`).
If any of the parsers fails, the whole block fails with that failure and the procedure
is never resumed again.

Step builder:
```
pair = (
    Do()
    .bind("key", json_string)
    .then(ws0)
    .then(literal(":"))
    .bind_with("value", lambda env: json_value)
    .returns(lambda env: (env["key"], env["value"]))
)
```

Generator functions:
```
@do
def pair():
    key = yield json_string
    yield ws0
    yield literal(":")
    value = yield json_value
    return (key, value)
```

Both forms are ordinary parsers and can be used as steps of other blocks.
"""

from __future__ import annotations
from typing import Any, TypeVar, Generic, Final, Callable, Protocol
from collections.abc import Generator, Mapping

import enum
import functools

from combparse.main import (
    log,
    Success,
    Failure,
    Parser,
    ParserLike,
    resolve,
)


_T = TypeVar("_T")

Env = Mapping[str, Any]


class State(enum.Enum):
    START = enum.auto()
    RUNNING = enum.auto()
    SUSPENDED = enum.auto()
    DONE = enum.auto()
    FAILED = enum.auto()


class Suspend:
    """Asks the interpreter to run `parser` and resume with its value."""
    __slots__ = ("parser",)

    def __init__(self, parser: ParserLike[Any]) -> None:
        self.parser: Final[ParserLike[Any]] = parser

class Done(Generic[_T]):
    """The procedure has finished with `value`."""
    __slots__ = ("value",)

    def __init__(self, value: _T) -> None:
        self.value: Final[_T] = value

Step = Suspend | Done[Any]


class Procedure(Protocol):
    """
    A resumable list of steps.

    `start()` is called once, then `resume()` once per successful `Suspend`.
    `close()` is called if a step failed or raised.
    """
    def start(self) -> Step: ...
    def resume(self, value: Any) -> Step: ...
    def close(self) -> None: ...


class Interpreter:
    """Runs a single procedure against a single text. Not reusable."""

    def __init__(self, procedure: Procedure, text: str) -> None:
        self.procedure: Final[Procedure] = procedure
        self.remaining: str = text
        self.state: State = State.START

    def _move(self, state: State) -> None:
        log.debug("do-notation: %s -> %s", self.state.name, state.name)
        self.state = state

    def run(self) -> Success[Any] | Failure:
        if self.state is not State.START:
            raise RuntimeError("An interpreter can only be run once.")
        self._move(State.RUNNING)
        try:
            step = self.procedure.start()
            while isinstance(step, Suspend):
                self._move(State.SUSPENDED)
                r = resolve(step.parser)(self.remaining)
                if not r:
                    self._move(State.FAILED)
                    self.procedure.close()
                    return r
                self.remaining = r.remaining
                self._move(State.RUNNING)
                step = self.procedure.resume(r.value)
        except BaseException:
            self._move(State.FAILED)
            self.procedure.close()
            raise
        self._move(State.DONE)
        return Success(step.value, self.remaining)

def interpret(procedure: Procedure, text: str) -> Success[Any] | Failure:
    """Runs the procedure against the text with a fresh `Interpreter`."""
    return Interpreter(procedure, text).run()



class StepProcedure:
    """The procedure behind a `Do` block."""

    def __init__(
        self,
        steps: tuple[tuple[str | None, Callable[[Env], ParserLike[Any]]], ...],
        result: Callable[[Env], Any] | None,
    ) -> None:
        self.steps = steps
        self.result = result
        self.env: dict[str, Any] = {}
        self.index: int = 0
        self.last: Any = None

    def _next(self) -> Step:
        if self.index >= len(self.steps):
            if self.result is None:
                return Done(self.last)
            return Done(self.result(dict(self.env)))
        _, make = self.steps[self.index]
        return Suspend(make(dict(self.env)))

    def start(self) -> Step:
        return self._next()

    def resume(self, value: Any) -> Step:
        name, _ = self.steps[self.index]
        if name:
            self.env[name] = value
        self.last = value
        self.index += 1
        return self._next()

    def close(self) -> None:
        pass


class Do:
    """
    An immutable do-notation block built step by step. Callable as a parser.

    Without `returns()`, the block returns the value of its last step (`None` if it has no steps).
    """

    def __init__(
        self,
        steps: tuple[tuple[str | None, Callable[[Env], ParserLike[Any]]], ...] = (),
        result: Callable[[Env], Any] | None = None,
    ) -> None:
        self.steps: Final = steps
        self.result: Final = result

    def bind(self, name: str | None, parser: ParserLike[Any]) -> Do:
        """Adds a step that runs `parser` and stores its value under `name`."""
        return Do(self.steps + ((name, lambda env: parser),), self.result)

    def bind_with(self, name: str | None, func: Callable[[Env], ParserLike[Any]]) -> Do:
        """Adds a step whose parser is built from the values bound so far."""
        return Do(self.steps + ((name, func),), self.result)

    def then(self, parser: ParserLike[Any]) -> Do:
        """Adds a step whose value is not stored."""
        return self.bind(None, parser)

    def returns(self, func: Callable[[Env], Any]) -> Do:
        """Sets how the block's value is built from the bound values."""
        return Do(self.steps, func)

    def procedure(self) -> StepProcedure:
        return StepProcedure(self.steps, self.result)

    def __call__(self, text: str) -> Success[Any] | Failure:
        return interpret(self.procedure(), text)



class GeneratorProcedure:
    """Adapts a generator that yields parsers and returns a value."""

    def __init__(self, generator: Generator[ParserLike[Any], Any, Any]) -> None:
        self.generator: Final = generator

    def _send(self, value: Any) -> Step:
        try:
            return Suspend(self.generator.send(value))
        except StopIteration as stop:
            return Done(stop.value)

    def start(self) -> Step:
        return self._send(None)

    def resume(self, value: Any) -> Step:
        return self._send(value)

    def close(self) -> None:
        self.generator.close()


def do(func: Callable[[], Generator[ParserLike[Any], Any, _T]]) -> Parser[_T]:
    """
    Decorator. Turns a generator function into a parser.

    Each `yield` hands a parser to the interpreter and evaluates to its value.
    The generator's return value is the parser's value.
    """
    @functools.wraps(func)
    def inner(text: str) -> Success[_T] | Failure:
        return interpret(GeneratorProcedure(func()), text)
    return inner
