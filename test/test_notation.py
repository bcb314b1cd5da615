"""
Tests for the do-notation interpreter
"""

import pytest

from combparse import (
    ErrorKind, Success, Deferred,
    literal, any_char, ws0, number, break_to_end, never, search, sep_by, fmap,
    run, parse,
    State, Suspend, Done, Interpreter, interpret, Do, do,
)


class TestGeneratorBlocks:
    """Blocks written as generator functions"""

    def test_nested_block(self):
        @do
        def rest():
            value = yield break_to_end
            return value

        @do
        def block():
            a = yield any_char
            b = yield any_char
            c = yield rest
            return [a, b, c]

        assert parse(block, "xxa---") == ["x", "x", "a---"]

    def test_remaining_text(self):
        @do
        def assignment():
            name = yield search("=")
            yield ws0
            value = yield number
            return (name.strip(), value)

        assert run(assignment, "x = 12;") == Success(("x", 12), ";")

    def test_failure_stops_the_block(self):
        progress = []

        @do
        def block():
            progress.append("start")
            yield literal("a")
            progress.append("after a")
            yield literal("b")
            progress.append("after b")
            return None

        r = run(block, "ax")
        assert r.kind is ErrorKind.LITERAL_MISMATCH
        assert progress == ["start", "after a"]

    def test_generator_is_closed_on_failure(self):
        closed = []

        @do
        def block():
            try:
                yield never("stop")
            finally:
                closed.append(True)

        assert run(block, "").message == "stop"
        assert closed == [True]

    def test_generator_is_closed_when_a_step_raises(self):
        closed = []

        @do
        def block():
            try:
                yield fmap(any_char, lambda c: 1 / 0)
            finally:
                closed.append(True)

        with pytest.raises(ZeroDivisionError):
            run(block, "a")
        assert closed == [True]

    def test_empty_block(self):
        @do
        def block():
            return 5
            yield

        assert run(block, "abc") == Success(5, "abc")

    def test_block_is_reusable(self):
        @do
        def two():
            a = yield any_char
            b = yield any_char
            return a + b

        assert parse(two, "ab") == "ab"
        assert parse(two, "cd") == "cd"

    def test_yield_deferred(self):
        @do
        def block():
            return (yield Deferred(lambda: literal("x")))

        assert parse(block, "x") == "x"


class TestStepBlocks:
    """Blocks built with `Do`"""

    def test_bind_and_returns(self):
        block = (
            Do()
            .bind("a", any_char)
            .bind("b", any_char)
            .bind("c", Do().bind("rest", break_to_end).returns(lambda env: env["rest"]))
            .returns(lambda env: [env["a"], env["b"], env["c"]])
        )
        assert parse(block, "xxa---") == ["x", "x", "a---"]

    def test_default_result_is_last_value(self):
        block = Do().then(literal("(")).bind("n", number).then(literal(")"))
        assert run(block, "(3)") == Success(")", "")

    def test_empty_do(self):
        assert run(Do(), "abc") == Success(None, "abc")

    def test_bind_with_uses_earlier_values(self):
        block = (
            Do()
            .bind("quote", any_char)
            .bind_with("body", lambda env: search(env["quote"]))
            .returns(lambda env: env["body"])
        )
        assert run(block, "'it''s") == Success("it", "'s")

    def test_failure(self):
        block = Do().bind("a", literal("a")).bind("b", literal("b"))
        assert run(block, "ac").kind is ErrorKind.LITERAL_MISMATCH

    def test_builder_is_immutable(self):
        base = Do().bind("a", any_char)
        longer = base.bind("b", any_char)
        assert len(base.steps) == 1
        assert len(longer.steps) == 2

    def test_as_step_of_combinator(self):
        item = Do().bind("n", number).then(ws0).returns(lambda env: env["n"] * 2)
        assert parse(sep_by(item, literal(",")), "1 ,2,3") == [2, 4, 6]


class Scripted:
    """A procedure that yields a fixed list of parsers and records its resumptions"""

    def __init__(self, *parsers):
        self.parsers = list(parsers)
        self.received = []
        self.closed = False

    def start(self):
        return self._next()

    def resume(self, value):
        self.received.append(value)
        return self._next()

    def _next(self):
        if self.parsers:
            return Suspend(self.parsers.pop(0))
        return Done(tuple(self.received))

    def close(self):
        self.closed = True


class TestInterpreter:
    """The state machine behind both block forms"""

    def test_done(self):
        procedure = Scripted(any_char, any_char)
        interpreter = Interpreter(procedure, "abc")
        assert interpreter.run() == Success(("a", "b"), "c")
        assert interpreter.state is State.DONE
        assert not procedure.closed

    def test_failed(self):
        procedure = Scripted(any_char, literal("x"), any_char)
        interpreter = Interpreter(procedure, "abc")
        assert interpreter.run().kind is ErrorKind.LITERAL_MISMATCH
        assert interpreter.state is State.FAILED
        assert procedure.received == ["a"]
        assert procedure.closed

    def test_raising_step_closes_procedure(self):
        def boom(text):
            raise KeyError("boom")

        procedure = Scripted(any_char, boom, any_char)
        interpreter = Interpreter(procedure, "abc")
        with pytest.raises(KeyError):
            interpreter.run()
        assert interpreter.state is State.FAILED
        assert procedure.received == ["a"]
        assert procedure.closed

    def test_run_once(self):
        interpreter = Interpreter(Scripted(), "")
        interpreter.run()
        with pytest.raises(RuntimeError):
            interpreter.run()

    def test_interpret(self):
        assert interpret(Scripted(), "abc") == Success((), "abc")

    def test_logs_transitions(self, debug_log):
        interpret(Scripted(any_char), "a")
        assert "SUSPENDED -> RUNNING" in debug_log.text
        assert "RUNNING -> DONE" in debug_log.text
