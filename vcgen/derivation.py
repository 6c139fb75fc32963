"""The fixed loop derivation scheme.

For a loop ``for x in xs do body`` with invariant I over (cursor, state):

    pre   I(<[], xs>, s0)
    step  forall p x r s.  p ++ (x :: r) == xs  /\\  I(<p, x :: r>, s)
                          /\\  body(x) takes s to s'
                          =>  I(<p ++ [x], r>, s')
    post  I(<xs, []>, s_n)  is assumed by the code after the loop

Soundness is ordinary induction on the cursor position: ``pre`` is the
base case, ``step`` the inductive step, and after |xs| steps the cursor is
``<xs, []>`` by the cursor law, which is exactly the ``post`` hypothesis.
The argument does not depend on the particular loop, so it is stated once
here; ``induct`` is its executable rendition over concrete cursors and is
what the test-suite checks. The engine only calls the builders below and
never re-derives the scheme per call.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Tuple, TypeVar

from vcgen.cursor import Cursor, SymbolicCursor
from vcgen.formula import Formula, Sort

S = TypeVar("S")


class DerivationError(Exception):
    """The concrete scheme found a position where the invariant fails."""

    def __init__(self, phase: str, pos: int):
        self.phase = phase
        self.pos = pos
        super().__init__(f"invariant fails in {phase} at position {pos}")


def loop_pre(invariant: Callable, seq: Formula, elem: Sort, state: Any) -> Formula:
    """I(initial(xs), s): the invariant before the first iteration."""
    return invariant(SymbolicCursor.initial(seq, elem), state)


def step_cursor(
    prefix: Formula, head: Formula, rest: Formula, seq: Formula, elem: Sort,
) -> Tuple[SymbolicCursor, Formula]:
    """The pre-step cursor <p, x :: r> and its law ``p ++ (x :: r) == xs``."""
    cursor = SymbolicCursor.at(prefix, head, rest, elem)
    return cursor, cursor.law(seq)


def loop_step_hypothesis(invariant: Callable, cursor: SymbolicCursor, state: Any) -> Formula:
    """I(c, s) at the pre-step cursor."""
    return invariant(cursor, state)


def loop_step_goal(invariant: Callable, cursor: SymbolicCursor, state: Any) -> Formula:
    """I(step(c), s') after one execution of the body."""
    return invariant(cursor.step(), state)


def loop_post(invariant: Callable, seq: Formula, elem: Sort, state: Any) -> Formula:
    """I(<xs, []>, s): what the code after the loop may assume."""
    return invariant(SymbolicCursor.terminal(seq, elem), state)


def induct(
    seq: Iterable[Any],
    invariant: Callable[[Cursor, S], bool],
    body: Callable[[Any, S], S],
    state: S,
) -> S:
    """Run the scheme on concrete values.

    Checks ``pre`` and every ``step`` instance along the actual iteration
    and returns the final state, for which the ``post`` hypothesis holds.
    Raises DerivationError at the first failing position.
    """
    cursor = Cursor.initial(seq)
    if not invariant(cursor, state):
        raise DerivationError("pre", 0)
    while not cursor.at_end:
        state = body(cursor.current, state)
        cursor = cursor.step()
        if not invariant(cursor, state):
            raise DerivationError("step", cursor.pos - 1)
    return state
