"""Loop-progress cursors.

A cursor splits a sequence into the processed ``prefix`` and the remaining
``suffix``. Two renditions share one interface:

  Cursor          concrete tuples; used to state and test the cursor law
  SymbolicCursor  formulas; what the VC engine hands to invariants

Law, at every state reachable from ``initial(seq)``:

    prefix ++ suffix == seq

and each ``step`` moves exactly one element from the suffix to the prefix.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Tuple

from vcgen.formula import (
    Formula, FormulaKind, Sort,
    F_SEQ, F_CONS, F_CONCAT, F_CURSOR, F_PREFIX, F_SUFFIX, F_LENGTH, F_EQ,
)


class CursorError(Exception):
    """A cursor operation whose precondition does not hold."""


@dataclass(frozen=True)
class Cursor:
    prefix: Tuple[Any, ...] = ()
    suffix: Tuple[Any, ...] = ()

    @classmethod
    def initial(cls, seq: Iterable[Any]) -> Cursor:
        return cls((), tuple(seq))

    @property
    def original(self) -> Tuple[Any, ...]:
        return self.prefix + self.suffix

    @property
    def pos(self) -> int:
        return len(self.prefix)

    @property
    def at_end(self) -> bool:
        return not self.suffix

    @property
    def current(self) -> Any:
        if not self.suffix:
            raise CursorError("cursor is at the end of its sequence")
        return self.suffix[0]

    def step(self) -> Cursor:
        if not self.suffix:
            raise CursorError("cannot step a cursor whose suffix is empty")
        return Cursor(self.prefix + (self.suffix[0],), self.suffix[1:])


def initial(seq: Iterable[Any]) -> Cursor:
    return Cursor.initial(seq)


def step(cursor: Cursor) -> Cursor:
    return cursor.step()


def prefix(cursor: Cursor) -> Tuple[Any, ...]:
    return cursor.prefix


def suffix(cursor: Cursor) -> Tuple[Any, ...]:
    return cursor.suffix


def walk(seq: Iterable[Any]) -> Iterator[Cursor]:
    """Yield every cursor state from ``initial(seq)`` to the terminal one."""
    c = Cursor.initial(seq)
    yield c
    while not c.at_end:
        c = c.step()
        yield c


class SymbolicCursor:
    """A cursor whose prefix and suffix are formulas.

    ``prefix`` and ``suffix`` return PREFIX/SUFFIX projections of the
    CURSOR term, so an invariant reads ``c.prefix`` exactly as it would on a
    concrete cursor and the simplifier unfolds the projection afterwards.
    """

    def __init__(self, prefix: Formula, suffix: Formula, elem: Sort):
        self.raw_prefix = prefix
        self.raw_suffix = suffix
        self.elem = elem
        self.term = F_CURSOR(prefix, suffix)

    @classmethod
    def initial(cls, seq: Formula, elem: Sort) -> SymbolicCursor:
        return cls(F_SEQ(elem=elem), seq, elem)

    @classmethod
    def terminal(cls, seq: Formula, elem: Sort) -> SymbolicCursor:
        return cls(seq, F_SEQ(elem=elem), elem)

    @classmethod
    def at(cls, prefix: Formula, head: Formula, rest: Formula, elem: Sort) -> SymbolicCursor:
        return cls(prefix, F_CONS(head, rest), elem)

    @property
    def prefix(self) -> Formula:
        return F_PREFIX(self.term)

    @property
    def suffix(self) -> Formula:
        return F_SUFFIX(self.term)

    @property
    def pos(self) -> Formula:
        return F_LENGTH(self.prefix)

    @property
    def original(self) -> Formula:
        return F_CONCAT(self.raw_prefix, self.raw_suffix)

    def law(self, seq: Formula) -> Formula:
        """The cursor law ``prefix ++ suffix == seq`` as a proposition."""
        return F_EQ(self.original, seq)

    def _split(self) -> Tuple[Formula, Formula]:
        s = self.raw_suffix
        if s.kind == FormulaKind.CONS:
            return s.children[0], s.children[1]
        if s.kind == FormulaKind.SEQ and s.children:
            return s.children[0], F_SEQ(*s.children[1:], elem=self.elem)
        raise CursorError(f"suffix {s} is not known to be non-empty")

    @property
    def current(self) -> Formula:
        return self._split()[0]

    def step(self) -> SymbolicCursor:
        head, rest = self._split()
        return SymbolicCursor(
            F_CONCAT(self.raw_prefix, F_SEQ(head, elem=self.elem)), rest, self.elem,
        )

    def __eq__(self, other: object) -> bool:
        return isinstance(other, SymbolicCursor) and self.term == other.term

    def __hash__(self) -> int:
        return hash(self.term)

    def __repr__(self) -> str:
        return f"SymbolicCursor({self.term})"
