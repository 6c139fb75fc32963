"""vcgen Program Model — effectful computations as a closed tagged tree.

A ``Computation`` describes a do-block style program; it has no execution
semantics of its own. Expressions inside it (values, conditions, loop
sequences) are formulas over the variables in scope.

    PURE v                 return v
    BIND first; rest       run first, optionally bind its result, run rest
    GET x / SET x := e     read / write a variable
    IF c THEN t ELSE e
    FOR x IN xs DO body    loop over a sequence, identified by a site id
    RETURN v               leave the whole computation early
    BREAK / CONTINUE       leave / restart the innermost loop
    THROW e                raise (needs the EXCEPT effect)
    BLOCK {decls} body     nested block with mutable locals
    OPAQUE name            an action with no description

Early exits are tags of their own so the engine can give each exit path
its own obligations. Recursion over the tree goes through ``shape``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, Flag, auto
from typing import FrozenSet, Iterator, Mapping, Optional, Sequence, Tuple, Union

from vcgen.formula import Formula, F_UNIT


class Tag(Enum):
    PURE = auto()
    BIND = auto()
    GET = auto()
    SET = auto()
    IF = auto()
    FOR = auto()
    RETURN = auto()
    BREAK = auto()
    CONTINUE = auto()
    THROW = auto()
    BLOCK = auto()
    OPAQUE = auto()


EXIT_TAGS = frozenset({Tag.RETURN, Tag.BREAK, Tag.CONTINUE, Tag.THROW})


class Effect(Flag):
    """Effects available in the monad a goal is stated over."""
    ID = 0
    STATE = auto()
    EXCEPT = auto()


@dataclass(frozen=True)
class Computation:
    tag: Tag
    value: Optional[Formula] = None                 # PURE, SET, RETURN, THROW
    var: str = ""                                   # GET/SET target, BIND/FOR binder, OPAQUE name
    cond: Optional[Formula] = None                  # IF
    seq: Optional[Formula] = None                   # FOR
    site: str = ""                                  # FOR
    decls: Tuple[Tuple[str, Formula], ...] = ()     # BLOCK
    children: Tuple[Computation, ...] = ()

    def __str__(self) -> str:
        t = self.tag
        if t == Tag.PURE:
            return f"pure {self.value}"
        if t == Tag.BIND:
            binder = f"let {self.var} <- " if self.var else ""
            return f"{binder}{self.children[0]}; {self.children[1]}"
        if t == Tag.GET:
            return f"get {self.var}"
        if t == Tag.SET:
            return f"{self.var} := {self.value}"
        if t == Tag.IF:
            return f"if {self.cond} then {{{self.children[0]}}} else {{{self.children[1]}}}"
        if t == Tag.FOR:
            return f"for[{self.site}] {self.var} in {self.seq} do {{{self.children[0]}}}"
        if t == Tag.RETURN:
            return f"return {self.value}"
        if t == Tag.BREAK:
            return "break"
        if t == Tag.CONTINUE:
            return "continue"
        if t == Tag.THROW:
            return f"throw {self.value}"
        if t == Tag.BLOCK:
            decls = ", ".join(f"mut {n} := {v}" for n, v in self.decls)
            return f"{{{decls}; {self.children[0]}}}" if decls else f"{{{self.children[0]}}}"
        if t == Tag.OPAQUE:
            return f"<opaque {self.var}>"
        return "<?>"


# Computation constructors
def C_PURE(value: Formula) -> Computation:
    return Computation(tag=Tag.PURE, value=value)

def C_BIND(first: Computation, rest: Computation, binder: str = "") -> Computation:
    return Computation(tag=Tag.BIND, var=binder, children=(first, rest))

def C_SEQ(*steps: Computation) -> Computation:
    """Sequence steps, discarding intermediate results."""
    if not steps:
        return C_PURE(F_UNIT())
    result = steps[-1]
    for s in reversed(steps[:-1]):
        result = C_BIND(s, result)
    return result

def C_GET(var: str) -> Computation:
    return Computation(tag=Tag.GET, var=var)

def C_SET(var: str, value: Formula) -> Computation:
    return Computation(tag=Tag.SET, var=var, value=value)

def C_IF(cond: Formula, then_c: Computation, else_c: Optional[Computation] = None) -> Computation:
    if else_c is None:
        else_c = C_PURE(F_UNIT())
    return Computation(tag=Tag.IF, cond=cond, children=(then_c, else_c))

def C_FOR(binder: str, seq: Formula, body: Computation, site: str = "") -> Computation:
    return Computation(tag=Tag.FOR, var=binder, seq=seq, site=site, children=(body,))

def C_RETURN(value: Optional[Formula] = None) -> Computation:
    return Computation(tag=Tag.RETURN, value=value if value is not None else F_UNIT())

def C_BREAK() -> Computation:
    return Computation(tag=Tag.BREAK)

def C_CONTINUE() -> Computation:
    return Computation(tag=Tag.CONTINUE)

def C_THROW(value: Formula) -> Computation:
    return Computation(tag=Tag.THROW, value=value)

def C_BLOCK(
    body: Computation,
    decls: Union[Mapping[str, Formula], Sequence[Tuple[str, Formula]]] = (),
) -> Computation:
    items = tuple(decls.items()) if isinstance(decls, Mapping) else tuple(decls)
    return Computation(tag=Tag.BLOCK, decls=items, children=(body,))

def C_OPAQUE(name: str) -> Computation:
    return Computation(tag=Tag.OPAQUE, var=name)


# ---------------------------------------------------------------------------
# Structure
# ---------------------------------------------------------------------------

def shape(c: Computation) -> Tuple[Tag, Tuple[Computation, ...]]:
    return c.tag, c.children


def position(path: Tuple[int, ...]) -> str:
    """Dotted child-index path of a node; the root is ``0``."""
    return ".".join(["0"] + [str(i) for i in path])


def nodes(c: Computation, path: Tuple[int, ...] = ()) -> Iterator[Tuple[Tuple[int, ...], Computation]]:
    """Pre-order walk yielding (path, node)."""
    yield path, c
    _, children = shape(c)
    for i, child in enumerate(children):
        yield from nodes(child, path + (i,))


def site_id(c: Computation, path: Tuple[int, ...]) -> str:
    """The site id of a FOR node: its explicit site, else its position."""
    return c.site or f"loop@{position(path)}"


def modified_vars(c: Computation) -> FrozenSet[str]:
    """Variables assigned by ``c`` that are visible outside of it."""
    tag, children = shape(c)
    if tag == Tag.SET:
        return frozenset({c.var})
    found: FrozenSet[str] = frozenset()
    for child in children:
        found |= modified_vars(child)
    if tag == Tag.BLOCK:
        found -= {name for name, _ in c.decls}
    return found
