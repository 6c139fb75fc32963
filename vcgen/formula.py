"""vcgen Formula IR — pure propositions and terms.

Obligations, invariants, pre/postconditions and the pure expressions inside
a Computation all share one representation: an immutable tree of
``Formula`` nodes tagged by ``FormulaKind``.

Beyond the usual first-order connectives the IR has a small theory of
finite sequences and cursors:

    SEQ      [a, b, c]            literal sequence
    CONS     x :: r               head/tail
    CONCAT   a ++ b               concatenation
    SUM      s.sum                sum of an integer sequence
    LENGTH   s.length
    CURSOR   <p | s>              a cursor with processed prefix p, suffix s
    PREFIX   c.prefix
    SUFFIX   c.suffix

Every variable carries a ``Sort``; ``infer_sort`` checks a formula against
a scope and is what the specification language uses to reject ill-typed
invariants. Free variables of an obligation are implicitly universally
quantified.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple


# ---------------------------------------------------------------------------
# Sorts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Sort:
    name: str
    elem: Optional[Sort] = None

    @property
    def is_list(self) -> bool:
        return self.name == "List"

    @property
    def is_cursor(self) -> bool:
        return self.name == "Cursor"

    def __str__(self) -> str:
        if self.elem is not None:
            return f"{self.name}[{self.elem}]"
        return self.name


INT = Sort("Int")
BOOL = Sort("Bool")
UNIT = Sort("Unit")


def list_sort(elem: Sort) -> Sort:
    return Sort("List", elem)


def cursor_sort(elem: Sort) -> Sort:
    return Sort("Cursor", elem)


class SortError(Exception):
    """A formula does not have the sort its context requires."""

    def __init__(self, expected: str, actual: str, where: str):
        self.expected = expected
        self.actual = actual
        self.where = where
        super().__init__(f"expected {expected}, got {actual} in {where}")


# ---------------------------------------------------------------------------
# Formulas
# ---------------------------------------------------------------------------

class FormulaKind(Enum):
    TRUE = auto()
    FALSE = auto()
    VAR = auto()
    INT_CONST = auto()
    BOOL_CONST = auto()
    UNIT = auto()
    BINOP = auto()
    UNOP = auto()
    AND = auto()
    OR = auto()
    NOT = auto()
    IMPLIES = auto()
    ITE = auto()
    SEQ = auto()
    CONS = auto()
    CONCAT = auto()
    SUM = auto()
    LENGTH = auto()
    CURSOR = auto()
    PREFIX = auto()
    SUFFIX = auto()


ARITH_OPS = ("+", "-", "*", "/", "%")
ORDER_OPS = ("<", "<=", ">", ">=")
EQUALITY_OPS = ("==", "!=")


@dataclass(frozen=True)
class Formula:
    """A node of the formula IR.

    ``sort`` is the declared sort of a VAR and the element sort of a SEQ
    literal; other kinds derive their sort from their children.
    """
    kind: FormulaKind
    name: str = ""                          # for VAR
    int_val: int = 0                        # for INT_CONST
    bool_val: bool = True                   # for BOOL_CONST
    op: str = ""                            # for BINOP, UNOP
    children: Tuple[Formula, ...] = ()
    sort: Optional[Sort] = None

    def __str__(self) -> str:
        k = self.kind
        if k == FormulaKind.TRUE:
            return "true"
        if k == FormulaKind.FALSE:
            return "false"
        if k == FormulaKind.VAR:
            return self.name
        if k == FormulaKind.INT_CONST:
            return str(self.int_val)
        if k == FormulaKind.BOOL_CONST:
            return str(self.bool_val).lower()
        if k == FormulaKind.UNIT:
            return "()"
        if k == FormulaKind.BINOP:
            return f"({self.children[0]} {self.op} {self.children[1]})"
        if k == FormulaKind.UNOP:
            return f"({self.op}{self.children[0]})"
        if k == FormulaKind.AND:
            return "(" + " /\\ ".join(str(c) for c in self.children) + ")"
        if k == FormulaKind.OR:
            return "(" + " \\/ ".join(str(c) for c in self.children) + ")"
        if k == FormulaKind.NOT:
            return f"!({self.children[0]})"
        if k == FormulaKind.IMPLIES:
            return f"({self.children[0]} => {self.children[1]})"
        if k == FormulaKind.ITE:
            return f"(ite {self.children[0]} {self.children[1]} {self.children[2]})"
        if k == FormulaKind.SEQ:
            return "[" + ", ".join(str(c) for c in self.children) + "]"
        if k == FormulaKind.CONS:
            return f"({self.children[0]} :: {self.children[1]})"
        if k == FormulaKind.CONCAT:
            return f"({self.children[0]} ++ {self.children[1]})"
        if k == FormulaKind.SUM:
            return f"{self.children[0]}.sum"
        if k == FormulaKind.LENGTH:
            return f"{self.children[0]}.length"
        if k == FormulaKind.CURSOR:
            return f"<{self.children[0]} | {self.children[1]}>"
        if k == FormulaKind.PREFIX:
            return f"{self.children[0]}.prefix"
        if k == FormulaKind.SUFFIX:
            return f"{self.children[0]}.suffix"
        return "<?>"


# Formula constructors
def F_TRUE() -> Formula:
    return Formula(kind=FormulaKind.TRUE)

def F_FALSE() -> Formula:
    return Formula(kind=FormulaKind.FALSE)

def F_VAR(name: str, sort: Sort = INT) -> Formula:
    return Formula(kind=FormulaKind.VAR, name=name, sort=sort)

def F_INT(val: int) -> Formula:
    return Formula(kind=FormulaKind.INT_CONST, int_val=val)

def F_BOOL(val: bool) -> Formula:
    return Formula(kind=FormulaKind.BOOL_CONST, bool_val=val)

def F_UNIT() -> Formula:
    return Formula(kind=FormulaKind.UNIT)

def F_BINOP(op: str, left: Formula, right: Formula) -> Formula:
    return Formula(kind=FormulaKind.BINOP, op=op, children=(left, right))

def F_UNOP(op: str, operand: Formula) -> Formula:
    return Formula(kind=FormulaKind.UNOP, op=op, children=(operand,))

def F_EQ(left: Formula, right: Formula) -> Formula:
    return F_BINOP("==", left, right)

def F_ADD(left: Formula, right: Formula) -> Formula:
    return F_BINOP("+", left, right)

def F_AND(*children: Formula) -> Formula:
    flat: List[Formula] = []
    for c in children:
        if c.kind == FormulaKind.TRUE:
            continue
        if c.kind == FormulaKind.FALSE:
            return F_FALSE()
        if c.kind == FormulaKind.AND:
            flat.extend(c.children)
        else:
            flat.append(c)
    if not flat:
        return F_TRUE()
    if len(flat) == 1:
        return flat[0]
    return Formula(kind=FormulaKind.AND, children=tuple(flat))

def F_OR(*children: Formula) -> Formula:
    flat: List[Formula] = []
    for c in children:
        if c.kind == FormulaKind.FALSE:
            continue
        if c.kind == FormulaKind.TRUE:
            return F_TRUE()
        if c.kind == FormulaKind.OR:
            flat.extend(c.children)
        else:
            flat.append(c)
    if not flat:
        return F_FALSE()
    if len(flat) == 1:
        return flat[0]
    return Formula(kind=FormulaKind.OR, children=tuple(flat))

def F_NOT(f: Formula) -> Formula:
    if f.kind == FormulaKind.TRUE:
        return F_FALSE()
    if f.kind == FormulaKind.FALSE:
        return F_TRUE()
    if f.kind == FormulaKind.NOT:
        return f.children[0]
    return Formula(kind=FormulaKind.NOT, children=(f,))

def F_IMPLIES(lhs: Formula, rhs: Formula) -> Formula:
    if lhs.kind == FormulaKind.TRUE:
        return rhs
    if lhs.kind == FormulaKind.FALSE:
        return F_TRUE()
    if rhs.kind == FormulaKind.TRUE:
        return F_TRUE()
    return Formula(kind=FormulaKind.IMPLIES, children=(lhs, rhs))

def F_ITE(cond: Formula, then_f: Formula, else_f: Formula) -> Formula:
    return Formula(kind=FormulaKind.ITE, children=(cond, then_f, else_f))

def F_SEQ(*items: Formula, elem: Sort = INT) -> Formula:
    return Formula(kind=FormulaKind.SEQ, children=tuple(items), sort=elem)

def F_INTS(*values: int) -> Formula:
    """Literal integer sequence: F_INTS(1, 2, 3) is [1, 2, 3]."""
    return F_SEQ(*(F_INT(v) for v in values), elem=INT)

def F_CONS(head: Formula, tail: Formula) -> Formula:
    return Formula(kind=FormulaKind.CONS, children=(head, tail))

def F_CONCAT(left: Formula, right: Formula) -> Formula:
    return Formula(kind=FormulaKind.CONCAT, children=(left, right))

def F_SUM(seq: Formula) -> Formula:
    return Formula(kind=FormulaKind.SUM, children=(seq,))

def F_LENGTH(seq: Formula) -> Formula:
    return Formula(kind=FormulaKind.LENGTH, children=(seq,))

def F_CURSOR(prefix: Formula, suffix: Formula) -> Formula:
    return Formula(kind=FormulaKind.CURSOR, children=(prefix, suffix))

def F_PREFIX(cursor: Formula) -> Formula:
    return Formula(kind=FormulaKind.PREFIX, children=(cursor,))

def F_SUFFIX(cursor: Formula) -> Formula:
    return Formula(kind=FormulaKind.SUFFIX, children=(cursor,))


def conjuncts(formula: Formula) -> List[Formula]:
    if formula.kind == FormulaKind.AND:
        return list(formula.children)
    if formula.kind == FormulaKind.TRUE:
        return []
    return [formula]


# ---------------------------------------------------------------------------
# Substitution: Q[x/e]
# ---------------------------------------------------------------------------

def substitute(formula: Formula, var: str, expr: Formula) -> Formula:
    """Substitute all occurrences of variable ``var`` with ``expr``.

    The IR has no binders, so substitution is plain structural replacement.
    """
    return substitute_many(formula, {var: expr})


def substitute_many(formula: Formula, mapping: Mapping[str, Formula]) -> Formula:
    """Simultaneous substitution of every variable named in ``mapping``."""
    if not mapping:
        return formula
    if formula.kind == FormulaKind.VAR:
        return mapping.get(formula.name, formula)
    if not formula.children:
        return formula
    new_children = tuple(substitute_many(c, mapping) for c in formula.children)
    if new_children == formula.children:
        return formula
    return replace(formula, children=new_children)


def collect_free_vars(formula: Formula) -> Set[str]:
    """Collect all free variables in a formula."""
    return set(free_var_sorts(formula))


def free_var_sorts(formula: Formula) -> Dict[str, Sort]:
    found: Dict[str, Sort] = {}
    stack = [formula]
    while stack:
        f = stack.pop()
        if f.kind == FormulaKind.VAR:
            found.setdefault(f.name, f.sort or INT)
        stack.extend(f.children)
    return found


# ---------------------------------------------------------------------------
# Sort inference
# ---------------------------------------------------------------------------

def _expect(actual: Sort, expected: Sort, where: Formula) -> None:
    if actual != expected:
        raise SortError(str(expected), str(actual), str(where))


def _expect_list(actual: Sort, where: Formula) -> Sort:
    if not actual.is_list or actual.elem is None:
        raise SortError("List[_]", str(actual), str(where))
    return actual.elem


def infer_sort(formula: Formula, scope: Optional[Mapping[str, Sort]] = None) -> Sort:
    """Compute the sort of ``formula``; raise SortError if it is ill-sorted.

    Variables are looked up in ``scope`` first and fall back to their
    declared sort.
    """
    k = formula.kind
    if k in (FormulaKind.TRUE, FormulaKind.FALSE, FormulaKind.BOOL_CONST):
        return BOOL
    if k == FormulaKind.INT_CONST:
        return INT
    if k == FormulaKind.UNIT:
        return UNIT
    if k == FormulaKind.VAR:
        if scope is not None and formula.name in scope:
            return scope[formula.name]
        if formula.sort is None:
            raise SortError("a declared sort", "nothing", f"variable {formula.name}")
        return formula.sort

    sorts = [infer_sort(c, scope) for c in formula.children]

    if k == FormulaKind.BINOP:
        left, right = sorts
        if formula.op in ARITH_OPS:
            _expect(left, INT, formula)
            _expect(right, INT, formula)
            return INT
        if formula.op in ORDER_OPS:
            _expect(left, INT, formula)
            _expect(right, INT, formula)
            return BOOL
        if formula.op in EQUALITY_OPS:
            _expect(right, left, formula)
            return BOOL
        raise SortError("a known operator", repr(formula.op), str(formula))
    if k == FormulaKind.UNOP:
        if formula.op != "-":
            raise SortError("a known operator", repr(formula.op), str(formula))
        _expect(sorts[0], INT, formula)
        return INT
    if k in (FormulaKind.AND, FormulaKind.OR, FormulaKind.NOT, FormulaKind.IMPLIES):
        for s in sorts:
            _expect(s, BOOL, formula)
        return BOOL
    if k == FormulaKind.ITE:
        _expect(sorts[0], BOOL, formula)
        _expect(sorts[2], sorts[1], formula)
        return sorts[1]
    if k == FormulaKind.SEQ:
        elem = formula.sort or INT
        for s in sorts:
            _expect(s, elem, formula)
        return list_sort(elem)
    if k == FormulaKind.CONS:
        elem = _expect_list(sorts[1], formula)
        _expect(sorts[0], elem, formula)
        return sorts[1]
    if k == FormulaKind.CONCAT:
        _expect_list(sorts[0], formula)
        _expect(sorts[1], sorts[0], formula)
        return sorts[0]
    if k == FormulaKind.SUM:
        _expect(sorts[0], list_sort(INT), formula)
        return INT
    if k == FormulaKind.LENGTH:
        _expect_list(sorts[0], formula)
        return INT
    if k == FormulaKind.CURSOR:
        elem = _expect_list(sorts[0], formula)
        _expect(sorts[1], sorts[0], formula)
        return cursor_sort(elem)
    if k in (FormulaKind.PREFIX, FormulaKind.SUFFIX):
        if not sorts[0].is_cursor or sorts[0].elem is None:
            raise SortError("Cursor[_]", str(sorts[0]), str(formula))
        return list_sort(sorts[0].elem)
    raise SortError("a known formula kind", k.name, str(formula))


# ---------------------------------------------------------------------------
# Concrete evaluation
# ---------------------------------------------------------------------------

def evaluate(formula: Formula, assignment: Optional[Mapping[str, Any]] = None) -> Any:
    """Evaluate ``formula`` to a Python value under ``assignment``.

    Integers map to ``int``, booleans to ``bool``, sequences to tuples and
    cursors to ``vcgen.cursor.Cursor``. Integer division and modulo follow
    Python's floor semantics.
    """
    from vcgen.cursor import Cursor

    env = assignment or {}
    k = formula.kind
    if k == FormulaKind.TRUE:
        return True
    if k == FormulaKind.FALSE:
        return False
    if k == FormulaKind.INT_CONST:
        return formula.int_val
    if k == FormulaKind.BOOL_CONST:
        return formula.bool_val
    if k == FormulaKind.UNIT:
        return ()
    if k == FormulaKind.VAR:
        if formula.name not in env:
            raise KeyError(formula.name)
        return env[formula.name]
    if k == FormulaKind.AND:
        return all(evaluate(c, env) for c in formula.children)
    if k == FormulaKind.OR:
        return any(evaluate(c, env) for c in formula.children)
    if k == FormulaKind.NOT:
        return not evaluate(formula.children[0], env)
    if k == FormulaKind.IMPLIES:
        return (not evaluate(formula.children[0], env)) or evaluate(formula.children[1], env)
    if k == FormulaKind.ITE:
        if evaluate(formula.children[0], env):
            return evaluate(formula.children[1], env)
        return evaluate(formula.children[2], env)

    vals = [evaluate(c, env) for c in formula.children]
    if k == FormulaKind.BINOP:
        left, right = vals
        ops = {
            "+": lambda l, r: l + r,
            "-": lambda l, r: l - r,
            "*": lambda l, r: l * r,
            "/": lambda l, r: l // r,
            "%": lambda l, r: l % r,
            "==": lambda l, r: l == r,
            "!=": lambda l, r: l != r,
            "<": lambda l, r: l < r,
            "<=": lambda l, r: l <= r,
            ">": lambda l, r: l > r,
            ">=": lambda l, r: l >= r,
        }
        return ops[formula.op](left, right)
    if k == FormulaKind.UNOP:
        return -vals[0]
    if k == FormulaKind.SEQ:
        return tuple(vals)
    if k == FormulaKind.CONS:
        return (vals[0],) + tuple(vals[1])
    if k == FormulaKind.CONCAT:
        return tuple(vals[0]) + tuple(vals[1])
    if k == FormulaKind.SUM:
        return sum(vals[0])
    if k == FormulaKind.LENGTH:
        return len(vals[0])
    if k == FormulaKind.CURSOR:
        return Cursor(tuple(vals[0]), tuple(vals[1]))
    if k == FormulaKind.PREFIX:
        return vals[0].prefix
    if k == FormulaKind.SUFFIX:
        return vals[0].suffix
    raise ValueError(f"cannot evaluate formula kind {k.name}")
