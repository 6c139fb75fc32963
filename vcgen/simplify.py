"""The leave step: a fixed, terminating normalization pass over obligations.

Rule families (each can be switched off by name):

  cursor       <p | s>.prefix -> p,  <p | s>.suffix -> s
  sequence     [] ++ s -> s,  s ++ [] -> s,  literal ++ literal,  x :: [..]
               [].sum -> 0,  [x].sum -> x,  (a ++ b).sum -> a.sum + b.sum,
               (x :: r).sum -> x + r.sum,  and the same for length
  arithmetic   integer constant folding and the unit/zero laws of + - *
  reflexivity  e == e, e <= e, e >= e -> true;  e != e, e < e, e > e -> false
  hypotheses   for H => G at the top: eliminate a hypothesis v == t
               (one-point rule, v not free in t) and close G when it is
               one of the hypotheses

The local rules replace a term by one with the same value; the hypothesis
rules replace an obligation by one that is valid exactly when it is. So the
pass can close an obligation only when it is valid. Each round either shrinks the formula
or removes a variable, and rounds are capped, so the pass terminates.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, List, Optional, Tuple

from vcgen.formula import (
    Formula, FormulaKind,
    F_TRUE, F_FALSE, F_INT, F_SEQ, F_AND, F_OR, F_NOT, F_IMPLIES, F_BINOP, F_SUM,
    F_LENGTH, collect_free_vars, conjuncts, substitute,
)

logger = logging.getLogger(__name__)

RULE_NAMES = ("cursor", "sequence", "arithmetic", "reflexivity", "hypotheses")

_REFLEXIVE_TRUE = ("==", "<=", ">=")
_REFLEXIVE_FALSE = ("!=", "<", ">")


def _is_int(f: Formula, val: Optional[int] = None) -> bool:
    return f.kind == FormulaKind.INT_CONST and (val is None or f.int_val == val)


def _is_empty_seq(f: Formula) -> bool:
    return f.kind == FormulaKind.SEQ and not f.children


def _rebuild(f: Formula, children: Tuple[Formula, ...]) -> Formula:
    if f.kind == FormulaKind.AND:
        return F_AND(*children)
    if f.kind == FormulaKind.OR:
        return F_OR(*children)
    if f.kind == FormulaKind.NOT:
        return F_NOT(children[0])
    if f.kind == FormulaKind.IMPLIES:
        return F_IMPLIES(children[0], children[1])
    if children == f.children:
        return f
    return replace(f, children=children)


# ---------------------------------------------------------------------------
# Local rules: Formula -> Optional[Formula]
# ---------------------------------------------------------------------------

def _cursor_rule(f: Formula) -> Optional[Formula]:
    if f.kind in (FormulaKind.PREFIX, FormulaKind.SUFFIX):
        c = f.children[0]
        if c.kind == FormulaKind.CURSOR:
            return c.children[0] if f.kind == FormulaKind.PREFIX else c.children[1]
    return None


def _sequence_rule(f: Formula) -> Optional[Formula]:
    k = f.kind
    if k == FormulaKind.CONCAT:
        a, b = f.children
        if _is_empty_seq(a):
            return b
        if _is_empty_seq(b):
            return a
        if a.kind == FormulaKind.SEQ and b.kind == FormulaKind.SEQ:
            return F_SEQ(*(a.children + b.children), elem=a.sort)
        return None
    if k == FormulaKind.CONS:
        head, tail = f.children
        if tail.kind == FormulaKind.SEQ:
            return F_SEQ(head, *tail.children, elem=tail.sort)
        return None
    if k in (FormulaKind.SUM, FormulaKind.LENGTH):
        s = f.children[0]
        is_sum = k == FormulaKind.SUM
        wrap = F_SUM if is_sum else F_LENGTH
        if s.kind == FormulaKind.SEQ:
            if not is_sum:
                return F_INT(len(s.children))
            if not s.children:
                return F_INT(0)
            if len(s.children) == 1:
                return s.children[0]
            return None
        if s.kind == FormulaKind.CONCAT:
            return F_BINOP("+", wrap(s.children[0]), wrap(s.children[1]))
        if s.kind == FormulaKind.CONS:
            head = s.children[0] if is_sum else F_INT(1)
            return F_BINOP("+", head, wrap(s.children[1]))
    return None


def _arithmetic_rule(f: Formula) -> Optional[Formula]:
    if f.kind == FormulaKind.BOOL_CONST:
        return F_TRUE() if f.bool_val else F_FALSE()
    if f.kind == FormulaKind.UNOP and f.op == "-" and _is_int(f.children[0]):
        return F_INT(-f.children[0].int_val)
    if f.kind != FormulaKind.BINOP:
        return None
    left, right = f.children
    op = f.op
    if _is_int(left) and _is_int(right):
        a, b = left.int_val, right.int_val
        if op == "+":
            return F_INT(a + b)
        if op == "-":
            return F_INT(a - b)
        if op == "*":
            return F_INT(a * b)
        # Division is only folded where every integer semantics agrees.
        if op == "/" and a >= 0 and b > 0:
            return F_INT(a // b)
        if op == "%" and a >= 0 and b > 0:
            return F_INT(a % b)
        comparisons = {
            "==": a == b, "!=": a != b,
            "<": a < b, "<=": a <= b, ">": a > b, ">=": a >= b,
        }
        if op in comparisons:
            return F_TRUE() if comparisons[op] else F_FALSE()
        return None
    if op == "+":
        if _is_int(right, 0):
            return left
        if _is_int(left, 0):
            return right
    if op == "-" and _is_int(right, 0):
        return left
    if op == "*":
        if _is_int(right, 1):
            return left
        if _is_int(left, 1):
            return right
        if _is_int(right, 0) or _is_int(left, 0):
            return F_INT(0)
    return None


def _reflexivity_rule(f: Formula) -> Optional[Formula]:
    if f.kind == FormulaKind.BINOP and f.children[0] == f.children[1]:
        if f.op in _REFLEXIVE_TRUE:
            return F_TRUE()
        if f.op in _REFLEXIVE_FALSE:
            return F_FALSE()
    return None


_LOCAL_RULES = (
    ("cursor", _cursor_rule),
    ("sequence", _sequence_rule),
    ("arithmetic", _arithmetic_rule),
    ("reflexivity", _reflexivity_rule),
)


# ---------------------------------------------------------------------------
# Hypothesis rules on the top-level implication
# ---------------------------------------------------------------------------

def _eliminable(h: Formula) -> Optional[Tuple[str, Formula]]:
    """(v, t) if ``h`` is ``v == t`` or ``t == v`` with v not free in t."""
    if h.kind != FormulaKind.BINOP or h.op != "==":
        return None
    left, right = h.children
    if right.kind == FormulaKind.VAR and right.name not in collect_free_vars(left):
        return right.name, left
    if left.kind == FormulaKind.VAR and left.name not in collect_free_vars(right):
        return left.name, right
    return None


def _hypotheses_rule(f: Formula) -> Formula:
    if f.kind != FormulaKind.IMPLIES:
        return f
    hyps: List[Formula] = conjuncts(f.children[0])
    goal = f.children[1]

    eliminated = True
    while eliminated:
        eliminated = False
        for i, h in enumerate(hyps):
            found = _eliminable(h)
            if found is None:
                continue
            var, term = found
            hyps = [substitute(o, var, term) for j, o in enumerate(hyps) if j != i]
            goal = substitute(goal, var, term)
            eliminated = True
            break

    if goal in hyps:
        return F_TRUE()
    if goal.kind == FormulaKind.AND:
        goal = F_AND(*(g for g in goal.children if g not in hyps))
    return F_IMPLIES(F_AND(*hyps), goal)


class Simplifier:
    """Applies the curated rule families until a fixpoint or ``max_rounds``."""

    def __init__(self, rules: Optional[Iterable[str]] = None, max_rounds: int = 8):
        selected = frozenset(RULE_NAMES if rules is None else rules)
        unknown = selected - set(RULE_NAMES)
        if unknown:
            raise ValueError(f"unknown simplification rules: {sorted(unknown)}")
        self.rules = selected
        self.max_rounds = max_rounds
        self._local = tuple(fn for name, fn in _LOCAL_RULES if name in selected)

    def _rewrite(self, f: Formula) -> Formula:
        children = tuple(self._rewrite(c) for c in f.children)
        node = _rebuild(f, children)
        changed = True
        while changed:
            changed = False
            for rule in self._local:
                out = rule(node)
                if out is not None and out != node:
                    node = self._rewrite(out) if out.children else out
                    changed = True
                    break
        return node

    def simplify(self, f: Formula) -> Formula:
        for round_no in range(self.max_rounds):
            new = self._rewrite(f)
            if "hypotheses" in self.rules:
                new = _hypotheses_rule(new)
            if new == f:
                logger.debug("simplifier reached fixpoint after %d rounds", round_no)
                break
            f = new
        return f

    __call__ = simplify
