"""Dispatch of open obligations to an external discharger.

The engine never proves anything itself. This module hands the
obligations left open after the leave step to a decision procedure and
records what came back. The shipped discharger is Z3: an obligation is
valid iff its negation is unsatisfiable.

Translation to Z3:
  Int, Bool     -> IntSort, BoolSort
  Unit          -> the integer 0 (one value, so every equation holds)
  List[T]       -> SeqSort(T)
  s.sum         -> a recursive function over Seq(Int)
  <p | s>.prefix / .suffix -> p / s
Cursor-sorted variables have no translation; such obligations are skipped.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import z3

from vcgen.formula import (
    BOOL, INT, UNIT, Formula, FormulaKind, Sort, SortError, infer_sort,
)
from vcgen.obligations import Obligation, ObligationSet, parse_stable_id

logger = logging.getLogger(__name__)


class SolverResult(str, Enum):
    UNSAT = "unsat"        # negation unsatisfiable: the obligation is valid
    SAT = "sat"            # counterexample found
    UNKNOWN = "unknown"    # timeout or incomplete theory
    SKIPPED = "skipped"    # no translation for some construct
    ERROR = "error"        # the solver raised


class UntranslatableFormula(Exception):
    """A formula uses a construct the Z3 translation does not cover."""


@dataclass
class DischargeOutcome:
    stable_id: Tuple[str, ...]
    result: SolverResult
    detail: str = ""
    counterexample: Dict[str, str] = field(default_factory=dict)

    @property
    def proved(self) -> bool:
        return self.result == SolverResult.UNSAT

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": "/".join(self.stable_id),
            "result": self.result.value,
        }
        if self.detail:
            d["detail"] = self.detail
        if self.counterexample:
            d["counterexample"] = self.counterexample
        return d


@dataclass
class DispatchReport:
    outcomes: List[DischargeOutcome] = field(default_factory=list)

    def __iter__(self):
        return iter(self.outcomes)

    def __len__(self) -> int:
        return len(self.outcomes)

    def get(self, key) -> Optional[DischargeOutcome]:
        sid = parse_stable_id(key)
        for o in self.outcomes:
            if o.stable_id == sid:
                return o
        return None

    def proved(self) -> List[DischargeOutcome]:
        return [o for o in self.outcomes if o.proved]

    def failed(self) -> List[DischargeOutcome]:
        return [o for o in self.outcomes if o.result == SolverResult.SAT]

    def unresolved(self) -> List[DischargeOutcome]:
        return [o for o in self.outcomes if o.result not in (SolverResult.UNSAT, SolverResult.SAT)]

    @property
    def all_proved(self) -> bool:
        return all(o.proved for o in self.outcomes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": {
                "sent": len(self.outcomes),
                "proved": len(self.proved()),
                "failed": len(self.failed()),
                "unresolved": len(self.unresolved()),
            },
            "outcomes": [o.to_dict() for o in self.outcomes],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


# ---------------------------------------------------------------------------
# Formula -> Z3
# ---------------------------------------------------------------------------

_INT_SEQ = z3.SeqSort(z3.IntSort())
_SEQ_SUM = z3.RecFunction("seq_sum", _INT_SEQ, z3.IntSort())
_s = z3.Const("s", _INT_SEQ)
z3.RecAddDefinition(
    _SEQ_SUM, [_s],
    z3.If(z3.Length(_s) == 0, z3.IntVal(0), _s[0] + _SEQ_SUM(z3.SubSeq(_s, 1, z3.Length(_s) - 1))),
)


class Z3Translator:
    """Translates well-sorted formulas to Z3 expressions."""

    def __init__(self) -> None:
        self.z3_vars: Dict[str, Any] = {}

    def sort(self, sort: Sort) -> Any:
        if sort == INT or sort == UNIT:
            return z3.IntSort()
        if sort == BOOL:
            return z3.BoolSort()
        if sort.is_list and sort.elem is not None:
            return z3.SeqSort(self.sort(sort.elem))
        raise UntranslatableFormula(f"no Z3 sort for {sort}")

    def var(self, name: str, sort: Sort) -> Any:
        if name not in self.z3_vars:
            self.z3_vars[name] = z3.Const(name, self.sort(sort))
        return self.z3_vars[name]

    def translate(self, formula: Formula) -> Any:
        k = formula.kind
        if k == FormulaKind.TRUE:
            return z3.BoolVal(True)
        if k == FormulaKind.FALSE:
            return z3.BoolVal(False)
        if k == FormulaKind.INT_CONST:
            return z3.IntVal(formula.int_val)
        if k == FormulaKind.BOOL_CONST:
            return z3.BoolVal(formula.bool_val)
        if k == FormulaKind.UNIT:
            return z3.IntVal(0)
        if k == FormulaKind.VAR:
            if formula.sort == UNIT:
                return z3.IntVal(0)
            return self.var(formula.name, formula.sort or INT)

        if k == FormulaKind.BINOP:
            left = self.translate(formula.children[0])
            right = self.translate(formula.children[1])
            ops = {
                "+": lambda l, r: l + r,
                "-": lambda l, r: l - r,
                "*": lambda l, r: l * r,
                "/": lambda l, r: l / r,
                "%": lambda l, r: l % r,
                "==": lambda l, r: l == r,
                "!=": lambda l, r: l != r,
                ">=": lambda l, r: l >= r,
                "<=": lambda l, r: l <= r,
                ">": lambda l, r: l > r,
                "<": lambda l, r: l < r,
            }
            fn = ops.get(formula.op)
            if fn is None:
                raise UntranslatableFormula(f"operator {formula.op!r}")
            return fn(left, right)

        if k == FormulaKind.UNOP:
            return -self.translate(formula.children[0])

        if k == FormulaKind.AND:
            parts = [self.translate(c) for c in formula.children]
            return z3.And(*parts) if len(parts) > 1 else parts[0]
        if k == FormulaKind.OR:
            parts = [self.translate(c) for c in formula.children]
            return z3.Or(*parts) if len(parts) > 1 else parts[0]
        if k == FormulaKind.NOT:
            return z3.Not(self.translate(formula.children[0]))
        if k == FormulaKind.IMPLIES:
            return z3.Implies(
                self.translate(formula.children[0]), self.translate(formula.children[1]),
            )
        if k == FormulaKind.ITE:
            return z3.If(*(self.translate(c) for c in formula.children))

        if k == FormulaKind.SEQ:
            elem = self.sort(formula.sort or INT)
            if not formula.children:
                return z3.Empty(z3.SeqSort(elem))
            units = [z3.Unit(self.translate(c)) for c in formula.children]
            return z3.Concat(*units) if len(units) > 1 else units[0]
        if k == FormulaKind.CONS:
            head, tail = formula.children
            return z3.Concat(z3.Unit(self.translate(head)), self.translate(tail))
        if k == FormulaKind.CONCAT:
            return z3.Concat(*(self.translate(c) for c in formula.children))
        if k == FormulaKind.LENGTH:
            return z3.Length(self.translate(formula.children[0]))
        if k == FormulaKind.SUM:
            return _SEQ_SUM(self.translate(formula.children[0]))

        if k in (FormulaKind.PREFIX, FormulaKind.SUFFIX):
            c = formula.children[0]
            if c.kind != FormulaKind.CURSOR:
                raise UntranslatableFormula(f"cursor term {c}")
            return self.translate(c.children[0 if k == FormulaKind.PREFIX else 1])

        raise UntranslatableFormula(f"{k.name} term {formula}")


# ---------------------------------------------------------------------------
# Dischargers
# ---------------------------------------------------------------------------

Discharger = Callable[[Formula], Tuple[SolverResult, str, Dict[str, str]]]


class Z3Discharger:
    """Checks validity of a formula with Z3 under a per-query timeout."""

    def __init__(self, timeout_ms: int = 5000):
        self.timeout_ms = timeout_ms

    def __call__(self, formula: Formula) -> Tuple[SolverResult, str, Dict[str, str]]:
        try:
            if infer_sort(formula) != BOOL:
                return SolverResult.SKIPPED, "not a proposition", {}
        except SortError as exc:
            return SolverResult.SKIPPED, str(exc), {}

        translator = Z3Translator()
        try:
            z3_f = translator.translate(formula)
        except UntranslatableFormula as exc:
            return SolverResult.SKIPPED, str(exc), {}

        solver = z3.Solver()
        solver.set("timeout", self.timeout_ms)
        try:
            solver.add(z3.Not(z3_f))
            result = solver.check()
        except z3.Z3Exception as exc:
            return SolverResult.ERROR, str(exc), {}

        if result == z3.unsat:
            return SolverResult.UNSAT, "", {}
        if result == z3.sat:
            model = solver.model()
            failing: Dict[str, str] = {}
            for name, var in sorted(translator.z3_vars.items()):
                failing[name] = str(model.evaluate(var, model_completion=True))
            return SolverResult.SAT, "counterexample found", failing
        return SolverResult.UNKNOWN, solver.reason_unknown(), {}


def dispatch(
    obligations: ObligationSet,
    discharger: Optional[Discharger] = None,
    targets: Optional[Iterable[str]] = None,
) -> DispatchReport:
    """Send the open obligations (optionally only those under ``targets``)."""
    discharger = discharger or Z3Discharger()
    prefixes = [parse_stable_id(t) for t in targets] if targets is not None else None

    selected: List[Obligation] = []
    for o in obligations.open():
        if prefixes is None or any(o.stable_id[:len(p)] == p for p in prefixes):
            selected.append(o)

    report = DispatchReport()
    for o in selected:
        result, detail, model = discharger(o.current)
        logger.debug("%s: %s %s", o.label, result.value, detail)
        report.outcomes.append(DischargeOutcome(o.stable_id, result, detail, model))

    logger.info(
        "dispatched %d obligations: %d proved, %d failed, %d unresolved",
        len(report), len(report.proved()), len(report.failed()), len(report.unresolved()),
    )
    return report
