"""vcgen Dispatch Tests — DISP-001 through DISP-005.

These talk to a real Z3; every query is tiny.
"""

from __future__ import annotations

import pytest

z3 = pytest.importorskip("z3")

from vcgen.dispatch import (
    DispatchReport, SolverResult, UntranslatableFormula, Z3Discharger, Z3Translator, dispatch,
)
from vcgen.engine import generate
from vcgen.formula import (
    INT, cursor_sort, list_sort,
    F_ADD, F_BINOP, F_CONS, F_EQ, F_IMPLIES, F_INT, F_INTS, F_LENGTH, F_NOT, F_PREFIX,
    F_SUM, F_VAR,
)
from vcgen.program import C_BLOCK, C_FOR, C_GET, C_IF, C_RETURN, C_SEQ, C_SET
from vcgen.specs import Goal

X = F_VAR("x")
INTS = list_sort(INT)


def early_exit_goal():
    return Goal(
        computation=C_BLOCK(
            C_SEQ(
                C_FOR(
                    "x", F_VAR("xs", INTS),
                    C_IF(
                        F_BINOP("<", X, F_INT(0)),
                        C_RETURN(F_VAR("out")),
                        C_SET("out", F_ADD(F_VAR("out"), X)),
                    ),
                    site="scan",
                ),
                C_GET("out"),
            ),
            decls={"out": F_INT(0)},
        ),
        post=lambda r, s: F_BINOP(">=", r, F_INT(0)),
        params={"xs": INTS},
    )


def sum_goal(expected):
    seq = F_INTS(1, 2, 3)
    return Goal(
        computation=C_BLOCK(
            C_SEQ(C_FOR("x", seq, C_SET("out", F_ADD(F_VAR("out"), X)), site="sum"), C_GET("out")),
            decls={"out": F_INT(0)},
        ),
        post=lambda r, s: F_EQ(r, expected),
    )


def sum_inv(c, s):
    return F_EQ(F_SUM(c.prefix), s["out"])


class TestZ3Discharger:
    """DISP-001: Validity checks through the negation."""

    def test_valid_implication(self):
        f = F_IMPLIES(F_BINOP(">", X, F_INT(0)), F_BINOP(">=", X, F_INT(0)))
        result, _, model = Z3Discharger()(f)
        assert result == SolverResult.UNSAT
        assert model == {}

    def test_counterexample(self):
        result, detail, model = Z3Discharger()(F_BINOP(">", X, F_INT(0)))
        assert result == SolverResult.SAT
        assert "x" in model
        assert int(model["x"]) <= 0

    def test_sequence_facts(self):
        xs = F_VAR("xs", INTS)
        f = F_EQ(F_LENGTH(F_CONS(X, xs)), F_ADD(F_LENGTH(xs), F_INT(1)))
        assert Z3Discharger()(f)[0] == SolverResult.UNSAT

    def test_sum_of_literal(self):
        assert Z3Discharger()(F_EQ(F_SUM(F_INTS(1, 2, 3)), F_INT(6)))[0] == SolverResult.UNSAT
        assert Z3Discharger()(F_EQ(F_SUM(F_INTS(1, 2, 3)), F_INT(7)))[0] == SolverResult.SAT


class TestUntranslatable:
    """DISP-002: Constructs without a Z3 counterpart are skipped, not guessed."""

    def test_cursor_variable(self):
        c = F_VAR("c", cursor_sort(INT))
        result, detail, _ = Z3Discharger()(F_EQ(F_PREFIX(c), F_INTS()))
        assert result == SolverResult.SKIPPED
        assert detail

    def test_not_a_proposition(self):
        assert Z3Discharger()(F_INT(1))[0] == SolverResult.SKIPPED

    def test_translator_raises(self):
        with pytest.raises(UntranslatableFormula):
            Z3Translator().var("c", cursor_sort(INT))

    def test_translator_shares_variables(self):
        t = Z3Translator()
        t.translate(F_NOT(F_BINOP("<", X, F_INT(0))))
        t.translate(F_ADD(X, F_INT(1)))
        assert list(t.z3_vars) == ["x"]


class TestDispatch:
    """DISP-003: Only open obligations are sent."""

    def test_early_exit_proves(self):
        obligations = generate(early_exit_goal(), {"scan": lambda c, s: F_BINOP(">=", s["out"], F_INT(0))})
        report = dispatch(obligations)
        assert [o.stable_id for o in report] == [("scan", "step", "if@0.0.0.0:else")]
        assert report.all_proved

    def test_wrong_post_fails(self):
        obligations = generate(sum_goal(F_INT(7)), {"sum": sum_inv})
        report = dispatch(obligations)
        assert len(report) == 1
        assert report.get("sum/post").result == SolverResult.SAT
        assert report.failed() == [report.get("sum/post")]

    def test_nothing_open(self):
        obligations = generate(sum_goal(F_SUM(F_INTS(1, 2, 3))), {"sum": sum_inv})
        assert len(dispatch(obligations)) == 0


class TestTargets:
    """DISP-004: Targets restrict dispatch by stable-id prefix."""

    def test_prefix_filter(self):
        obligations = generate(sum_goal(F_INT(7)), {"sum": sum_inv})
        assert len(dispatch(obligations, targets=["sum/step"])) == 0
        assert len(dispatch(obligations, targets=["sum"])) == 1

    def test_custom_discharger(self):
        seen = []

        def fake(formula):
            seen.append(formula)
            return SolverResult.UNKNOWN, "gave up", {}

        obligations = generate(sum_goal(F_INT(7)), {"sum": sum_inv})
        report = dispatch(obligations, discharger=fake)
        assert seen == [obligations["sum/post"].current]
        assert report.unresolved() == list(report)


class TestReport:
    """DISP-005: Report serialization."""

    def test_summary(self):
        obligations = generate(sum_goal(F_INT(7)), {"sum": sum_inv})
        d = dispatch(obligations).to_dict()
        assert d["summary"] == {"sent": 1, "proved": 0, "failed": 1, "unresolved": 0}
        assert d["outcomes"][0]["id"] == "sum/post"
        assert d["outcomes"][0]["result"] == "sat"

    def test_empty_report(self):
        report = DispatchReport()
        assert report.all_proved
        assert report.get("anything") is None
