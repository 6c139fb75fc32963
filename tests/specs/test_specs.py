"""vcgen Specification Language Tests — SPEC-001 through SPEC-005."""

import pytest

from vcgen.errors import ErrorKind, GenerationError
from vcgen.formula import (
    BOOL, INT, list_sort,
    F_ADD, F_BINOP, F_EQ, F_INT, F_INTS, F_SUM, F_TRUE, F_VAR,
)
from vcgen.program import C_BLOCK, C_FOR, C_GET, C_SEQ, C_SET
from vcgen.scope import analyze
from vcgen.specs import (
    GOAL_SITE, Goal, Invariant, InvariantMap, Post, StateView,
    UnboundStateVariable, check_goal,
)

INTS = list_sort(INT)


def sum_goal(seq=None):
    seq = seq if seq is not None else F_INTS(1, 2, 3)
    return Goal(
        computation=C_BLOCK(
            C_SEQ(
                C_FOR("x", seq, C_SET("out", F_ADD(F_VAR("out"), F_VAR("x"))), site="sum"),
                C_GET("out"),
            ),
            decls={"out": F_INT(0)},
        ),
        post=lambda r, s: F_EQ(r, F_INT(6)),
    )


def sum_inv(c, s):
    return F_EQ(F_SUM(c.prefix), s["out"])


class TestStateView:
    """SPEC-001: Predicates see a read-only view of the live state."""

    def test_lookup(self):
        view = StateView({"out": F_VAR("out")})
        assert view["out"] == F_VAR("out")
        assert list(view) == ["out"] and len(view) == 1

    def test_unbound_name(self):
        view = StateView({})
        with pytest.raises(UnboundStateVariable) as exc:
            view["nope"]
        assert exc.value.name == "nope"
        assert isinstance(exc.value, KeyError)


class TestSiteAnalysis:
    """SPEC-002: Loop sites are found with their live bindings."""

    def test_site_recorded(self):
        table = analyze(sum_goal())
        info = table.get("sum")
        assert info is not None
        assert info.position == "0.0.0"
        assert info.elem_sort == INT
        assert dict(info.live) == {"out": INT}
        assert info.modified == frozenset({"out"})
        assert info.live_summary() == {"out": "Int"}

    def test_default_site_id_is_position(self):
        goal = Goal(
            computation=C_FOR("x", F_INTS(1), C_GET("x")),
            post=lambda r, s: F_TRUE(),
            result_sort=list_sort(INT),
        )
        table = analyze(goal)
        assert "loop@0" in table

    def test_duplicate_site_ids(self):
        loop = C_FOR("x", F_INTS(1), C_GET("x"), site="dup")
        goal = Goal(computation=C_SEQ(loop, loop), post=lambda r, s: F_TRUE())
        table = analyze(goal)
        assert len(table.errors) == 1
        assert table.errors[0].kind == ErrorKind.UNSUPPORTED_CONSTRUCT
        assert table.by_position("0.0").site_id == "dup"


class TestInvariantAttach:
    """SPEC-003: Invariants are type-checked when attached."""

    def test_attach_ok(self):
        imap = InvariantMap(sum_goal()).attach("sum", sum_inv)
        assert isinstance(imap["sum"], Invariant)
        assert "sum" in imap and len(imap) == 1

    def test_python_bool_rejected(self):
        with pytest.raises(GenerationError) as exc:
            InvariantMap(sum_goal()).attach("sum", lambda c, s: True)
        assert exc.value.kinds() == [ErrorKind.TYPE_MISMATCH_INVARIANT]
        assert exc.value.errors[0].details["actual_type"] == "bool"

    def test_non_proposition_rejected(self):
        with pytest.raises(GenerationError) as exc:
            InvariantMap(sum_goal()).attach("sum", lambda c, s: F_SUM(c.prefix))
        err = exc.value.errors[0]
        assert err.kind == ErrorKind.TYPE_MISMATCH_INVARIANT
        assert err.details["actual_type"] == "Int"

    def test_ill_sorted_rejected(self):
        with pytest.raises(GenerationError) as exc:
            InvariantMap(sum_goal()).attach("sum", lambda c, s: F_EQ(c.prefix, s["out"]))
        assert exc.value.kinds() == [ErrorKind.TYPE_MISMATCH_INVARIANT]

    def test_dead_variable_rejected(self):
        with pytest.raises(GenerationError) as exc:
            InvariantMap(sum_goal()).attach("sum", lambda c, s: F_EQ(s["total"], F_INT(0)))
        assert exc.value.errors[0].details["actual_type"] == "total"

    def test_unknown_site(self):
        with pytest.raises(GenerationError) as exc:
            InvariantMap(sum_goal()).attach("nowhere", sum_inv)
        assert exc.value.sites() == ["nowhere"]

    def test_not_callable(self):
        with pytest.raises(GenerationError):
            InvariantMap(sum_goal()).attach("sum", F_TRUE())

    def test_attached_entries_are_immutable(self):
        imap = InvariantMap(sum_goal()).attach("sum", sum_inv)
        with pytest.raises(GenerationError):
            imap.attach("sum", lambda c, s: F_TRUE())

    def test_cursor_step_on_unknown_suffix(self):
        goal = sum_goal(F_VAR("xs", INTS))
        goal.params["xs"] = INTS
        with pytest.raises(GenerationError) as exc:
            InvariantMap(goal).attach("sum", lambda c, s: F_EQ(c.current, F_INT(0)))
        assert exc.value.kinds() == [ErrorKind.MALFORMED_CURSOR_USE]

    def test_non_sequence_loop(self):
        goal = Goal(
            computation=C_FOR("x", F_INT(3), C_GET("x"), site="bad"),
            post=lambda r, s: F_TRUE(),
        )
        with pytest.raises(GenerationError) as exc:
            InvariantMap(goal).attach("bad", lambda c, s: F_TRUE())
        assert exc.value.kinds() == [ErrorKind.MALFORMED_CURSOR_USE]


class TestCollect:
    """SPEC-004: Plain mappings are checked with errors collected."""

    def test_collect(self):
        imap, errors = InvariantMap.collect(
            sum_goal(), {"sum": sum_inv, "ghost": sum_inv},
        )
        assert list(imap) == ["sum"]
        assert [e.site for e in errors] == ["ghost"]


class TestGoalCheck:
    """SPEC-005: Goal pre- and postconditions are checked like invariants."""

    def test_bare_callable_post(self):
        goal = sum_goal()
        assert isinstance(goal.post, Post)
        assert goal.post.for_throw(F_INT(0), StateView({})).kind.name == "FALSE"

    def test_valid_goal(self):
        assert check_goal(sum_goal()) == []

    def test_bad_post(self):
        goal = Goal(computation=C_GET("n"), post=lambda r, s: r, params={"n": INT})
        errors = check_goal(goal)
        assert len(errors) == 1
        assert errors[0].site == GOAL_SITE

    def test_pre_reads_params(self):
        goal = Goal(
            computation=C_GET("n"),
            post=lambda r, s: F_BINOP(">", r, F_INT(0)),
            pre=lambda s: F_BINOP(">", s["n"], F_INT(0)),
            params={"n": INT},
        )
        assert check_goal(goal) == []

    def test_on_throw_checked(self):
        goal = Goal(
            computation=C_GET("n"),
            post=Post(normal=lambda r, s: F_TRUE(), on_throw=lambda e, s: F_VAR("flag", BOOL)),
            params={"n": INT},
        )
        assert check_goal(goal) == []
