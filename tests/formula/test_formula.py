"""vcgen Formula IR Tests — FORM-001 through FORM-006."""

import pytest

from vcgen.formula import (
    BOOL, INT, UNIT, FormulaKind, SortError, cursor_sort, list_sort,
    F_TRUE, F_FALSE, F_VAR, F_INT, F_BOOL, F_UNIT,
    F_AND, F_OR, F_NOT, F_IMPLIES, F_BINOP, F_UNOP, F_EQ, F_ADD, F_ITE,
    F_SEQ, F_INTS, F_CONS, F_CONCAT, F_SUM, F_LENGTH, F_CURSOR, F_PREFIX, F_SUFFIX,
    collect_free_vars, conjuncts, evaluate, free_var_sorts, infer_sort,
    substitute, substitute_many,
)

INTS = list_sort(INT)


class TestConstructors:
    """FORM-001: Boolean constructors apply only the unit and absorption laws."""

    def test_and_flattens(self):
        a = F_AND(F_VAR("x", BOOL), F_AND(F_VAR("y", BOOL), F_VAR("z", BOOL)))
        assert a.kind == FormulaKind.AND and len(a.children) == 3

    def test_and_absorbs_true(self):
        assert F_AND(F_TRUE(), F_VAR("x", BOOL)) == F_VAR("x", BOOL)

    def test_empty_and_is_true(self):
        assert F_AND().kind == FormulaKind.TRUE

    def test_and_short_circuits_false(self):
        assert F_AND(F_FALSE(), F_VAR("x", BOOL)).kind == FormulaKind.FALSE

    def test_or_absorbs_false(self):
        assert F_OR(F_FALSE(), F_VAR("x", BOOL)) == F_VAR("x", BOOL)

    def test_or_short_circuits_true(self):
        assert F_OR(F_TRUE(), F_VAR("x", BOOL)).kind == FormulaKind.TRUE

    def test_not_double_negation(self):
        assert F_NOT(F_NOT(F_VAR("x", BOOL))) == F_VAR("x", BOOL)

    def test_implies_true_antecedent(self):
        assert F_IMPLIES(F_TRUE(), F_VAR("x", BOOL)) == F_VAR("x", BOOL)

    def test_implies_false_antecedent(self):
        assert F_IMPLIES(F_FALSE(), F_VAR("x", BOOL)).kind == FormulaKind.TRUE

    def test_arithmetic_is_not_folded(self):
        f = F_ADD(F_INT(1), F_INT(2))
        assert f.kind == FormulaKind.BINOP

    def test_conjuncts(self):
        a, b = F_VAR("a", BOOL), F_VAR("b", BOOL)
        assert conjuncts(F_AND(a, b)) == [a, b]
        assert conjuncts(F_TRUE()) == []
        assert conjuncts(a) == [a]


class TestRendering:
    """FORM-002: Formulas print in the obligation display notation."""

    def test_sequence_notation(self):
        a, b = F_VAR("a", INTS), F_VAR("b", INTS)
        assert str(F_CONCAT(a, b)) == "(a ++ b)"
        assert str(F_SUM(F_VAR("s", INTS))) == "s.sum"
        assert str(F_INTS(1, 2, 3)) == "[1, 2, 3]"
        assert str(F_CONS(F_VAR("h"), F_VAR("t", INTS))) == "(h :: t)"

    def test_cursor_notation(self):
        c = F_CURSOR(F_VAR("p", INTS), F_VAR("s", INTS))
        assert str(c) == "<p | s>"
        assert str(F_PREFIX(c)) == "<p | s>.prefix"

    def test_implication(self):
        f = F_IMPLIES(F_EQ(F_VAR("x"), F_INT(0)), F_BINOP(">=", F_VAR("x"), F_INT(0)))
        assert str(f) == "((x == 0) => (x >= 0))"


class TestSorts:
    """FORM-003: Sort inference accepts well-sorted formulas and rejects the rest."""

    def test_basic_sorts(self):
        assert infer_sort(F_ADD(F_INT(1), F_INT(2))) == INT
        assert infer_sort(F_EQ(F_INT(1), F_INT(2))) == BOOL
        assert infer_sort(F_UNIT()) == UNIT
        assert infer_sort(F_BOOL(True)) == BOOL

    def test_sequence_sorts(self):
        assert infer_sort(F_INTS(1, 2)) == INTS
        assert infer_sort(F_SEQ()) == INTS
        assert infer_sort(F_SUM(F_INTS(1, 2))) == INT
        assert infer_sort(F_LENGTH(F_SEQ(F_TRUE(), elem=BOOL))) == INT
        assert infer_sort(F_CONS(F_INT(0), F_INTS(1))) == INTS

    def test_cursor_sorts(self):
        c = F_CURSOR(F_SEQ(), F_INTS(1, 2))
        assert infer_sort(c) == cursor_sort(INT)
        assert infer_sort(F_PREFIX(c)) == INTS
        assert infer_sort(F_SUFFIX(c)) == INTS

    def test_scope_overrides_declared_sort(self):
        assert infer_sort(F_VAR("xs"), {"xs": INTS}) == INTS

    def test_equality_of_different_sorts(self):
        with pytest.raises(SortError):
            infer_sort(F_EQ(F_INT(1), F_TRUE()))

    def test_arithmetic_on_bool(self):
        with pytest.raises(SortError) as exc:
            infer_sort(F_ADD(F_INT(1), F_VAR("b", BOOL)))
        assert exc.value.expected == "Int"
        assert exc.value.actual == "Bool"

    def test_sum_of_bool_sequence(self):
        with pytest.raises(SortError):
            infer_sort(F_SUM(F_VAR("bs", list_sort(BOOL))))

    def test_connective_over_ints(self):
        with pytest.raises(SortError):
            infer_sort(F_AND(F_VAR("x"), F_VAR("y")))

    def test_prefix_of_a_list(self):
        with pytest.raises(SortError):
            infer_sort(F_PREFIX(F_INTS(1)))

    def test_ite_branches_must_agree(self):
        with pytest.raises(SortError):
            infer_sort(F_ITE(F_TRUE(), F_INT(1), F_TRUE()))

    def test_sort_rendering(self):
        assert str(list_sort(INTS)) == "List[List[Int]]"


class TestSubstitution:
    """FORM-004: Substitution and free variables."""

    def test_substitute(self):
        f = F_ADD(F_VAR("x"), F_VAR("y"))
        assert substitute(f, "x", F_INT(3)) == F_ADD(F_INT(3), F_VAR("y"))

    def test_substitute_is_simultaneous(self):
        f = F_BINOP("-", F_VAR("x"), F_VAR("y"))
        swapped = substitute_many(f, {"x": F_VAR("y"), "y": F_VAR("x")})
        assert swapped == F_BINOP("-", F_VAR("y"), F_VAR("x"))

    def test_substitute_leaves_unrelated_formula_identical(self):
        f = F_SUM(F_VAR("s", INTS))
        assert substitute(f, "x", F_INT(1)) is f

    def test_free_vars(self):
        f = F_IMPLIES(F_EQ(F_VAR("a"), F_SUM(F_VAR("s", INTS))), F_VAR("b", BOOL))
        assert collect_free_vars(f) == {"a", "s", "b"}
        assert free_var_sorts(f)["s"] == INTS


class TestEvaluate:
    """FORM-005: Concrete evaluation of closed formulas."""

    def test_sum_of_concat(self):
        assert evaluate(F_SUM(F_CONCAT(F_INTS(1, 2), F_INTS(3)))) == 6

    def test_cons_and_length(self):
        assert evaluate(F_CONS(F_INT(0), F_INTS(1))) == (0, 1)
        assert evaluate(F_LENGTH(F_INTS(4, 5, 6))) == 3

    def test_division_floors(self):
        assert evaluate(F_BINOP("/", F_INT(-7), F_INT(2))) == -4
        assert evaluate(F_BINOP("%", F_INT(-7), F_INT(2))) == 1

    def test_cursor_projections(self):
        c = F_CURSOR(F_INTS(1), F_INTS(2, 3))
        assert evaluate(F_PREFIX(c)) == (1,)
        assert evaluate(F_SUFFIX(c)) == (2, 3)

    def test_assignment(self):
        f = F_IMPLIES(F_BINOP(">", F_VAR("x"), F_INT(0)), F_BINOP(">", F_ADD(F_VAR("x"), F_VAR("x")), F_VAR("x")))
        assert evaluate(f, {"x": 5}) is True
        assert evaluate(F_UNOP("-", F_VAR("x")), {"x": 5}) == -5

    def test_unbound_variable(self):
        with pytest.raises(KeyError):
            evaluate(F_VAR("missing"))


class TestImmutability:
    """FORM-006: Formulas are hashable values."""

    def test_equal_formulas_hash_equal(self):
        a = F_EQ(F_SUM(F_INTS(1, 2)), F_VAR("out"))
        b = F_EQ(F_SUM(F_INTS(1, 2)), F_VAR("out"))
        assert a == b and hash(a) == hash(b)
        assert len({a, b}) == 1
