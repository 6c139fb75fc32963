"""Nested loops over a matrix; the inner loop still needs an invariant.

``vcgen gen`` reports the missing invariant for ``cols`` together with
the obligations of the outer loop that do not depend on it.
"""

from vcgen.formula import F_ADD, F_BINOP, F_INT, F_VAR, INT, list_sort
from vcgen.program import C_BLOCK, C_FOR, C_GET, C_SEQ, C_SET
from vcgen.specs import Goal

MATRIX = list_sort(list_sort(INT))

GOAL = Goal(
    computation=C_BLOCK(
        C_SEQ(
            C_FOR(
                "row", F_VAR("xss", MATRIX),
                C_FOR(
                    "x", F_VAR("row", list_sort(INT)),
                    C_SET("total", F_ADD(F_VAR("total"), F_BINOP("*", F_VAR("x"), F_VAR("x")))),
                    site="cols",
                ),
                site="rows",
            ),
            C_GET("total"),
        ),
        decls={"total": F_INT(0)},
    ),
    post=lambda r, s: F_BINOP(">=", r, F_INT(0)),
    params={"xss": MATRIX},
    name="nested_rows",
)

INVARIANTS = {
    "rows": lambda c, s: F_BINOP(">=", s["total"], F_INT(0)),
}
