"""Accumulate non-negative elements, bailing out at the first negative one.

    do
      let mut out := 0
      for x in xs do
        if x < 0 then return out
        out := out + x
      return out
"""

from vcgen.formula import F_ADD, F_BINOP, F_INT, F_VAR, list_sort, INT
from vcgen.program import C_BLOCK, C_FOR, C_GET, C_IF, C_RETURN, C_SEQ, C_SET
from vcgen.specs import Goal

GOAL = Goal(
    computation=C_BLOCK(
        C_SEQ(
            C_FOR(
                "x", F_VAR("xs", list_sort(INT)),
                C_IF(
                    F_BINOP("<", F_VAR("x"), F_INT(0)),
                    C_RETURN(F_VAR("out")),
                    C_SET("out", F_ADD(F_VAR("out"), F_VAR("x"))),
                ),
                site="scan",
            ),
            C_GET("out"),
        ),
        decls={"out": F_INT(0)},
    ),
    post=lambda r, s: F_BINOP(">=", r, F_INT(0)),
    params={"xs": list_sort(INT)},
    name="early_exit",
)

INVARIANTS = {
    "scan": lambda c, s: F_BINOP(">=", s["out"], F_INT(0)),
}
