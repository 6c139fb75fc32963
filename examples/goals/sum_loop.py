"""Summing a fixed list into a mutable accumulator.

    do
      let mut out := 0
      for x in [1, 2, 3] do
        out := out + x
      return out

    vcgen gen examples/goals/sum_loop.py
"""

from vcgen.formula import F_ADD, F_EQ, F_INT, F_INTS, F_SUM, F_VAR
from vcgen.program import C_BLOCK, C_FOR, C_GET, C_SEQ, C_SET
from vcgen.specs import Goal, Invariant

XS = F_INTS(1, 2, 3)

GOAL = Goal(
    computation=C_BLOCK(
        C_SEQ(
            C_FOR("x", XS, C_SET("out", F_ADD(F_VAR("out"), F_VAR("x"))), site="sum"),
            C_GET("out"),
        ),
        decls={"out": F_INT(0)},
    ),
    post=lambda r, s: F_EQ(r, F_SUM(XS)),
    name="sum_loop",
)

INVARIANTS = {
    "sum": Invariant(
        lambda c, s: F_EQ(F_SUM(c.prefix), s["out"]),
        description="out is the sum of the processed prefix",
    ),
}
