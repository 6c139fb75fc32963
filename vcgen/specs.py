"""vcgen Specification Language — goals, postconditions and invariants.

Predicates are ordinary Python callables that build formulas:

    Invariant(lambda c, s: F_EQ(F_SUM(c.prefix), s["out"]))

An invariant receives the loop's cursor and a read-only view of the state
live at its site; pre- and postconditions receive the state (and the
result, for postconditions). Every predicate is type-checked against the
bindings live where it is used: it is evaluated once on placeholder variables
and must produce a Formula of sort Bool. Anything else is rejected with a
type-mismatch error, never coerced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import (
    Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple,
)

from vcgen.cursor import CursorError, SymbolicCursor
from vcgen.errors import (
    GenerationError, VCError, malformed_cursor_use, type_mismatch_invariant,
)
from vcgen.formula import (
    BOOL, INT, Formula, Sort, SortError, F_FALSE, F_VAR, infer_sort, list_sort,
)
from vcgen.program import Computation, Effect
from vcgen.scope import SiteInfo, SiteTable, analyze

GOAL_SITE = "<goal>"


class UnboundStateVariable(KeyError):
    """A predicate read a variable that is not live where it is evaluated."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(name)

    def __str__(self) -> str:
        return f"variable '{self.name}' is not live here"


class StateView(Mapping[str, Formula]):
    """Read-only view of a state environment handed to predicates."""

    def __init__(self, values: Mapping[str, Formula]):
        self._values = dict(values)

    def __getitem__(self, name: str) -> Formula:
        try:
            return self._values[name]
        except KeyError:
            raise UnboundStateVariable(name) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        inner = ", ".join(f"{k}={v}" for k, v in self._values.items())
        return f"StateView({inner})"


@dataclass(frozen=True)
class Invariant:
    fn: Callable[[Optional[SymbolicCursor], StateView], Formula]
    description: str = ""

    def __call__(self, cursor: Optional[SymbolicCursor], state: StateView) -> Formula:
        return self.fn(cursor, state)


def as_invariant(obj: Any) -> Optional[Invariant]:
    if isinstance(obj, Invariant):
        return obj
    if callable(obj):
        return Invariant(obj)
    return None


@dataclass(frozen=True)
class Post:
    """Target relation of a goal.

    ``normal(result, state)`` must hold when the computation returns;
    ``on_throw(exc, state)`` when it raises. Without ``on_throw`` raising
    is forbidden.
    """
    normal: Callable[[Formula, StateView], Formula]
    on_throw: Optional[Callable[[Formula, StateView], Formula]] = None

    def for_result(self, result: Formula, state: StateView) -> Formula:
        return self.normal(result, state)

    def for_throw(self, exc: Formula, state: StateView) -> Formula:
        if self.on_throw is None:
            return F_FALSE()
        return self.on_throw(exc, state)


@dataclass
class Goal:
    """A Computation together with the relation it must satisfy."""
    computation: Computation
    post: Post
    pre: Optional[Callable[[StateView], Formula]] = None
    params: Dict[str, Sort] = field(default_factory=dict)
    state: Dict[str, Sort] = field(default_factory=dict)
    result_sort: Sort = INT
    error_sort: Sort = INT
    effect: Effect = Effect.STATE
    name: str = "goal"

    def __post_init__(self) -> None:
        if not isinstance(self.post, Post) and callable(self.post):
            self.post = Post(normal=self.post)

    def entry_scope(self) -> Dict[str, Sort]:
        scope = dict(self.params)
        scope.update(self.state)
        return scope

    def entry_values(self) -> Dict[str, Formula]:
        return {name: F_VAR(name, sort) for name, sort in self.entry_scope().items()}


# ---------------------------------------------------------------------------
# Type checking
# ---------------------------------------------------------------------------

_PLACEHOLDER_PREFIX = "%prefix"
_PLACEHOLDER_SUFFIX = "%suffix"
_PLACEHOLDER_RESULT = "%result"


def _check_predicate(
    site: str,
    build: Callable[[], Any],
    scope: Mapping[str, Sort],
) -> Optional[VCError]:
    try:
        prop = build()
    except UnboundStateVariable as exc:
        return type_mismatch_invariant(
            site, str(exc), expected="a live variable", actual=exc.name,
        )
    except CursorError as exc:
        return malformed_cursor_use(site, str(exc))
    except SortError as exc:
        return type_mismatch_invariant(site, str(exc), expected=exc.expected, actual=exc.actual)

    if not isinstance(prop, Formula):
        return type_mismatch_invariant(
            site, "predicate must build a Formula",
            expected="Formula of sort Bool", actual=type(prop).__name__,
        )
    try:
        sort = infer_sort(prop, scope)
    except SortError as exc:
        return type_mismatch_invariant(site, str(exc), expected=exc.expected, actual=exc.actual)
    if sort != BOOL:
        return type_mismatch_invariant(
            site, "predicate is not a proposition", expected=str(BOOL), actual=str(sort),
        )
    return None


def check_invariant(info: SiteInfo, invariant: Invariant) -> Optional[VCError]:
    """Type-check ``invariant`` against the live bindings of a loop site."""
    if info.elem_sort is None:
        return malformed_cursor_use(
            info.site_id, f"loop sequence {info.seq} does not have a sequence sort",
        )
    seq_sort = list_sort(info.elem_sort)
    cursor = SymbolicCursor(
        F_VAR(_PLACEHOLDER_PREFIX, seq_sort), F_VAR(_PLACEHOLDER_SUFFIX, seq_sort), info.elem_sort,
    )
    state = StateView({name: F_VAR(name, sort) for name, sort in info.live.items()})
    scope = dict(info.live)
    scope[_PLACEHOLDER_PREFIX] = seq_sort
    scope[_PLACEHOLDER_SUFFIX] = seq_sort
    return _check_predicate(info.site_id, lambda: invariant(cursor, state), scope)


def check_goal(goal: Goal) -> List[VCError]:
    """Type-check a goal's precondition and postconditions."""
    errors: List[VCError] = []
    scope = goal.entry_scope()
    state = StateView(goal.entry_values())

    if goal.pre is not None:
        err = _check_predicate(GOAL_SITE, lambda: goal.pre(state), scope)
        if err is not None:
            errors.append(err)

    result_scope = dict(scope)
    result_scope[_PLACEHOLDER_RESULT] = goal.result_sort
    result = F_VAR(_PLACEHOLDER_RESULT, goal.result_sort)
    err = _check_predicate(GOAL_SITE, lambda: goal.post.for_result(result, state), result_scope)
    if err is not None:
        errors.append(err)

    if goal.post.on_throw is not None:
        exc_scope = dict(scope)
        exc_scope[_PLACEHOLDER_RESULT] = goal.error_sort
        exc = F_VAR(_PLACEHOLDER_RESULT, goal.error_sort)
        err = _check_predicate(GOAL_SITE, lambda: goal.post.for_throw(exc, state), exc_scope)
        if err is not None:
            errors.append(err)
    return errors


# ---------------------------------------------------------------------------
# Invariant map
# ---------------------------------------------------------------------------

class InvariantMap(Mapping[str, Invariant]):
    """Invariants keyed by loop site id, checked as they are attached.

    ``attach`` raises GenerationError on a rejected invariant; an attached
    entry cannot be replaced.
    """

    def __init__(self, goal: Goal, invariants: Optional[Mapping[str, Any]] = None):
        self.goal = goal
        self.sites: SiteTable = analyze(goal)
        self._entries: Dict[str, Invariant] = {}
        for site, inv in (invariants or {}).items():
            self.attach(site, inv)

    def check(self, site: str, invariant: Any) -> Optional[VCError]:
        if site in self._entries:
            return type_mismatch_invariant(
                site, "an invariant is already attached to this site",
            )
        info = self.sites.get(site)
        if info is None:
            return type_mismatch_invariant(
                site, "no loop site with this id in the goal",
                expected="a loop site id", actual=site,
            )
        inv = as_invariant(invariant)
        if inv is None:
            return type_mismatch_invariant(
                site, "invariant must be callable",
                expected="Invariant", actual=type(invariant).__name__,
            )
        return check_invariant(info, inv)

    def attach(self, site: str, invariant: Any) -> InvariantMap:
        error = self.check(site, invariant)
        if error is not None:
            raise GenerationError(error)
        self._entries[site] = as_invariant(invariant)
        return self

    @classmethod
    def collect(
        cls, goal: Goal, invariants: Mapping[str, Any],
    ) -> Tuple[InvariantMap, List[VCError]]:
        """Attach every entry that checks; return the rejected ones as errors."""
        imap = cls(goal)
        errors: List[VCError] = []
        for site, inv in invariants.items():
            error = imap.check(site, inv)
            if error is not None:
                errors.append(error)
            else:
                imap._entries[site] = as_invariant(inv)
        return imap, errors

    def __getitem__(self, site: str) -> Invariant:
        return self._entries[site]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
