"""vcgen VC Engine — decompose a goal into pure proof obligations.

The engine walks a Computation forwards in continuation-passing style,
carrying

  * a StateEnv: the symbolic value of every name in scope,
  * a path context: hypotheses collected so far, the label path, the
    enclosing loop frames and the obligation family being produced,
  * a continuation: what to do with the result and state on normal exit.

Every leaf of the resulting decision tree emits exactly one obligation
``hypotheses => goal``. Sequential composition threads one step's outcome
into the next; a conditional forks into a then path that assumes the
condition and an else path that assumes its negation.

A loop ``for x in xs`` with invariant I forks three ways (see
``vcgen.derivation`` for the scheme and its soundness argument):

  pre    I holds for the initial cursor in the entry state
  step   from fresh p, x, r and fresh values for everything the body
         modifies, assuming the cursor law and I(<p, x :: r>, s), run the
         body once; every normal end and every ``continue`` emits
         I(<p ++ [x], r>, s')
  post   from fresh values of the modified variables, assume
         I(<xs, []>, s) and continue with the code after the loop

Early exits get their own families: ``return`` emits the goal
postcondition directly, ``break`` continues after the loop from the break
state, ``throw`` emits the exception postcondition.

Errors abort only the path they occur on. Fork points are independent, so
sibling sites keep producing obligations; all errors are collected and
reported together. A loop without a usable invariant does not abort: its
body and the code after it are still walked from havocked state, with the
obligations that would rely on the invariant held back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import (
    Any, Callable, Dict, FrozenSet, List, Mapping, NamedTuple, Optional, Set, Tuple,
)

from vcgen import derivation
from vcgen.config import VCGenConfig
from vcgen.cursor import CursorError
from vcgen.errors import (
    GenerationError, VCError,
    malformed_cursor_use, missing_invariant, type_mismatch_invariant,
    unsupported_construct,
)
from vcgen.formula import (
    BOOL, Formula, FormulaKind, Sort, SortError,
    F_AND, F_IMPLIES, F_NOT, F_UNIT, F_VAR,
    collect_free_vars, infer_sort, list_sort, substitute_many,
)
from vcgen.obligations import (
    Label, Obligation, ObligationRole, ObligationSet, StableId,
)
from vcgen.program import (
    Computation, Effect, Tag, modified_vars, position, shape, site_id,
)
from vcgen.simplify import Simplifier
from vcgen.specs import (
    Goal, Invariant, InvariantMap, StateView, UnboundStateVariable, check_goal,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# State environment
# ---------------------------------------------------------------------------

class Binding(NamedTuple):
    value: Formula
    sort: Sort
    mutable: bool = False
    monadic: bool = False


class StateEnv:
    """Scoped, persistent map from names to symbolic values.

    Frames are nested scopes; every update copies only the frame it touches
    and returns a new environment, so forked paths never share mutations.
    """

    __slots__ = ("_frames",)

    def __init__(self, frames: Tuple[Dict[str, Binding], ...] = ({},)):
        self._frames = tuple(frames)

    @classmethod
    def for_goal(cls, goal: Goal) -> StateEnv:
        frame: Dict[str, Binding] = {}
        for name, sort in goal.params.items():
            frame[name] = Binding(F_VAR(name, sort), sort)
        for name, sort in goal.state.items():
            frame[name] = Binding(F_VAR(name, sort), sort, mutable=True, monadic=True)
        return cls((frame,))

    @property
    def depth(self) -> int:
        return len(self._frames)

    def lookup(self, name: str) -> Optional[Binding]:
        for frame in reversed(self._frames):
            if name in frame:
                return frame[name]
        return None

    def __contains__(self, name: str) -> bool:
        return self.lookup(name) is not None

    def flat(self) -> Dict[str, Binding]:
        merged: Dict[str, Binding] = {}
        for frame in self._frames:
            merged.update(frame)
        return merged

    def push(self) -> StateEnv:
        return StateEnv(self._frames + ({},))

    def truncate(self, depth: int) -> StateEnv:
        return StateEnv(self._frames[:depth])

    def bind(self, name: str, value: Formula, sort: Sort, mutable: bool = False) -> StateEnv:
        top = dict(self._frames[-1])
        top[name] = Binding(value, sort, mutable=mutable)
        return StateEnv(self._frames[:-1] + (top,))

    def set(self, name: str, value: Formula) -> StateEnv:
        for i in range(len(self._frames) - 1, -1, -1):
            if name in self._frames[i]:
                frame = dict(self._frames[i])
                frame[name] = frame[name]._replace(value=value)
                return StateEnv(self._frames[:i] + (frame,) + self._frames[i + 1:])
        raise KeyError(name)

    def values(self) -> Dict[str, Formula]:
        return {name: b.value for name, b in self.flat().items()}

    def sorts(self) -> Dict[str, Sort]:
        return {name: b.sort for name, b in self.flat().items()}

    def eval(self, expr: Formula) -> Formula:
        return substitute_many(expr, self.values())

    def view(self) -> StateView:
        return StateView(self.values())


# ---------------------------------------------------------------------------
# Path context
# ---------------------------------------------------------------------------

class _PathAbort(Exception):
    """Stops the current path; the error is recorded at the nearest fork."""

    def __init__(self, error: VCError):
        self.error = error
        super().__init__(str(error))


Continuation = Callable[[Formula, StateEnv, "_Ctx"], None]


@dataclass(frozen=True)
class _LoopFrame:
    site: str
    depth: int
    on_break: Callable[[StateEnv, "_Ctx"], None]
    on_continue: Callable[[StateEnv, "_Ctx"], None]


@dataclass(frozen=True)
class _Ctx:
    hyps: Tuple[Formula, ...] = ()
    path: Tuple[str, ...] = ()
    frames: Tuple[_LoopFrame, ...] = ()
    site: Optional[str] = None
    role: ObligationRole = ObligationRole.ENSURES
    # Sites whose obligations depend on a missing invariant on this path.
    blind: FrozenSet[str] = frozenset()

    def assume(self, *facts: Formula) -> _Ctx:
        kept = tuple(f for f in facts if f.kind != FormulaKind.TRUE)
        return replace(self, hyps=self.hyps + kept)

    def at(self, *segments: str) -> _Ctx:
        return replace(self, path=self.path + segments)

    def in_family(self, site: Optional[str], role: ObligationRole) -> _Ctx:
        return replace(self, site=site, role=role)

    def enter(self, frame: _LoopFrame) -> _Ctx:
        return replace(self, frames=self.frames + (frame,))


_HINTS = {
    ObligationRole.PRE: "invariant of loop '{site}' holds before the first iteration",
    ObligationRole.STEP: "one iteration of loop '{site}' preserves its invariant",
    ObligationRole.POST: "goal holds after loop '{site}' runs to completion",
    ObligationRole.EXIT: "goal holds on early exit from loop '{site}'",
    ObligationRole.THROW: "exception postcondition holds for a throw",
    ObligationRole.ENSURES: "goal postcondition holds on return",
}


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class VCEngine:
    """One generation run for a single goal and invariant map."""

    def __init__(
        self,
        goal: Goal,
        invariants: InvariantMap,
        config: Optional[VCGenConfig] = None,
        rejected: Optional[List[VCError]] = None,
    ) -> None:
        self.goal = goal
        self.invariants = invariants
        self.config = config or VCGenConfig()
        self.obligations = ObligationSet(goal_name=goal.name)
        self.errors: List[VCError] = []
        self._error_keys: Set[Tuple[Any, str]] = set()
        self._rejected: Dict[str, VCError] = {e.site: e for e in (rejected or [])}
        self._fresh_counter = 0
        self._id_counts: Dict[StableId, int] = {}
        self._handlers: Dict[Tag, Callable[..., None]] = {
            Tag.PURE: self._exec_pure,
            Tag.BIND: self._exec_bind,
            Tag.GET: self._exec_get,
            Tag.SET: self._exec_set,
            Tag.IF: self._exec_if,
            Tag.FOR: self._exec_for,
            Tag.RETURN: self._exec_return,
            Tag.BREAK: self._exec_break,
            Tag.CONTINUE: self._exec_continue,
            Tag.THROW: self._exec_throw,
            Tag.BLOCK: self._exec_block,
            Tag.OPAQUE: self._exec_opaque,
        }
        missing = set(Tag) - set(self._handlers)
        if missing:
            raise RuntimeError(f"no engine handler for {sorted(t.name for t in missing)}")

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    def run(self) -> ObligationSet:
        try:
            self._traverse()
        finally:
            self._leave()
        logger.info(
            "goal %s: %d obligations (%d open), %d errors",
            self.goal.name, len(self.obligations),
            len(self.obligations.open()), len(self.errors),
        )
        return self.obligations

    def _traverse(self) -> None:
        for error in self.invariants.sites.errors:
            self._record(error)
        for error in self._rejected.values():
            self._record(error)
        goal_errors = check_goal(self.goal)
        for error in goal_errors:
            self._record(error)
        if goal_errors:
            return

        env = StateEnv.for_goal(self.goal)
        ctx = _Ctx()
        if self.goal.pre is not None:
            ctx = ctx.assume(self.goal.pre(env.view()))
        self._guarded(lambda: self._exec(self.goal.computation, (), env, ctx, self._finish))

    def _leave(self) -> None:
        """Run the leave step over everything emitted so far."""
        if not self.config.simplify:
            return
        simplifier = Simplifier(
            rules=self.config.simplify_rules,
            max_rounds=self.config.max_simplify_rounds,
        )
        for o in self.obligations:
            o.simplified = simplifier(o.proposition)

    def _exec(self, c: Computation, path: tuple, env: StateEnv, ctx: _Ctx, k: Continuation) -> None:
        tag, _ = shape(c)
        self._handlers[tag](c, path, env, ctx, k)

    def _guarded(self, fn: Callable[[], None]) -> None:
        try:
            fn()
        except _PathAbort as abort:
            self._record(abort.error)

    def _record(self, error: VCError) -> None:
        if error.key in self._error_keys:
            return
        self._error_keys.add(error.key)
        self.errors.append(error)
        logger.debug("recorded %s", error)
        if not self.config.collect_all_errors:
            raise GenerationError(self.errors, partial=self.obligations)

    def _fresh(self, base: str, sort: Sort) -> Formula:
        self._fresh_counter += 1
        return F_VAR(f"{base}#{self._fresh_counter}", sort)

    def _emit(
        self, ctx: _Ctx, goal: Formula, role: ObligationRole, site: Optional[str],
    ) -> None:
        sid: StableId = ctx.path or ("ensures",)
        if site in ctx.blind:
            logger.debug("held back %s: invariant missing on this path", "/".join(sid))
            return
        # Repeated paths are numbered by occurrence, so ids do not depend on other sites.
        seen = self._id_counts.get(sid, 0) + 1
        self._id_counts[sid] = seen
        if seen > 1:
            sid = sid + (f"#{seen}",)
        hint = _HINTS[role].format(site=site)
        branches = [seg for seg in ctx.path if "@" in seg]
        if branches:
            hint += " (via " + ", ".join(branches) + ")"
        prop = F_IMPLIES(F_AND(*ctx.hyps), goal)
        self.obligations.add(Obligation(Label(sid, hint), prop, role, site))
        logger.debug("emitted %s: %s", "/".join(sid), prop)

    def _finish(self, result: Formula, env: StateEnv, ctx: _Ctx) -> None:
        self._check_result(result, "0")
        goal = self.goal.post.for_result(result, env.truncate(1).view())
        self._emit(ctx, goal, ctx.role, ctx.site)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _eval(self, expr: Formula, path: tuple, env: StateEnv, construct: str) -> Tuple[Formula, Sort]:
        pos = position(path)
        unbound = sorted(collect_free_vars(expr) - set(env.flat()))
        if unbound:
            raise _PathAbort(unsupported_construct(
                pos, construct, f"unbound variable '{unbound[0]}'",
            ))
        try:
            sort = infer_sort(expr, env.sorts())
        except SortError as exc:
            raise _PathAbort(unsupported_construct(pos, construct, f"ill-sorted expression: {exc}"))
        return env.eval(expr), sort

    def _check_result(self, value: Formula, pos: str) -> None:
        try:
            sort = infer_sort(value)
        except SortError as exc:
            raise _PathAbort(unsupported_construct(pos, "result", f"ill-sorted result: {exc}"))
        if sort != self.goal.result_sort:
            raise _PathAbort(unsupported_construct(
                pos, "result",
                f"result has sort {sort}, goal expects {self.goal.result_sort}",
            ))

    def _check_state_effect(self, binding: Any, name: str, pos: str, construct: str) -> None:
        if binding.monadic and Effect.STATE not in self.goal.effect:
            raise _PathAbort(unsupported_construct(
                pos, construct, f"'{name}' is monad state but the goal has no STATE effect",
            ))

    def _apply(self, site: str, build: Callable[[], Any]) -> Formula:
        """Instantiate an invariant; failures abort the path with a site error."""
        try:
            prop = build()
        except CursorError as exc:
            raise _PathAbort(malformed_cursor_use(site, str(exc)))
        except UnboundStateVariable as exc:
            raise _PathAbort(type_mismatch_invariant(
                site, str(exc), expected="a live variable", actual=exc.name,
            ))
        except SortError as exc:
            raise _PathAbort(type_mismatch_invariant(
                site, str(exc), expected=exc.expected, actual=exc.actual,
            ))
        if not isinstance(prop, Formula):
            raise _PathAbort(type_mismatch_invariant(
                site, "predicate must build a Formula",
                expected="Formula of sort Bool", actual=type(prop).__name__,
            ))
        return prop

    def _havoc(self, env: StateEnv, names: Set[str]) -> StateEnv:
        for name in sorted(names):
            binding = env.lookup(name)
            env = env.set(name, self._fresh(name, binding.sort))
        return env

    def _exit_site(self, ctx: _Ctx) -> Tuple[ObligationRole, Optional[str]]:
        if ctx.frames:
            return ObligationRole.EXIT, ctx.frames[-1].site
        return ctx.role, ctx.site

    # ------------------------------------------------------------------
    # Handlers, one per Tag
    # ------------------------------------------------------------------

    def _exec_pure(self, c: Computation, path: tuple, env: StateEnv, ctx: _Ctx, k: Continuation) -> None:
        value, _ = self._eval(c.value, path, env, "pure value")
        k(value, env, ctx)

    def _exec_bind(self, c: Computation, path: tuple, env: StateEnv, ctx: _Ctx, k: Continuation) -> None:
        first, rest = c.children

        def after_first(value: Formula, env1: StateEnv, ctx1: _Ctx) -> None:
            if not c.var:
                self._exec(rest, path + (1,), env1, ctx1, k)
                return
            scoped = env1.push().bind(c.var, value, infer_sort(value))
            self._exec(
                rest, path + (1,), scoped, ctx1,
                lambda r, env2, ctx2: k(r, env2.truncate(env1.depth), ctx2),
            )

        self._exec(first, path + (0,), env, ctx, after_first)

    def _exec_get(self, c: Computation, path: tuple, env: StateEnv, ctx: _Ctx, k: Continuation) -> None:
        pos = position(path)
        binding = env.lookup(c.var)
        if binding is None:
            raise _PathAbort(unsupported_construct(pos, "read", f"unbound variable '{c.var}'"))
        self._check_state_effect(binding, c.var, pos, "read")
        k(binding.value, env, ctx)

    def _exec_set(self, c: Computation, path: tuple, env: StateEnv, ctx: _Ctx, k: Continuation) -> None:
        pos = position(path)
        binding = env.lookup(c.var)
        if binding is None:
            raise _PathAbort(unsupported_construct(pos, "assignment", f"unbound variable '{c.var}'"))
        if not binding.mutable:
            raise _PathAbort(unsupported_construct(
                pos, "assignment", f"'{c.var}' is an immutable binding",
            ))
        self._check_state_effect(binding, c.var, pos, "assignment")
        value, sort = self._eval(c.value, path, env, "assignment")
        if sort != binding.sort:
            raise _PathAbort(unsupported_construct(
                pos, "assignment", f"'{c.var}' has sort {binding.sort}, value has sort {sort}",
            ))
        k(F_UNIT(), env.set(c.var, value), ctx)

    def _exec_if(self, c: Computation, path: tuple, env: StateEnv, ctx: _Ctx, k: Continuation) -> None:
        pos = position(path)
        cond, sort = self._eval(c.cond, path, env, "condition")
        if sort != BOOL:
            raise _PathAbort(unsupported_construct(pos, "condition", f"condition has sort {sort}"))
        then_c, else_c = c.children
        self._guarded(lambda: self._exec(
            then_c, path + (0,), env, ctx.assume(cond).at(f"if@{pos}:then"), k,
        ))
        self._guarded(lambda: self._exec(
            else_c, path + (1,), env, ctx.assume(F_NOT(cond)).at(f"if@{pos}:else"), k,
        ))

    def _exec_for(self, c: Computation, path: tuple, env: StateEnv, ctx: _Ctx, k: Continuation) -> None:
        sid = site_id(c, path)
        pos = position(path)
        info = self.invariants.sites.get(sid)
        if info is not None and info.position != pos:
            raise _PathAbort(unsupported_construct(
                pos, "loop", f"duplicate loop site id '{sid}' (also at {info.position})",
            ))
        invariant: Optional[Invariant] = self.invariants.get(sid)
        if sid in self._rejected or invariant is None:
            error = self._rejected.get(sid) or missing_invariant(
                sid, info.live_summary() if info else None,
            )
            self._record(error)
            self._loop_without_invariant(c, sid, path, env, ctx, k)
            return

        seq, seq_sort = self._eval(c.seq, path, env, "loop sequence")
        if not seq_sort.is_list or seq_sort.elem is None:
            raise _PathAbort(malformed_cursor_use(
                sid, f"loop sequence {c.seq} has sort {seq_sort}, not a sequence",
            ))
        elem = seq_sort.elem
        body = c.children[0]
        modified = {n for n in modified_vars(body) if n in env and env.lookup(n).mutable}
        logger.debug("loop %s at %s modifies %s", sid, pos, sorted(modified))

        self._guarded(lambda: self._loop_pre(sid, invariant, seq, elem, env, ctx))
        self._guarded(lambda: self._loop_step(c, sid, invariant, seq, elem, modified, path, env, ctx, k))
        self._guarded(lambda: self._loop_post(sid, invariant, seq, elem, modified, env, ctx, k))

    def _loop_without_invariant(self, c: Computation, sid: str, path: tuple, env: StateEnv,
                                ctx: _Ctx, k: Continuation) -> None:
        """Keep walking past a loop whose invariant is missing or rejected.

        The body and the code after the loop run from havocked state with no
        invariant hypothesis, so later and nested sites still report their
        errors and obligations. Obligations of this loop and of the loops
        enclosing it are held back on these paths.
        """
        body = c.children[0]
        modified = {n for n in modified_vars(body) if n in env and env.lookup(n).mutable}
        blind = ctx.blind | {sid} | {f.site for f in ctx.frames}

        def walk_body() -> None:
            _, seq_sort = self._eval(c.seq, path, env, "loop sequence")
            if not seq_sort.is_list or seq_sort.elem is None:
                return
            havoc = self._havoc(env, modified)
            def skip(_env: StateEnv, _ctx: _Ctx) -> None:
                return None

            frame = _LoopFrame(site=sid, depth=havoc.depth, on_break=skip, on_continue=skip)
            body_env = havoc.push()
            if c.var:
                body_env = body_env.bind(c.var, self._fresh(c.var, seq_sort.elem), seq_sort.elem)
            body_ctx = replace(ctx.at(sid, "step"), blind=blind).enter(frame)
            self._exec(body, path + (0,), body_env, body_ctx, lambda _r, env_x, ctx_x: None)

        def walk_after() -> None:
            after = replace(ctx.at(sid, "post").in_family(sid, ObligationRole.POST), blind=blind)
            k(F_UNIT(), self._havoc(env, modified), after)

        self._guarded(walk_body)
        self._guarded(walk_after)

    def _loop_pre(self, sid: str, invariant: Invariant, seq: Formula, elem: Sort,
                  env: StateEnv, ctx: _Ctx) -> None:
        goal = self._apply(sid, lambda: derivation.loop_pre(invariant, seq, elem, env.view()))
        self._emit(ctx.at(sid, "pre"), goal, ObligationRole.PRE, sid)

    def _loop_step(self, c: Computation, sid: str, invariant: Invariant, seq: Formula, elem: Sort,
                   modified: Set[str], path: tuple, env: StateEnv, ctx: _Ctx,
                   k: Continuation) -> None:
        havoc = self._havoc(env, modified)
        prefix = self._fresh("prefix", list_sort(elem))
        head = self._fresh(c.var or "x", elem)
        rest = self._fresh("rest", list_sort(elem))
        cursor, law = derivation.step_cursor(prefix, head, rest, seq, elem)
        hyp = self._apply(sid, lambda: derivation.loop_step_hypothesis(invariant, cursor, havoc.view()))
        depth = havoc.depth

        def emit_step(env_end: StateEnv, ctx_end: _Ctx) -> None:
            goal = self._apply(
                sid, lambda: derivation.loop_step_goal(invariant, cursor, env_end.truncate(depth).view()),
            )
            self._emit(ctx_end, goal, ObligationRole.STEP, sid)

        def on_break(env_b: StateEnv, ctx_b: _Ctx) -> None:
            after = replace(ctx_b, frames=ctx.frames).in_family(sid, ObligationRole.EXIT)
            k(F_UNIT(), env_b.truncate(depth), after)

        frame = _LoopFrame(site=sid, depth=depth, on_break=on_break, on_continue=emit_step)
        step_ctx = ctx.at(sid, "step").assume(law, hyp).enter(frame)
        body_env = havoc.push()
        if c.var:
            body_env = body_env.bind(c.var, head, elem)
        self._exec(
            c.children[0], path + (0,), body_env, step_ctx,
            lambda _r, env_end, ctx_end: emit_step(env_end, ctx_end),
        )

    def _loop_post(self, sid: str, invariant: Invariant, seq: Formula, elem: Sort,
                   modified: Set[str], env: StateEnv, ctx: _Ctx, k: Continuation) -> None:
        havoc = self._havoc(env, modified)
        hyp = self._apply(sid, lambda: derivation.loop_post(invariant, seq, elem, havoc.view()))
        k(F_UNIT(), havoc, ctx.at(sid, "post").assume(hyp).in_family(sid, ObligationRole.POST))

    def _exec_return(self, c: Computation, path: tuple, env: StateEnv, ctx: _Ctx, k: Continuation) -> None:
        pos = position(path)
        value, _ = self._eval(c.value, path, env, "return")
        self._check_result(value, pos)
        role, site = self._exit_site(ctx)
        goal = self.goal.post.for_result(value, env.truncate(1).view())
        self._emit(ctx.at(f"return@{pos}"), goal, role, site)

    def _exec_break(self, c: Computation, path: tuple, env: StateEnv, ctx: _Ctx, k: Continuation) -> None:
        pos = position(path)
        if not ctx.frames:
            raise _PathAbort(unsupported_construct(pos, "break", "break outside of a loop"))
        ctx.frames[-1].on_break(env, ctx.at(f"break@{pos}"))

    def _exec_continue(self, c: Computation, path: tuple, env: StateEnv, ctx: _Ctx, k: Continuation) -> None:
        pos = position(path)
        if not ctx.frames:
            raise _PathAbort(unsupported_construct(pos, "continue", "continue outside of a loop"))
        ctx.frames[-1].on_continue(env, ctx.at(f"continue@{pos}"))

    def _exec_throw(self, c: Computation, path: tuple, env: StateEnv, ctx: _Ctx, k: Continuation) -> None:
        pos = position(path)
        if Effect.EXCEPT not in self.goal.effect:
            raise _PathAbort(unsupported_construct(
                pos, "throw", "the goal's effect has no exceptions",
            ))
        value, sort = self._eval(c.value, path, env, "throw")
        if sort != self.goal.error_sort:
            raise _PathAbort(unsupported_construct(
                pos, "throw", f"exception has sort {sort}, goal expects {self.goal.error_sort}",
            ))
        _, site = self._exit_site(ctx)
        goal = self.goal.post.for_throw(value, env.truncate(1).view())
        self._emit(ctx.at(f"throw@{pos}"), goal, ObligationRole.THROW, site)

    def _exec_block(self, c: Computation, path: tuple, env: StateEnv, ctx: _Ctx, k: Continuation) -> None:
        inner = env.push()
        for name, init in c.decls:
            value, sort = self._eval(init, path, inner, "declaration")
            inner = inner.bind(name, value, sort, mutable=True)
        self._exec(
            c.children[0], path + (0,), inner, ctx,
            lambda r, env2, ctx2: k(r, env2.truncate(env.depth), ctx2),
        )

    def _exec_opaque(self, c: Computation, path: tuple, env: StateEnv, ctx: _Ctx, k: Continuation) -> None:
        raise _PathAbort(unsupported_construct(
            position(path), "action", f"'{c.var}' has no description the engine can reason about",
        ))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def generate(
    goal: Goal,
    invariants: Optional[Mapping[str, Any]] = None,
    config: Optional[VCGenConfig] = None,
) -> ObligationSet:
    """Decompose ``goal`` into labeled, simplified proof obligations.

    ``invariants`` maps loop site ids to invariants. An InvariantMap built
    for this goal has already been checked; any other mapping is checked
    here, with rejected entries reported alongside the other errors.

    Raises GenerationError carrying every error found and the obligations
    sibling sites still produced.
    """
    if isinstance(invariants, InvariantMap) and invariants.goal is goal:
        imap, rejected = invariants, []
    else:
        imap, rejected = InvariantMap.collect(goal, invariants or {})
    engine = VCEngine(goal, imap, config, rejected=rejected)
    obligations = engine.run()
    if engine.errors:
        raise GenerationError(engine.errors, partial=obligations)
    return obligations
