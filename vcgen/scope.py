"""Static scope analysis: which loop sites exist and what is live at each.

The specification language needs the live bindings of a site at the
moment an invariant is attached, before any obligation is generated, so
this pass walks a goal's computation once and records, for every FOR node,
its site id, position, element sort and the sorted names in scope.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Mapping, Optional, TYPE_CHECKING

from vcgen.errors import VCError, unsupported_construct
from vcgen.formula import Formula, Sort, SortError, UNIT, infer_sort
from vcgen.program import Computation, Tag, modified_vars, position, shape, site_id

if TYPE_CHECKING:
    from vcgen.specs import Goal


@dataclass(frozen=True)
class SiteInfo:
    site_id: str
    position: str
    binder: str
    seq: Formula
    elem_sort: Optional[Sort]
    live: Mapping[str, Sort]
    modified: FrozenSet[str]

    def live_summary(self) -> Dict[str, str]:
        return {name: str(sort) for name, sort in self.live.items()}


@dataclass
class SiteTable:
    sites: Dict[str, SiteInfo] = field(default_factory=dict)
    errors: List[VCError] = field(default_factory=list)

    def __contains__(self, site: str) -> bool:
        return site in self.sites

    def get(self, site: str) -> Optional[SiteInfo]:
        return self.sites.get(site)

    def by_position(self, pos: str) -> Optional[SiteInfo]:
        for info in self.sites.values():
            if info.position == pos:
                return info
        return None


def _sort_of(expr: Optional[Formula], scope: Mapping[str, Sort]) -> Optional[Sort]:
    # Ill-sorted and unbound expressions are reported by the engine.
    if expr is None:
        return None
    try:
        return infer_sort(expr, scope)
    except SortError:
        return None


class _ScopeWalker:

    def __init__(self) -> None:
        self.table = SiteTable()

    def walk(self, c: Computation, path: tuple, scope: Dict[str, Sort]) -> Optional[Sort]:
        """Record sites below ``c``; return the sort of its normal result."""
        tag, children = shape(c)
        if tag == Tag.PURE:
            return _sort_of(c.value, scope)
        if tag == Tag.BIND:
            first_sort = self.walk(children[0], path + (0,), scope)
            inner = dict(scope)
            if c.var and first_sort is not None:
                inner[c.var] = first_sort
            return self.walk(children[1], path + (1,), inner)
        if tag == Tag.GET:
            return scope.get(c.var)
        if tag == Tag.SET:
            return UNIT
        if tag == Tag.IF:
            then_sort = self.walk(children[0], path + (0,), scope)
            else_sort = self.walk(children[1], path + (1,), scope)
            return then_sort if then_sort is not None else else_sort
        if tag == Tag.FOR:
            self._record_site(c, path, scope)
            info = self.table.sites.get(site_id(c, path))
            inner = dict(scope)
            if info is not None and info.elem_sort is not None:
                inner[c.var] = info.elem_sort
            self.walk(children[0], path + (0,), inner)
            return UNIT
        if tag == Tag.BLOCK:
            inner = dict(scope)
            for name, init in c.decls:
                sort = _sort_of(init, inner)
                if sort is not None:
                    inner[name] = sort
            return self.walk(children[0], path + (0,), inner)
        # Exits and opaque actions never return normally.
        return None

    def _record_site(self, c: Computation, path: tuple, scope: Dict[str, Sort]) -> None:
        sid = site_id(c, path)
        pos = position(path)
        if sid in self.table.sites:
            self.table.errors.append(unsupported_construct(
                pos, "loop", f"duplicate loop site id '{sid}' "
                             f"(also at {self.table.sites[sid].position})",
            ))
            return
        seq_sort = _sort_of(c.seq, scope)
        elem = seq_sort.elem if seq_sort is not None and seq_sort.is_list else None
        self.table.sites[sid] = SiteInfo(
            site_id=sid,
            position=pos,
            binder=c.var,
            seq=c.seq,
            elem_sort=elem,
            live=dict(scope),
            modified=modified_vars(c.children[0]),
        )


def analyze(goal: "Goal") -> SiteTable:
    """Collect the loop sites of ``goal`` with their live bindings."""
    walker = _ScopeWalker()
    walker.walk(goal.computation, (), dict(goal.entry_scope()))
    return walker.table
