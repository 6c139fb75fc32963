"""vcgen Obligations — labeled proof obligations and their collection.

Every obligation carries a ``Label``:

    stable_id   structural path, stable across regeneration of the same
                goal; the only thing equality, hashing and lookup look at
    hint        free-form description of where the obligation came from

Stable ids are rendered with ``/`` between segments, e.g.
``sum/step/if@0.0.0.0:else``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from vcgen.formula import Formula, FormulaKind

StableId = Tuple[str, ...]


def parse_stable_id(key: Union[str, Sequence[str]]) -> StableId:
    if isinstance(key, str):
        return tuple(s for s in key.split("/") if s)
    return tuple(key)


@dataclass(frozen=True, eq=False)
class Label:
    stable_id: StableId
    hint: str = ""

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Label):
            return NotImplemented
        return self.stable_id == other.stable_id

    def __hash__(self) -> int:
        return hash(self.stable_id)

    def __str__(self) -> str:
        return "/".join(self.stable_id)


class ObligationRole(str, Enum):
    """Which part of the derivation an obligation belongs to."""
    PRE = "pre"            # invariant holds before the first iteration
    STEP = "step"          # invariant preserved by one iteration
    POST = "post"          # code after a completed loop establishes the goal
    EXIT = "exit"          # an early exit (return/break) establishes the goal
    THROW = "throw"        # a raised exception satisfies the exception post
    ENSURES = "ensures"    # loop-free path establishes the goal


class ObligationStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class Obligation:
    label: Label
    proposition: Formula
    role: ObligationRole
    site: Optional[str] = None
    simplified: Optional[Formula] = None

    @property
    def stable_id(self) -> StableId:
        return self.label.stable_id

    @property
    def current(self) -> Formula:
        """The simplified proposition if the leave step ran, else the raw one."""
        return self.simplified if self.simplified is not None else self.proposition

    @property
    def status(self) -> ObligationStatus:
        if self.current.kind == FormulaKind.TRUE:
            return ObligationStatus.CLOSED
        return ObligationStatus.OPEN

    @property
    def closed(self) -> bool:
        return self.status == ObligationStatus.CLOSED

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": str(self.label),
            "hint": self.label.hint,
            "role": self.role.value,
            "site": self.site,
            "proposition": str(self.proposition),
            "status": self.status.value,
        }
        if self.simplified is not None:
            d["simplified"] = str(self.simplified)
        return d

    def __str__(self) -> str:
        return f"[{self.label}] {self.current}"


@dataclass
class ObligationSet:
    """Ordered collection of obligations produced by one generation call."""
    obligations: List[Obligation] = field(default_factory=list)
    goal_name: str = ""

    def add(self, obligation: Obligation) -> None:
        self.obligations.append(obligation)

    def __iter__(self) -> Iterator[Obligation]:
        return iter(self.obligations)

    def __len__(self) -> int:
        return len(self.obligations)

    def __getitem__(self, key: Union[str, Sequence[str]]) -> Obligation:
        sid = parse_stable_id(key)
        for o in self.obligations:
            if o.stable_id == sid:
                return o
        raise KeyError("/".join(sid))

    def __contains__(self, key: object) -> bool:
        if isinstance(key, Label):
            key = key.stable_id
        if not isinstance(key, (str, tuple, list)):
            return False
        sid = parse_stable_id(key)
        return any(o.stable_id == sid for o in self.obligations)

    def get(self, key: Union[str, Sequence[str]]) -> Optional[Obligation]:
        try:
            return self[key]
        except KeyError:
            return None

    @property
    def labels(self) -> List[Label]:
        return [o.label for o in self.obligations]

    def select(self, prefix: Union[str, Sequence[str]]) -> List[Obligation]:
        """Obligations whose stable id starts with ``prefix``."""
        p = parse_stable_id(prefix)
        return [o for o in self.obligations if o.stable_id[:len(p)] == p]

    def family(self, site: Optional[str], role: ObligationRole) -> List[Obligation]:
        return [o for o in self.obligations if o.site == site and o.role == role]

    def for_site(self, site: str) -> List[Obligation]:
        return [o for o in self.obligations if o.site == site]

    def open(self) -> List[Obligation]:
        return [o for o in self.obligations if not o.closed]

    def closed(self) -> List[Obligation]:
        return [o for o in self.obligations if o.closed]

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "goal": self.goal_name,
            "summary": {
                "total": len(self.obligations),
                "open": len(self.open()),
                "closed": len(self.closed()),
            },
            "obligations": [o.to_dict() for o in self.obligations],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def to_ascii_table(self) -> str:
        """Render a compact ASCII table of all obligations."""
        if not self.obligations:
            return "  (no obligations)\n"

        id_w = max(10, max(len(str(o.label)) for o in self.obligations))
        col_w = {"id": id_w, "role": 8, "status": 7}
        header = (
            f"  {'Obligation':<{col_w['id']}} "
            f"{'Role':<{col_w['role']}} "
            f"{'Status':<{col_w['status']}} Proposition"
        )
        sep = "  " + "-" * (sum(col_w.values()) + 3 + 40)
        rows = [header, sep]
        for o in self.obligations:
            rows.append(
                f"  {str(o.label):<{col_w['id']}} "
                f"{o.role.value:<{col_w['role']}} "
                f"{o.status.value:<{col_w['status']}} {o.current}"
            )
        rows.append(sep)
        rows.append(
            f"  {len(self.obligations)} obligations, "
            f"{len(self.closed())} closed by simplification, {len(self.open())} open"
        )
        return "\n".join(rows) + "\n"
