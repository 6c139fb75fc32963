"""Structured error objects for the vcgen engine.

Every error is machine-readable: each one names the offending site (a loop
site id or a node position) and carries enough detail to fix the input.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from vcgen.obligations import ObligationSet


class ErrorKind(Enum):
    MISSING_INVARIANT = "missing_invariant"
    TYPE_MISMATCH_INVARIANT = "type_mismatch_invariant"
    UNSUPPORTED_CONSTRUCT = "unsupported_construct"
    MALFORMED_CURSOR_USE = "malformed_cursor_use"


@dataclass
class VCError:
    kind: ErrorKind
    message: str
    site: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> tuple[ErrorKind, str]:
        return (self.kind, self.site)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "kind": self.kind.value,
            "message": self.message,
        }
        if self.site:
            d["site"] = self.site
        if self.details:
            d["details"] = self.details
        return d

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def __str__(self) -> str:
        loc = f" at {self.site}" if self.site else ""
        return f"[{self.kind.value}]{loc}: {self.message}"


def missing_invariant(site: str, live: Optional[dict[str, str]] = None) -> VCError:
    details: dict[str, Any] = {"site": site}
    if live:
        details["live_bindings"] = live
    return VCError(
        kind=ErrorKind.MISSING_INVARIANT,
        message=f"No invariant attached to loop site '{site}'",
        site=site,
        details=details,
    )


def type_mismatch_invariant(
    site: str,
    reason: str,
    expected: str = "Bool",
    actual: Optional[str] = None,
) -> VCError:
    details: dict[str, Any] = {"reason": reason, "expected_type": expected}
    if actual is not None:
        details["actual_type"] = actual
    return VCError(
        kind=ErrorKind.TYPE_MISMATCH_INVARIANT,
        message=f"Invariant for '{site}' rejected: {reason}",
        site=site,
        details=details,
    )


def unsupported_construct(node: str, construct: str, reason: str) -> VCError:
    return VCError(
        kind=ErrorKind.UNSUPPORTED_CONSTRUCT,
        message=f"Unsupported {construct} at node {node}: {reason}",
        site=node,
        details={"node": node, "construct": construct, "reason": reason},
    )


def malformed_cursor_use(site: str, reason: str) -> VCError:
    return VCError(
        kind=ErrorKind.MALFORMED_CURSOR_USE,
        message=f"Malformed cursor use at '{site}': {reason}",
        site=site,
        details={"reason": reason},
    )


class GenerationError(Exception):
    """Exception wrapping one or more VCErrors.

    ``partial`` holds the obligations that sibling sites still produced.
    """

    def __init__(self, errors: list[VCError] | VCError,
                 partial: Optional["ObligationSet"] = None):
        if isinstance(errors, VCError):
            errors = [errors]
        self.errors = errors
        self.partial = partial
        super().__init__(self._format())

    def _format(self) -> str:
        return "\n".join(str(e) for e in self.errors)

    def kinds(self) -> list[ErrorKind]:
        return [e.kind for e in self.errors]

    def sites(self, kind: Optional[ErrorKind] = None) -> list[str]:
        return [e.site for e in self.errors if kind is None or e.kind == kind]

    def to_json(self, indent: int = 2) -> str:
        return json.dumps([e.to_dict() for e in self.errors], indent=indent)
