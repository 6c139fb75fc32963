"""vcgen — verification-condition generator for effectful loop programs"""

__version__ = "0.1.0"

from vcgen.cursor import Cursor, CursorError, SymbolicCursor
from vcgen.engine import VCEngine, generate
from vcgen.errors import ErrorKind, GenerationError, VCError
from vcgen.obligations import Label, Obligation, ObligationRole, ObligationSet, ObligationStatus
from vcgen.program import Computation, Effect, Tag
from vcgen.simplify import Simplifier
from vcgen.specs import Goal, Invariant, InvariantMap, Post, StateView
