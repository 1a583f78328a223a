"""Error kinds raised by the layout engine.

Two families exist:

- ``PedigreeInvariantError`` is fatal. It signals a caller or programming bug
  (wrong vertex kind, disconnected insertion, malformed graph found by
  ``validate()``). Mutations are aborted and rolled back.
- ``PedigreeImportError`` is recoverable. Bad abstract input or a rebuild that
  cannot produce a layout; the live layout is left untouched.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of failure kinds."""

    # Fatal
    NOT_A_PERSON = "not_a_person"
    NOT_A_RELATIONSHIP = "not_a_relationship"
    NOT_A_CHILDHUB = "not_a_childhub"
    DISCONNECTED_INSERTION = "disconnected_insertion"
    AMBIGUOUS_INSERTION = "ambiguous_insertion"
    INVALID_TWIN_INSERTION = "invalid_twin_insertion"
    ALREADY_HAS_PARENTS = "already_has_parents"
    ALREADY_PARTNERS = "already_partners"
    SAME_PERSON = "same_person"
    ANCESTRY_CYCLE = "ancestry_cycle"
    INVALID_MULTI_RANK_EDGE = "invalid_multi_rank_edge"
    UNKNOWN_VERTEX = "unknown_vertex"
    VERTEX_IN_USE = "vertex_in_use"
    INCONSISTENT_GRAPH = "inconsistent_graph"
    INVALID_PROPERTIES = "invalid_properties"
    INVALID_GENDER = "invalid_gender"

    # Recoverable
    BAD_IMPORT = "bad_import"
    EMPTY_IMPORT = "empty_import"
    LAYOUT_FAILED = "layout_failed"


@dataclass
class PedigreeInvariantError(Exception):
    """Raised when an operation would break (or found broken) a graph invariant."""

    kind: ErrorKind
    message: str
    vertex_id: int | None = None

    def __str__(self) -> str:
        base = f"{self.kind.value}: {self.message}"
        if self.vertex_id is not None:
            base += f" (vertex {self.vertex_id})"
        return base


@dataclass
class PedigreeImportError(Exception):
    """Raised when an abstract graph cannot be turned into a layout."""

    kind: ErrorKind
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"
