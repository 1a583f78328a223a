"""Ancestor, consanguinity and connectivity analysis.

Pedigrees are small (tens to low hundreds of vertices), so every query here
recomputes from scratch over the whole store.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from pedigree_layout.errors import ErrorKind, PedigreeInvariantError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .store import GraphStore

logger = structlog.get_logger(__name__)


@dataclass
class AncestryResult:
    """Ancestor sets for persons and relationships, plus consanguineous relationships."""
    ancestors: dict[int, set[int]] = field(default_factory=dict)
    consangr: set[int] = field(default_factory=set)

    def is_ancestor(self, ancestor: int, of: int) -> bool:
        return ancestor in self.ancestors.get(of, set())


def compute_ancestors(store: GraphStore) -> dict[int, set[int]]:
    """Ancestor-id sets for every person and relationship.

    A person's ancestors are the partners of its producing relationship plus
    their ancestors. A relationship's ancestors are its partners plus theirs.
    Only person ids appear in the sets.
    """
    ancestors: dict[int, set[int]] = {}
    visiting: set[int] = set()

    def of_person(person: int) -> set[int]:
        if person in ancestors:
            return ancestors[person]
        if person in visiting:
            raise PedigreeInvariantError(
                kind=ErrorKind.ANCESTRY_CYCLE, message="person is its own ancestor", vertex_id=person
            )
        visiting.add(person)
        result: set[int] = set()
        rel = store.get_producing_relationship(person)
        if rel is not None:
            result = set(of_relationship(rel))
        visiting.discard(person)
        ancestors[person] = result
        return result

    def of_relationship(rel: int) -> set[int]:
        if rel in ancestors:
            return ancestors[rel]
        result: set[int] = set()
        for parent in store.get_parents(rel):
            result.add(parent)
            result |= of_person(parent)
        ancestors[rel] = result
        return result

    for v in store:
        if store.is_person(v):
            of_person(v)
        elif store.is_relationship(v):
            of_relationship(v)
    return ancestors


def compute_consanguinity(store: GraphStore, ancestors: dict[int, set[int]]) -> set[int]:
    """Relationships whose two partners share at least one ancestor."""
    consangr: set[int] = set()
    for rel in store.relationships():
        parents = store.get_parents(rel)
        if len(parents) != 2:
            continue
        if ancestors.get(parents[0], set()) & ancestors.get(parents[1], set()):
            consangr.add(rel)
    return consangr


def find_all_ancestors(store: GraphStore) -> AncestryResult:
    ancestors = compute_ancestors(store)
    consangr = compute_consanguinity(store, ancestors)
    logger.debug("ancestry.computed", vertices=len(ancestors), consanguineous=sorted(consangr))
    return AncestryResult(ancestors=ancestors, consangr=consangr)


def removal_closure(store: GraphStore, targets: Iterable[int]) -> set[int]:
    """Expand a removal request to the vertices that go with it.

    Removing a person also removes its own relationships and, when it is the
    only child, the relationship that produced it. Every removed relationship
    takes its childhub along.
    """
    removed = set(targets)
    for v in list(removed):
        if not store.is_person(v):
            continue
        in_edges = store.get_in_edges(v)
        if in_edges and len(store.get_out_edges(in_edges[0])) == 1:
            removed.add(store.get_in_edges(in_edges[0])[0])
        removed.update(store.get_all_relationships(v))
    for v in list(removed):
        if store.is_relationship(v):
            removed.add(store.get_relationship_childhub(v))
    return removed


def reachable_if_removed(store: GraphStore, targets: int | Iterable[int], proband: int = 0) -> list[int]:
    """Persons and relationships that would be cut off from the proband.

    The removed vertices themselves are part of the answer, since they are
    no longer reachable either.
    """
    if isinstance(targets, int):
        targets = [targets]
    removed = removal_closure(store, targets)

    connected: set[int] = set()
    queue: deque[int] = deque()
    if proband in store and proband not in removed:
        queue.append(proband)
    while queue:
        v = queue.popleft()
        if v in connected:
            continue
        connected.add(v)
        for u in store.get_out_edges(v) + store.get_in_edges(v):
            if u not in removed and u not in connected:
                queue.append(u)

    return [v for v in store.real_vertices() if v not in connected]


def has_ancestry_cycle(store: GraphStore) -> bool:
    """True if following parent-to-child edges ever leads back to the start."""
    in_degree = {v: len(store.get_in_edges(v)) for v in store}
    queue = deque(v for v, degree in in_degree.items() if degree == 0)
    seen = 0
    while queue:
        v = queue.popleft()
        seen += 1
        for w in store.get_out_edges(v):
            in_degree[w] -= 1
            if in_degree[w] == 0:
                queue.append(w)
    return seen != len(in_degree)
