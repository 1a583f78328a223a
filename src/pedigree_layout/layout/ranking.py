"""Rank (generation row) assignment.

Persons sit on odd rows, two rows per generation, with rank 0 left empty so
that a generation can later be inserted above the current top:

    person rank        = 2 * generation + 1
    relationship rank  = rank of its lowest (largest-rank) partner
    childhub rank      = relationship rank + 1
    child rank         = childhub rank + 1

A partner sitting higher than its relationship is connected through a chain
of virtual edge segments, one per intermediate rank.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from pedigree_layout.errors import ErrorKind, PedigreeInvariantError
from pedigree_layout.graph import VertexKind

if TYPE_CHECKING:
    from pedigree_layout.graph import GraphStore

logger = structlog.get_logger(__name__)


def _generations(store: GraphStore) -> dict[int, int]:
    """Longest-path generation numbers; founders start at 0."""
    persons = store.persons()
    generation: dict[int, int] = {}
    pending = list(persons)
    for _ in range(len(persons) + 1):
        if not pending:
            break
        still_pending = []
        for p in pending:
            rel = store.get_producing_relationship(p)
            if rel is None:
                generation[p] = 0
                continue
            parents = store.get_parents(rel)
            if all(q in generation for q in parents):
                generation[p] = max(generation[q] for q in parents) + 1
            else:
                still_pending.append(p)
        pending = still_pending
    if pending:
        raise PedigreeInvariantError(
            kind=ErrorKind.ANCESTRY_CYCLE, message="generations cannot be assigned", vertex_id=pending[0]
        )
    return generation


def _pull_down_founders(store: GraphStore, generation: dict[int, int]) -> None:
    """Move parentless persons down to their deepest partner without breaching their children."""
    for _ in range(len(generation) + 1):
        changed = False
        for p, gen in generation.items():
            if store.get_in_edges(p):
                continue
            partners = store.get_all_partners(p)
            if not partners:
                continue
            target = max(generation[q] for q in partners)
            children = [c for rel in store.get_all_relationships(p) for c in store.get_children(rel)]
            if children:
                target = min(target, min(generation[c] for c in children) - 1)
            if target > gen:
                generation[p] = target
                changed = True
        if not changed:
            break


def assign_ranks(store: GraphStore) -> dict[int, int]:
    """Ranks for every vertex of a graph without virtual segments."""
    generation = _generations(store)
    _pull_down_founders(store, generation)

    lowest = min(generation.values(), default=0)
    ranks: dict[int, int] = {p: 2 * (g - lowest) + 1 for p, g in generation.items()}
    for rel in store.relationships():
        ranks[rel] = max(ranks[q] for q in store.get_parents(rel))
        ranks[store.get_relationship_childhub(rel)] = ranks[rel] + 1

    for v in store:
        if v not in ranks:
            raise PedigreeInvariantError(
                kind=ErrorKind.INCONSISTENT_GRAPH, message="vertex could not be ranked", vertex_id=v
            )
    logger.debug("layout.ranked", vertices=len(ranks), max_rank=max(ranks.values(), default=0))
    return ranks


def insert_virtual_chains(store: GraphStore, ranks: dict[int, int]) -> list[int]:
    """Replace every multi-rank partner edge with a chain of virtual segments.

    The chain runs person(rp) -> v(rp+1) -> ... -> v(rr) -> relationship(rr).
    ``ranks`` is updated in place; the new segment ids are returned.
    """
    created: list[int] = []
    for rel in store.relationships():
        for u in store.get_in_edges(rel):
            if not store.is_person(u) or ranks[u] >= ranks[rel]:
                continue
            weight = store.get_edge_weight(u, rel)
            prev = u
            for rank in range(ranks[u] + 1, ranks[rel] + 1):
                segment = store.insert_vertex(VertexKind.VIRTUAL_EDGE, edge_weight=weight, in_edges=[prev])
                ranks[segment] = rank
                created.append(segment)
                prev = segment
            store.replace_in_edge(rel, u, prev)
    return created
