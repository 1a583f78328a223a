"""Within-rank ordering.

``Ordering`` is the per-rank left-to-right sequence plus its reverse map.
``order_vertices`` builds one for a ranked graph: a handful of DFS-based
initial orders followed by bounded barycenter sweeps. It is a local-search
heuristic and makes no claim of minimal crossings.
"""
from __future__ import annotations

import copy
from collections.abc import Sequence
from typing import TYPE_CHECKING

import structlog

from pedigree_layout.errors import ErrorKind, PedigreeInvariantError

if TYPE_CHECKING:
    from pedigree_layout.config import LayoutConfig
    from pedigree_layout.graph import GraphStore

logger = structlog.get_logger(__name__)


class Ordering:
    """Per-rank vertex sequences with an id -> (rank, index) reverse map."""

    def __init__(self, order: Sequence[Sequence[int]] | None = None) -> None:
        self.order: list[list[int]] = [list(r) for r in order] if order else []
        self.v_order: dict[int, int] = {}
        self._v_rank: dict[int, int] = {}
        for rank in range(len(self.order)):
            self._reindex(rank)

    def __contains__(self, v: object) -> bool:
        return v in self.v_order

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Ordering):
            return NotImplemented
        return self.order == other.order

    __hash__ = None  # type: ignore[assignment]

    @property
    def num_ranks(self) -> int:
        return len(self.order)

    def rank_of(self, v: int) -> int:
        return self._v_rank[v]

    def index(self, v: int) -> int:
        return self.v_order[v]

    def rank(self, rank: int) -> list[int]:
        return self.order[rank] if 0 <= rank < len(self.order) else []

    def _reindex(self, rank: int, start: int = 0) -> None:
        row = self.order[rank]
        for i in range(start, len(row)):
            self.v_order[row[i]] = i
            self._v_rank[row[i]] = rank

    def ensure_rank(self, rank: int) -> None:
        while len(self.order) <= rank:
            self.order.append([])

    def insert(self, v: int, rank: int, index: int) -> None:
        if v in self.v_order:
            raise PedigreeInvariantError(
                kind=ErrorKind.VERTEX_IN_USE, message="vertex is already ordered", vertex_id=v
            )
        self.ensure_rank(rank)
        row = self.order[rank]
        index = max(0, min(index, len(row)))
        row.insert(index, v)
        self._reindex(rank, index)

    def remove(self, v: int) -> None:
        rank = self._v_rank.pop(v)
        index = self.v_order.pop(v)
        del self.order[rank][index]
        self._reindex(rank, index)

    def move(self, v: int, index: int) -> None:
        """Move ``v`` to ``index`` on its own rank (index counted after removal)."""
        rank = self._v_rank[v]
        self.remove(v)
        self.insert(v, rank, index)

    def swap(self, u: int, v: int) -> None:
        rank = self._v_rank[u]
        if self._v_rank[v] != rank:
            raise PedigreeInvariantError(
                kind=ErrorKind.INCONSISTENT_GRAPH, message="can only swap vertices on the same rank", vertex_id=u
            )
        iu, iv = self.v_order[u], self.v_order[v]
        row = self.order[rank]
        row[iu], row[iv] = v, u
        self.v_order[u], self.v_order[v] = iv, iu

    def insert_rank(self, rank: int) -> None:
        """Insert an empty rank; ranks at or below ``rank`` shift down by one."""
        self.order.insert(rank, [])
        for r in range(rank + 1, len(self.order)):
            self._reindex(r)

    def set_rank(self, rank: int, vertices: Sequence[int]) -> None:
        self.ensure_rank(rank)
        self.order[rank] = list(vertices)
        self._reindex(rank)

    def trim_trailing_empty_ranks(self) -> None:
        while len(self.order) > 1 and not self.order[-1]:
            self.order.pop()

    def check(self) -> None:
        seen = 0
        for rank, row in enumerate(self.order):
            for i, v in enumerate(row):
                if self.v_order.get(v) != i or self._v_rank.get(v) != rank:
                    raise PedigreeInvariantError(
                        kind=ErrorKind.INCONSISTENT_GRAPH, message="order reverse map out of sync", vertex_id=v
                    )
                seen += 1
        if seen != len(self.v_order):
            raise PedigreeInvariantError(kind=ErrorKind.INCONSISTENT_GRAPH, message="order reverse map has stale ids")

    def serialize(self) -> list[list[int]]:
        return [list(row) for row in self.order]

    @classmethod
    def deserialize(cls, data: Sequence[Sequence[int]]) -> Ordering:
        return cls(data)

    def copy(self) -> Ordering:
        return copy.deepcopy(self)


# ----------------------------------------------------------------------
# Crossing count
# ----------------------------------------------------------------------


def _edges(store: GraphStore) -> list[tuple[int, int]]:
    return [(u, w) for u in store for w in store.get_out_edges(u)]


def count_crossings(store: GraphStore, ranks: dict[int, int], ordering: Ordering) -> int:
    """Crossings between adjacent ranks plus same-rank edges passing over each other.

    A same-rank edge that jumps over a person counts as one crossing too, since
    the partnership line is drawn through that person.
    """
    between: dict[int, list[tuple[int, int]]] = {}
    same: dict[int, list[tuple[int, int]]] = {}
    for u, w in _edges(store):
        ru, rw = ranks[u], ranks[w]
        if ru == rw:
            a, b = sorted((ordering.v_order[u], ordering.v_order[w]))
            same.setdefault(ru, []).append((a, b))
        else:
            top, bottom = (u, w) if ru < rw else (w, u)
            between.setdefault(min(ru, rw), []).append(
                (ordering.v_order[top], ordering.v_order[bottom])
            )

    crossings = 0
    for edges in between.values():
        for i in range(len(edges)):
            a1, b1 = edges[i]
            for j in range(i + 1, len(edges)):
                a2, b2 = edges[j]
                if (a1 - a2) * (b1 - b2) < 0:
                    crossings += 1

    for rank, spans in same.items():
        row = ordering.rank(rank)
        for i, (a1, b1) in enumerate(spans):
            crossings += sum(1 for k in range(a1 + 1, b1) if store.is_person(row[k]))
            for a2, b2 in spans[i + 1:]:
                if a1 < a2 < b1 < b2 or a2 < a1 < b2 < b1:
                    crossings += 1
    return crossings


# ----------------------------------------------------------------------
# Initial orders
# ----------------------------------------------------------------------


class _InitialOrder:
    """DFS placement that keeps [partner, relationship, partner] clusters together."""

    def __init__(self, store: GraphStore, ranks: dict[int, int], num_ranks: int, key) -> None:
        self.store = store
        self.ranks = ranks
        self.key = key
        self.rows: list[list[int]] = [[] for _ in range(num_ranks)]
        self.placed: set[int] = set()

    def _row(self, v: int) -> list[int]:
        return self.rows[self.ranks[v]]

    def _append(self, v: int) -> None:
        self._row(v).append(v)
        self.placed.add(v)

    def _insert_next_to(self, v: int, anchor: int, left: bool) -> None:
        row = self._row(v)
        row.insert(row.index(anchor) + (0 if left else 1), v)
        self.placed.add(v)

    def _same_rank_relationships(self, person: int) -> list[int]:
        return [
            w for w in self.store.get_out_edges(person)
            if self.store.is_relationship(w) and self.ranks[w] == self.ranks[person]
        ]

    def _grow(self, person: int, direction: int, placed: list[int]) -> None:
        """Lay out the same-rank relationships of ``person`` beside it.

        ``direction`` 1 grows to the right, -1 to the left, 0 puts the first
        relationship on the right and the second on the left.
        """
        sides = 0
        for rel in self._same_rank_relationships(person):
            if rel in self.placed:
                continue
            left = direction == -1 or (direction == 0 and sides == 1)
            sides += 1
            self._insert_next_to(rel, person, left)
            placed.append(rel)
            anchor = rel
            for u in self.store.get_in_edges(rel):
                if u == person or u in self.placed or self.ranks[u] != self.ranks[rel]:
                    continue
                self._insert_next_to(u, anchor, left)
                placed.append(u)
                anchor = u
                if self.store.is_person(u):
                    self._grow(u, -1 if left else 1, placed)

    def _place(self, v: int) -> list[int]:
        self._append(v)
        placed = [v]
        if self.store.is_person(v):
            self._grow(v, 0, placed)
        return placed

    def _neighbours(self, v: int) -> list[int]:
        ups = sorted(self.store.get_in_edges(v), key=self.key)
        downs = sorted(self.store.get_out_edges(v), key=self.key)
        return ups + downs

    def run(self, roots: list[int], reverse: bool = False) -> list[list[int]]:
        for root in roots:
            stack = [root]
            while stack:
                v = stack.pop()
                if v in self.placed:
                    continue
                for w in reversed(self._place(v)):
                    neighbours = [u for u in self._neighbours(w) if u not in self.placed]
                    if not reverse:
                        neighbours.reverse()
                    stack.extend(neighbours)
        for v in self.store:
            if v not in self.placed:
                self._append(v)
        return self.rows


def _hint_key(suggested_order: Sequence[Sequence[int]] | None):
    hint: dict[int, tuple[int, int]] = {}
    for r, row in enumerate(suggested_order or []):
        for i, v in enumerate(row):
            hint[v] = (r, i)

    def key(v: int) -> tuple[int, int, int]:
        r, i = hint.get(v, (len(hint) + 1, 0))
        return (r, i, v)

    return key


def _initial_orders(
    store: GraphStore,
    ranks: dict[int, int],
    num_ranks: int,
    max_buckets: int,
    suggested_order: Sequence[Sequence[int]] | None,
    proband: int,
) -> list[list[list[int]]]:
    key = _hint_key(suggested_order)
    founders = sorted((v for v in store.persons() if not store.get_in_edges(v)), key=key)
    by_rank = sorted(store, key=lambda v: (ranks[v], key(v)))

    candidates: list[tuple[list[int], bool]] = [
        (founders, False),
        ([proband] if proband in store else [], False),
        (by_rank, False),
        (founders, True),
        (list(reversed(founders)), False),
    ]
    orders = []
    for roots, reverse in candidates[:max(1, max_buckets)]:
        orders.append(_InitialOrder(store, ranks, num_ranks, key).run(roots, reverse))
    return orders


# ----------------------------------------------------------------------
# Barycenter sweeps
# ----------------------------------------------------------------------


def _same_rank_clusters(store: GraphStore, ranks: dict[int, int], row: list[int]) -> list[list[int]]:
    """Connected components of same-rank edges, in current row order."""
    parent = {v: v for v in row}

    def find(v: int) -> int:
        while parent[v] != v:
            parent[v] = parent[parent[v]]
            v = parent[v]
        return v

    for v in row:
        for w in store.get_out_edges(v):
            if w in parent:
                parent[find(v)] = find(w)

    clusters: dict[int, list[int]] = {}
    for v in row:
        clusters.setdefault(find(v), []).append(v)
    return list(clusters.values())


def _sweep_rank(
    store: GraphStore,
    ranks: dict[int, int],
    ordering: Ordering,
    rank: int,
    adjacent: int,
) -> None:
    row = ordering.rank(rank)
    if len(row) < 2:
        return
    other = ordering.rank(adjacent)
    scale = len(other) / len(row) if row else 1.0

    def barycenter(cluster: list[int]) -> float:
        values = []
        for v in cluster:
            for u in store.get_in_edges(v) + store.get_out_edges(v):
                if ranks[u] == adjacent:
                    values.append(ordering.v_order[u])
        if values:
            return sum(values) / len(values)
        return scale * sum(ordering.v_order[v] for v in cluster) / len(cluster)

    clusters = _same_rank_clusters(store, ranks, row)
    clusters.sort(key=barycenter)
    ordering.set_rank(rank, [v for cluster in clusters for v in cluster])


def gather_twins(store: GraphStore, ordering: Ordering) -> None:
    """Move members of each twin group next to the leftmost member."""
    done: set[int] = set()
    for rank in range(ordering.num_ranks):
        for v in list(ordering.rank(rank)):
            if v in done or store.get_twin_group_id(v) is None:
                continue
            twins = sorted(store.get_twins(v), key=ordering.index)
            done.update(twins)
            anchor = twins[0]
            for twin in twins[1:]:
                ordering.move(twin, ordering.index(anchor) + 1)
                anchor = twin


def order_vertices(
    store: GraphStore,
    ranks: dict[int, int],
    config: LayoutConfig,
    suggested_order: Sequence[Sequence[int]] | None = None,
    proband: int = 0,
) -> Ordering:
    """Pick the best of several initial orders, then improve it by barycenter sweeps."""
    num_ranks = max(ranks.values(), default=0) + 1

    first, *rest = _initial_orders(
        store, ranks, num_ranks, config.max_init_ordering_buckets, suggested_order, proband
    )
    best = Ordering(first)
    best_crossings = count_crossings(store, ranks, best)
    for rows in rest:
        candidate = Ordering(rows)
        crossings = count_crossings(store, ranks, candidate)
        if crossings < best_crossings:
            best, best_crossings = candidate, crossings

    current = best.copy()
    for iteration in range(config.max_ordering_iterations):
        if best_crossings == 0:
            break
        if iteration % 2 == 0:
            for rank in range(1, num_ranks):
                _sweep_rank(store, ranks, current, rank, rank - 1)
        else:
            for rank in range(num_ranks - 2, -1, -1):
                _sweep_rank(store, ranks, current, rank, rank + 1)
        crossings = count_crossings(store, ranks, current)
        if crossings < best_crossings:
            best, best_crossings = current.copy(), crossings

    gather_twins(store, best)
    logger.debug("layout.ordered", ranks=num_ranks, crossings=best_crossings)
    return best
