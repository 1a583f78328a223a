"""Insertion heuristics and local layout corrections.

These pick order positions for single-vertex insertions by counting the edge
crossings a future edge would introduce, and patch up common local mistakes
after a structural change. The penalty weights are empirically tuned; they
only matter relative to each other:

- 1 per crossed edge, 2 when the crossed edge is a same-rank partner line
- 100000 for slicing through a sibling group below a ChildHub
- 0.1 for landing between a person and its own relationship
- 1 / 0.25 for busy child rows below a candidate relationship slot
- 0.5 for the requested side when placing a relationship
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from pedigree_layout.errors import ErrorKind, PedigreeInvariantError

from .positioning import separation

if TYPE_CHECKING:
    from .positioned import PositionedLayout

logger = structlog.get_logger(__name__)

SAME_RANK_CROSSING = 2
SIBLING_SLICE_PENALTY = 100000
BETWEEN_PERSON_AND_RELATIONSHIP = 0.1
BUSY_BELOW = 1.0
BUSY_BELOW_NEIGHBOUR = 0.25
SIDE_PREFERENCE = 0.5

_EPS = 1e-6


@dataclass
class ChildrenInfo:
    """Summary of the children below a ChildHub, left to right."""
    ordered_children: list[int] = field(default_factory=list)
    left_most_child_order: int = -1
    right_most_child_order: int = -1
    left_most_has_left_partner: bool = False
    right_most_has_right_partner: bool = False
    num_with_partners: int = 0
    num_with_two_partners: int = 0


@dataclass
class PartnerSides:
    """Partners of a person split by the side their relationship sits on.

    ``anchors`` maps each partner to the order index used to compare it with
    candidate slots on the person's rank.
    """
    left: list[int] = field(default_factory=list)
    right: list[int] = field(default_factory=list)
    anchors: dict[int, int] = field(default_factory=dict)


class Heuristics:
    """Placement search and local corrections for one positioned layout."""

    def __init__(self, layout: PositionedLayout) -> None:
        self.layout = layout

    @property
    def store(self):
        return self.layout.store

    @property
    def ranks(self) -> dict[int, int]:
        return self.layout.ranks

    @property
    def order(self):
        return self.layout.order

    @property
    def positions(self) -> dict[int, float]:
        return self.layout.positions

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_all_twins_sorted_by_order(self, person: int) -> list[int]:
        return sorted(self.store.get_twins(person), key=self.order.index)

    def _side(self, person: int, rel: int) -> int:
        """-1 if the relationship is drawn left of the person, 1 otherwise."""
        if self.ranks[rel] == self.ranks[person]:
            return -1 if self.order.index(rel) < self.order.index(person) else 1
        return -1 if self.positions[rel] < self.positions[person] else 1

    def find_left_and_right_partners(self, person: int) -> PartnerSides:
        sides = PartnerSides()
        rank = self.ranks[person]
        for rel in self.store.get_all_relationships(person):
            side = self._side(person, rel)
            for partner in self.store.get_parents(rel):
                if partner == person:
                    continue
                (sides.left if side < 0 else sides.right).append(partner)
                if self.ranks[partner] == rank:
                    sides.anchors[partner] = self.order.index(partner)
                elif self.ranks[rel] == rank:
                    sides.anchors[partner] = self.order.index(rel)
                else:
                    sides.anchors[partner] = -1 if side < 0 else len(self.order.rank(rank))
        return sides

    def analyze_children(self, v: int) -> ChildrenInfo:
        """Children of a ChildHub (or of a Relationship's hub), left to right."""
        store = self.store
        if store.is_relationship(v):
            v = store.get_relationship_childhub(v)
        elif not store.is_childhub(v):
            raise PedigreeInvariantError(
                kind=ErrorKind.NOT_A_CHILDHUB, message="children analysis on a non-childhub", vertex_id=v
            )
        children = sorted(store.get_out_edges(v), key=self.order.index)
        info = ChildrenInfo(ordered_children=children)
        if not children:
            return info

        info.left_most_child_order = self.order.index(children[0])
        info.right_most_child_order = self.order.index(children[-1])
        for child in children:
            sides = {self._side(child, rel) for rel in store.get_all_relationships(child)}
            if sides:
                info.num_with_partners += 1
            if sides == {-1, 1}:
                info.num_with_two_partners += 1
            if child == children[0] and -1 in sides:
                info.left_most_has_left_partner = True
            if child == children[-1] and 1 in sides:
                info.right_most_has_right_partner = True
        return info

    def _splits_twins(self, row: list[int], o: int) -> bool:
        """True if inserting before index ``o`` would separate two twins."""
        if not 0 < o < len(row):
            return False
        store = self.store
        left = o - 1
        while left > 0 and store.is_virtual(row[left]):
            left -= 1
        right = o
        while right < len(row) - 1 and store.is_virtual(row[right]):
            right += 1
        a, b = row[left], row[right]
        if not (store.is_person(a) and store.is_person(b)):
            return False
        if store.get_producing_relationship(a) != store.get_producing_relationship(b):
            return False
        group = store.get_twin_group_id(a)
        return group is not None and group == store.get_twin_group_id(b)

    # ------------------------------------------------------------------
    # Insertion search
    # ------------------------------------------------------------------

    def best_insert_position(
        self,
        rank: int,
        edge_to: int,
        prefer_left: bool | None = None,
        from_order: int | None = None,
        to_order: int | None = None,
    ) -> int:
        """Order index on ``rank`` for a new vertex with one edge to ``edge_to``."""
        if rank == 0 or rank > self.layout.max_rank:
            return 0

        store = self.store
        edge_to_rank = self.ranks[edge_to]
        edge_to_order = self.order.index(edge_to)
        if edge_to_rank == rank and store.is_person(edge_to):
            return self.best_relationship_position(edge_to, bool(prefer_left))

        row = self.order.rank(rank)
        childhub_penalty = store.is_childhub(edge_to)

        desired = 0
        edge_to_x = self.positions[edge_to]
        for o, u in enumerate(row):
            if self.positions[u] < edge_to_x:
                desired = o + 1
            else:
                break
        if store.is_childhub(edge_to) and rank > edge_to_rank and store.get_out_edges(edge_to):
            desired = self.analyze_children(edge_to).right_most_child_order + 1

        lo = max(from_order, 0) if from_order is not None else 0
        hi = min(to_order, len(row)) if to_order is not None else len(row)

        best_order, best_crossings, best_distance = lo, math.inf, math.inf
        for o in range(lo, hi + 1):
            if self._splits_twins(row, o):
                continue
            crossings = self.edge_crossings_by_future_edge(
                rank, o - 0.5, edge_to_rank, edge_to_order, childhub_penalty, edge_to
            )
            distance = abs(o - desired)
            closer = distance < best_distance if prefer_left else distance <= best_distance
            if crossings < best_crossings or (crossings == best_crossings and closer):
                best_order, best_crossings, best_distance = o, crossings, distance
        return best_order

    def edge_crossings_by_future_edge(
        self,
        new_rank: int,
        new_order: float,
        existing_rank: int,
        existing_order: int,
        childhub_penalty: bool,
        existing_u: int,
    ) -> float:
        """Weighted crossings of a future edge from slot ``new_order`` to ``existing_u``.

        ``new_order`` lies between two existing indices (x.5) for a vertex that
        is not inserted yet.
        """
        store = self.store
        order = self.order

        rank_from = min(new_rank, existing_rank)
        rank_to = max(new_rank, existing_rank)
        if rank_from == rank_to:
            raise PedigreeInvariantError(
                kind=ErrorKind.INVALID_MULTI_RANK_EDGE,
                message="crossing estimate needs endpoints on different ranks",
                vertex_id=existing_u,
            )
        order_from = new_order if new_rank < existing_rank else existing_order
        order_to = existing_order if new_rank < existing_rank else new_order

        sibling_info: ChildrenInfo | None = None
        if store.is_childhub(existing_u) and new_rank > existing_rank and store.get_out_edges(existing_u):
            sibling_info = self.analyze_children(existing_u)
            if sibling_info.num_with_two_partners < len(sibling_info.ordered_children):
                # a new child must land next to one of its siblings
                row = order.rank(new_rank)
                ok = False
                if new_order > 0:
                    ok = store.get_in_edges(row[math.floor(new_order)]) == [existing_u]
                if not ok and new_order < len(row) - 1:
                    ok = store.get_in_edges(row[math.ceil(new_order)]) == [existing_u]
                if not ok:
                    return math.inf

        crossings = 0.0
        for o, vertex in enumerate(order.rank(rank_to)):
            if o == order_to:
                continue
            for target in store.get_in_edges(vertex):
                penalty = 1
                if childhub_penalty and store.is_childhub(target):
                    penalty = SIBLING_SLICE_PENALTY
                    if sibling_info is not None:
                        other = self.analyze_children(target)
                        if (
                            other.left_most_child_order < sibling_info.right_most_child_order
                            and other.right_most_child_order > sibling_info.left_most_child_order
                        ):
                            penalty = 1
                order_target = order.index(target)
                if self.ranks[target] == rank_to:
                    if o < order_to < order_target or order_target < order_to < o:
                        crossings += SAME_RANK_CROSSING
                elif (o < order_to and order_target > order_from) or (o > order_to and order_target < order_from):
                    crossings += penalty

        for o, vertex in enumerate(order.rank(new_rank)):
            if o == new_order:
                continue
            for target in store.get_out_edges(vertex):
                if self.ranks[target] != new_rank:
                    continue
                order_target = order.index(target)
                if order_target < new_order < o or o < new_order < order_target:
                    crossings += BETWEEN_PERSON_AND_RELATIONSHIP
        return crossings

    def best_relationship_position(self, v: int, prefer_left: bool, other: int | None = None) -> int:
        """Order index for a new relationship of ``v`` (between ``v`` and ``other`` if given)."""
        store = self.store
        order = self.order
        rank = self.ranks[v]
        row = order.rank(rank)
        n = len(row)
        is_twin = store.get_twin_group_id(v) is not None
        v_order = order.index(v)

        below = [0.0] * (n + 1)
        same = [0.0] * (n + 1)

        def bump(penalties: list[float], i: int, amount: float) -> None:
            if 0 <= i <= n:
                penalties[i] += amount

        for o, node in enumerate(row):
            if not store.is_relationship(node):
                continue
            info = self.analyze_children(node)
            if info.left_most_has_left_partner:
                bump(below, o, BUSY_BELOW)
                bump(below, o - 1, BUSY_BELOW_NEIGHBOUR)
            if info.right_most_has_right_partner:
                bump(below, o + 1, BUSY_BELOW)
                bump(below, o + 2, BUSY_BELOW_NEIGHBOUR)

        # never cut through another partner line on this rank
        for o, node in enumerate(row):
            if not store.is_relationship(node):
                continue
            for parent in store.get_in_edges(node):
                if parent in (v, other) or self.ranks[parent] != rank:
                    continue
                parent_order = order.index(parent)
                lo, hi = (o + 1, parent_order) if parent_order > o else (parent_order + 1, o)
                for j in range(lo, hi + 1):
                    same[j] = math.inf

        # never split twins; each crossed child-to-parent line costs 1
        o = 0
        while o < n:
            node = row[o]
            if o == v_order or not store.is_person(node):
                o += 1
                continue
            twins = self.get_all_twins_sorted_by_order(node)
            if len(twins) > 1:
                left_most = order.index(twins[0])
                right_most = order.index(twins[-1])
                for j in range(left_most + 1, right_most + 1):
                    same[j] = math.inf
                o = right_most
            if store.get_producing_relationship(node) is not None:
                if o < v_order:
                    for j in range(0, o + 1):
                        same[j] += 1
                else:
                    for j in range(o + 1, n + 1):
                        same[j] += 1
            o += 1

        if other is None:
            if prefer_left and v_order == 0:
                return 0
            sides = self.find_left_and_right_partners(v)
            num_left, num_right = len(sides.left), len(sides.right)

            # all else equal, the right side moves fewer vertices
            if not is_twin and num_left == 0 and (prefer_left or num_right > 0):
                return v_order
            if not is_twin and num_right == 0:
                return v_order + 1

            best_position, best_penalty = v_order + 1, math.inf
            for o in range(n + 1):
                penalty = below[o] + same[o]
                if o <= v_order:
                    penalty += num_left + (v_order - o)
                    penalty += -SIDE_PREFERENCE if prefer_left else SIDE_PREFERENCE
                else:
                    penalty += num_right + (o - v_order - 1)
                if penalty < best_penalty:
                    best_position, best_penalty = o, penalty
            return best_position

        u = other
        if order.index(v) > order.index(u):
            v, u = u, v
        order_v, order_u = order.index(v), order.index(u)
        sides_v = self.find_left_and_right_partners(v)
        sides_u = self.find_left_and_right_partners(u)
        num_right, num_left = len(sides_v.right), len(sides_u.left)

        if num_right == 0 and num_left > 0:
            return order_v + 1
        if num_right > 0 and num_left == 0:
            return order_u

        best_position, best_penalty = order_v + 1, math.inf
        for o in range(order_v + 1, order_u + 1):
            penalty = below[o] + same[o]
            penalty += sum(1 for p in sides_v.right if o <= sides_v.anchors[p])
            penalty += sum(1 for p in sides_u.left if o > sides_u.anchors[p])
            if penalty <= best_penalty:
                best_position, best_penalty = o, penalty
        return best_position

    def find_best_twin_insert_position(self, person: int, exclude: list[int] | None = None) -> int:
        """Slot right before or right after the twin block, whichever crosses less."""
        exclude = exclude or []
        twins = [t for t in self.get_all_twins_sorted_by_order(person) if t not in exclude] or [person]
        in_edges = self.store.get_in_edges(person)
        if not in_edges:
            raise PedigreeInvariantError(
                kind=ErrorKind.INVALID_TWIN_INSERTION, message="twins need parents", vertex_id=person
            )
        hub = in_edges[0]
        rank = self.ranks[person]
        left = self.order.index(twins[0])
        right = self.order.index(twins[-1]) + 1
        hub_rank, hub_order = self.ranks[hub], self.order.index(hub)
        cost_left = self.edge_crossings_by_future_edge(rank, left - 0.5, hub_rank, hub_order, False, hub)
        cost_right = self.edge_crossings_by_future_edge(rank, right - 0.5, hub_rank, hub_order, False, hub)
        return left if cost_left < cost_right else right

    # ------------------------------------------------------------------
    # Swaps done before an insertion
    # ------------------------------------------------------------------

    def _swap(self, u: int, v: int) -> None:
        self.order.swap(u, v)
        self.positions[u], self.positions[v] = self.positions[v], self.positions[u]
        logger.debug("heuristics.swapped", u=u, v=v)

    def _sole_free_partner(self, person: int) -> int | None:
        """The only partner of ``person`` if it is a same-rank, parentless, single-relationship founder."""
        store = self.store
        rels = store.get_all_relationships(person)
        if len(rels) != 1:
            return None
        partners = [q for q in store.get_in_edges(rels[0]) if q != person]
        if len(partners) != 1 or not store.is_person(partners[0]):
            return None
        partner = partners[0]
        if self.ranks[partner] != self.ranks[person] or store.get_in_edges(partner):
            return None
        if len(store.get_out_edges(partner)) != 1:
            return None
        return partner

    def _outer_neighbour(self, v: int, rel: int) -> int | None:
        row = self.order.rank(self.ranks[v])
        i = self.order.index(v)
        j = i + 1 if i > self.order.index(rel) else i - 1
        return row[j] if 0 <= j < len(row) else None

    def swap_before_parents_to_bring_to_side_if_possible(self, person: int) -> bool:
        """Trade places with a free partner so the new parent line avoids a neighbour's."""
        partner = self._sole_free_partner(person)
        if partner is None:
            return False
        rel = self.store.get_all_relationships(person)[0]

        def has_parent_line(v: int | None) -> bool:
            return v is not None and self.store.is_person(v) and self.store.get_producing_relationship(v) is not None

        if has_parent_line(self._outer_neighbour(person, rel)) and not has_parent_line(
            self._outer_neighbour(partner, rel)
        ):
            self._swap(person, partner)
            return True
        return False

    def swap_partner_to_bring_to_side_if_possible(self, person: int) -> bool:
        """Trade places with a free partner that sits nearer the end of the rank."""
        partner = self._sole_free_partner(person)
        if partner is None:
            return False
        n = len(self.order.rank(self.ranks[person]))

        def distance_to_end(v: int) -> int:
            i = self.order.index(v)
            return min(i, n - 1 - i)

        if distance_to_end(partner) < distance_to_end(person):
            self._swap(person, partner)
            return True
        return False

    def swap_twins_to_bring_to_side_if_possible(self, person: int) -> bool:
        """Move an interior twin to the nearer end of its twin block."""
        twins = self.get_all_twins_sorted_by_order(person)
        if len(twins) < 3 or person in (twins[0], twins[-1]):
            return False
        i = twins.index(person)
        end = twins[0] if i < len(twins) - 1 - i else twins[-1]
        if self.store.get_out_edges(end):
            return False
        self._swap(person, end)
        return True

    # ------------------------------------------------------------------
    # Coordinates
    # ------------------------------------------------------------------

    def _shift(self, threshold: float, amount: float, right: bool, skip: int) -> None:
        for w, x in self.positions.items():
            if w == skip:
                continue
            if (right and x >= threshold) or (not right and x <= threshold):
                self.positions[w] = x + amount

    def move_to_correct_position_and_shift(self, new_vertex: int, anchor: int) -> None:
        """Place a freshly ordered vertex relative to ``anchor`` and push overlapping neighbours aside.

        Everything at or beyond the overlapping neighbour moves with it, on
        every rank, so subtrees keep their shape.
        """
        store = self.store
        config = self.layout.config
        row = self.order.rank(self.ranks[new_vertex])
        i = self.order.index(new_vertex)

        if self.ranks[anchor] != self.ranks[new_vertex]:
            x = self.positions[anchor]
        else:
            gap = separation(store, config, anchor, new_vertex)
            x = self.positions[anchor] - gap if i < self.order.index(anchor) else self.positions[anchor] + gap
        self.positions[new_vertex] = x

        if i + 1 < len(row):
            right = row[i + 1]
            need = x + separation(store, config, new_vertex, right) - self.positions[right]
            if need > _EPS:
                self._shift(self.positions[right], need, right=True, skip=new_vertex)
        if i > 0:
            left = row[i - 1]
            need = self.positions[left] + separation(store, config, left, new_vertex) - x
            if need > _EPS:
                self._shift(self.positions[left], -need, right=False, skip=new_vertex)

    def _fits(self, v: int, x: float) -> bool:
        row = self.order.rank(self.ranks[v])
        i = self.order.index(v)
        config = self.layout.config
        if i > 0 and self.positions[row[i - 1]] + separation(self.store, config, row[i - 1], v) > x + _EPS:
            return False
        if i + 1 < len(row) and x + separation(self.store, config, v, row[i + 1]) > self.positions[row[i + 1]] + _EPS:
            return False
        return True

    def _try_move(self, v: int, x: float) -> bool:
        if abs(self.positions[v] - x) <= _EPS:
            return True
        if self._fits(v, x):
            self.positions[v] = x
            return True
        return False

    def _center_childhubs(self) -> None:
        for rel in self.store.relationships():
            self._try_move(self.store.get_relationship_childhub(rel), self.positions[rel])

    def _center_lone_children(self) -> None:
        store = self.store
        for rel in store.relationships():
            hub = store.get_relationship_childhub(rel)
            children = store.get_out_edges(hub)
            if len(children) != 1:
                continue
            child = children[0]
            if self._try_move(child, self.positions[hub]):
                continue
            target = self.positions[child]
            if self._fits(rel, target) and self._fits(hub, target):
                self.positions[rel] = target
                self.positions[hub] = target

    def _gather_twins(self) -> None:
        store = self.store
        done: set[int] = set()
        for person in store.persons():
            if person in done or store.get_twin_group_id(person) is None:
                continue
            twins = self.get_all_twins_sorted_by_order(person)
            done.update(twins)
            row = self.order.rank(self.ranks[person])
            first, last = self.order.index(twins[0]), self.order.index(twins[-1])
            if all(row[j] in twins or store.is_virtual(row[j]) for j in range(first, last + 1)):
                continue
            anchor = twins[0]
            for twin in twins[1:]:
                self.order.move(twin, self.order.index(anchor) + 1)
                self.move_to_correct_position_and_shift(twin, anchor)
                anchor = twin
            logger.debug("heuristics.twins_gathered", twins=twins)

    def improve_positioning(
        self,
        ranks_before: dict[int, int] | None = None,
        rank_y_before: list[float] | None = None,
    ) -> None:
        """Fix common local mistakes, then re-derive vertical levels and rank rows."""
        self._gather_twins()
        self._center_childhubs()
        self._center_lone_children()
        self._center_childhubs()
        self.layout.refresh_vertical(ranks_before, rank_y_before)
