"""Incremental pedigree editing on top of a positioned layout.

Every public mutation runs as a transaction: the layout is copied first and
put back if anything goes wrong. Within a mutation the steps are always

1. remember ranks, positions, lanes, rank rows and consanguinity
2. splice new vertices into the graph and the layout tables, one at a time,
   using the insertion heuristics to pick order slots
3. validate the graph
4. run the local positioning fixes and recompute ancestry
5. diff against step 1 to build the change-set

Mutations that cannot be expressed as local insertions fall back to a full
re-layout that reuses the previous person order as a hint.
"""
from __future__ import annotations

import functools
import math
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, NamedTuple

import structlog

from pedigree_layout.changes import ChangeSet
from pedigree_layout.config import CONFIG, LayoutConfig
from pedigree_layout.errors import ErrorKind, PedigreeImportError, PedigreeInvariantError
from pedigree_layout.graph import (
    PROBAND,
    Gender,
    GraphStore,
    PersonProperties,
    RelationshipProperties,
    VertexKind,
    VertexProperties,
    make_properties,
    reachable_if_removed,
    removal_closure,
)
from pedigree_layout.importer import AbstractGraph, build_store
from pedigree_layout.layout import Heuristics, PositionedLayout, VerticalLevels
from pedigree_layout.snapshot import LayoutSnapshot

logger = structlog.get_logger(__name__)

_EPS = 1e-6


class Point(NamedTuple):
    x: float
    y: float


class RelationshipLineInfo(NamedTuple):
    """Where the line from a person to one of its relationships is drawn."""
    attachment_port: int
    attach_y: float
    vertical_level: int
    vertical_y: float
    num_attach_ports: int


@dataclass
class _Before:
    """Layout tables captured at the start of a mutation."""
    positions: dict[int, float]
    ranks: dict[int, int]
    vertical: VerticalLevels
    rank_y: list[float]
    consangr: set[int] = field(default_factory=set)
    max_id: int = -1


def _mutation(event: str):
    """Run a facade mutation as a transaction.

    Import failures roll back and return an empty change-set; anything else
    rolls back and propagates.
    """

    def decorator(method):
        @functools.wraps(method)
        def wrapper(self: DynamicPedigree, *args: Any, **kwargs: Any) -> ChangeSet:
            backup = self.layout.copy()
            start = time.time()
            try:
                changes = method(self, *args, **kwargs)
            except PedigreeImportError as e:
                self.layout = backup
                logger.warning(f"{event}.failed", error=str(e))
                return ChangeSet()
            except Exception as e:
                self.layout = backup
                logger.error(f"{event}.rolled_back", error=str(e))
                raise
            logger.info(
                event,
                new=changes.new,
                moved=len(changes.moved),
                removed=changes.removed,
                runtime_ms=round((time.time() - start) * 1000, 2),
            )
            return changes

        return wrapper

    return decorator


class DynamicPedigree:
    """A pedigree layout that can be edited one fact at a time."""

    def __init__(self, layout: PositionedLayout, config: LayoutConfig | None = None) -> None:
        self.layout = layout
        self.config = config or layout.config

    @classmethod
    def make_empty(cls, config: LayoutConfig = CONFIG) -> DynamicPedigree:
        return cls(PositionedLayout.empty(config), config)

    # ------------------------------------------------------------------
    # Shortcuts
    # ------------------------------------------------------------------

    @property
    def store(self) -> GraphStore:
        return self.layout.store

    @property
    def ranks(self) -> dict[int, int]:
        return self.layout.ranks

    @property
    def positions(self) -> dict[int, float]:
        return self.layout.positions

    @property
    def heuristics(self) -> Heuristics:
        return Heuristics(self.layout)

    def _require_person(self, v: int, what: str) -> None:
        self.store.get(v)
        if not self.store.is_person(v):
            raise PedigreeInvariantError(kind=ErrorKind.NOT_A_PERSON, message=f"{what} needs a person", vertex_id=v)

    def _require_relationship(self, v: int, what: str) -> None:
        self.store.get(v)
        if not self.store.is_relationship(v):
            raise PedigreeInvariantError(
                kind=ErrorKind.NOT_A_RELATIONSHIP, message=f"{what} needs a relationship", vertex_id=v
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_valid_id(self, v: int) -> bool:
        return v in self.store and (self.store.is_person(v) or self.store.is_relationship(v))

    def get_max_node_id(self) -> int:
        return self.store.max_real_vertex_id()

    def is_person(self, v: int) -> bool:
        return self.store.is_person(v)

    def is_person_group(self, v: int) -> bool:
        return self.store.is_person_group(v)

    def is_relationship(self, v: int) -> bool:
        return self.store.is_relationship(v)

    def is_placeholder(self, v: int) -> bool:
        # placeholders are not modelled; kept so callers can ask uniformly
        return False

    def is_adopted(self, v: int) -> bool:
        self._require_person(v, "adoption lookup")
        return self.store.is_adopted(v)

    def get_generation(self, v: int) -> int:
        """1-based generation number, counted from the topmost rank in use."""
        min_rank = min(self.ranks.values())
        return (self.ranks[v] - min_rank) // 2 + 1

    def get_order_within_generation(self, v: int) -> int:
        """1-based position of a person among the persons of its rank."""
        self._require_person(v, "order within generation")
        position = 0
        for u in self.layout.order.rank(self.ranks[v]):
            if self.store.is_person(u):
                position += 1
            if u == v:
                break
        return position

    def get_twin_group_id(self, v: int) -> int | None:
        return self.store.get_twin_group_id(v)

    def get_all_twins_sorted_by_order(self, v: int) -> list[int]:
        return self.heuristics.get_all_twins_sorted_by_order(v)

    def is_childless(self, v: int) -> bool:
        props = self.store.properties(v)
        return isinstance(props, (PersonProperties, RelationshipProperties)) and props.childless_status is not None

    def is_consangr_relationship(self, v: int) -> bool:
        """Consanguinity as shown: a manual Y/N setting wins over the derived flag."""
        self._require_relationship(v, "consanguinity lookup")
        setting = self.store.properties(v).consangr  # type: ignore[union-attr]
        if setting == "Y":
            return True
        if setting == "N":
            return False
        return v in self.layout.ancestry.consangr

    def get_properties(self, v: int) -> VertexProperties:
        return self.store.properties(v)

    def set_properties(self, v: int, properties: VertexProperties | dict[str, Any]) -> None:
        self.store.set_properties(v, properties)

    def set_proband_data(self, first_name: str, last_name: str, gender: Gender | str) -> bool:
        """Update the proband; returns False if the gender had to be reset to unknown."""
        requested = Gender(gender) if not isinstance(gender, Gender) else gender
        props = self.store.properties(PROBAND)
        props.first_name = first_name  # type: ignore[union-attr]
        props.last_name = last_name  # type: ignore[union-attr]
        applied = requested if requested in self.get_possible_genders(PROBAND) else Gender.UNKNOWN
        props.gender = applied  # type: ignore[union-attr]
        return applied == requested

    def get_position(self, v: int) -> Point:
        store = self.store
        vertical = self.layout.vertical
        x = self.positions[v]
        rank = self.ranks[v]
        level = vertical.child_edge_level.get(v, 0) if store.is_childhub(v) else 0
        y = self.layout.node_y(rank, level)

        if store.is_virtual(v):
            rel = store.down_the_chain_until_non_virtual(v)
            if rank == self.ranks[rel]:
                y = self.get_position(rel).y
        elif store.is_relationship(v):
            edges = [vertical.edge(p, v) for p in store.get_parents(v)]
            level = min(e.vertical_level for e in edges)
            attach = min(e.attach_level for e in edges)
            y = self.layout.rel_line_y(rank, attach, level).rel_line_y
        return Point(x, y)

    def get_relationship_childhub_position(self, v: int) -> Point:
        self._require_relationship(v, "childhub position")
        return self.get_position(self.store.get_relationship_childhub(v))

    def get_relationship_line_info(self, rel: int, person: int) -> RelationshipLineInfo:
        self._require_relationship(rel, "line info")
        self._require_person(person, "line info")
        edge = self.layout.vertical.edge(person, rel)
        line = self.layout.rel_line_y(self.ranks[person], edge.attach_level, edge.vertical_level)
        return RelationshipLineInfo(
            attachment_port=edge.attach_level,
            attach_y=line.attach_y,
            vertical_level=edge.vertical_level,
            vertical_y=line.rel_line_y,
            num_attach_ports=edge.num_attach_levels,
        )

    def get_relationship_children_sorted_by_order(self, v: int) -> list[int]:
        self._require_relationship(v, "children lookup")
        return sorted(self.store.get_children(v), key=self.layout.order.index)

    def get_all_children(self, v: int) -> list[int]:
        if self.store.is_relationship(v):
            rels = [v]
        elif self.store.is_person(v):
            rels = self.store.get_all_relationships(v)
        else:
            raise PedigreeInvariantError(
                kind=ErrorKind.NOT_A_PERSON, message="children of a non-person non-relationship", vertex_id=v
            )
        return [child for rel in rels for child in self.store.get_children(rel)]

    def get_parent_relationship(self, v: int) -> int | None:
        self._require_person(v, "parent relationship")
        return self.store.get_producing_relationship(v)

    def is_child_of_proband(self, v: int) -> bool:
        rel = self.store.get_producing_relationship(v) if self.store.is_person(v) else None
        return rel is not None and PROBAND in self.store.get_parents(rel)

    def is_partnership_related_to_proband(self, v: int) -> bool:
        self._require_relationship(v, "proband relation")
        if PROBAND in self.store.get_parents(v):
            return True
        return PROBAND in self.store and v == self.store.get_producing_relationship(PROBAND)

    def get_all_related_relationships(self, v: int) -> list[int]:
        """Own relationships plus the producing one, if any."""
        rels = self.store.get_all_relationships(v)
        parent_rel = self.store.get_producing_relationship(v)
        if parent_rel is not None:
            rels.append(parent_rel)
        return rels

    def is_related_to_proband(self, v: int) -> bool:
        """True for partners, parents, siblings and children of the proband."""
        for rel in self.get_all_related_relationships(PROBAND):
            if v in self.store.get_parents(rel) or v in self.get_all_children(rel):
                return True
        return False

    def has_non_placeholder_non_adopted_children(self, v: int) -> bool:
        if not self.store.is_relationship(v):
            return False
        return any(
            not self.is_placeholder(c) and not self.is_adopted(c)
            for c in self.get_relationship_children_sorted_by_order(v)
        )

    def has_to_be_adopted(self, v: int) -> bool:
        parent_rel = self.get_parent_relationship(v)
        return parent_rel is not None and self.is_childless(parent_rel)

    def has_relationships(self, v: int) -> bool:
        self._require_person(v, "relationship lookup")
        return bool(self.store.get_out_edges(v))

    def get_gender(self, v: int) -> Gender:
        self._require_person(v, "gender lookup")
        return self.store.get_gender(v)

    def get_opposite_gender(self, v: int) -> Gender:
        self._require_person(v, "gender lookup")
        return self.store.get_opposite_gender(v)

    def get_possible_genders(self, v: int) -> set[Gender]:
        """Any gender, except the one of the first partner whose gender is known."""
        possible = {Gender.MALE, Gender.FEMALE, Gender.UNKNOWN}
        for partner in self.store.get_all_partners(v):
            gender = self.store.get_gender(partner)
            if gender != Gender.UNKNOWN:
                possible.discard(gender)
                break
        return possible

    def _is_ancestor(self, ancestor: int, of: int) -> bool:
        return self.layout.ancestry.is_ancestor(ancestor, of)

    def get_possible_children_of(self, v: int) -> list[int]:
        """Parentless persons that are not ancestors of ``v``."""
        return [
            p for p in self.store.persons()
            if p != v and not self.store.get_in_edges(p) and not self._is_ancestor(p, v)
        ]

    def get_possible_siblings_of(self, v: int) -> list[int]:
        """Persons neither ancestor nor descendant of ``v``; parentless ones only if ``v`` has parents."""
        has_parents = self.store.get_producing_relationship(v) is not None
        return [
            p for p in self.store.persons()
            if p != v
            and not self._is_ancestor(p, v)
            and not self._is_ancestor(v, p)
            and not (has_parents and self.store.get_in_edges(p))
        ]

    def get_possible_parents_of(self, v: int) -> list[int]:
        """Persons and relationships that do not descend from ``v``; person groups excluded."""
        return [
            u for u in self.store.real_vertices()
            if u != v and not self.store.is_person_group(u) and not self._is_ancestor(v, u)
        ]

    def get_possible_partners_of(self, v: int) -> list[int]:
        """Persons of the opposite or unknown gender that are not already partners; person groups excluded."""
        opposite = self.store.get_opposite_gender(v)
        valid = {Gender.MALE, Gender.FEMALE, Gender.UNKNOWN} if opposite == Gender.UNKNOWN else {opposite, Gender.UNKNOWN}
        excluded = set(self.store.get_all_partners(v)) | {v}
        return [
            p for p in self.store.persons()
            if p not in excluded and not self.store.is_person_group(p) and self.store.get_gender(p) in valid
        ]

    def get_disconnected_set_if_node_removed(self, v: int) -> list[int]:
        return reachable_if_removed(self.store, v, PROBAND)

    def get_path_to_parents(self, rel: int) -> list[list[int]]:
        return self.store.get_path_to_parents(rel)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @_mutation("pedigree.add_new_child")
    def add_new_child(
        self,
        childhub_or_relationship: int,
        properties: VertexProperties | dict[str, Any] | None = None,
        num_twins: int = 1,
    ) -> ChangeSet:
        store = self.store
        hub = childhub_or_relationship
        if store.is_relationship(hub):
            hub = store.get_relationship_childhub(hub)
        elif not store.is_childhub(hub):
            raise PedigreeInvariantError(
                kind=ErrorKind.NOT_A_CHILDHUB, message="children are added under a childhub", vertex_id=hub
            )
        before = self._capture()

        rank = self.ranks[hub] + 1
        order_index = self.heuristics.best_insert_position(rank, hub)
        child = self._insert_vertex(VertexKind.PERSON, properties, in_edge=hub, rank=rank, order_index=order_index)
        new = [child]
        for _ in range(num_twins - 1):
            new.append(self._add_twin(child, properties))

        self._finish(before)
        rel = store.get_in_edges(hub)[0]
        moved = self._find_moved_nodes(before)
        if rel not in moved:
            moved.append(rel)
        return ChangeSet(new=new, moved=moved, animate=store.get_parents(rel))

    @_mutation("pedigree.add_new_parents")
    def add_new_parents(self, person: int) -> ChangeSet:
        self._require_person(person, "adding parents")
        if self.store.get_in_edges(person):
            raise PedigreeInvariantError(
                kind=ErrorKind.ALREADY_HAS_PARENTS, message="person already has parents", vertex_id=person
            )
        before = self._capture()
        heuristics = self.heuristics

        heuristics.swap_before_parents_to_bring_to_side_if_possible(person)

        hub_rank = self.ranks[person] - 1
        hub = self._insert_vertex(
            VertexKind.CHILDHUB,
            out_edge=person,
            rank=hub_rank,
            order_index=heuristics.best_insert_position(hub_rank, person),
        )
        # ranks shift down when a rank is opened above the top
        parents_rank = self.ranks[hub] - 1
        order_index = heuristics.best_insert_position(parents_rank, hub)
        rel = self._insert_vertex(VertexKind.RELATIONSHIP, out_edge=hub, rank=parents_rank, order_index=order_index)
        parents_rank = self.ranks[rel]
        mother = self._insert_vertex(
            VertexKind.PERSON, {"gender": "F"}, out_edge=rel, rank=parents_rank, order_index=order_index + 1
        )
        father = self._insert_vertex(
            VertexKind.PERSON, {"gender": "M"}, out_edge=rel, rank=parents_rank, order_index=order_index
        )

        self._finish(before)
        animate = self.store.get_all_partners(person)
        animate = animate + [person] if len(animate) == 1 else [person]
        return ChangeSet(
            new=[rel, mother, father],
            moved=self._find_moved_nodes(before),
            highlight=[person],
            animate=animate,
        )

    @_mutation("pedigree.add_new_relationship")
    def add_new_relationship(
        self,
        person: int,
        child_properties: VertexProperties | dict[str, Any] | None = None,
        prefer_left: bool = False,
        num_twins: int = 1,
    ) -> ChangeSet:
        self._require_person(person, "adding a relationship")
        before = self._capture()
        heuristics = self.heuristics
        partner_properties = {"gender": self.store.get_opposite_gender(person).value}

        rank = self.ranks[person]
        heuristics.swap_partner_to_bring_to_side_if_possible(person)
        heuristics.swap_twins_to_bring_to_side_if_possible(person)
        person_order = self.layout.order.index(person)

        order_index = heuristics.best_insert_position(rank, person, prefer_left)
        rel = self._insert_vertex(VertexKind.RELATIONSHIP, in_edge=person, rank=rank, order_index=order_index)
        partner_order = order_index + 1 if order_index > person_order else order_index
        partner = self._insert_vertex(
            VertexKind.PERSON, partner_properties, out_edge=rel, rank=rank, order_index=partner_order
        )

        hub_rank = rank + 1
        hub = self._insert_vertex(
            VertexKind.CHILDHUB, in_edge=rel, rank=hub_rank, order_index=heuristics.best_insert_position(hub_rank, rel)
        )
        child_rank = hub_rank + 1
        child = self._insert_vertex(
            VertexKind.PERSON,
            child_properties,
            in_edge=hub,
            rank=child_rank,
            order_index=heuristics.best_insert_position(child_rank, hub),
        )
        new = [rel, partner, child]
        for _ in range(num_twins - 1):
            new.append(self._add_twin(child, child_properties))

        self._finish(before)
        return ChangeSet(new=new, moved=self._find_moved_nodes(before), highlight=[person])

    @_mutation("pedigree.assign_parent")
    def assign_parent(self, parent: int, child: int) -> ChangeSet:
        """Make ``parent`` (a relationship, or a person who gets a new partner) the parent of ``child``."""
        store = self.store
        self._require_person(child, "assigning a parent")
        if store.get_in_edges(child):
            raise PedigreeInvariantError(
                kind=ErrorKind.ALREADY_HAS_PARENTS, message="child already has parents", vertex_id=child
            )
        if parent == child:
            raise PedigreeInvariantError(
                kind=ErrorKind.SAME_PERSON, message="a person cannot be its own parent", vertex_id=child
            )
        if self._is_ancestor(child, parent):
            raise PedigreeInvariantError(
                kind=ErrorKind.ANCESTRY_CYCLE, message="a descendant cannot become a parent", vertex_id=parent
            )

        if store.is_relationship(parent):
            before = self._capture()
            hub = store.get_relationship_childhub(parent)
            store.add_edge(hub, child)
            if self.ranks[hub] != self.ranks[child] - 1:
                return self._redraw_all([child])
            store.validate()
            self.layout.refresh_vertical(before.ranks, before.rank_y)
            self.layout.update_ancestry()
            before.positions[parent] = math.inf
            return ChangeSet(moved=self._find_moved_nodes(before), animate=[child])

        self._require_person(parent, "assigning a parent")
        rank_parent = self.ranks[parent]
        rank_child = self.ranks[child]
        partner_properties = {"gender": store.get_opposite_gender(parent).value}

        if rank_parent >= rank_child:
            # breaks the parent-above-child rule; orders do not matter, everything is redrawn
            ranks_before = dict(self.ranks)
            hub = self._insert_vertex(VertexKind.CHILDHUB, out_edge=child, rank=rank_child - 1, order_index=0)
            rel = self._insert_vertex(
                VertexKind.RELATIONSHIP, out_edge=hub, rank=self.ranks[hub] - 1, order_index=0
            )
            new_parent = self._insert_vertex(
                VertexKind.PERSON, partner_properties, out_edge=rel, rank=self.ranks[rel], order_index=0
            )
            store.add_edge(parent, rel)
            return self._redraw_all([child, parent], [rel, new_parent], ranks_before)

        before = self._capture()
        heuristics = self.heuristics
        x_parent = self.positions[parent]
        x_child = self.positions[child]

        if rank_parent == rank_child - 2:
            order_index = heuristics.best_insert_position(rank_parent, parent, x_child < x_parent)
            rel = self._insert_vertex(
                VertexKind.RELATIONSHIP, in_edge=parent, rank=rank_parent, order_index=order_index
            )
            order = self.layout.order
            new_parent_order = order_index if order.index(parent) > order.index(rel) else order_index + 1
            new_parent = self._insert_vertex(
                VertexKind.PERSON, partner_properties, out_edge=rel, rank=rank_parent, order_index=new_parent_order
            )
            hub_rank = rank_child - 1
            hub = self._insert_vertex(
                VertexKind.CHILDHUB,
                in_edge=rel,
                rank=hub_rank,
                order_index=heuristics.best_insert_position(hub_rank, rel),
            )
            store.add_edge(hub, child)
        else:
            hub_rank = rank_child - 1
            hub = self._insert_vertex(
                VertexKind.CHILDHUB,
                out_edge=child,
                rank=hub_rank,
                order_index=heuristics.best_insert_position(hub_rank, child),
            )
            rel_rank = rank_child - 2
            order_index = heuristics.best_insert_position(rel_rank, hub)
            rel = self._insert_vertex(VertexKind.RELATIONSHIP, out_edge=hub, rank=rel_rank, order_index=order_index)
            new_parent_order = order_index if self.positions[parent] > self.positions[rel] else order_index + 1
            new_parent = self._insert_vertex(
                VertexKind.PERSON, partner_properties, out_edge=rel, rank=rel_rank, order_index=new_parent_order
            )
            self._add_multi_rank_edge(parent, rel)

        self._finish(before)
        return ChangeSet(
            new=[rel, new_parent],
            moved=self._find_moved_nodes(before),
            highlight=[parent, new_parent, child],
        )

    @_mutation("pedigree.assign_partner")
    def assign_partner(
        self,
        person1: int,
        person2: int,
        child_properties: VertexProperties | dict[str, Any] | None = None,
    ) -> ChangeSet:
        store = self.store
        self._require_person(person1, "assigning a partner")
        self._require_person(person2, "assigning a partner")
        if person1 == person2:
            raise PedigreeInvariantError(
                kind=ErrorKind.SAME_PERSON, message="a person cannot partner with itself", vertex_id=person1
            )
        if person2 in store.get_all_partners(person1):
            raise PedigreeInvariantError(
                kind=ErrorKind.ALREADY_PARTNERS, message="persons are already partners", vertex_id=person1
            )
        before = self._capture()
        heuristics = self.heuristics
        order = self.layout.order

        rank1, rank2 = self.ranks[person1], self.ranks[person2]
        # person1 is the lower one, or the left one on a shared rank
        if rank1 < rank2 or (rank1 == rank2 and order.index(person2) < order.index(person1)):
            person1, person2 = person2, person1
            rank1, rank2 = rank2, rank1

        if rank1 == rank2:
            order_index = heuristics.best_relationship_position(person1, False, person2)
        else:
            prefer_left = self.positions[person2] < self.positions[person1]
            order_index = heuristics.best_relationship_position(person1, prefer_left)
        rel = self._insert_vertex(VertexKind.RELATIONSHIP, in_edge=person1, rank=rank1, order_index=order_index)

        hub_rank = self.ranks[rel] + 1
        hub = self._insert_vertex(
            VertexKind.CHILDHUB, in_edge=rel, rank=hub_rank, order_index=heuristics.best_insert_position(hub_rank, rel)
        )
        child_rank = hub_rank + 1
        child = self._insert_vertex(
            VertexKind.PERSON,
            child_properties,
            in_edge=hub,
            rank=child_rank,
            order_index=heuristics.best_insert_position(child_rank, hub),
        )
        if rank1 == rank2:
            store.add_edge(person2, rel)
        else:
            self._add_multi_rank_edge(person2, rel)

        self._finish(before)
        return ChangeSet(
            new=[rel, child],
            moved=self._find_moved_nodes(before),
            highlight=[person1, person2, child],
        )

    @_mutation("pedigree.add_twin")
    def add_twin(self, person: int, properties: VertexProperties | dict[str, Any] | None = None) -> ChangeSet:
        self._require_person(person, "adding a twin")
        before = self._capture()
        parent_rel = self.store.get_producing_relationship(person)
        twin = self._add_twin(person, properties)

        self._finish(before)
        moved = self._find_moved_nodes(before)
        if parent_rel is not None and parent_rel not in moved:
            moved.append(parent_rel)
        animate = self.store.get_parents(parent_rel) + [person] if parent_rel is not None else [person]
        return ChangeSet(new=[twin], moved=moved, animate=animate)

    @_mutation("pedigree.remove_nodes")
    def remove_nodes(self, ids: Iterable[int]) -> ChangeSet:
        """Remove persons and relationships with everything that cannot exist without them.

        Removing a person takes along its relationships and, if it is an only
        child, the relationship that produced it. Removed relationships take
        their childhub and the virtual chains to their partners.
        """
        store = self.store
        requested = sorted(set(ids))
        for v in requested:
            if not self.is_valid_id(v):
                raise PedigreeInvariantError(
                    kind=ErrorKind.UNKNOWN_VERTEX, message="only persons and relationships can be removed", vertex_id=v
                )
        if PROBAND in requested:
            raise PedigreeInvariantError(
                kind=ErrorKind.VERTEX_IN_USE, message="the proband cannot be removed", vertex_id=PROBAND
            )
        before = self._capture()

        doomed = removal_closure(store, requested)
        for rel in [v for v in doomed if store.is_relationship(v)]:
            for path in store.get_path_to_parents(rel):
                doomed.update(u for u in path if store.is_virtual(u))

        survivors_touched = set()
        for v in doomed:
            if store.is_person(v):
                parent_rel = store.get_producing_relationship(v)
                if parent_rel is not None and parent_rel not in doomed:
                    survivors_touched.add(parent_rel)
            elif store.is_childhub(v):
                # orphaned children lose their twin link
                for child in store.get_out_edges(v):
                    if child not in doomed and store.get_twin_group_id(child) is not None:
                        store.properties(child).twin_group = None  # type: ignore[union-attr]

        order = self.layout.order
        for v in sorted(doomed, reverse=True):
            store.detach_and_remove(v)
            order.remove(v)
            del self.ranks[v]
            del self.positions[v]
        order.trim_trailing_empty_ranks()

        store.validate()
        self.layout.refresh_vertical(before.ranks, before.rank_y)
        self.layout.update_ancestry()

        moved = self._find_moved_nodes(before)
        moved.extend(sorted(survivors_touched - set(moved)))
        return ChangeSet(removed=requested, removed_internally=sorted(doomed), moved=moved)

    @_mutation("pedigree.improve_position")
    def improve_position(self) -> ChangeSet:
        before = self._capture()
        self.heuristics.improve_positioning(before.ranks, before.rank_y)
        return ChangeSet(moved=self._find_moved_nodes(before))

    @_mutation("pedigree.redraw_all")
    def redraw_all(
        self,
        animate: list[int] | None = None,
        new: list[int] | None = None,
        ranks_before: dict[int, int] | None = None,
    ) -> ChangeSet:
        """Lay the current graph out from scratch, keeping the person order as a hint."""
        return self._redraw_all(animate, new, ranks_before)

    @_mutation("pedigree.clear_all")
    def clear_all(self) -> ChangeSet:
        """Back to a graph holding only the proband, whose properties survive."""
        was_empty = len(self.store) == 0
        removed = [v for v in self.store.real_vertices() if v != PROBAND]
        proband_properties = None if was_empty else self.store.properties(PROBAND)

        self.layout = PositionedLayout.empty(self.config)
        if proband_properties is not None:
            self.store.set_properties(PROBAND, proband_properties)

        if was_empty:
            return ChangeSet(new=[PROBAND], make_visible=[PROBAND])
        return ChangeSet(removed=removed, moved=[PROBAND], make_visible=[PROBAND])

    def update_ancestors(self) -> ChangeSet:
        """Recompute ancestry (e.g. after an adoption flag changed); every relationship may redraw."""
        self.layout.update_ancestry()
        return ChangeSet(moved=self.store.relationships())

    # ------------------------------------------------------------------
    # Whole-graph replacement
    # ------------------------------------------------------------------

    def to_json(self, indent: int | None = None) -> str:
        return LayoutSnapshot.from_layout(self.layout).to_json(indent=indent)

    def from_json(self, text: str | bytes) -> ChangeSet | None:
        """Replace the pedigree with a saved snapshot; None (and no change) if it does not load."""
        removed = self.store.real_vertices()
        try:
            layout = LayoutSnapshot.from_json(text).to_layout(self.config)
        except PedigreeImportError as e:
            logger.warning("pedigree.from_json.failed", error=str(e))
            return None
        self.layout = layout
        return ChangeSet(new=self.store.real_vertices(), removed=removed)

    def from_import(self, abstract: AbstractGraph | str | bytes) -> ChangeSet | None:
        """Replace the pedigree with an imported one; None (and no change) if it cannot be laid out."""
        removed = self.store.real_vertices()
        try:
            if not isinstance(abstract, AbstractGraph):
                abstract = AbstractGraph.from_json(abstract)
            layout = PositionedLayout.build(build_store(abstract), self.config)
            Heuristics(layout).improve_positioning()
        except PedigreeImportError as e:
            logger.warning("pedigree.from_import.failed", error=str(e))
            return None
        self.layout = layout
        return ChangeSet(new=self.store.real_vertices(), removed=removed)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _capture(self) -> _Before:
        return _Before(
            positions=dict(self.positions),
            ranks=dict(self.ranks),
            vertical=self.layout.vertical.copy(),
            rank_y=list(self.layout.rank_y),
            consangr=set(self.layout.ancestry.consangr),
            max_id=self.store.max_real_vertex_id(),
        )

    def _finish(self, before: _Before) -> None:
        self.store.validate()
        self.heuristics.improve_positioning(before.ranks, before.rank_y)
        self.layout.update_ancestry()

    def _insert_vertex(
        self,
        kind: VertexKind,
        properties: VertexProperties | dict[str, Any] | None = None,
        edge_weight: float = 1.0,
        in_edge: int | None = None,
        out_edge: int | None = None,
        rank: int = 0,
        order_index: int = 0,
    ) -> int:
        """Add a vertex with exactly one edge and splice it into the layout tables.

        Rank 0 opens a new top rank: every existing rank moves down by one
        and the vertex lands on rank 1.
        """
        if in_edge is None and out_edge is None:
            raise PedigreeInvariantError(
                kind=ErrorKind.DISCONNECTED_INSERTION, message=f"new {kind.value} has no edge"
            )
        if in_edge is not None and out_edge is not None:
            raise PedigreeInvariantError(
                kind=ErrorKind.AMBIGUOUS_INSERTION, message=f"new {kind.value} can only be placed along one edge"
            )
        new_id = self.store.insert_vertex(
            kind,
            properties,
            edge_weight,
            in_edges=[in_edge] if in_edge is not None else [],
            out_edges=[out_edge] if out_edge is not None else [],
        )

        order = self.layout.order
        if rank == 0:
            for v in self.ranks:
                self.ranks[v] += 1
            order.insert_rank(1)
            rank = 1
        elif rank > self.layout.max_rank:
            order.ensure_rank(rank)

        self.ranks[new_id] = rank
        order.insert(new_id, rank, order_index)
        self.positions[new_id] = -math.inf
        self.heuristics.move_to_correct_position_and_shift(new_id, in_edge if in_edge is not None else out_edge)
        return new_id

    def _add_multi_rank_edge(self, person: int, rel: int, weight: float = 1.0) -> None:
        """Connect a person to a relationship at least two ranks below through virtual segments."""
        rank_person = self.ranks[person]
        rank_rel = self.ranks[rel]
        if rank_person > rank_rel - 2:
            raise PedigreeInvariantError(
                kind=ErrorKind.INVALID_MULTI_RANK_EDGE,
                message="person and relationship are not far enough apart",
                vertex_id=person,
            )
        order = self.layout.order
        other = self.store.get_in_edges(rel)[0]
        order_rel = order.index(rel)
        piece_order = order_rel + 1 if self.positions[other] < self.positions[rel] else order_rel
        prev = self._insert_vertex(
            VertexKind.VIRTUAL_EDGE, edge_weight=weight, out_edge=rel, rank=rank_rel, order_index=piece_order
        )

        for rank in range(rank_rel - 1, rank_person, -1):
            row = order.rank(rank)
            x_prev = self.positions[prev]
            straight = next((i for i, u in enumerate(row) if self.positions[u] >= x_prev), len(row))
            prev = self._insert_vertex(
                VertexKind.VIRTUAL_EDGE, edge_weight=weight, out_edge=prev, rank=rank, order_index=straight
            )
        self.store.add_edge(person, prev, weight)

    def _add_twin(self, person: int, properties: VertexProperties | dict[str, Any] | None) -> int:
        store = self.store
        parent_rel = store.get_producing_relationship(person)
        if parent_rel is None:
            raise PedigreeInvariantError(
                kind=ErrorKind.INVALID_TWIN_INSERTION, message="only a child can get a twin", vertex_id=person
            )
        group = store.get_twin_group_id(person)
        if group is None:
            group = store.allocate_twin_group(parent_rel)
            store.properties(person).twin_group = group  # type: ignore[union-attr]

        twin_properties = make_properties(VertexKind.PERSON, properties)
        twin_properties.twin_group = group  # type: ignore[union-attr]
        order_index = self.heuristics.find_best_twin_insert_position(person)
        return self._insert_vertex(
            VertexKind.PERSON,
            twin_properties,
            in_edge=store.get_in_edges(person)[0],
            rank=self.ranks[person],
            order_index=order_index,
        )

    def _redraw_all(
        self,
        animate: list[int] | None = None,
        new: list[int] | None = None,
        ranks_before: dict[int, int] | None = None,
    ) -> ChangeSet:
        ranks_before = ranks_before if ranks_before is not None else dict(self.ranks)
        candidate = PositionedLayout.build(self.store, self.config, self.layout.person_order(), PROBAND)
        Heuristics(candidate).improve_positioning()
        self.layout = candidate

        real = self.store.real_vertices()
        proband_shift = ranks_before.get(PROBAND, 0) - self.ranks[PROBAND]
        re_ranked = [v for v in self.store.persons() if self.ranks[v] != ranks_before.get(v)]
        shifted_unlike_proband = [
            v for v in real if v not in ranks_before or ranks_before[v] - self.ranks[v] != proband_shift
        ]
        if len(shifted_unlike_proband) < len(re_ranked):
            re_ranked = shifted_unlike_proband

        new = list(new or [])
        moved = [v for v in real if v not in new]
        return ChangeSet(new=new, moved=moved, highlight=re_ranked, animate=list(animate or []))

    def _add_node_and_associated_relationships(self, v: int, result: set[int], max_id: int) -> None:
        result.add(v)
        if not self.store.is_person(v):
            return
        parent_rel = self.store.get_producing_relationship(v)
        if parent_rel is not None and parent_rel <= max_id:
            result.add(parent_rel)
        for rel in self.store.get_all_relationships(v):
            if rel <= max_id:
                result.add(rel)

    def _find_moved_nodes(self, before: _Before) -> list[int]:
        """Persons and relationships that existed before and now look different."""
        store = self.store
        positions = self.positions
        layout = self.layout

        # keep the old leftmost vertex in place if everything drifted right
        if before.positions and positions:
            old_min = min(before.positions.values())
            new_min = min(positions.values())
            old_min_vertex = min(before.positions, key=lambda v: (before.positions[v], v))
            if new_min > old_min and old_min_vertex in positions:
                shift = positions[old_min_vertex] - old_min
                for v in positions:
                    positions[v] -= shift

        result: set[int] = set()
        for v in store.real_vertices():
            if v > before.max_id or v not in before.ranks:
                continue
            old_rank = before.ranks[v]
            rank = self.ranks[v]
            if (
                0 <= old_rank < len(before.rank_y)
                and rank < len(layout.rank_y)
                and abs(layout.rank_y[rank] - before.rank_y[old_rank]) > _EPS
            ):
                self._add_node_and_associated_relationships(v, result, before.max_id)
                continue
            if abs(positions[v] - before.positions[v]) > _EPS:
                self._add_node_and_associated_relationships(v, result, before.max_id)
                continue
            if not store.is_relationship(v):
                continue
            # relationships: consanguinity, long edges, lanes
            if (v in layout.ancestry.consangr) != (v in before.consangr):
                result.add(v)
                continue
            if any(store.is_virtual(u) for u in store.get_in_edges(v)):
                result.add(v)
                continue
            parents = store.get_parents(v)
            if any(
                before.vertical.has_edge(p, v)
                and before.vertical.edge(p, v).vertical_level != layout.vertical.edge(p, v).vertical_level
                for p in parents
            ):
                result.add(v)
                continue
            hub = store.get_relationship_childhub(v)
            old_level = before.vertical.child_edge_level.get(hub)
            if old_level is not None and old_level != layout.vertical.child_edge_level.get(hub):
                result.add(v)
        return sorted(result)
