"""Typed graph storage for pedigree layouts.

Vertices live in an id-keyed table. Ids are handed out by a counter and are
never renumbered, so every other table (ranks, order, positions) can key on
them safely across insertions and removals.

Structural rules (checked by ``validate()``):

- a Relationship has one or two in-edges (partners, possibly routed through
  virtual edge segments) and exactly one out-edge, to its ChildHub
- a ChildHub has exactly one in-edge (its Relationship) and any number of
  out-edges to Person children
- a Person has at most one in-edge (its producing ChildHub) and out-edges to
  the Relationships it takes part in (directly or through virtual segments)
- a VirtualEdgeSegment has one in-edge and one out-edge; chains of segments
  lead from a Person to a Relationship
"""
from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from pedigree_layout.errors import ErrorKind, PedigreeImportError, PedigreeInvariantError

from .models import (
    Gender,
    GraphRecord,
    PersonProperties,
    Vertex,
    VertexKind,
    VertexProperties,
    VertexRecord,
    make_properties,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator


PROBAND = 0


class GraphStore:
    """In-memory pedigree graph with stable integer vertex ids."""

    def __init__(self) -> None:
        self._vertices: dict[int, Vertex] = {}
        self._next_id = 0

    # ------------------------------------------------------------------
    # Table access
    # ------------------------------------------------------------------

    def __contains__(self, v: object) -> bool:
        return v in self._vertices

    def __len__(self) -> int:
        return len(self._vertices)

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._vertices))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GraphStore):
            return NotImplemented
        return self.serialize() == other.serialize()

    __hash__ = None  # type: ignore[assignment]

    @property
    def next_id(self) -> int:
        return self._next_id

    def vertex_ids(self) -> list[int]:
        return sorted(self._vertices)

    def get(self, v: int) -> Vertex:
        try:
            return self._vertices[v]
        except KeyError:
            raise PedigreeInvariantError(
                kind=ErrorKind.UNKNOWN_VERTEX, message="no such vertex", vertex_id=v
            ) from None

    def kind(self, v: int) -> VertexKind:
        return self.get(v).kind

    def properties(self, v: int) -> VertexProperties:
        return self.get(v).properties

    def set_properties(self, v: int, properties: VertexProperties | dict[str, Any]) -> None:
        vertex = self.get(v)
        vertex.properties = make_properties(vertex.kind, properties)

    def is_person(self, v: int) -> bool:
        """True for persons and person groups."""
        vertex = self._vertices.get(v)
        return vertex is not None and vertex.kind.is_person_like

    def is_person_group(self, v: int) -> bool:
        vertex = self._vertices.get(v)
        return vertex is not None and vertex.kind == VertexKind.PERSON_GROUP

    def is_relationship(self, v: int) -> bool:
        vertex = self._vertices.get(v)
        return vertex is not None and vertex.kind == VertexKind.RELATIONSHIP

    def is_childhub(self, v: int) -> bool:
        vertex = self._vertices.get(v)
        return vertex is not None and vertex.kind == VertexKind.CHILDHUB

    def is_virtual(self, v: int) -> bool:
        vertex = self._vertices.get(v)
        return vertex is not None and vertex.kind == VertexKind.VIRTUAL_EDGE

    def max_real_vertex_id(self) -> int:
        """Largest id of a non-virtual vertex, -1 for an empty graph."""
        real = [v for v, vx in self._vertices.items() if vx.kind != VertexKind.VIRTUAL_EDGE]
        return max(real) if real else -1

    def persons(self) -> list[int]:
        return [v for v in self if self._vertices[v].kind.is_person_like]

    def relationships(self) -> list[int]:
        return [v for v in self if self._vertices[v].kind == VertexKind.RELATIONSHIP]

    def real_vertices(self) -> list[int]:
        """Persons and relationships: the vertices a renderer draws."""
        return [
            v for v in self
            if self._vertices[v].kind.is_person_like or self._vertices[v].kind == VertexKind.RELATIONSHIP
        ]

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_vertex(
        self,
        kind: VertexKind,
        properties: VertexProperties | dict[str, Any] | None = None,
        vertex_id: int | None = None,
    ) -> int:
        """Add an unconnected vertex (used while building a graph from scratch)."""
        if vertex_id is None:
            vertex_id = self._next_id
        if vertex_id in self._vertices:
            raise PedigreeInvariantError(
                kind=ErrorKind.VERTEX_IN_USE, message="vertex id already taken", vertex_id=vertex_id
            )
        self._vertices[vertex_id] = Vertex(id=vertex_id, kind=kind, properties=make_properties(kind, properties))
        self._next_id = max(self._next_id, vertex_id + 1)
        return vertex_id

    def insert_vertex(
        self,
        kind: VertexKind,
        properties: VertexProperties | dict[str, Any] | None = None,
        edge_weight: float = 1.0,
        in_edges: Iterable[int] = (),
        out_edges: Iterable[int] = (),
    ) -> int:
        """Append a new vertex connected to existing ones.

        The graph may be transiently inconsistent afterwards (e.g. a ChildHub
        without a Relationship) until the caller finishes a multi-step insertion.
        """
        in_edges = list(in_edges)
        out_edges = list(out_edges)
        if not in_edges and not out_edges:
            raise PedigreeInvariantError(
                kind=ErrorKind.DISCONNECTED_INSERTION,
                message=f"a new {kind.value} must be connected to at least one vertex",
            )
        for u in in_edges + out_edges:
            self.get(u)

        new_id = self.add_vertex(kind, properties)
        for u in in_edges:
            self.add_edge(u, new_id, edge_weight)
        for w in out_edges:
            self.add_edge(new_id, w, edge_weight)
        return new_id

    def add_edge(self, u: int, v: int, weight: float = 1.0) -> None:
        source = self.get(u)
        target = self.get(v)
        if u == v:
            raise PedigreeInvariantError(
                kind=ErrorKind.INCONSISTENT_GRAPH, message="self-loops are not allowed", vertex_id=u
            )
        source.out_edges[v] = weight
        target.in_edges[u] = weight

    def remove_edge(self, u: int, v: int) -> None:
        self.get(u).out_edges.pop(v, None)
        self.get(v).in_edges.pop(u, None)

    def replace_in_edge(self, v: int, old_source: int, new_source: int) -> None:
        """Re-point the edge ``old_source -> v`` to start at ``new_source``.

        The edge keeps its weight and its slot in ``v``'s in-edge order, so the
        partner order of a relationship survives the rerouting.
        """
        target = self.get(v)
        weight = target.in_edges[old_source]
        self.get(old_source).out_edges.pop(v)
        self.get(new_source).out_edges[v] = weight
        target.in_edges = {
            (new_source if u == old_source else u): w for u, w in target.in_edges.items()
        }

    def has_edge(self, u: int, v: int) -> bool:
        vertex = self._vertices.get(u)
        return vertex is not None and v in vertex.out_edges

    def remove_vertex(self, v: int) -> None:
        """Remove an edge-free vertex; callers detach dependents first."""
        vertex = self.get(v)
        if vertex.in_edges or vertex.out_edges:
            raise PedigreeInvariantError(
                kind=ErrorKind.VERTEX_IN_USE,
                message="vertex still has edges; remove its dependents first",
                vertex_id=v,
            )
        del self._vertices[v]

    def detach_and_remove(self, v: int) -> None:
        """Remove a vertex together with every edge touching it."""
        vertex = self.get(v)
        for u in list(vertex.in_edges):
            self.remove_edge(u, v)
        for w in list(vertex.out_edges):
            self.remove_edge(v, w)
        del self._vertices[v]

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def get_in_edges(self, v: int) -> list[int]:
        return list(self.get(v).in_edges)

    def get_out_edges(self, v: int) -> list[int]:
        return list(self.get(v).out_edges)

    def get_edge_weight(self, u: int, v: int) -> float:
        return self.get(u).out_edges[v]

    def up_the_chain_until_non_virtual(self, v: int) -> int:
        while self.is_virtual(v):
            v = self.get_in_edges(v)[0]
        return v

    def down_the_chain_until_non_virtual(self, v: int) -> int:
        while self.is_virtual(v):
            v = self.get_out_edges(v)[0]
        return v

    def get_relationship_childhub(self, rel: int) -> int:
        if not self.is_relationship(rel):
            raise PedigreeInvariantError(
                kind=ErrorKind.NOT_A_RELATIONSHIP, message="childhub lookup on a non-relationship", vertex_id=rel
            )
        return self.get_out_edges(rel)[0]

    def get_parents(self, rel: int) -> list[int]:
        """Partners of a relationship, following virtual chains up to the persons."""
        if not self.is_relationship(rel):
            raise PedigreeInvariantError(
                kind=ErrorKind.NOT_A_RELATIONSHIP, message="parents lookup on a non-relationship", vertex_id=rel
            )
        return [self.up_the_chain_until_non_virtual(u) for u in self.get_in_edges(rel)]

    def get_children(self, rel: int) -> list[int]:
        return self.get_out_edges(self.get_relationship_childhub(rel))

    def get_producing_relationship(self, person: int) -> int | None:
        in_edges = self.get_in_edges(person)
        if not in_edges:
            return None
        return self.get_in_edges(in_edges[0])[0]

    def get_all_relationships(self, person: int) -> list[int]:
        return [self.down_the_chain_until_non_virtual(u) for u in self.get_out_edges(person)]

    def get_all_partners(self, person: int) -> list[int]:
        partners: list[int] = []
        for rel in self.get_all_relationships(person):
            for parent in self.get_parents(rel):
                if parent != person and parent not in partners:
                    partners.append(parent)
        return partners

    def get_path_to_parents(self, rel: int) -> list[list[int]]:
        """One path per in-edge: [segment, ..., segment, person] (rel excluded)."""
        paths = []
        for u in self.get_in_edges(rel):
            path = [u]
            while self.is_virtual(path[-1]):
                path.append(self.get_in_edges(path[-1])[0])
            paths.append(path)
        return paths

    def get_gender(self, person: int) -> Gender:
        return self._person_properties(person).gender

    def get_opposite_gender(self, person: int) -> Gender:
        return self.get_gender(person).opposite

    def is_adopted(self, person: int) -> bool:
        return self._person_properties(person).adopted

    def _person_properties(self, person: int) -> PersonProperties:
        if not self.is_person(person):
            raise PedigreeInvariantError(
                kind=ErrorKind.NOT_A_PERSON, message="person lookup on a non-person", vertex_id=person
            )
        return self.get(person).properties  # type: ignore[return-value]

    # ------------------------------------------------------------------
    # Twins
    # ------------------------------------------------------------------

    def get_twin_group_id(self, person: int) -> int | None:
        if not self.is_person(person):
            return None
        return self._person_properties(person).twin_group

    def get_twins(self, person: int) -> list[int]:
        """Same-twin-group siblings, the person itself included."""
        group = self.get_twin_group_id(person)
        in_edges = self.get_in_edges(person)
        if group is None or not in_edges:
            return [person]
        return [
            sibling for sibling in self.get_out_edges(in_edges[0])
            if self.get_twin_group_id(sibling) == group
        ]

    def allocate_twin_group(self, rel: int) -> int:
        """Smallest twin-group id not used among the relationship's children."""
        used = {self.get_twin_group_id(c) for c in self.get_children(rel)}
        group = 0
        while group in used:
            group += 1
        return group

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> None:
        """Check every structural invariant; raise on the first violation."""

        def fail(message: str, v: int) -> None:
            raise PedigreeInvariantError(kind=ErrorKind.INCONSISTENT_GRAPH, message=message, vertex_id=v)

        for v in self:
            vertex = self._vertices[v]
            for u, weight in vertex.in_edges.items():
                if u not in self._vertices or self._vertices[u].out_edges.get(v) != weight:
                    fail(f"in-edge from {u} has no matching out-edge", v)
            for w, weight in vertex.out_edges.items():
                if w not in self._vertices or self._vertices[w].in_edges.get(v) != weight:
                    fail(f"out-edge to {w} has no matching in-edge", v)

            ins, outs = list(vertex.in_edges), list(vertex.out_edges)
            kind = vertex.kind

            if kind.is_person_like:
                if len(ins) > 1:
                    fail("person has more than one producing childhub", v)
                if ins and not self.is_childhub(ins[0]):
                    fail("person in-edge does not come from a childhub", v)
                for w in outs:
                    if not (self.is_relationship(w) or self.is_virtual(w)):
                        fail(f"person out-edge to {w} is not a relationship", v)
                props = vertex.properties
                if isinstance(props, PersonProperties) and props.twin_group is not None and not ins:
                    fail("twin group set on a person without parents", v)

            elif kind == VertexKind.RELATIONSHIP:
                if not 1 <= len(ins) <= 2:
                    fail(f"relationship has {len(ins)} partners", v)
                for u in ins:
                    if not (self.is_person(u) or self.is_virtual(u)):
                        fail(f"relationship in-edge from {u} is not a person", v)
                parents = self.get_parents(v)
                if len(set(parents)) != len(parents):
                    fail("relationship lists the same partner twice", v)
                if len(outs) != 1 or not self.is_childhub(outs[0]):
                    fail("relationship must have exactly one childhub", v)

            elif kind == VertexKind.CHILDHUB:
                if len(ins) != 1 or not self.is_relationship(ins[0]):
                    fail("childhub must be fed by exactly one relationship", v)
                for w in outs:
                    if not self.is_person(w):
                        fail(f"childhub out-edge to {w} is not a person", v)

            elif kind == VertexKind.VIRTUAL_EDGE:
                if len(ins) != 1 or len(outs) != 1:
                    fail("virtual segment must have one in-edge and one out-edge", v)
                if not (self.is_person(ins[0]) or self.is_virtual(ins[0])):
                    fail("virtual chain does not start at a person", v)
                if not (self.is_relationship(outs[0]) or self.is_virtual(outs[0])):
                    fail("virtual chain does not end at a relationship", v)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def serialize(self) -> GraphRecord:
        return GraphRecord(
            vertices=[
                VertexRecord(
                    id=v,
                    kind=self._vertices[v].kind,
                    properties=self._vertices[v].properties.to_dict(),
                    out_edges=list(self._vertices[v].out_edges.items()),
                    in_edges=list(self._vertices[v].in_edges),
                )
                for v in self
            ],
            next_id=self._next_id,
        )

    @classmethod
    def deserialize(cls, data: GraphRecord | dict[str, Any]) -> GraphStore:
        try:
            record = data if isinstance(data, GraphRecord) else GraphRecord.model_validate(data)
        except ValidationError as e:
            raise PedigreeImportError(kind=ErrorKind.BAD_IMPORT, message=f"malformed graph record: {e}") from e

        store = cls()
        try:
            for vr in record.vertices:
                store.add_vertex(vr.kind, vr.properties, vertex_id=vr.id)
            for vr in record.vertices:
                for target, weight in vr.out_edges:
                    store.add_edge(vr.id, target, weight)
            for vr in record.vertices:
                vertex = store._vertices[vr.id]
                if vr.in_edges:
                    if set(vr.in_edges) != set(vertex.in_edges):
                        raise PedigreeImportError(
                            kind=ErrorKind.BAD_IMPORT, message=f"in-edges of {vr.id} disagree with out-edges"
                        )
                    vertex.in_edges = {u: vertex.in_edges[u] for u in vr.in_edges}
        except PedigreeInvariantError as e:
            raise PedigreeImportError(kind=ErrorKind.BAD_IMPORT, message=str(e)) from e
        store._next_id = max(store._next_id, record.next_id)
        return store

    def copy(self) -> GraphStore:
        return copy.deepcopy(self)

    def make_collapsed_copy(self) -> GraphStore:
        """Copy without virtual segments: each chain becomes one person->relationship edge."""
        collapsed = GraphStore()
        for v in self:
            vertex = self._vertices[v]
            if vertex.kind != VertexKind.VIRTUAL_EDGE:
                collapsed.add_vertex(vertex.kind, vertex.properties, vertex_id=v)
        for v in self:
            vertex = self._vertices[v]
            if vertex.kind == VertexKind.VIRTUAL_EDGE:
                continue
            for w, weight in vertex.out_edges.items():
                collapsed.add_edge(v, self.down_the_chain_until_non_virtual(w), weight)
        collapsed._next_id = self._next_id
        return collapsed
