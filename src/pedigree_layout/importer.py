"""Abstract input graph and its conversion into a graph store.

The abstract form is what an external format reader (PED, GEDCOM, ...)
produces: person descriptors referring to their parents by external id,
plus optional explicit partnerships for couples that have no children.
Anything malformed raises ``PedigreeImportError``; nothing is half-built.
"""
from __future__ import annotations

from typing import Any

import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

from pedigree_layout.errors import ErrorKind, PedigreeImportError, PedigreeInvariantError
from pedigree_layout.graph import (
    Gender,
    GraphStore,
    PersonProperties,
    VertexKind,
    has_ancestry_cycle,
    make_properties,
)

logger = structlog.get_logger(__name__)


class AbstractVertex(BaseModel):
    """One person (or person group) of an imported pedigree."""
    id: str
    kind: VertexKind = VertexKind.PERSON
    properties: dict[str, Any] = Field(default_factory=dict)
    parents: list[str] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("parents", mode="before")
    @classmethod
    def _stringify_parents(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [str(p) if isinstance(p, int) else p for p in value]
        return value

    @field_validator("kind")
    @classmethod
    def _person_like(cls, value: VertexKind) -> VertexKind:
        if not value.is_person_like:
            raise ValueError("only persons and person groups can be imported")
        return value


class AbstractPartnership(BaseModel):
    """An explicit partnership, needed only when the couple has no listed children."""
    partners: list[str] = Field(min_length=2, max_length=2)
    properties: dict[str, Any] = Field(default_factory=dict)

    @field_validator("partners", mode="before")
    @classmethod
    def _stringify_partners(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [str(p) if isinstance(p, int) else p for p in value]
        return value


class AbstractGraph(BaseModel):
    vertices: list[AbstractVertex] = Field(default_factory=list)
    partnerships: list[AbstractPartnership] = Field(default_factory=list)
    proband: str | None = None

    @field_validator("proband", mode="before")
    @classmethod
    def _stringify_proband(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @classmethod
    def from_json(cls, text: str | bytes) -> AbstractGraph:
        try:
            return cls.model_validate_json(text)
        except ValidationError as e:
            raise PedigreeImportError(kind=ErrorKind.BAD_IMPORT, message=f"malformed pedigree: {e}") from e


def _fail(message: str, kind: ErrorKind = ErrorKind.BAD_IMPORT) -> PedigreeImportError:
    return PedigreeImportError(kind=kind, message=message)


def build_store(abstract: AbstractGraph) -> GraphStore:
    """Turn an abstract pedigree into a validated graph store.

    The proband (or the first listed person) becomes vertex 0. A person with
    a single known parent gets a generated partner of the opposite gender for
    that parent, shared by all children listed with only that parent.
    """
    if not abstract.vertices:
        raise _fail("pedigree has no persons", ErrorKind.EMPTY_IMPORT)

    by_id: dict[str, AbstractVertex] = {}
    for vertex in abstract.vertices:
        if vertex.id in by_id:
            raise _fail(f"duplicate person id {vertex.id!r}")
        by_id[vertex.id] = vertex

    proband = abstract.proband if abstract.proband is not None else abstract.vertices[0].id
    if proband not in by_id:
        raise _fail(f"proband {proband!r} is not a listed person")

    for vertex in abstract.vertices:
        if len(vertex.parents) > 2:
            raise _fail(f"person {vertex.id!r} has more than two parents")
        if len(set(vertex.parents)) != len(vertex.parents):
            raise _fail(f"person {vertex.id!r} lists the same parent twice")
        for parent in vertex.parents:
            if parent == vertex.id:
                raise _fail(f"person {vertex.id!r} is listed as its own parent")
            if parent not in by_id:
                raise _fail(f"person {vertex.id!r} refers to unknown parent {parent!r}")
    for partnership in abstract.partnerships:
        a, b = partnership.partners
        if a == b:
            raise _fail(f"person {a!r} cannot partner with itself")
        for p in (a, b):
            if p not in by_id:
                raise _fail(f"partnership refers to unknown person {p!r}")

    store = GraphStore()
    ids: dict[str, int] = {}
    try:
        ordered = [by_id[proband]] + [v for v in abstract.vertices if v.id != proband]
        for vertex in ordered:
            properties = make_properties(vertex.kind, vertex.properties)
            if isinstance(properties, PersonProperties) and properties.external_id is None:
                properties.external_id = vertex.id
            ids[vertex.id] = store.add_vertex(vertex.kind, properties)

        # couples keyed by their (ordered) partner ids
        couples: dict[tuple[int, ...], list[int]] = {}
        couple_properties: dict[tuple[int, ...], dict[str, Any]] = {}
        generated: dict[int, int] = {}
        for vertex in ordered:
            parents = [ids[p] for p in vertex.parents]
            if len(parents) == 1:
                known = parents[0]
                if known not in generated:
                    gender = store.get_gender(known).opposite
                    generated[known] = store.add_vertex(VertexKind.PERSON, {"gender": gender.value})
                parents.append(generated[known])
            if parents:
                couples.setdefault(tuple(sorted(parents)), []).append(ids[vertex.id])
        for partnership in abstract.partnerships:
            key = tuple(sorted(ids[p] for p in partnership.partners))
            couples.setdefault(key, [])
            couple_properties[key] = partnership.properties

        for key in sorted(couples):
            rel = store.add_vertex(VertexKind.RELATIONSHIP, couple_properties.get(key))
            hub = store.add_vertex(VertexKind.CHILDHUB)
            # father on the left when genders are known
            partners = sorted(key, key=lambda p: (store.get_gender(p) != Gender.MALE, p))
            for partner in partners:
                store.add_edge(partner, rel)
            store.add_edge(rel, hub)
            for child in couples[key]:
                store.add_edge(hub, child)
    except PedigreeInvariantError as e:
        raise _fail(str(e)) from e

    if has_ancestry_cycle(store):
        raise _fail("a person is listed as its own ancestor", ErrorKind.ANCESTRY_CYCLE)
    try:
        store.validate()
    except PedigreeInvariantError as e:
        raise _fail(str(e)) from e

    logger.info(
        "import.built",
        persons=len(store.persons()),
        relationships=len(store.relationships()),
        generated_partners=len(generated),
    )
    return store
