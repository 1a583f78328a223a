"""Shared fixtures for the pedigree layout tests."""
from __future__ import annotations

import json

import pytest

from pedigree_layout.dynamic import DynamicPedigree
from pedigree_layout.graph import GraphStore, VertexKind
from pedigree_layout.importer import AbstractGraph


@pytest.fixture
def pedigree() -> DynamicPedigree:
    """A pedigree holding only the proband."""
    return DynamicPedigree.make_empty()


@pytest.fixture
def with_parents(pedigree: DynamicPedigree) -> DynamicPedigree:
    """Proband plus a mother and a father."""
    pedigree.add_new_parents(0)
    return pedigree


@pytest.fixture
def family_store() -> GraphStore:
    """Two parents (1, 2) with two children (0, 5), built by hand.

    Ids: 0 proband, 1 father, 2 mother, 3 relationship, 4 childhub, 5 sibling.
    """
    store = GraphStore()
    store.add_vertex(VertexKind.PERSON, {"fName": "Ann"})
    store.add_vertex(VertexKind.PERSON, {"gender": "M", "fName": "Bob"})
    store.add_vertex(VertexKind.PERSON, {"gender": "F", "fName": "Cat"})
    store.add_vertex(VertexKind.RELATIONSHIP)
    store.add_vertex(VertexKind.CHILDHUB)
    store.add_vertex(VertexKind.PERSON, {"fName": "Dan"})
    store.add_edge(1, 3)
    store.add_edge(2, 3)
    store.add_edge(3, 4)
    store.add_edge(4, 0)
    store.add_edge(4, 5)
    return store


@pytest.fixture
def three_generations() -> dict:
    """Abstract pedigree: grandparents, parents, proband and a sibling."""
    return {
        "proband": "p",
        "vertices": [
            {"id": "p", "properties": {"gender": "F", "fName": "Alice"}, "parents": ["f", "m"]},
            {"id": "s", "properties": {"gender": "M", "fName": "Sam"}, "parents": ["f", "m"]},
            {"id": "f", "properties": {"gender": "M", "fName": "Frank"}, "parents": ["gf", "gm"]},
            {"id": "m", "properties": {"gender": "F", "fName": "Mary"}},
            {"id": "gf", "properties": {"gender": "M", "fName": "George"}},
            {"id": "gm", "properties": {"gender": "F", "fName": "Grace"}},
        ],
    }


@pytest.fixture
def consanguineous() -> dict:
    """Abstract pedigree where the proband's parents are siblings."""
    return {
        "proband": "e",
        "vertices": [
            {"id": "e", "parents": ["a", "b"]},
            {"id": "a", "properties": {"gender": "M"}, "parents": ["gf", "gm"]},
            {"id": "b", "properties": {"gender": "F"}, "parents": ["gf", "gm"]},
            {"id": "gf", "properties": {"gender": "M"}},
            {"id": "gm", "properties": {"gender": "F"}},
        ],
    }


@pytest.fixture
def imported(three_generations: dict) -> DynamicPedigree:
    pedigree = DynamicPedigree.make_empty()
    assert pedigree.from_import(AbstractGraph.model_validate(three_generations)) is not None
    return pedigree


@pytest.fixture
def graph_file(tmp_path, three_generations: dict):
    path = tmp_path / "family.json"
    path.write_text(json.dumps(three_generations))
    return path
