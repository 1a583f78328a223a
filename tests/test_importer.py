"""Tests for the abstract pedigree importer."""
from __future__ import annotations

import pytest

from pedigree_layout.errors import ErrorKind, PedigreeImportError
from pedigree_layout.graph import Gender, VertexKind
from pedigree_layout.importer import AbstractGraph, AbstractVertex, build_store


def _build(data: dict):
    return build_store(AbstractGraph.model_validate(data))


class TestAbstractGraph:
    """Tests for the abstract input models."""

    def test_integer_ids(self):
        """Test that integer ids are accepted as strings."""
        vertex = AbstractVertex.model_validate({"id": 7, "parents": [1, 2]})
        assert vertex.id == "7"
        assert vertex.parents == ["1", "2"]

    def test_only_persons(self):
        """Test that relationships cannot be imported as vertices."""
        with pytest.raises(ValueError):
            AbstractVertex.model_validate({"id": "r", "kind": "relationship"})

    def test_from_json_malformed(self):
        """Test that malformed JSON raises an import error."""
        with pytest.raises(PedigreeImportError) as exc:
            AbstractGraph.from_json('{"vertices": 3}')
        assert exc.value.kind == ErrorKind.BAD_IMPORT


class TestBuildStore:
    """Tests for build_store."""

    def test_proband_gets_id_zero(self, three_generations):
        """Test that the proband becomes vertex 0."""
        store = _build(three_generations)
        assert store.properties(0).first_name == "Alice"
        assert store.properties(0).external_id == "p"

    def test_first_person_is_default_proband(self):
        """Test the default proband."""
        store = _build({"vertices": [{"id": "x"}, {"id": "y"}]})
        assert store.properties(0).external_id == "x"

    def test_couples(self, three_generations):
        """Test relationships and children of the imported family."""
        store = _build(three_generations)
        assert len(store.persons()) == 6
        assert len(store.relationships()) == 2
        rel = store.get_producing_relationship(0)
        assert sorted(store.get_children(rel)) == [0, 1]
        father, mother = store.get_parents(rel)
        assert store.get_gender(father) == Gender.MALE
        assert store.get_gender(mother) == Gender.FEMALE
        store.validate()

    def test_single_parent_gets_partner(self):
        """Test the generated partner of a single known parent."""
        store = _build(
            {
                "vertices": [
                    {"id": "a", "parents": ["m"]},
                    {"id": "b", "parents": ["m"]},
                    {"id": "m", "properties": {"gender": "F"}},
                ]
            }
        )
        assert len(store.persons()) == 4
        rel = store.get_producing_relationship(0)
        assert rel == store.get_producing_relationship(1)
        generated = [p for p in store.get_parents(rel) if store.properties(p).external_id is None]
        assert len(generated) == 1
        assert store.get_gender(generated[0]) == Gender.MALE

    def test_childless_partnership(self):
        """Test an explicit partnership without children."""
        store = _build(
            {
                "vertices": [{"id": "a"}, {"id": "b"}],
                "partnerships": [{"partners": ["a", "b"], "properties": {"broken": True}}],
            }
        )
        rel = store.relationships()[0]
        assert store.get_children(rel) == []
        assert store.properties(rel).broken is True

    def test_person_group(self):
        """Test that person groups keep their size."""
        store = _build({"vertices": [{"id": "a"}, {"id": "g", "kind": "person_group", "properties": {"numPersons": 3}}]})
        assert store.kind(1) == VertexKind.PERSON_GROUP
        assert store.properties(1).num_persons == 3

    @pytest.mark.parametrize(
        "data, kind",
        [
            ({"vertices": []}, ErrorKind.EMPTY_IMPORT),
            ({"vertices": [{"id": "a"}, {"id": "a"}]}, ErrorKind.BAD_IMPORT),
            ({"vertices": [{"id": "a"}], "proband": "z"}, ErrorKind.BAD_IMPORT),
            ({"vertices": [{"id": "a", "parents": ["q"]}]}, ErrorKind.BAD_IMPORT),
            ({"vertices": [{"id": "a", "parents": ["a"]}]}, ErrorKind.BAD_IMPORT),
            (
                {"vertices": [{"id": "a", "parents": ["b", "c", "d"]}, {"id": "b"}, {"id": "c"}, {"id": "d"}]},
                ErrorKind.BAD_IMPORT,
            ),
            ({"vertices": [{"id": "a", "parents": ["b", "b"]}, {"id": "b"}]}, ErrorKind.BAD_IMPORT),
            ({"vertices": [{"id": "a", "properties": {"height": 2}}]}, ErrorKind.BAD_IMPORT),
            ({"vertices": [{"id": "a"}], "partnerships": [{"partners": ["a", "x"]}]}, ErrorKind.BAD_IMPORT),
            (
                {"vertices": [{"id": "a", "parents": ["b"]}, {"id": "b", "parents": ["a"]}]},
                ErrorKind.ANCESTRY_CYCLE,
            ),
        ],
    )
    def test_rejected(self, data, kind):
        """Test malformed pedigrees."""
        with pytest.raises(PedigreeImportError) as exc:
            _build(data)
        assert exc.value.kind == kind
