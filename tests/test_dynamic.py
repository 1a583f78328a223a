"""Tests for incremental pedigree editing."""
from __future__ import annotations

import pytest

from pedigree_layout.dynamic import DynamicPedigree
from pedigree_layout.errors import ErrorKind, PedigreeInvariantError
from pedigree_layout.graph import Gender
from pedigree_layout.importer import AbstractGraph


def _singles(*genders: str) -> DynamicPedigree:
    """Unrelated persons on one rank, ids 0..n-1."""
    pedigree = DynamicPedigree.make_empty()
    abstract = AbstractGraph.model_validate(
        {"vertices": [{"id": str(i), "properties": {"gender": g}} for i, g in enumerate(genders)]}
    )
    assert pedigree.from_import(abstract) is not None
    return pedigree


def _assert_ranks_layered(pedigree: DynamicPedigree) -> None:
    """Childhub one rank and children two ranks below every relationship; one segment per rank to far partners."""
    store, ranks = pedigree.store, pedigree.ranks
    for rel in store.relationships():
        hub = store.get_relationship_childhub(rel)
        assert ranks[hub] == ranks[rel] + 1
        for child in store.get_children(rel):
            assert ranks[child] == ranks[rel] + 2
        for path in store.get_path_to_parents(rel):
            person, segments = path[-1], path[:-1]
            assert all(store.is_virtual(s) for s in segments)
            assert [ranks[s] for s in segments] == list(range(ranks[rel], ranks[person], -1))


def _three_generation_singles() -> tuple[DynamicPedigree, int, int]:
    """Persons 0 (M) and 1 (F); 1 gets parents and a maternal grandmother.

    Returns the pedigree, 1's father (two ranks above 0) and 1's
    grandmother (four ranks above 0).
    """
    pedigree = _singles("M", "F")
    _, mother, father = pedigree.add_new_parents(1).new
    _, grandmother, _ = pedigree.add_new_parents(mother).new
    return pedigree, father, grandmother


class TestQueries:
    """Tests for read-only queries."""

    def test_empty_pedigree(self, pedigree):
        """Test the proband-only pedigree."""
        assert pedigree.get_max_node_id() == 0
        assert pedigree.is_valid_id(0)
        assert not pedigree.is_valid_id(1)
        assert pedigree.get_generation(0) == 1
        assert pedigree.get_order_within_generation(0) == 1
        assert pedigree.get_parent_relationship(0) is None
        assert not pedigree.has_relationships(0)

    def test_kind_queries(self, with_parents):
        """Test the kind predicates of the facade."""
        assert with_parents.is_person(0)
        assert with_parents.is_relationship(2)
        assert not with_parents.is_valid_id(1)
        assert not with_parents.is_person_group(0)
        assert not with_parents.is_placeholder(0)

    def test_generations(self, with_parents):
        """Test generation numbers after adding parents."""
        assert with_parents.get_generation(3) == 1
        assert with_parents.get_generation(4) == 1
        assert with_parents.get_generation(0) == 2

    def test_order_within_generation(self, with_parents):
        """Test that relationships are skipped when counting."""
        orders = {with_parents.get_order_within_generation(p) for p in (3, 4)}
        assert orders == {1, 2}

    def test_family_relations(self, with_parents):
        """Test parent, child and proband relations."""
        assert with_parents.get_all_children(2) == [0]
        assert with_parents.get_all_children(3) == [0]
        assert with_parents.get_all_related_relationships(0) == [2]
        assert with_parents.is_related_to_proband(3)
        assert with_parents.is_partnership_related_to_proband(2)
        assert with_parents.has_relationships(3)
        assert with_parents.get_relationship_children_sorted_by_order(2) == [0]

    def test_path_to_parents(self, with_parents):
        """Test direct partner paths."""
        assert sorted(with_parents.get_path_to_parents(2)) == [[3], [4]]

    def test_genders(self, with_parents):
        """Test gender queries."""
        assert with_parents.get_gender(3) == Gender.FEMALE
        assert with_parents.get_opposite_gender(3) == Gender.MALE
        assert with_parents.get_possible_genders(3) == {Gender.FEMALE, Gender.UNKNOWN}
        assert with_parents.get_possible_genders(0) == {Gender.MALE, Gender.FEMALE, Gender.UNKNOWN}

    def test_gender_of_relationship(self, with_parents):
        """Test that gender lookups need a person."""
        with pytest.raises(PedigreeInvariantError) as exc:
            with_parents.get_gender(2)
        assert exc.value.kind == ErrorKind.NOT_A_PERSON

    def test_possible_relatives(self, with_parents):
        """Test the candidate lists offered for new links."""
        assert with_parents.get_possible_children_of(0) == []
        assert 0 not in with_parents.get_possible_parents_of(3)
        assert 3 in with_parents.get_possible_parents_of(0)
        assert with_parents.get_possible_partners_of(3) == [0]
        assert with_parents.get_possible_siblings_of(3) == [4]

    def test_person_group_never_a_partner(self):
        """Test that person groups are not offered as partners."""
        pedigree = DynamicPedigree.make_empty()
        abstract = AbstractGraph.model_validate(
            {
                "vertices": [
                    {"id": "a", "properties": {"gender": "M"}},
                    {"id": "g", "kind": "person_group", "properties": {"numPersons": 3}},
                    {"id": "b", "properties": {"gender": "F"}},
                ]
            }
        )
        assert pedigree.from_import(abstract) is not None
        group = next(v for v in pedigree.store.persons() if pedigree.is_person_group(v))
        candidates = pedigree.get_possible_partners_of(0)
        assert group not in candidates
        assert [pedigree.get_properties(v).external_id for v in candidates] == ["b"]

    def test_positions(self, with_parents):
        """Test rendered coordinates."""
        child = with_parents.get_position(0)
        mother = with_parents.get_position(3)
        assert child.y > mother.y
        hub = with_parents.get_relationship_childhub_position(2)
        assert hub.x == with_parents.positions[1]

    def test_relationship_line_info(self, with_parents):
        """Test the line from a partner to an adjacent relationship."""
        info = with_parents.get_relationship_line_info(2, 3)
        assert info.attachment_port == 0
        assert info.vertical_level == 0
        assert info.num_attach_ports == 1
        assert info.attach_y == info.vertical_y

    def test_disconnected_set(self, with_parents):
        """Test the vertices cut off by removing the mother."""
        assert with_parents.get_disconnected_set_if_node_removed(3) == [2, 3, 4]

    def test_childless_and_adoption(self, with_parents):
        """Test childless and adoption flags."""
        assert not with_parents.is_childless(2)
        assert not with_parents.has_to_be_adopted(0)
        with_parents.set_properties(2, {"childlessStatus": "infertile"})
        assert with_parents.is_childless(2)
        assert with_parents.has_to_be_adopted(0)
        assert not with_parents.is_adopted(0)
        assert with_parents.has_non_placeholder_non_adopted_children(2)


class TestProbandData:
    """Tests for set_proband_data."""

    def test_set_proband_data(self, pedigree):
        """Test that names and gender are applied."""
        assert pedigree.set_proband_data("Ann", "Lee", "F") is True
        props = pedigree.get_properties(0)
        assert props.first_name == "Ann"
        assert props.last_name == "Lee"
        assert props.gender == Gender.FEMALE

    def test_gender_conflicting_with_partner(self, pedigree):
        """Test that a gender equal to the partner's is reset to unknown."""
        pedigree.set_proband_data("Ann", "Lee", "M")
        pedigree.add_new_relationship(0)
        assert pedigree.set_proband_data("Ann", "Lee", "F") is False
        assert pedigree.get_gender(0) == Gender.UNKNOWN


class TestAddParents:
    """Tests for add_new_parents."""

    def test_add_parents_to_proband(self, pedigree):
        """Test the three new vertices and the change-set."""
        changes = pedigree.add_new_parents(0)
        assert len(changes.new) == 3
        rel = pedigree.get_parent_relationship(0)
        assert rel is not None
        assert changes.new[0] == rel
        assert changes.highlight == [0]
        assert sorted(pedigree.store.get_parents(rel)) == sorted(changes.new[1:])
        pedigree.layout.check()

    def test_parent_genders(self, with_parents):
        """Test that one mother and one father are created."""
        genders = sorted(with_parents.get_gender(p).value for p in (3, 4))
        assert genders == ["F", "M"]

    def test_ranks_shift_down(self, with_parents):
        """Test that the proband moves down to make room for parents."""
        assert with_parents.ranks[3] == with_parents.ranks[2] == 1
        assert with_parents.ranks[1] == 2
        assert with_parents.ranks[0] == 3

    def test_already_has_parents(self, with_parents):
        """Test that parents cannot be added twice."""
        with pytest.raises(PedigreeInvariantError) as exc:
            with_parents.add_new_parents(0)
        assert exc.value.kind == ErrorKind.ALREADY_HAS_PARENTS

    def test_grandparents(self, with_parents):
        """Test a third generation above the mother."""
        changes = with_parents.add_new_parents(3)
        assert len(changes.new) == 3
        with_parents.layout.check()
        assert with_parents.get_generation(0) == 3
        assert with_parents.get_generation(3) == 2


class TestAddChildren:
    """Tests for add_new_child, add_new_relationship and add_twin."""

    def test_add_child(self, with_parents):
        """Test a sibling for the proband."""
        changes = with_parents.add_new_child(2, {"fName": "Sib"})
        child = changes.new[0]
        assert with_parents.get_parent_relationship(child) == 2
        assert 2 in changes.moved
        assert sorted(changes.animate) == [3, 4]
        assert with_parents.get_properties(child).first_name == "Sib"
        assert abs(with_parents.layout.order.index(child) - with_parents.layout.order.index(0)) == 1
        with_parents.layout.check()

    def test_add_child_under_childhub(self, with_parents):
        """Test that the childhub id is accepted too."""
        changes = with_parents.add_new_child(1)
        assert with_parents.get_parent_relationship(changes.new[0]) == 2

    def test_add_child_under_person(self, with_parents):
        """Test that persons cannot take children directly."""
        with pytest.raises(PedigreeInvariantError) as exc:
            with_parents.add_new_child(0)
        assert exc.value.kind == ErrorKind.NOT_A_CHILDHUB

    def test_add_twins_as_children(self, with_parents):
        """Test adding two twins at once."""
        changes = with_parents.add_new_child(2, num_twins=2)
        assert len(changes.new) == 2
        a, b = changes.new
        assert with_parents.get_twin_group_id(a) is not None
        assert with_parents.get_twin_group_id(a) == with_parents.get_twin_group_id(b)
        with_parents.layout.check()

    def test_add_relationship(self, pedigree):
        """Test a partner and a child for the proband."""
        changes = pedigree.add_new_relationship(0)
        rel, partner, child = changes.new
        assert pedigree.is_relationship(rel)
        assert sorted(pedigree.store.get_parents(rel)) == [0, partner]
        assert pedigree.get_parent_relationship(child) == rel
        assert pedigree.is_child_of_proband(child)
        assert changes.highlight == [0]
        assert pedigree.ranks[rel] == pedigree.ranks[0]
        assert pedigree.ranks[child] == pedigree.ranks[0] + 2
        pedigree.layout.check()

    def test_partner_gets_opposite_gender(self, pedigree):
        """Test the generated partner's gender."""
        pedigree.set_proband_data("Ann", "Lee", "F")
        changes = pedigree.add_new_relationship(0)
        assert pedigree.get_gender(changes.new[1]) == Gender.MALE

    def test_second_relationship(self, with_parents):
        """Test a second partner for the father."""
        changes = with_parents.add_new_relationship(4)
        assert len(changes.new) == 3
        assert len(with_parents.store.get_all_partners(4)) == 2
        with_parents.layout.check()

    def test_add_twin(self, with_parents):
        """Test a twin for the proband."""
        changes = with_parents.add_twin(0)
        twin = changes.new[0]
        group = with_parents.get_twin_group_id(0)
        assert group is not None
        assert with_parents.get_twin_group_id(twin) == group
        order = with_parents.layout.order
        assert abs(order.index(twin) - order.index(0)) == 1
        assert with_parents.get_all_twins_sorted_by_order(0) == sorted([0, twin], key=order.index)
        assert 2 in changes.moved
        with_parents.layout.check()

    def test_twin_needs_parents(self, pedigree):
        """Test that a parentless person cannot get a twin."""
        with pytest.raises(PedigreeInvariantError) as exc:
            pedigree.add_twin(0)
        assert exc.value.kind == ErrorKind.INVALID_TWIN_INSERTION


class TestAssign:
    """Tests for assign_partner and assign_parent."""

    def test_assign_partner_same_rank(self):
        """Test joining two unrelated persons on one rank."""
        pedigree = _singles("M", "F")
        changes = pedigree.assign_partner(0, 1)
        rel, child = changes.new
        assert sorted(pedigree.store.get_parents(rel)) == [0, 1]
        assert pedigree.get_parent_relationship(child) == rel
        assert not pedigree.is_consangr_relationship(rel)
        assert sorted(changes.highlight) == sorted([0, 1, child])
        pedigree.layout.check()

    def test_assign_partner_twice(self, with_parents):
        """Test that existing partners are rejected."""
        with pytest.raises(PedigreeInvariantError) as exc:
            with_parents.assign_partner(3, 4)
        assert exc.value.kind == ErrorKind.ALREADY_PARTNERS

    def test_assign_partner_to_self(self, pedigree):
        """Test that a person cannot partner with itself."""
        with pytest.raises(PedigreeInvariantError) as exc:
            pedigree.assign_partner(0, 0)
        assert exc.value.kind == ErrorKind.SAME_PERSON

    def test_assign_relationship_as_parent(self):
        """Test adopting a person into an existing couple."""
        pedigree = DynamicPedigree.make_empty()
        abstract = AbstractGraph.model_validate(
            {
                "vertices": [{"id": "c"}, {"id": "f", "properties": {"gender": "M"}}, {"id": "m"}],
                "partnerships": [{"partners": ["f", "m"]}],
            }
        )
        assert pedigree.from_import(abstract) is not None
        rel = pedigree.store.relationships()[0]

        pedigree.assign_parent(rel, 0)
        assert pedigree.get_parent_relationship(0) == rel
        assert pedigree.get_generation(0) == 2
        pedigree.layout.check()

    def test_assign_person_as_parent(self):
        """Test a same-rank person becoming a parent through a new partner."""
        pedigree = _singles("U", "M")
        changes = pedigree.assign_parent(1, 0)
        rel = pedigree.get_parent_relationship(0)
        assert rel is not None
        assert 1 in pedigree.store.get_parents(rel)
        assert rel in changes.new
        assert pedigree.ranks[1] < pedigree.ranks[0]
        pedigree.layout.check()

    def test_assign_partner_across_ranks(self):
        """Test partners four ranks apart joined through a virtual chain."""
        pedigree, _, grandmother = _three_generation_singles()
        assert pedigree.ranks[grandmother] == pedigree.ranks[0] - 4

        changes = pedigree.assign_partner(grandmother, 0)
        rel, child = changes.new
        assert sorted(pedigree.store.get_parents(rel)) == sorted([0, grandmother])
        assert pedigree.ranks[rel] == pedigree.ranks[0]
        assert pedigree.ranks[child] == pedigree.ranks[rel] + 2
        chain = next(p for p in pedigree.store.get_path_to_parents(rel) if p[-1] == grandmother)
        assert len(chain) - 1 == 4
        assert sorted(changes.highlight) == sorted([0, grandmother, child])
        _assert_ranks_layered(pedigree)
        pedigree.layout.check()

    def test_assign_person_two_ranks_up_as_parent(self):
        """Test a parent exactly one generation above the child."""
        pedigree, father, _ = _three_generation_singles()
        assert pedigree.ranks[father] == pedigree.ranks[0] - 2

        changes = pedigree.assign_parent(father, 0)
        rel, new_parent = changes.new
        assert pedigree.get_parent_relationship(0) == rel
        assert sorted(pedigree.store.get_parents(rel)) == sorted([father, new_parent])
        assert pedigree.get_gender(new_parent) == Gender.FEMALE
        assert pedigree.ranks[rel] == pedigree.ranks[father]
        assert all(len(p) == 1 for p in pedigree.store.get_path_to_parents(rel))
        assert changes.highlight == [father, new_parent, 0]
        _assert_ranks_layered(pedigree)
        pedigree.layout.check()

    def test_assign_distant_person_as_parent(self):
        """Test a parent several generations up reaching its relationship through segments."""
        pedigree, _, grandmother = _three_generation_singles()

        changes = pedigree.assign_parent(grandmother, 0)
        rel, new_parent = changes.new
        assert pedigree.get_parent_relationship(0) == rel
        assert pedigree.get_gender(new_parent) == Gender.MALE
        assert pedigree.ranks[rel] == pedigree.ranks[0] - 2
        assert pedigree.ranks[new_parent] == pedigree.ranks[rel]
        chain = next(p for p in pedigree.store.get_path_to_parents(rel) if p[-1] == grandmother)
        assert len(chain) - 1 == 2
        _assert_ranks_layered(pedigree)
        pedigree.layout.check()

    def test_assign_same_rank_parent_redraws(self):
        """Test that a parent on the child's rank forces a full redraw."""
        pedigree = _singles("M", "F")
        changes = pedigree.assign_parent(0, 1)
        rel, new_parent = changes.new
        assert pedigree.get_parent_relationship(1) == rel
        assert sorted(pedigree.store.get_parents(rel)) == sorted([0, new_parent])
        assert pedigree.ranks[1] == pedigree.ranks[rel] + 2
        assert pedigree.ranks[0] == 1

        assert sorted(changes.moved) == sorted(set(pedigree.store.real_vertices()) - {rel, new_parent})
        assert changes.animate == [1, 0]
        # fewer persons changed rank than vertices shifted differently from the proband
        assert sorted(changes.highlight) == sorted([1, new_parent])
        _assert_ranks_layered(pedigree)
        pedigree.layout.check()

    def test_redraw_highlights_vertices_shifted_unlike_proband(self):
        """Test that a uniform shift of one family leaves only the odd ones highlighted."""
        pedigree = DynamicPedigree.make_empty()
        abstract = AbstractGraph.model_validate(
            {
                "vertices": [
                    {"id": "c", "parents": ["f", "m"]},
                    {"id": "f", "properties": {"gender": "M"}},
                    {"id": "m", "properties": {"gender": "F"}},
                    {"id": "x", "properties": {"gender": "M"}},
                ]
            }
        )
        assert pedigree.from_import(abstract) is not None
        store = pedigree.store
        mother = next(p for p in store.persons() if store.properties(p).external_id == "m")
        loner = next(p for p in store.persons() if store.properties(p).external_id == "x")
        ranks_before = dict(pedigree.ranks)

        changes = pedigree.assign_parent(loner, mother)
        rel, new_parent = changes.new
        assert pedigree.ranks[loner] == ranks_before[loner]
        assert pedigree.ranks[0] == ranks_before[0] + 2
        assert pedigree.ranks[mother] == ranks_before[mother] + 2
        assert sorted(changes.highlight) == sorted([loner, rel, new_parent])
        assert rel not in changes.moved and new_parent not in changes.moved
        _assert_ranks_layered(pedigree)
        pedigree.layout.check()

    def test_assign_descendant_as_parent(self, with_parents):
        """Test that a descendant cannot become a parent."""
        before = with_parents.to_json()
        with pytest.raises(PedigreeInvariantError) as exc:
            with_parents.assign_parent(0, 3)
        assert exc.value.kind == ErrorKind.ANCESTRY_CYCLE
        assert with_parents.to_json() == before

    def test_assign_parent_to_child_with_parents(self, with_parents):
        """Test that parents are never replaced."""
        with pytest.raises(PedigreeInvariantError) as exc:
            with_parents.assign_parent(4, 0)
        assert exc.value.kind == ErrorKind.ALREADY_HAS_PARENTS


class TestRemove:
    """Tests for remove_nodes."""

    def test_remove_sole_relationship(self, pedigree):
        """Test that a relationship takes its childhub along."""
        rel, partner, child = pedigree.add_new_relationship(0).new
        hub = pedigree.store.get_relationship_childhub(rel)
        changes = pedigree.remove_nodes([rel])
        assert changes.removed == [rel]
        assert rel in changes.removed_internally
        assert hub in changes.removed_internally
        assert pedigree.get_parent_relationship(child) is None
        assert partner in pedigree.store
        pedigree.layout.check()

    def test_remove_parent(self, with_parents):
        """Test that removing a parent removes the couple's relationship."""
        changes = with_parents.remove_nodes([3])
        assert changes.removed_internally == [1, 2, 3]
        assert with_parents.get_parent_relationship(0) is None
        assert 4 in with_parents.store
        with_parents.layout.check()

    def test_remove_long_edge_relationship(self):
        """Test that a relationship takes the virtual chain to its far partner along."""
        pedigree, _, grandmother = _three_generation_singles()
        rel, child = pedigree.assign_partner(0, grandmother).new
        chain = next(p for p in pedigree.store.get_path_to_parents(rel) if p[-1] == grandmother)
        segments = chain[:-1]
        assert len(segments) == 4

        changes = pedigree.remove_nodes([rel])
        assert changes.removed == [rel]
        assert set(segments) <= set(changes.removed_internally)
        assert not any(s in pedigree.store for s in segments)
        assert not any(pedigree.store.is_virtual(v) for v in pedigree.store)
        assert grandmother in pedigree.store
        assert child in pedigree.store
        assert pedigree.get_parent_relationship(child) is None
        assert 0 not in pedigree.store.get_all_partners(grandmother)
        _assert_ranks_layered(pedigree)
        pedigree.layout.check()

    def test_remove_twin_clears_group(self, with_parents):
        """Test that a lone remaining twin loses its group."""
        twin = with_parents.add_twin(0).new[0]
        with_parents.remove_nodes([twin])
        assert with_parents.get_twin_group_id(0) is not None
        with_parents.remove_nodes([3])
        assert with_parents.get_twin_group_id(0) is None
        with_parents.layout.check()

    def test_remove_proband(self, with_parents):
        """Test that the proband stays."""
        with pytest.raises(PedigreeInvariantError) as exc:
            with_parents.remove_nodes([0])
        assert exc.value.kind == ErrorKind.VERTEX_IN_USE

    def test_remove_childhub(self, with_parents):
        """Test that only persons and relationships can be removed."""
        with pytest.raises(PedigreeInvariantError) as exc:
            with_parents.remove_nodes([1])
        assert exc.value.kind == ErrorKind.UNKNOWN_VERTEX

    def test_ids_not_reused_after_removal(self, with_parents):
        """Test that new vertices get fresh ids."""
        with_parents.remove_nodes([3])
        changes = with_parents.add_new_parents(0)
        assert min(changes.new) > 4


class TestWholeGraph:
    """Tests for whole-graph operations."""

    def test_clear_all(self, with_parents):
        """Test that everything but the proband goes."""
        with_parents.set_proband_data("Ann", "Lee", "F")
        changes = with_parents.clear_all()
        assert sorted(changes.removed) == [2, 3, 4]
        assert changes.make_visible == [0]
        assert len(with_parents.store) == 1
        assert with_parents.get_properties(0).first_name == "Ann"

    def test_redraw_all(self, with_parents):
        """Test a full re-layout of an edited pedigree."""
        with_parents.add_new_child(2)
        changes = with_parents.redraw_all()
        assert set(changes.moved) == set(with_parents.store.real_vertices())
        with_parents.layout.check()

    def test_improve_position(self, with_parents):
        """Test the standalone positioning pass."""
        with_parents.improve_position()
        with_parents.layout.check()

    def test_update_ancestors(self, with_parents):
        """Test that every relationship is reported."""
        assert with_parents.update_ancestors().moved == [2]

    def test_json_roundtrip(self, with_parents):
        """Test restoring a saved pedigree."""
        with_parents.add_twin(0)
        saved = with_parents.to_json()
        restored = DynamicPedigree.make_empty()
        changes = restored.from_json(saved)
        assert changes is not None
        assert changes.removed == [0]
        assert restored.to_json() == saved
        restored.layout.check()

    def test_from_json_garbage(self, with_parents):
        """Test that a bad snapshot leaves the pedigree alone."""
        before = with_parents.to_json()
        assert with_parents.from_json("{not json") is None
        assert with_parents.to_json() == before

    def test_from_import(self, imported):
        """Test the imported three-generation pedigree."""
        assert len(imported.store.persons()) == 6
        assert imported.get_generation(0) == 3
        assert imported.get_properties(0).first_name == "Alice"
        imported.layout.check()

    def test_failed_import_keeps_layout(self, with_parents):
        """Test that an empty import leaves the pedigree alone."""
        before = with_parents.to_json()
        assert with_parents.from_import('{"vertices": []}') is None
        assert with_parents.to_json() == before

    def test_consanguinity(self, consanguineous):
        """Test derived and overridden consanguinity."""
        pedigree = DynamicPedigree.make_empty()
        assert pedigree.from_import(AbstractGraph.model_validate(consanguineous)) is not None
        rel = pedigree.get_parent_relationship(0)
        assert pedigree.is_consangr_relationship(rel)
        grand_rel = pedigree.get_parent_relationship(pedigree.store.get_parents(rel)[0])
        assert not pedigree.is_consangr_relationship(grand_rel)
        pedigree.set_properties(rel, {"consangr": "N"})
        assert not pedigree.is_consangr_relationship(rel)


class TestTransactions:
    """Tests for rollback of failed mutations."""

    def test_rollback_mid_mutation(self, pedigree):
        """Test that a failure after partial insertion restores the layout."""
        before = pedigree.to_json()
        with pytest.raises(PedigreeInvariantError) as exc:
            pedigree.add_new_relationship(0, {"bogus": True})
        assert exc.value.kind == ErrorKind.INVALID_PROPERTIES
        assert pedigree.to_json() == before
        assert pedigree.get_max_node_id() == 0

    def test_mutations_keep_graph_valid(self, pedigree):
        """Test a sequence of edits, validating after each one."""
        pedigree.add_new_parents(0)
        pedigree.layout.check()
        rel = pedigree.get_parent_relationship(0)
        pedigree.add_new_child(rel)
        pedigree.layout.check()
        pedigree.add_new_relationship(0)
        pedigree.layout.check()
        pedigree.add_twin(0)
        pedigree.layout.check()
        mother = pedigree.store.get_parents(rel)[0]
        pedigree.add_new_parents(mother)
        pedigree.layout.check()
        pedigree.remove_nodes([mother])
        pedigree.layout.check()
