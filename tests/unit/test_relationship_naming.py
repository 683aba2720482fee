"""Tests for relationship path search and naming."""

import pytest

from familytree.config.constants import KEY_RELATED_BY_MARRIAGE, KEY_RELATED_TO, KEY_SAME_PERSON
from familytree.models.enums import Sex
from familytree.models.tree_view import PathEdge, PathNode
from familytree.services.relationship_namer import RelationshipNamer, analyze_path, great_prefix
from familytree.services.relationship_path import FamilyGraph
from familytree.services.tree_view import blood_relationship_name

UP = PathEdge.PARENT
DOWN = PathEdge.CHILD
SPOUSE = PathEdge.SPOUSE


def path(edges: list[PathEdge], last_sex: Sex = Sex.MALE) -> list[PathNode]:
    """Nodes named P0..Pn joined by ``edges``; the last person has ``last_sex``."""
    nodes = []
    for index in range(len(edges) + 1):
        sex = last_sex if index == len(edges) else Sex.UNKNOWN
        edge = edges[index] if index < len(edges) else None
        nodes.append(PathNode(person_id=f"p{index}", name=f"P{index}", sex=sex, edge_to_next=edge))
    return nodes


@pytest.fixture
def namer():
    return RelationshipNamer()


class TestAnalyzePath:
    """Test generation counting around the turning point."""

    def test_cousin_path(self):
        analysis = analyze_path([UP, UP, DOWN, DOWN])

        assert (analysis.gen1, analysis.gen2) == (2, 2)
        assert not analysis.has_spouse

    def test_descendant_path(self):
        analysis = analyze_path([DOWN, DOWN])

        assert (analysis.gen1, analysis.gen2) == (0, 2)
        assert analysis.is_direct_line

    def test_spouse_edges_counted_separately(self):
        analysis = analyze_path([SPOUSE, UP])

        assert (analysis.gen1, analysis.gen2) == (1, 0)
        assert analysis.has_spouse
        assert not analysis.only_spouse

    def test_down_then_up_is_flagged(self):
        assert analyze_path([DOWN, UP]).descended_then_ascended


class TestRelationshipNamer:
    """Test names for common paths (person 2 relative to person 1)."""

    def test_same_person(self, namer):
        assert namer.name(path([])).key == KEY_SAME_PERSON

    @pytest.mark.parametrize(
        "edges,sex,key,word",
        [
            ([UP], Sex.MALE, "relationship.father", "father"),
            ([UP], Sex.FEMALE, "relationship.mother", "mother"),
            ([DOWN], Sex.FEMALE, "relationship.daughter", "daughter"),
            ([UP, UP], Sex.FEMALE, "relationship.grandmother", "grandmother"),
            ([DOWN, DOWN], Sex.MALE, "relationship.grandson", "grandson"),
            ([UP, UP, UP], Sex.MALE, "relationship.greatGrandparent", "great-grandfather"),
            ([UP, DOWN], Sex.FEMALE, "relationship.sister", "sister"),
            ([UP, DOWN], Sex.UNKNOWN, "relationship.sibling", "sibling"),
        ],
    )
    def test_blood_relatives(self, namer, edges, sex, key, word):
        name = namer.name(path(edges, sex))

        assert name.key == key
        assert name.description == f"P{len(edges)} is P0's {word}"

    def test_uncle_is_parents_brother(self, namer):
        """Test up-up-down names a parent's sibling."""
        name = namer.name(path([UP, UP, DOWN], Sex.MALE))

        assert name.key == "relationship.uncle"
        assert name.description == "P3 is P0's uncle"

    def test_nephew_is_siblings_son(self, namer):
        """Test up-down-down names a sibling's child."""
        name = namer.name(path([UP, DOWN, DOWN], Sex.MALE))

        assert name.key == "relationship.nephew"

    def test_great_aunt(self, namer):
        name = namer.name(path([UP, UP, UP, DOWN], Sex.FEMALE))

        assert name.key == "relationship.greatPibling1"
        assert name.description == "P4 is P0's great-aunt"

    def test_aunt_or_uncle_for_unknown_sex(self, namer):
        assert namer.name(path([UP, UP, DOWN], Sex.UNKNOWN)).key == "relationship.auntOrUncle"

    def test_first_cousin(self, namer):
        name = namer.name(path([UP, UP, DOWN, DOWN]))

        assert name.key == "relationship.cousin1"
        assert name.description == "P4 is P0's first cousin"

    def test_cousin_once_removed(self, namer):
        name = namer.name(path([UP, UP, UP, DOWN, DOWN]))

        assert name.key == "relationship.cousin11xRemoved"
        assert name.description == "P5 is P0's first cousin, 1 time removed"

    def test_spouse(self, namer):
        name = namer.name(path([SPOUSE], Sex.FEMALE))

        assert name.key == "relationship.spouse"
        assert name.description == "P0 is married to P1"

    def test_mother_in_law(self, namer):
        """Test spouse then up names the spouse's parent."""
        name = namer.name(path([SPOUSE, UP], Sex.FEMALE))

        assert name.key == "relationship.motherInLaw"
        assert name.description == "P2 is P0's mother-in-law"

    def test_son_in_law(self, namer):
        """Test down then spouse names the child's spouse."""
        assert namer.name(path([DOWN, SPOUSE], Sex.MALE)).key == "relationship.sonInLaw"

    def test_brother_in_law(self, namer):
        assert namer.name(path([SPOUSE, UP, DOWN], Sex.MALE)).key == "relationship.brotherInLaw"

    def test_distant_marriage_relation(self, namer):
        name = namer.name(path([SPOUSE, UP, UP, DOWN, DOWN], Sex.MALE))

        assert name.key == KEY_RELATED_BY_MARRIAGE

    def test_only_spouse_edges(self, namer):
        assert namer.name(path([SPOUSE, SPOUSE])).key == KEY_RELATED_BY_MARRIAGE

    def test_co_parents_are_related(self, namer):
        """Test down to a child and up to its other parent."""
        assert namer.name(path([DOWN, UP])).key == KEY_RELATED_TO

    def test_great_prefix(self):
        assert great_prefix(0) == ""
        assert great_prefix(1) == "great-"
        assert great_prefix(2) == "great-great-"
        assert great_prefix(4) == "4x great-"


class TestBloodRelationshipName:
    """Test naming from generations to the closest common ancestor."""

    @pytest.mark.parametrize(
        "gen1,gen2,expected",
        [
            (1, 0, "Parent"),
            (0, 2, "Grandchild"),
            (1, 1, "Sibling"),
            (2, 1, "Aunt/Uncle"),
            (1, 2, "Niece/Nephew"),
            (2, 2, "First Cousin"),
            (3, 2, "First Cousin 1x Removed"),
            (3, 3, "Second Cousin"),
        ],
    )
    def test_names(self, gen1, gen2, expected):
        assert blood_relationship_name(gen1, gen2)[0] == expected


class TestFamilyGraph:
    """Test breadth-first path search."""

    def build_graph(self) -> FamilyGraph:
        graph = FamilyGraph(persons={})
        graph.add_parent_child("grandpa", "dad")
        graph.add_parent_child("grandpa", "uncle")
        graph.add_parent_child("dad", "me")
        graph.add_parent_child("uncle", "cousin")
        graph.add_spouse("me", "wife")
        graph.add_spouse("wife", "me")
        return graph

    def test_path_to_cousin(self):
        steps = self.build_graph().find_path("me", "cousin")

        assert [person for person, _ in steps] == ["me", "dad", "grandpa", "uncle", "cousin"]
        assert [edge for _, edge in steps] == [None, UP, UP, DOWN, DOWN]

    def test_path_to_self(self):
        assert self.build_graph().find_path("me", "me") == [("me", None)]

    def test_max_depth_limits_search(self):
        graph = self.build_graph()

        assert graph.find_path("me", "cousin", max_depth=3) is None
        assert graph.find_path("wife", "dad", max_depth=2) is not None

    def test_unconnected(self):
        assert self.build_graph().find_path("me", "stranger") is None
