"""
Shortest relationship path between two persons.

The graph is loaded once per request from the live parent-child links and
union memberships of one tree, then searched breadth-first. Neighbours are
expanded parents first, then children, then spouses, so among equally short
paths the blood line is preferred.
"""

import sqlite3
from collections import deque
from dataclasses import dataclass, field

from familytree.config.constants import (
    KEY_CHILD_OF,
    KEY_DAUGHTER_OF,
    KEY_FATHER_OF,
    KEY_MOTHER_OF,
    KEY_PARENT_OF,
    KEY_SON_OF,
    KEY_SPOUSE_OF,
)
from familytree.models.enums import Sex
from familytree.models.person import Person
from familytree.models.tree_view import CommonAncestorInfo, PathEdge, PathNode
from familytree.repositories import PersonRepository, RelationshipRepository

PathStep = tuple[str, PathEdge | None]


@dataclass
class FamilyGraph:
    """Adjacency lists for one tree."""

    persons: dict[str, Person] = field(default_factory=dict)
    parents: dict[str, list[str]] = field(default_factory=dict)
    children: dict[str, list[str]] = field(default_factory=dict)
    spouses: dict[str, list[str]] = field(default_factory=dict)

    @classmethod
    def load(cls, conn: sqlite3.Connection, tree_id: str) -> "FamilyGraph":
        graph = cls(persons={p.id: p for p in PersonRepository(conn).list_in_tree(tree_id)})
        relationships = RelationshipRepository(conn)
        for link in relationships.parent_child_in_tree(tree_id):
            graph.add_parent_child(link.parent_id, link.child_id)

        members_by_union: dict[str, list[str]] = {}
        for member in relationships.members_in_tree(tree_id):
            members_by_union.setdefault(member.union_id, []).append(member.person_id)
        for member_ids in members_by_union.values():
            for person_id in member_ids:
                for other_id in member_ids:
                    if other_id != person_id:
                        graph.add_spouse(person_id, other_id)
        return graph

    def add_parent_child(self, parent_id: str, child_id: str) -> None:
        _append_unique(self.parents.setdefault(child_id, []), parent_id)
        _append_unique(self.children.setdefault(parent_id, []), child_id)

    def add_spouse(self, person_id: str, spouse_id: str) -> None:
        _append_unique(self.spouses.setdefault(person_id, []), spouse_id)

    def neighbours(self, person_id: str) -> list[tuple[str, PathEdge]]:
        result = [(p, PathEdge.PARENT) for p in self.parents.get(person_id, [])]
        result.extend((c, PathEdge.CHILD) for c in self.children.get(person_id, []))
        result.extend((s, PathEdge.SPOUSE) for s in self.spouses.get(person_id, []))
        return result

    def find_path(self, start_id: str, end_id: str, max_depth: int = 20) -> list[PathStep] | None:
        """Breadth-first search from ``start_id`` to ``end_id``.

        Returns:
            ``[(person_id, edge from previous person), ...]`` beginning with
            ``(start_id, None)``, or None when no path of at most
            ``max_depth`` edges exists
        """
        if start_id == end_id:
            return [(start_id, None)]

        previous: dict[str, tuple[str, PathEdge]] = {}
        visited = {start_id}
        queue = deque([(start_id, 0)])
        while queue:
            current, depth = queue.popleft()
            if depth >= max_depth:
                continue
            for neighbour, edge in self.neighbours(current):
                if neighbour in visited:
                    continue
                visited.add(neighbour)
                previous[neighbour] = (current, edge)
                if neighbour == end_id:
                    return _unwind(previous, start_id, end_id)
                queue.append((neighbour, depth + 1))
        return None


def _append_unique(items: list[str], value: str) -> None:
    if value not in items:
        items.append(value)


def _unwind(previous: dict[str, tuple[str, PathEdge]], start_id: str, end_id: str) -> list[PathStep]:
    steps: list[PathStep] = []
    current = end_id
    while current != start_id:
        before, edge = previous[current]
        steps.append((current, edge))
        current = before
    steps.append((start_id, None))
    steps.reverse()
    return steps


def edge_relationship_key(edge: PathEdge, sex: Sex) -> str:
    """Label for what the next person on a path is, e.g. ``relationship.fatherOf``."""
    if edge == PathEdge.PARENT:
        return {Sex.MALE: KEY_FATHER_OF, Sex.FEMALE: KEY_MOTHER_OF}.get(sex, KEY_PARENT_OF)
    if edge == PathEdge.CHILD:
        return {Sex.MALE: KEY_SON_OF, Sex.FEMALE: KEY_DAUGHTER_OF}.get(sex, KEY_CHILD_OF)
    return KEY_SPOUSE_OF


def path_node(person: Person) -> PathNode:
    return PathNode(
        person_id=person.id,
        name=person.display_name,
        name_english=person.name_english,
        name_arabic=person.name_arabic,
        sex=person.sex,
        birth_year=person.birth_date.year if person.birth_date else None,
        death_year=person.death_date.year if person.death_date else None,
    )


def build_path_nodes(steps: list[PathStep], persons: dict[str, Person]) -> list[PathNode]:
    """Path nodes labelled with the edge to the next person, gendered by that person's sex."""
    nodes = [path_node(persons[person_id]) for person_id, _ in steps]
    for index in range(len(nodes) - 1):
        edge = steps[index + 1][1]
        nodes[index].edge_to_next = edge
        nodes[index].relationship_to_next_key = edge_relationship_key(edge, nodes[index + 1].sex)
    return nodes


def common_ancestor(steps: list[PathStep], persons: dict[str, Person]) -> CommonAncestorInfo | None:
    """The peak of the path: last person reached going up before the first step down."""
    peak = 0
    for index in range(1, len(steps)):
        edge = steps[index][1]
        if edge == PathEdge.PARENT:
            peak = index
        elif edge == PathEdge.CHILD:
            break
    if peak == 0:
        return None
    person = persons.get(steps[peak][0])
    if person is None:
        return None
    return CommonAncestorInfo(
        person_id=person.id,
        name=person.display_name,
        generations_from_person1=peak,
        generations_from_person2=len(steps) - 1 - peak,
    )
