"""
Tree views: pedigree, descendants, founding ancestors and relationship paths.

Each request loads the tree's graph once and walks it in memory.
"""

from collections import deque

from loguru import logger

from familytree.config import Config, get_config
from familytree.config.constants import (
    DEFAULT_TREE_VIEW_GENERATIONS,
    KEY_NO_RELATION,
    MAX_ROOT_PERSONS,
)
from familytree.database import Database
from familytree.errors import NotFoundError, ValidationError
from familytree.models.person import Person
from familytree.models.relationship import Union
from familytree.models.tree_view import (
    BloodRelationshipResult,
    DescendantNode,
    PedigreeNode,
    RelationshipPathResult,
    RootPerson,
    RootPersonsResult,
    TreeViewUnion,
)
from familytree.repositories import RelationshipRepository
from familytree.services.access import TreeAccess, UserContext
from familytree.services.relationship_namer import RelationshipNamer, ordinal
from familytree.services.relationship_path import FamilyGraph, build_path_nodes, common_ancestor

MAX_VIEW_GENERATIONS = 10
MAX_DESCENDANT_DEPTH = 50


def _year(value) -> int | None:
    return value.year if value else None


def blood_relationship_name(gen1: int, gen2: int) -> tuple[str, str]:
    """Name person 2 relative to person 1 from generations to a shared ancestor.

    ``gen1``/``gen2`` count the steps from each person up to the ancestor;
    a person who is the ancestor has 0.
    """
    if gen1 == 0:
        return {
            1: ("Child", "Child"),
            2: ("Grandchild", "Grandchild"),
            3: ("Great-Grandchild", "Great-Grandchild"),
        }.get(gen2, (f"Descendant ({gen2 - 2}x Great-Grandchild)", f"{gen2 - 2}x Great-Grandchild"))
    if gen2 == 0:
        return {
            1: ("Parent", "Parent"),
            2: ("Grandparent", "Grandparent"),
            3: ("Great-Grandparent", "Great-Grandparent"),
        }.get(gen1, (f"Ancestor ({gen1 - 2}x Great-Grandparent)", f"{gen1 - 2}x Great-Grandparent"))
    if gen1 == 1 and gen2 == 1:
        return "Sibling", "Sibling"
    if gen1 == 1:
        return {
            2: ("Niece/Nephew", "Niece or Nephew"),
            3: ("Great-Niece/Nephew", "Great-Niece or Great-Nephew"),
        }.get(gen2, ("Sibling's Descendant", f"{gen2 - 2}x Great-Niece/Nephew"))
    if gen2 == 1:
        return {
            2: ("Aunt/Uncle", "Aunt or Uncle"),
            3: ("Great-Aunt/Uncle", "Great-Aunt or Great-Uncle"),
        }.get(gen1, ("Ancestor's Sibling", f"{gen1 - 2}x Great-Aunt/Uncle"))

    degree = min(gen1, gen2) - 1
    removed = abs(gen1 - gen2)
    word = ordinal(degree).capitalize()
    if removed == 0:
        return f"{word} Cousin", f"{word} Cousin"
    return f"{word} Cousin {removed}x Removed", f"{word} Cousin, {removed} times removed"


def ancestor_generations(graph: FamilyGraph, person_id: str) -> dict[str, int]:
    """Every ancestor of a person (and the person at 0) with the nearest generation."""
    found = {person_id: 0}
    queue = deque([person_id])
    while queue:
        current = queue.popleft()
        for parent_id in graph.parents.get(current, []):
            if parent_id not in found:
                found[parent_id] = found[current] + 1
                queue.append(parent_id)
    return found


class TreeViewService:
    """Read-only views over a tree's family graph."""

    def __init__(self, db: Database, config: Config | None = None):
        self.db = db
        self.config = config or get_config()
        self.namer = RelationshipNamer()

    # =========================================================================
    # Pedigree / Descendants
    # =========================================================================

    def pedigree(
        self, actor: UserContext, person_id: str, generations: int = DEFAULT_TREE_VIEW_GENERATIONS
    ) -> PedigreeNode:
        generations = self._clamp_generations(generations)
        graph, unions = self._load_for_person(actor, person_id)
        visited: set[str] = set()

        def build(pid: str, generation: int) -> PedigreeNode:
            person = graph.persons[pid]
            node = PedigreeNode(
                person_id=pid,
                name=person.display_name,
                sex=person.sex,
                birth_year=_year(person.birth_date),
                death_year=_year(person.death_date),
                generation=generation,
                unions=self._unions_for(pid, graph, unions),
            )
            if pid in visited:
                return node
            visited.add(pid)
            parent_ids = [p for p in graph.parents.get(pid, []) if p in graph.persons]
            if generation < generations:
                node.parents = [build(parent_id, generation + 1) for parent_id in parent_ids]
                node.has_more_ancestors = bool(node.parents) and generation + 1 >= generations
            else:
                node.has_more_ancestors = bool(parent_ids)
            return node

        return build(person_id, 0)

    def descendants(
        self, actor: UserContext, person_id: str, generations: int = DEFAULT_TREE_VIEW_GENERATIONS
    ) -> DescendantNode:
        generations = self._clamp_generations(generations)
        graph, unions = self._load_for_person(actor, person_id)
        visited: set[str] = set()

        def build(pid: str, generation: int) -> DescendantNode:
            person = graph.persons[pid]
            visited.add(pid)
            node = DescendantNode(
                person_id=pid,
                name=person.display_name,
                sex=person.sex,
                birth_year=_year(person.birth_date),
                death_year=_year(person.death_date),
                generation=generation,
                unions=self._unions_for(pid, graph, unions),
            )
            child_ids = [c for c in graph.children.get(pid, []) if c in graph.persons]
            if generation < generations:
                node.children = [
                    build(child_id, generation + 1) for child_id in child_ids if child_id not in visited
                ]
                node.has_more_descendants = bool(node.children) and generation + 1 >= generations
            else:
                node.has_more_descendants = bool(child_ids)
            return node

        return build(person_id, 0)

    # =========================================================================
    # Root Persons
    # =========================================================================

    def root_persons(self, actor: UserContext, tree_id: str) -> RootPersonsResult:
        """Founding ancestors: persons without parents, those with descendants first."""
        with self.db.connection() as conn:
            tree = TreeAccess(conn, actor).require_read(tree_id)
            graph = FamilyGraph.load(conn, tree_id)

        candidates = [
            p for p in graph.persons.values() if not graph.parents.get(p.id)
        ][:MAX_ROOT_PERSONS]

        roots = []
        for person in candidates:
            count, depth = self._descendant_stats(graph, person.id)
            roots.append(
                RootPerson(
                    person_id=person.id,
                    name=person.display_name,
                    sex=person.sex,
                    birth_year=_year(person.birth_date),
                    child_count=len(graph.children.get(person.id, [])),
                    descendant_count=count,
                    generation_depth=depth,
                )
            )

        founders = [r for r in roots if r.descendant_count > 0 or r.child_count > 0]
        if founders:
            founders.sort(
                key=lambda r: (-r.descendant_count, -r.generation_depth, r.birth_year or 9999)
            )
        else:
            # No relationships yet: every person is a root
            founders = sorted(roots, key=lambda r: (r.birth_year or 9999, r.name))

        logger.debug(f"Tree {tree_id}: {len(founders)} root persons of {len(candidates)} candidates")
        return RootPersonsResult(
            tree_id=tree_id,
            tree_name=tree.name,
            root_persons=founders,
            total_count=len(founders),
            max_limit=MAX_ROOT_PERSONS,
        )

    @staticmethod
    def _descendant_stats(graph: FamilyGraph, root_id: str) -> tuple[int, int]:
        visited = {root_id}
        queue = deque([(root_id, 0)])
        count = max_depth = 0
        while queue:
            current, depth = queue.popleft()
            if depth >= MAX_DESCENDANT_DEPTH:
                continue
            for child_id in graph.children.get(current, []):
                if child_id in visited or child_id not in graph.persons:
                    continue
                visited.add(child_id)
                count += 1
                max_depth = max(max_depth, depth + 1)
                queue.append((child_id, depth + 1))
        return count, max_depth

    # =========================================================================
    # Relationship Path
    # =========================================================================

    def relationship_path(
        self,
        actor: UserContext,
        tree_id: str,
        person1_id: str,
        person2_id: str,
        max_depth: int | None = None,
    ) -> RelationshipPathResult:
        max_depth = max_depth or self.config.relationship_max_depth
        with self.db.connection() as conn:
            TreeAccess(conn, actor).require_read(tree_id)
            graph = FamilyGraph.load(conn, tree_id)

        for person_id in (person1_id, person2_id):
            if person_id not in graph.persons:
                raise NotFoundError(f"Person not found in tree: {person_id}")

        steps = graph.find_path(person1_id, person2_id, max_depth)
        if steps is None:
            logger.debug(f"No path between {person1_id} and {person2_id} within {max_depth} steps")
            return RelationshipPathResult(
                path_found=False,
                person1_id=person1_id,
                person2_id=person2_id,
                relationship_key=KEY_NO_RELATION,
                relationship_description="No relationship found",
                message=f"No relationship found within {max_depth} steps",
            )

        nodes = build_path_nodes(steps, graph.persons)
        name = self.namer.name(nodes)
        ancestor = common_ancestor(steps, graph.persons)
        return RelationshipPathResult(
            path_found=True,
            person1_id=person1_id,
            person2_id=person2_id,
            path=nodes,
            path_length=len(nodes),
            relationship_key=name.key,
            relationship_description=name.description,
            common_ancestors=[ancestor] if ancestor else [],
        )

    def blood_relationship(
        self, actor: UserContext, tree_id: str, person1_id: str, person2_id: str
    ) -> BloodRelationshipResult:
        """Name a relationship from the closest shared ancestor only (spouses ignored)."""
        with self.db.connection() as conn:
            TreeAccess(conn, actor).require_read(tree_id)
            graph = FamilyGraph.load(conn, tree_id)
        for person_id in (person1_id, person2_id):
            if person_id not in graph.persons:
                raise NotFoundError(f"Person not found in tree: {person_id}")

        ancestors1 = ancestor_generations(graph, person1_id)
        ancestors2 = ancestor_generations(graph, person2_id)
        shared = sorted(set(ancestors1) & set(ancestors2))
        if not shared or person1_id == person2_id:
            return BloodRelationshipResult(
                person1_id=person1_id,
                person2_id=person2_id,
                relationship_type="No blood relation found" if not shared else "Same person",
                description=(
                    "These individuals do not share any common ancestors in the tree."
                    if not shared else "Same person"
                ),
            )

        closest = min(shared, key=lambda a: (ancestors1[a] + ancestors2[a], a))
        gen1, gen2 = ancestors1[closest], ancestors2[closest]
        relationship_type, description = blood_relationship_name(gen1, gen2)
        return BloodRelationshipResult(
            person1_id=person1_id,
            person2_id=person2_id,
            relationship_type=relationship_type,
            description=description,
            generations_from_person1=gen1,
            generations_from_person2=gen2,
            common_ancestor_ids=shared,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load_for_person(self, actor: UserContext, person_id: str) -> tuple[FamilyGraph, list[Union]]:
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT tree_id FROM persons WHERE id = ? AND is_deleted = 0", (person_id,)
            ).fetchone()
            if row is None:
                raise NotFoundError(f"Person not found: {person_id}")
            TreeAccess(conn, actor).require_read(row["tree_id"])
            graph = FamilyGraph.load(conn, row["tree_id"])
            unions = RelationshipRepository(conn).list_unions(row["tree_id"])
        return graph, unions

    @staticmethod
    def _unions_for(person_id: str, graph: FamilyGraph, unions: list[Union]) -> list[TreeViewUnion]:
        result = []
        for union in unions:
            member_ids = [m.person_id for m in union.members]
            if person_id not in member_ids:
                continue
            partners: list[Person] = [
                graph.persons[m] for m in member_ids if m != person_id and m in graph.persons
            ]
            result.append(
                TreeViewUnion(
                    union_id=union.id,
                    type=union.type,
                    partner_ids=[p.id for p in partners],
                    partner_names=[p.display_name for p in partners],
                )
            )
        return result

    @staticmethod
    def _clamp_generations(generations: int) -> int:
        if generations < 1:
            raise ValidationError("Generations must be at least 1")
        return min(generations, MAX_VIEW_GENERATIONS)
