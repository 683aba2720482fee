"""
Parent-child links and unions.

Every write goes through ``check_parent_child`` so the same rules hold
whether a link is added directly, by an approved suggestion, or by an
accepted prediction:

- no duplicate link
- no cycles (a person cannot become their own ancestor)
- at most two biological parents, and not two of the same known sex
"""

import sqlite3
from collections import deque

from loguru import logger

from familytree.database import Database
from familytree.errors import ConflictError, NotFoundError, ValidationError
from familytree.models.enums import DatePrecision, MemberRole, RelationshipType, Sex, TreeRole, UnionType
from familytree.models.person import Person
from familytree.models.relationship import (
    ParentChild,
    SiblingInfo,
    SpouseInfo,
    Union,
    UnionCreate,
    UnionMember,
    UnionUpdate,
)
from familytree.repositories import PersonRepository, RelationshipRepository
from familytree.services.access import TreeAccess, UserContext
from familytree.services.person_service import require_person


def member_role_for(person: Person, union_type: UnionType) -> MemberRole:
    """Husband/Wife in a marriage when sex is known, otherwise Partner."""
    if union_type == UnionType.MARRIAGE:
        if person.sex == Sex.MALE:
            return MemberRole.HUSBAND
        if person.sex == Sex.FEMALE:
            return MemberRole.WIFE
    return MemberRole.PARTNER


def is_descendant(relationships: RelationshipRepository, ancestor_id: str, person_id: str) -> bool:
    """True when ``person_id`` is reachable from ``ancestor_id`` through child links."""
    visited = {ancestor_id}
    queue = deque([ancestor_id])
    while queue:
        current = queue.popleft()
        for link in relationships.child_links(current):
            if link.child_id == person_id:
                return True
            if link.child_id not in visited:
                visited.add(link.child_id)
                queue.append(link.child_id)
    return False


def check_parent_child(
    conn: sqlite3.Connection,
    parent: Person,
    child: Person,
    relationship_type: RelationshipType,
) -> None:
    """Raise if linking ``parent`` to ``child`` would break a family tree rule."""
    if parent.id == child.id:
        raise ValidationError("A person cannot be their own parent")
    if parent.tree_id != child.tree_id:
        raise ValidationError("Parent and child must belong to the same tree")

    relationships = RelationshipRepository(conn)
    if relationships.find_parent_child(parent.id, child.id):
        raise ConflictError("This parent-child relationship already exists")
    if is_descendant(relationships, child.id, parent.id):
        raise ValidationError("This relationship would create a cycle in the family tree")

    if relationship_type == RelationshipType.BIOLOGICAL:
        biological = [
            link for link in relationships.parent_links(child.id)
            if link.relationship_type == RelationshipType.BIOLOGICAL
        ]
        if len(biological) >= 2:
            raise ValidationError("A person can have at most 2 biological parents")
        if parent.sex != Sex.UNKNOWN:
            existing = PersonRepository(conn).get_many([link.parent_id for link in biological])
            if any(p.sex == parent.sex for p in existing.values()):
                label = "father" if parent.sex == Sex.MALE else "mother"
                raise ValidationError(f"This person already has a biological {label}")


def create_parent_child(
    conn: sqlite3.Connection,
    parent: Person,
    child: Person,
    relationship_type: RelationshipType = RelationshipType.BIOLOGICAL,
    notes: str | None = None,
) -> ParentChild:
    """Validate and insert a parent-child link on an open transaction."""
    check_parent_child(conn, parent, child, relationship_type)
    link = RelationshipRepository(conn).create_parent_child(parent.id, child.id, relationship_type, notes)
    logger.debug(f"Linked parent {parent.id} -> child {child.id} ({relationship_type.value})")
    return link


def create_union(
    conn: sqlite3.Connection,
    tree_id: str,
    members: list[Person],
    union_type: UnionType = UnionType.MARRIAGE,
    fields: dict | None = None,
) -> str:
    """Insert a union with members on an open transaction."""
    for person in members:
        if person.tree_id != tree_id:
            raise ValidationError("Union members must belong to the union's tree")
    fields = {**(fields or {}), "type": union_type}
    for prefix in ("start", "end"):
        if fields.get(f"{prefix}_date") is None:
            fields[f"{prefix}_precision"] = DatePrecision.UNKNOWN
    relationships = RelationshipRepository(conn)
    union_id = relationships.create_union(tree_id, fields)
    for person in members:
        relationships.add_member(union_id, person.id, member_role_for(person, union_type))
    return union_id


class RelationshipService:
    """Read and edit the links between persons."""

    def __init__(self, db: Database):
        self.db = db

    # =========================================================================
    # Parent-Child
    # =========================================================================

    def add_parent(
        self,
        actor: UserContext,
        child_id: str,
        parent_id: str,
        relationship_type: RelationshipType = RelationshipType.BIOLOGICAL,
        notes: str | None = None,
    ) -> ParentChild:
        with self.db.transaction() as conn:
            persons = PersonRepository(conn)
            child = require_person(persons, child_id)
            parent = require_person(persons, parent_id)
            TreeAccess(conn, actor).require_role(child.tree_id, TreeRole.EDITOR)
            return create_parent_child(conn, parent, child, relationship_type, notes)

    def remove_parent_child(self, actor: UserContext, link_id: str) -> None:
        with self.db.transaction() as conn:
            relationships = RelationshipRepository(conn)
            link = relationships.get_parent_child(link_id)
            if link is None:
                raise NotFoundError(f"Relationship not found: {link_id}")
            child = PersonRepository(conn).get(link.child_id, include_deleted=True)
            TreeAccess(conn, actor).require_role(child.tree_id, TreeRole.EDITOR)
            relationships.soft_delete_parent_child(link_id, actor.user_id)
            logger.info(f"Removed parent-child link {link_id}")

    def get_parents(self, actor: UserContext, person_id: str) -> list[Person]:
        with self.db.connection() as conn:
            persons = PersonRepository(conn)
            person = require_person(persons, person_id)
            TreeAccess(conn, actor).require_read(person.tree_id)
            links = RelationshipRepository(conn).parent_links(person_id)
            found = persons.get_many([link.parent_id for link in links])
            return [found[link.parent_id] for link in links if link.parent_id in found]

    def get_children(self, actor: UserContext, person_id: str) -> list[Person]:
        with self.db.connection() as conn:
            persons = PersonRepository(conn)
            person = require_person(persons, person_id)
            TreeAccess(conn, actor).require_read(person.tree_id)
            links = RelationshipRepository(conn).child_links(person_id)
            found = persons.get_many([link.child_id for link in links])
            return [found[link.child_id] for link in links if link.child_id in found]

    def get_siblings(self, actor: UserContext, person_id: str) -> list[SiblingInfo]:
        """Persons sharing at least one parent, with full/half classification."""
        with self.db.connection() as conn:
            persons = PersonRepository(conn)
            person = require_person(persons, person_id)
            TreeAccess(conn, actor).require_read(person.tree_id)
            relationships = RelationshipRepository(conn)

            my_parents = {link.parent_id for link in relationships.parent_links(person_id)}
            shared: dict[str, int] = {}
            for parent_id in my_parents:
                for link in relationships.child_links(parent_id):
                    if link.child_id != person_id:
                        shared[link.child_id] = shared.get(link.child_id, 0) + 1

            found = persons.get_many(list(shared))
            siblings = []
            for sibling_id, count in shared.items():
                sibling = found.get(sibling_id)
                if sibling is None or sibling.is_deleted:
                    continue
                their_parents = {link.parent_id for link in relationships.parent_links(sibling_id)}
                siblings.append(
                    SiblingInfo(
                        person_id=sibling_id,
                        name=sibling.display_name,
                        shared_parent_count=count,
                        is_full_sibling=len(my_parents) >= 2 and their_parents == my_parents,
                    )
                )
            return sorted(siblings, key=lambda s: (not s.is_full_sibling, s.name))

    # =========================================================================
    # Unions
    # =========================================================================

    def create_union(self, actor: UserContext, tree_id: str, data: UnionCreate) -> Union:
        with self.db.transaction() as conn:
            TreeAccess(conn, actor).require_role(tree_id, TreeRole.EDITOR)
            persons = PersonRepository(conn)
            members = [require_person(persons, person_id) for person_id in data.member_ids]
            fields = data.model_dump(exclude={"member_ids", "type"}, exclude_none=True)
            union_id = create_union(conn, tree_id, members, data.type, fields)
            logger.info(f"Created {data.type.value} union {union_id} in tree {tree_id}")
            return RelationshipRepository(conn).get_union(union_id)

    def get_union(self, actor: UserContext, union_id: str) -> Union:
        with self.db.connection() as conn:
            union = self._require_union(conn, union_id)
            TreeAccess(conn, actor).require_read(union.tree_id)
            return union

    def list_unions(self, actor: UserContext, tree_id: str) -> list[Union]:
        with self.db.connection() as conn:
            TreeAccess(conn, actor).require_read(tree_id)
            return RelationshipRepository(conn).list_unions(tree_id)

    def update_union(self, actor: UserContext, union_id: str, data: UnionUpdate) -> Union:
        with self.db.transaction() as conn:
            union = self._require_union(conn, union_id)
            TreeAccess(conn, actor).require_role(union.tree_id, TreeRole.EDITOR)
            changes = data.model_dump(exclude_unset=True)
            merged = union.model_copy(update=changes)
            if merged.start_date and merged.end_date and merged.end_date < merged.start_date:
                raise ValidationError("Union end date cannot be before start date")
            relationships = RelationshipRepository(conn)
            relationships.update_union(union_id, changes)
            return relationships.get_union(union_id)

    def delete_union(self, actor: UserContext, union_id: str) -> None:
        with self.db.transaction() as conn:
            union = self._require_union(conn, union_id)
            TreeAccess(conn, actor).require_role(union.tree_id, TreeRole.EDITOR)
            RelationshipRepository(conn).soft_delete_union(union_id, actor.user_id)
            logger.info(f"Deleted union {union_id}")

    def add_union_member(self, actor: UserContext, union_id: str, person_id: str) -> UnionMember:
        with self.db.transaction() as conn:
            union = self._require_union(conn, union_id)
            TreeAccess(conn, actor).require_role(union.tree_id, TreeRole.EDITOR)
            person = require_person(PersonRepository(conn), person_id)
            if person.tree_id != union.tree_id:
                raise ValidationError("Union members must belong to the union's tree")
            return RelationshipRepository(conn).add_member(
                union_id, person_id, member_role_for(person, union.type)
            )

    def remove_union_member(self, actor: UserContext, union_id: str, person_id: str) -> None:
        with self.db.transaction() as conn:
            union = self._require_union(conn, union_id)
            TreeAccess(conn, actor).require_role(union.tree_id, TreeRole.EDITOR)
            if not RelationshipRepository(conn).remove_member(union_id, person_id):
                raise NotFoundError("Person is not a member of this union")

    def get_spouses(self, actor: UserContext, person_id: str) -> list[SpouseInfo]:
        with self.db.connection() as conn:
            persons = PersonRepository(conn)
            person = require_person(persons, person_id)
            TreeAccess(conn, actor).require_read(person.tree_id)
            relationships = RelationshipRepository(conn)
            spouses = []
            for membership in relationships.memberships_of(person_id):
                union = relationships.get_union(membership.union_id)
                for member in union.members:
                    if member.person_id == person_id:
                        continue
                    spouse = persons.get(member.person_id)
                    if spouse:
                        spouses.append(
                            SpouseInfo(
                                person_id=spouse.id,
                                name=spouse.display_name,
                                union_id=union.id,
                                union_type=union.type,
                            )
                        )
            return spouses

    def get_union_children(self, actor: UserContext, union_id: str) -> list[Person]:
        """Children linked to every member of the union."""
        with self.db.connection() as conn:
            union = self._require_union(conn, union_id)
            TreeAccess(conn, actor).require_read(union.tree_id)
            return union_children(conn, union)

    @staticmethod
    def _require_union(conn: sqlite3.Connection, union_id: str) -> Union:
        union = RelationshipRepository(conn).get_union(union_id)
        if union is None:
            raise NotFoundError(f"Union not found: {union_id}")
        return union


def union_children(conn: sqlite3.Connection, union: Union) -> list[Person]:
    relationships = RelationshipRepository(conn)
    child_sets = [
        {link.child_id for link in relationships.child_links(member.person_id)}
        for member in union.members
    ]
    if not child_sets:
        return []
    shared = set.intersection(*child_sets)
    found = PersonRepository(conn).get_many(sorted(shared))
    children = [p for p in found.values() if not p.is_deleted]
    return sorted(children, key=lambda p: (p.birth_date is None, p.birth_date, p.display_name))
