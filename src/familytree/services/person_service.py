"""Person CRUD with tree-level permission checks."""

from loguru import logger

from familytree.database import Database
from familytree.errors import NotFoundError, ValidationError
from familytree.models.enums import DatePrecision, TreeRole
from familytree.models.person import Person, PersonCreate, PersonPage, PersonUpdate
from familytree.repositories import AuditLogRepository, PersonRepository, RelationshipRepository
from familytree.services.access import TreeAccess, UserContext
from familytree.services.name_utils import script_name_field

MAX_PAGE_SIZE = 100


def person_fields_from_create(data: PersonCreate) -> dict:
    """Column values for a new person, filling the script-specific name column."""
    fields = data.model_dump(exclude_none=True)
    for prefix in ("birth", "death"):
        if fields.get(f"{prefix}_date") is None:
            fields[f"{prefix}_precision"] = DatePrecision.UNKNOWN
    if data.primary_name:
        column = script_name_field(data.primary_name)
        fields.setdefault(column, data.primary_name)
    return fields


def require_person(persons: PersonRepository, person_id: str) -> Person:
    person = persons.get(person_id)
    if person is None:
        raise NotFoundError(f"Person not found: {person_id}")
    return person


def check_person_changes(person: Person, changes: dict) -> None:
    """Reject partial changes that would leave a person invalid once applied."""
    merged = person.model_copy(update=changes)
    if merged.birth_date and merged.death_date and merged.death_date < merged.birth_date:
        raise ValidationError("Death date cannot be before birth date")
    if not any((merged.primary_name, merged.name_arabic, merged.name_english, merged.name_nobiin)):
        raise ValidationError("At least one name is required")


def soft_delete_person(conn, person_id: str, user_id: int | None) -> int:
    """Soft delete a person and detach them from relationships.

    Returns:
        Number of relationship rows removed
    """
    relationships = RelationshipRepository(conn)
    removed = 0
    for link in relationships.links_touching(person_id):
        if relationships.soft_delete_parent_child(link.id, user_id):
            removed += 1
    removed += relationships.remove_memberships(person_id)
    PersonRepository(conn).soft_delete(person_id, user_id)
    return removed


class PersonService:
    """Create, read, update and delete persons."""

    def __init__(self, db: Database):
        self.db = db

    def create(self, actor: UserContext, tree_id: str, data: PersonCreate) -> Person:
        with self.db.transaction() as conn:
            TreeAccess(conn, actor).require_role(tree_id, TreeRole.EDITOR)
            person = PersonRepository(conn).create(tree_id, person_fields_from_create(data))
            logger.info(f"Created person {person.id} '{person.display_name}' in tree {tree_id}")
            return person

    def get(self, actor: UserContext, person_id: str) -> Person:
        with self.db.connection() as conn:
            person = require_person(PersonRepository(conn), person_id)
            TreeAccess(conn, actor).require_read(person.tree_id)
            return person

    def search(
        self,
        actor: UserContext,
        tree_id: str,
        query: str | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> PersonPage:
        page = max(page, 1)
        page_size = min(max(page_size, 1), MAX_PAGE_SIZE)
        with self.db.connection() as conn:
            TreeAccess(conn, actor).require_read(tree_id)
            items, total = PersonRepository(conn).search(tree_id, query, page, page_size)
        return PersonPage(items=items, total=total, page=page, page_size=page_size)

    def update(self, actor: UserContext, person_id: str, data: PersonUpdate) -> Person:
        changes = data.model_dump(exclude_unset=True)
        with self.db.transaction() as conn:
            persons = PersonRepository(conn)
            person = require_person(persons, person_id)
            TreeAccess(conn, actor).require_role(person.tree_id, TreeRole.EDITOR)

            check_person_changes(person, changes)
            persons.update(person_id, changes)
            logger.debug(f"Updated person {person_id}: {sorted(changes)}")
            return persons.get(person_id)

    def delete(self, actor: UserContext, person_id: str) -> None:
        with self.db.transaction() as conn:
            person = require_person(PersonRepository(conn), person_id)
            TreeAccess(conn, actor).require_role(person.tree_id, TreeRole.EDITOR)
            removed = soft_delete_person(conn, person_id, actor.user_id)
            AuditLogRepository(conn).record(
                actor.user_id, "person.deleted", "person", person_id,
                {"name": person.display_name, "relationships_removed": removed},
            )
            logger.info(f"Deleted person {person_id} ({removed} relationships detached)")
