"""
Contributor suggestions and their review workflow.

Contributors propose changes; reviewers approve them, which applies the
change to the tree, or reject them. Status moves as follows:

    pending    -> approved | rejected | needs_info | withdrawn
    needs_info -> approved | rejected | withdrawn | pending

An approved suggestion keeps what it created (``applied_entity_type`` and
``applied_entity_id``) and the values it replaced (``previous_values``) so a
reviewer can roll it back, which returns it to pending.
"""

import sqlite3
from typing import Any

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from familytree.database import Database, now_iso
from familytree.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from familytree.models.enums import MemberRole, RelationshipType, SuggestionStatus, SuggestionType, UnionType
from familytree.models.person import PersonCreate, PersonUpdate
from familytree.models.suggestion import (
    CommentCreate,
    EvidenceCreate,
    Suggestion,
    SuggestionComment,
    SuggestionCreate,
    SuggestionEvidence,
    SuggestionPage,
    SuggestionStatistics,
)
from familytree.repositories import (
    AuditLogRepository,
    PersonRepository,
    RelationshipRepository,
    SuggestionRepository,
)
from familytree.repositories.suggestion_repository import OPEN_STATUSES, proposed_person_name
from familytree.services.access import TreeAccess, UserContext
from familytree.services.duplicate_detection import merge_persons
from familytree.services.person_service import (
    check_person_changes,
    person_fields_from_create,
    require_person,
    soft_delete_person,
)
from familytree.services.relationship_service import create_parent_child, create_union

MAX_PAGE_SIZE = 100

# Person ids each suggestion type must name
REQUIRED_PERSONS = {
    SuggestionType.ADD_PERSON: (),
    SuggestionType.UPDATE_PERSON: ("target_person_id",),
    SuggestionType.ADD_PARENT: ("target_person_id", "secondary_person_id"),
    SuggestionType.ADD_CHILD: ("target_person_id", "secondary_person_id"),
    SuggestionType.ADD_SPOUSE: ("target_person_id", "secondary_person_id"),
    SuggestionType.REMOVE_RELATIONSHIP: (),
    SuggestionType.MERGE_PERSON: ("target_person_id", "secondary_person_id"),
    SuggestionType.DELETE_PERSON: ("target_person_id",),
}


def _parse(model, values: dict[str, Any]):
    """Validate proposed values against a person model."""
    try:
        return model.model_validate(values)
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        detail = f"{location}: {first['msg']}" if location else first["msg"]
        raise ValidationError(f"Invalid proposed values ({detail})") from e


def _enum_value(enum_type, value, default):
    if value is None:
        return default
    try:
        return enum_type(value)
    except ValueError as e:
        raise ValidationError(f"Invalid {enum_type.__name__}: {value}") from e


class SuggestionService:
    """Create, review and apply suggestions."""

    def __init__(self, db: Database):
        self.db = db

    # =========================================================================
    # Contributor Operations
    # =========================================================================

    def create(self, actor: UserContext, data: SuggestionCreate) -> Suggestion:
        with self.db.transaction() as conn:
            TreeAccess(conn, actor).require_read(data.tree_id)
            self._validate_new(conn, data)

            suggestions = SuggestionRepository(conn)
            person_name = None
            if data.type == SuggestionType.ADD_PERSON:
                person_name = proposed_person_name(data.proposed_values)
            duplicate = suggestions.find_open_duplicate(
                data.tree_id, data.type, data.target_person_id, data.secondary_person_id, person_name
            )
            if duplicate:
                raise ConflictError("A similar suggestion is already pending")

            suggestion_id = suggestions.create(
                tree_id=data.tree_id,
                suggestion_type=data.type,
                submitted_by_user_id=actor.user_id,
                target_person_id=data.target_person_id,
                secondary_person_id=data.secondary_person_id,
                target_union_id=data.target_union_id,
                relationship_id=data.relationship_id,
                proposed_values=data.proposed_values,
                submitter_notes=data.submitter_notes,
            )
            for evidence in data.evidence:
                suggestions.add_evidence(suggestion_id, actor.user_id, **evidence.model_dump())
            AuditLogRepository(conn).record(
                actor.user_id, "suggestion.created", "suggestion", suggestion_id, {"type": data.type.value}
            )
            logger.info(f"User {actor.user_id} submitted {data.type.value} suggestion {suggestion_id}")
            return suggestions.get(suggestion_id)

    def get(self, actor: UserContext, suggestion_id: str) -> Suggestion:
        with self.db.connection() as conn:
            suggestion = self._require(conn, suggestion_id)
            self._require_submitter_or_reviewer(conn, actor, suggestion)
            return suggestion

    def mine(
        self,
        actor: UserContext,
        status: SuggestionStatus | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> SuggestionPage:
        page, page_size = _paging(page, page_size)
        with self.db.connection() as conn:
            items, total = SuggestionRepository(conn).list_page(
                status=status, submitted_by_user_id=actor.user_id, page=page, page_size=page_size
            )
        return SuggestionPage(items=items, total=total, page=page, page_size=page_size)

    def withdraw(self, actor: UserContext, suggestion_id: str) -> Suggestion:
        with self.db.transaction() as conn:
            suggestions = SuggestionRepository(conn)
            suggestion = self._require(conn, suggestion_id)
            if suggestion.submitted_by_user_id != actor.user_id:
                raise PermissionDeniedError("You can only withdraw your own suggestions")
            if suggestion.status not in OPEN_STATUSES:
                raise ValidationError("Only pending or needs-info suggestions can be withdrawn")
            suggestions.update(suggestion_id, {"status": SuggestionStatus.WITHDRAWN})
            logger.info(f"Suggestion {suggestion_id} withdrawn by submitter")
            return suggestions.get(suggestion_id)

    def add_evidence(self, actor: UserContext, suggestion_id: str, data: EvidenceCreate) -> SuggestionEvidence:
        with self.db.transaction() as conn:
            suggestion = self._require(conn, suggestion_id)
            if suggestion.submitted_by_user_id != actor.user_id:
                raise PermissionDeniedError("You can only add evidence to your own suggestions")
            if suggestion.status not in OPEN_STATUSES:
                raise ValidationError("Evidence can only be added to pending or needs-info suggestions")
            suggestions = SuggestionRepository(conn)
            evidence = suggestions.add_evidence(suggestion_id, actor.user_id, **data.model_dump())
            self._reopen_if_needed(suggestions, suggestion)
            return evidence

    def add_comment(self, actor: UserContext, suggestion_id: str, data: CommentCreate) -> SuggestionComment:
        with self.db.transaction() as conn:
            suggestion = self._require(conn, suggestion_id)
            is_reviewer = self._require_submitter_or_reviewer(conn, actor, suggestion)
            suggestions = SuggestionRepository(conn)
            comment = suggestions.add_comment(suggestion_id, actor.user_id, data.content.strip(), is_reviewer)
            if suggestion.submitted_by_user_id == actor.user_id:
                self._reopen_if_needed(suggestions, suggestion)
            return comment

    # =========================================================================
    # Review Operations
    # =========================================================================

    def queue(
        self,
        actor: UserContext,
        tree_id: str | None = None,
        status: SuggestionStatus | None = SuggestionStatus.PENDING,
        suggestion_type: SuggestionType | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> SuggestionPage:
        page, page_size = _paging(page, page_size)
        with self.db.connection() as conn:
            access = TreeAccess(conn, actor)
            if tree_id is None:
                if not actor.is_global_admin:
                    raise PermissionDeniedError("Administrators must specify a tree")
            else:
                access.require_reviewer(tree_id)
            items, total = SuggestionRepository(conn).list_page(
                tree_id=tree_id, status=status, suggestion_type=suggestion_type, page=page, page_size=page_size
            )
        return SuggestionPage(items=items, total=total, page=page, page_size=page_size)

    def approve(self, actor: UserContext, suggestion_id: str, reviewer_notes: str | None = None) -> Suggestion:
        """Apply the suggested change and mark the suggestion approved.

        The change and the status update share one transaction: a change that
        breaks a family tree rule leaves the suggestion untouched.
        """
        with self.db.transaction() as conn:
            suggestion = self._require(conn, suggestion_id)
            TreeAccess(conn, actor).require_reviewer(suggestion.tree_id)
            if suggestion.status not in OPEN_STATUSES:
                raise ValidationError("Only pending or needs-info suggestions can be approved")

            entity_type, entity_id, previous = self._apply(conn, actor, suggestion)
            suggestions = SuggestionRepository(conn)
            suggestions.update(suggestion_id, {
                "status": SuggestionStatus.APPROVED,
                "reviewer_notes": reviewer_notes,
                "reviewed_by_user_id": actor.user_id,
                "reviewed_at": now_iso(),
                "applied_entity_type": entity_type,
                "applied_entity_id": entity_id,
                "previous_values": previous,
            })
            AuditLogRepository(conn).record(
                actor.user_id, "suggestion.approved", "suggestion", suggestion_id,
                {"type": suggestion.type.value, "entity_type": entity_type, "entity_id": entity_id},
            )
            logger.info(f"Approved {suggestion.type.value} suggestion {suggestion_id}: {entity_type} {entity_id}")
            return suggestions.get(suggestion_id)

    def reject(self, actor: UserContext, suggestion_id: str, reviewer_notes: str | None = None) -> Suggestion:
        return self._review(
            actor, suggestion_id, SuggestionStatus.REJECTED, reviewer_notes,
            allowed=(SuggestionStatus.PENDING, SuggestionStatus.NEEDS_INFO, SuggestionStatus.WITHDRAWN,
                     SuggestionStatus.REJECTED),
            error="Approved suggestions cannot be rejected",
        )

    def request_info(self, actor: UserContext, suggestion_id: str, reviewer_notes: str | None = None) -> Suggestion:
        """Ask the submitter for more information; the notes become a reviewer comment."""
        return self._review(
            actor, suggestion_id, SuggestionStatus.NEEDS_INFO, reviewer_notes,
            allowed=(SuggestionStatus.PENDING,),
            error="Only pending suggestions can be marked as needs info",
            comment=True,
        )

    def rollback(self, actor: UserContext, suggestion_id: str, reason: str | None = None) -> Suggestion:
        """Undo an approved suggestion's change and return it to pending."""
        with self.db.transaction() as conn:
            suggestion = self._require(conn, suggestion_id)
            TreeAccess(conn, actor).require_reviewer(suggestion.tree_id)
            if suggestion.status != SuggestionStatus.APPROVED:
                raise ValidationError("Only approved suggestions can be rolled back")
            if not suggestion.applied_entity_type or not suggestion.applied_entity_id:
                raise ValidationError("No applied changes to rollback")

            self._revert(conn, actor, suggestion)
            suggestions = SuggestionRepository(conn)
            suggestions.update(suggestion_id, {
                "status": SuggestionStatus.PENDING,
                "applied_entity_type": None,
                "applied_entity_id": None,
                "reviewer_notes": f"Rolled back: {reason}" if reason else "Rolled back",
            })
            AuditLogRepository(conn).record(
                actor.user_id, "suggestion.rolled_back", "suggestion", suggestion_id,
                {"entity_type": suggestion.applied_entity_type, "entity_id": suggestion.applied_entity_id,
                 "reason": reason},
            )
            logger.info(f"Rolled back suggestion {suggestion_id} ({suggestion.applied_entity_type})")
            return suggestions.get(suggestion_id)

    def statistics(self, actor: UserContext, tree_id: str | None = None) -> SuggestionStatistics:
        with self.db.connection() as conn:
            if tree_id is None:
                if not actor.is_global_admin:
                    raise PermissionDeniedError("Administrators must specify a tree")
            else:
                TreeAccess(conn, actor).require_reviewer(tree_id)
            suggestions = SuggestionRepository(conn)
            by_status = suggestions.count_by("status", tree_id)
            by_type = suggestions.count_by("type", tree_id)
        return SuggestionStatistics(total=sum(by_status.values()), by_status=by_status, by_type=by_type)

    def check_duplicate(
        self,
        actor: UserContext,
        tree_id: str,
        suggestion_type: SuggestionType,
        target_person_id: str | None = None,
        secondary_person_id: str | None = None,
        person_name: str | None = None,
    ) -> str | None:
        """Id of an open suggestion that already proposes the same change, if any."""
        if person_name is not None:
            person_name = proposed_person_name({"primary_name": person_name})
        with self.db.connection() as conn:
            TreeAccess(conn, actor).require_read(tree_id)
            return SuggestionRepository(conn).find_open_duplicate(
                tree_id, suggestion_type, target_person_id, secondary_person_id, person_name
            )

    # =========================================================================
    # Applying Changes
    # =========================================================================

    def _apply(
        self, conn: sqlite3.Connection, actor: UserContext, suggestion: Suggestion
    ) -> tuple[str, str, dict[str, Any] | None]:
        """Make the suggested change.

        Returns:
            Tuple of (applied entity type, applied entity id, previous values)
        """
        persons = PersonRepository(conn)
        relationships = RelationshipRepository(conn)
        values = suggestion.proposed_values

        if suggestion.type == SuggestionType.ADD_PERSON:
            data = _parse(PersonCreate, values)
            person = persons.create(suggestion.tree_id, person_fields_from_create(data))
            return "person", person.id, None

        if suggestion.type == SuggestionType.UPDATE_PERSON:
            person = self._tree_person(persons, suggestion, suggestion.target_person_id)
            changes = _parse(PersonUpdate, values).model_dump(exclude_unset=True)
            if not changes:
                raise ValidationError("Update suggestion has no proposed values")
            check_person_changes(person, changes)
            previous = person.model_dump(mode="json", include=set(changes))
            persons.update(person.id, changes)
            return "person", person.id, previous

        if suggestion.type in (SuggestionType.ADD_PARENT, SuggestionType.ADD_CHILD):
            target = self._tree_person(persons, suggestion, suggestion.target_person_id)
            secondary = self._tree_person(persons, suggestion, suggestion.secondary_person_id)
            parent, child = (secondary, target) if suggestion.type == SuggestionType.ADD_PARENT else (target, secondary)
            relationship_type = _enum_value(
                RelationshipType, values.get("relationship_type"), RelationshipType.BIOLOGICAL
            )
            link = create_parent_child(
                conn, parent, child, relationship_type, notes=f"Created from suggestion {suggestion.id}"
            )
            return "parent_child", link.id, None

        if suggestion.type == SuggestionType.ADD_SPOUSE:
            target = self._tree_person(persons, suggestion, suggestion.target_person_id)
            secondary = self._tree_person(persons, suggestion, suggestion.secondary_person_id)
            if relationships.shared_union(target.id, secondary.id):
                raise ConflictError("These persons already share a union")
            union_type = _enum_value(UnionType, values.get("union_type"), UnionType.MARRIAGE)
            union_id = create_union(
                conn, suggestion.tree_id, [target, secondary], union_type,
                {"notes": f"Created from suggestion {suggestion.id}"},
            )
            return "union", union_id, None

        if suggestion.type == SuggestionType.REMOVE_RELATIONSHIP:
            return self._remove_relationship(conn, actor, suggestion)

        if suggestion.type == SuggestionType.MERGE_PERSON:
            keep = self._tree_person(persons, suggestion, suggestion.target_person_id)
            remove = self._tree_person(persons, suggestion, suggestion.secondary_person_id)
            if keep.id == remove.id:
                raise ValidationError("Cannot merge a person with themselves")
            moved = merge_persons(conn, keep, remove, actor.user_id)
            return "person", keep.id, {"merged_person_id": remove.id, "relationships_moved": moved}

        if suggestion.type == SuggestionType.DELETE_PERSON:
            person = self._tree_person(persons, suggestion, suggestion.target_person_id)
            previous = {
                "parent_child_ids": [link.id for link in relationships.links_touching(person.id)],
                "memberships": [
                    {"union_id": m.union_id, "role": m.role.value} for m in relationships.memberships_of(person.id)
                ],
            }
            soft_delete_person(conn, person.id, actor.user_id)
            return "person", person.id, previous

        raise ValidationError(f"Unsupported suggestion type: {suggestion.type.value}")

    def _remove_relationship(
        self, conn: sqlite3.Connection, actor: UserContext, suggestion: Suggestion
    ) -> tuple[str, str, dict[str, Any]]:
        relationships = RelationshipRepository(conn)
        if suggestion.target_union_id:
            union = relationships.get_union(suggestion.target_union_id)
            if union is None or union.tree_id != suggestion.tree_id:
                raise NotFoundError("Union not found")
            relationships.soft_delete_union(union.id, actor.user_id)
            return "union", union.id, {"removed": "union"}

        if suggestion.relationship_id:
            link = relationships.get_parent_child(suggestion.relationship_id)
        elif suggestion.target_person_id and suggestion.secondary_person_id:
            # target is the child, secondary the parent
            link = relationships.find_parent_child(suggestion.secondary_person_id, suggestion.target_person_id)
        else:
            raise ValidationError("No valid target specified for relationship removal")
        if link is None:
            raise NotFoundError("Relationship not found")
        child = PersonRepository(conn).get(link.child_id)
        if child is None or child.tree_id != suggestion.tree_id:
            raise NotFoundError("Relationship not found")
        relationships.soft_delete_parent_child(link.id, actor.user_id)
        return "parent_child", link.id, {"removed": "parent_child"}

    def _revert(self, conn: sqlite3.Connection, actor: UserContext, suggestion: Suggestion) -> None:
        relationships = RelationshipRepository(conn)
        persons = PersonRepository(conn)
        entity_id = suggestion.applied_entity_id
        previous = suggestion.previous_values or {}

        if suggestion.type == SuggestionType.MERGE_PERSON:
            raise ValidationError("Merged persons cannot be rolled back")

        if suggestion.type == SuggestionType.ADD_PERSON:
            soft_delete_person(conn, entity_id, actor.user_id)
        elif suggestion.type == SuggestionType.UPDATE_PERSON:
            persons.update(entity_id, previous)
        elif suggestion.type in (SuggestionType.ADD_PARENT, SuggestionType.ADD_CHILD):
            relationships.soft_delete_parent_child(entity_id, actor.user_id)
        elif suggestion.type == SuggestionType.ADD_SPOUSE:
            relationships.soft_delete_union(entity_id, actor.user_id)
        elif suggestion.type == SuggestionType.REMOVE_RELATIONSHIP:
            if suggestion.applied_entity_type == "union":
                relationships.restore_union(entity_id)
            else:
                relationships.restore_parent_child(entity_id)
        elif suggestion.type == SuggestionType.DELETE_PERSON:
            persons.restore(entity_id)
            for link_id in previous.get("parent_child_ids", []):
                relationships.restore_parent_child(link_id)
            for member in previous.get("memberships", []):
                if relationships.get_union(member["union_id"]) is not None:
                    relationships.add_member(member["union_id"], entity_id, MemberRole(member["role"]))

    # =========================================================================
    # Helpers
    # =========================================================================

    def _review(
        self,
        actor: UserContext,
        suggestion_id: str,
        status: SuggestionStatus,
        reviewer_notes: str | None,
        allowed: tuple[SuggestionStatus, ...],
        error: str,
        comment: bool = False,
    ) -> Suggestion:
        with self.db.transaction() as conn:
            suggestion = self._require(conn, suggestion_id)
            TreeAccess(conn, actor).require_reviewer(suggestion.tree_id)
            if suggestion.status not in allowed:
                raise ValidationError(error)
            suggestions = SuggestionRepository(conn)
            suggestions.update(suggestion_id, {
                "status": status,
                "reviewer_notes": reviewer_notes,
                "reviewed_by_user_id": actor.user_id,
                "reviewed_at": now_iso(),
            })
            if comment and reviewer_notes:
                suggestions.add_comment(suggestion_id, actor.user_id, reviewer_notes, True)
            logger.info(f"Suggestion {suggestion_id} marked {status.value} by user {actor.user_id}")
            return suggestions.get(suggestion_id)

    @staticmethod
    def _require(conn: sqlite3.Connection, suggestion_id: str) -> Suggestion:
        suggestion = SuggestionRepository(conn).get(suggestion_id)
        if suggestion is None:
            raise NotFoundError("Suggestion not found")
        return suggestion

    @staticmethod
    def _require_submitter_or_reviewer(conn: sqlite3.Connection, actor: UserContext, suggestion: Suggestion) -> bool:
        """Returns True when the caller is acting as a reviewer."""
        if TreeAccess(conn, actor).can_review(suggestion.tree_id):
            return True
        if suggestion.submitted_by_user_id != actor.user_id:
            raise PermissionDeniedError("You can only view your own suggestions")
        return False

    @staticmethod
    def _reopen_if_needed(suggestions: SuggestionRepository, suggestion: Suggestion) -> None:
        """A submitter answering a needs-info request puts the suggestion back in the queue."""
        if suggestion.status == SuggestionStatus.NEEDS_INFO:
            suggestions.update(suggestion.id, {"status": SuggestionStatus.PENDING})
            logger.debug(f"Suggestion {suggestion.id} returned to pending after submitter update")

    @staticmethod
    def _tree_person(persons: PersonRepository, suggestion: Suggestion, person_id: str | None):
        if person_id is None:
            raise ValidationError(f"{suggestion.type.value} suggestion is missing a person")
        person = require_person(persons, person_id)
        if person.tree_id != suggestion.tree_id:
            raise ValidationError("Suggested persons must belong to the suggestion's tree")
        return person

    @staticmethod
    def _validate_new(conn: sqlite3.Connection, data: SuggestionCreate) -> None:
        persons = PersonRepository(conn)
        for field_name in REQUIRED_PERSONS[data.type]:
            if getattr(data, field_name) is None:
                raise ValidationError(f"{field_name} is required for {data.type.value} suggestions")
        for field_name, label in (("target_person_id", "Target"), ("secondary_person_id", "Secondary")):
            person_id = getattr(data, field_name)
            if person_id is None:
                continue
            person = persons.get(person_id)
            if person is None or person.tree_id != data.tree_id:
                raise NotFoundError(f"{label} person not found")
        if data.type == SuggestionType.ADD_PERSON:
            _parse(PersonCreate, data.proposed_values)
        if data.type == SuggestionType.UPDATE_PERSON:
            _parse(PersonUpdate, data.proposed_values)
        if data.type == SuggestionType.REMOVE_RELATIONSHIP and not (
            data.target_union_id or data.relationship_id or (data.target_person_id and data.secondary_person_id)
        ):
            raise ValidationError("remove_relationship needs a union, a relationship, or a child and parent")


def _paging(page: int, page_size: int) -> tuple[int, int]:
    return max(page, 1), min(max(page_size, 1), MAX_PAGE_SIZE)
