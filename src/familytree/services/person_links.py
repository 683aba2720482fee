"""
Links between person records in different trees.

An editor of one tree may assert that one of its persons is the same as, an
ancestor of, or related to a person in another tree. The other tree must
allow cross-tree linking, and an administrator of that tree reviews the
request unless the requester already administers it. Links inside a single
tree need no review.
"""

from loguru import logger

from familytree.database import Database
from familytree.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from familytree.models.enums import PersonLinkStatus, TreeRole
from familytree.models.person import Person
from familytree.models.relationship import LinkedPerson, LinkMatch, PersonLink, PersonLinkCreate, PersonLinkReview
from familytree.repositories import AuditLogRepository, PersonLinkRepository, PersonRepository
from familytree.services.access import TreeAccess, UserContext
from familytree.services.name_utils import normalize_name
from familytree.services.text_similarity import similarity

MAX_MATCHES = 20
MIN_MATCH_SCORE = 0.3


def _name_score(query: str, person: Person) -> float:
    """Best similarity between a normalized query and any of the person's names."""
    best = 0.0
    for name in (person.primary_name, person.name_english, person.name_arabic, person.name_nobiin):
        candidate = normalize_name(name)
        if not candidate:
            continue
        if query in candidate:
            return 1.0
        best = max(best, similarity(query, candidate))
    return best


class PersonLinkService:
    """Request, review and browse links between persons."""

    def __init__(self, db: Database):
        self.db = db

    # =========================================================================
    # Requests and Review
    # =========================================================================

    def create(self, actor: UserContext, data: PersonLinkCreate) -> PersonLink:
        """Request a link, approving it at once for same-tree links and target admins.

        Raises:
            NotFoundError: If either person does not exist
            PermissionDeniedError: If the caller cannot edit the source tree
            ValidationError: If the target tree does not accept links
            ConflictError: If the two persons are already linked
        """
        with self.db.transaction() as conn:
            persons = PersonRepository(conn)
            source = persons.get(data.source_person_id)
            target = persons.get(data.target_person_id)
            if source is None or target is None:
                raise NotFoundError("One or both persons not found")

            access = TreeAccess(conn, actor)
            access.require_role(source.tree_id, TreeRole.EDITOR)
            same_tree = source.tree_id == target.tree_id
            if not same_tree and not access.get_tree(target.tree_id).allow_cross_tree_linking:
                raise ValidationError("Target tree does not allow cross-tree linking")

            links = PersonLinkRepository(conn)
            if links.exists_between(source.id, target.id):
                raise ConflictError("A link already exists between these persons")

            auto_approve = same_tree or access.can_review(target.tree_id)
            status = PersonLinkStatus.APPROVED if auto_approve else PersonLinkStatus.PENDING
            link = links.create(
                source.id, target.id, status, data.confidence, actor.user_id,
                link_type=data.link_type, notes=data.notes,
            )
            AuditLogRepository(conn).record(
                actor.user_id, "person_link.created", "person_link", link.id,
                {"source": source.id, "target": target.id, "status": status.name.lower()},
            )
            logger.info(
                f"Person link {link.id} ({status.name.lower()}): {source.id} -> {target.id} "
                f"by user {actor.user_id}"
            )
            return link

    def review(self, actor: UserContext, link_id: str, data: PersonLinkReview) -> PersonLink:
        """Approve or reject a pending link as an administrator of the target tree."""
        with self.db.transaction() as conn:
            links = PersonLinkRepository(conn)
            link = self._require(links, link_id)
            if link.status != PersonLinkStatus.PENDING:
                raise ValidationError("Link has already been reviewed")

            target = PersonRepository(conn).get(link.target_person_id)
            if target is None:
                raise NotFoundError("Linked person not found")
            TreeAccess(conn, actor).require_reviewer(target.tree_id)

            status = PersonLinkStatus.APPROVED if data.approve else PersonLinkStatus.REJECTED
            notes = link.notes
            if data.notes:
                notes = f"{link.notes}\n\nReview: {data.notes}" if link.notes else f"Review: {data.notes}"
            links.review(link_id, status, actor.user_id, notes)
            AuditLogRepository(conn).record(
                actor.user_id, f"person_link.{status.name.lower()}", "person_link", link_id
            )
            logger.info(f"Person link {link_id} {status.name.lower()} by user {actor.user_id}")
            return links.get(link_id)

    def delete(self, actor: UserContext, link_id: str) -> None:
        """Remove a link; its creator or an administrator of either tree may."""
        with self.db.transaction() as conn:
            links = PersonLinkRepository(conn)
            link = self._require(links, link_id)
            if link.created_by_user_id != actor.user_id:
                access = TreeAccess(conn, actor)
                persons = PersonRepository(conn)
                tree_ids = {
                    person.tree_id
                    for person in (
                        persons.get(link.source_person_id, include_deleted=True),
                        persons.get(link.target_person_id, include_deleted=True),
                    )
                    if person is not None
                }
                if not any(access.can_review(tree_id) for tree_id in tree_ids):
                    raise PermissionDeniedError("You cannot remove this link")
            links.delete(link_id)
            AuditLogRepository(conn).record(actor.user_id, "person_link.deleted", "person_link", link_id)
            logger.info(f"Person link {link_id} deleted by user {actor.user_id}")

    # =========================================================================
    # Queries
    # =========================================================================

    def for_person(self, actor: UserContext, person_id: str) -> list[PersonLink]:
        with self.db.connection() as conn:
            person = PersonRepository(conn).get(person_id)
            if person is None:
                raise NotFoundError(f"Person not found: {person_id}")
            TreeAccess(conn, actor).require_read(person.tree_id)
            return PersonLinkRepository(conn).list_for_person(person_id)

    def pending(self, actor: UserContext) -> list[PersonLink]:
        """Pending links whose target tree the caller reviews."""
        with self.db.connection() as conn:
            access = TreeAccess(conn, actor)
            reviewable: dict[str, bool] = {}
            result = []
            for link, tree_id in PersonLinkRepository(conn).list_pending():
                if tree_id not in reviewable:
                    reviewable[tree_id] = access.can_review(tree_id)
                if reviewable[tree_id]:
                    result.append(link)
            return result

    def tree_summary(self, actor: UserContext, tree_id: str) -> dict[str, list[LinkedPerson]]:
        """Approved cross-tree links of a tree, keyed by the tree's own person id."""
        with self.db.connection() as conn:
            access = TreeAccess(conn, actor)
            access.require_read(tree_id)
            rows = PersonLinkRepository(conn).approved_touching_tree(tree_id)
            others = PersonRepository(conn).get_many([row["person_id"] for row in rows])
            tree_names: dict[str, str] = {}

            summary: dict[str, list[LinkedPerson]] = {}
            for row in rows:
                other_tree = row["tree_id"]
                if other_tree not in tree_names:
                    tree_names[other_tree] = access.get_tree(other_tree).name
                summary.setdefault(row["own_person_id"], []).append(
                    LinkedPerson(
                        link_id=row["link_id"],
                        link_type=row["link_type"],
                        person_id=row["person_id"],
                        person_name=others[row["person_id"]].display_name,
                        tree_id=other_tree,
                        tree_name=tree_names[other_tree],
                    )
                )
            return summary

    def search_matches(
        self,
        actor: UserContext,
        name: str,
        birth_year: int | None = None,
        exclude_tree_id: str | None = None,
    ) -> list[LinkMatch]:
        """Find persons to link to in other trees that accept links.

        Candidates come from trees the caller can read with cross-tree linking
        enabled. A name containing the query scores 1.0; otherwise trigram
        similarity against each name column decides.
        """
        query = normalize_name(name)
        if len(query) < 2:
            raise ValidationError("Name must be at least 2 characters")

        with self.db.connection() as conn:
            access = TreeAccess(conn, actor)
            persons = PersonRepository(conn)
            matches = []
            for tree in access.trees.list_all():
                if tree.id == exclude_tree_id or not tree.allow_cross_tree_linking or not access.can_read(tree):
                    continue
                for person in persons.list_in_tree(tree.id):
                    if birth_year is not None and (person.birth_date is None or person.birth_date.year != birth_year):
                        continue
                    score = _name_score(query, person)
                    if score < MIN_MATCH_SCORE:
                        continue
                    matches.append(
                        LinkMatch(
                            person_id=person.id,
                            name=person.display_name,
                            sex=person.sex,
                            birth_date=person.birth_date,
                            death_date=person.death_date,
                            tree_id=tree.id,
                            tree_name=tree.name,
                            score=round(score, 3),
                        )
                    )

        matches.sort(key=lambda match: (-match.score, match.name))
        logger.debug(f"Link search '{query}' found {len(matches)} candidates")
        return matches[:MAX_MATCHES]

    @staticmethod
    def _require(links: PersonLinkRepository, link_id: str) -> PersonLink:
        link = links.get(link_id)
        if link is None:
            raise NotFoundError(f"Link not found: {link_id}")
        return link
