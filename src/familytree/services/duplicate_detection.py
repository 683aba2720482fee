"""
Duplicate person detection and resolution.

Names in this domain are patronymic: a person is identified by their own
given name followed by their father's and grandfather's. Records usually
store only the given name, so each person is first *enriched* with the
father and paternal grandfather found through parent-child links, giving a
constructed full name such as ``"Ahmed Mohamed Ali"``.

Strategies (a pair is always two persons of the same sex, ordered by id):

==============  ==========  ==================================================
match type      confidence  rule
==============  ==========  ==================================================
name_exact      95          equal full names, at least one patronymic part
name_similar    <= 90       trigram similarity on differing full names
mother_surn     60-95       same given + father name, different grandfather
shared_parent   92          same given name and at least one shared parent
name_exact      55          same given name, no father on either side,
                            birth years unknown or within 5 years
==============  ==========  ==================================================

Only the highest-confidence match per pair is reported, and pairs that
already carry a person link (approved or rejected) are never reported again.
"""

import sqlite3
from dataclasses import dataclass, field

from loguru import logger

from familytree.config import Config, get_config
from familytree.database import Database
from familytree.errors import ConflictError, NotFoundError, ValidationError
from familytree.models.duplicate import (
    DuplicateCandidate,
    DuplicateResolveRequest,
    DuplicateResolveResult,
    DuplicateScanRequest,
    DuplicateScanResult,
    DuplicateSummary,
    DuplicateSummaryItem,
)
from familytree.models.enums import PersonLinkStatus, Sex
from familytree.models.person import Person
from familytree.models.relationship import ParentChild
from familytree.repositories import (
    AuditLogRepository,
    PersonLinkRepository,
    PersonRepository,
    RelationshipRepository,
    TreeRepository,
)
from familytree.services.access import TreeAccess, UserContext
from familytree.services.text_similarity import set_similarity, trigrams

MODES = ("auto", "name_exact", "name_similar", "mother_surn", "shared_parent")
RESOLVE_ACTIONS = ("approve_link", "reject", "merge")
GIVEN_ONLY_MAX_YEAR_GAP = 5

# Columns copied from the removed person when the kept person has no value
MERGE_FILL_FIELDS = (
    "primary_name",
    "name_arabic",
    "name_english",
    "name_nobiin",
    "family_name",
    "birth_date",
    "birth_place",
    "death_date",
    "death_place",
    "occupation",
    "notes",
)


@dataclass
class EnrichedPerson:
    """A person with the patronymic parts found through the family graph."""

    person: Person
    given_name: str | None
    father_name: str | None = None
    grandfather_name: str | None = None
    parent_ids: set[str] = field(default_factory=set)
    grams: set[str] = field(default_factory=set)

    @property
    def id(self) -> str:
        return self.person.id

    @property
    def full_name(self) -> str:
        parts = (self.given_name, self.father_name, self.grandfather_name)
        return " ".join(part for part in parts if part)

    @property
    def has_patronymic(self) -> bool:
        return bool(self.father_name or self.grandfather_name)

    @property
    def birth_year(self) -> int | None:
        return self.person.birth_date.year if self.person.birth_date else None


def enrich_persons(persons: list[Person], links: list[ParentChild]) -> dict[str, EnrichedPerson]:
    """Attach father, grandfather and parent ids to each person.

    The father is the first live male parent; the grandfather is the
    father's first live male parent.
    """
    by_id = {person.id: person for person in persons}
    parents_of: dict[str, list[str]] = {}
    for link in links:
        if link.parent_id in by_id and link.child_id in by_id:
            parents_of.setdefault(link.child_id, []).append(link.parent_id)

    def father_of(person_id: str) -> Person | None:
        for parent_id in parents_of.get(person_id, []):
            if by_id[parent_id].sex == Sex.MALE:
                return by_id[parent_id]
        return None

    enriched = {}
    for person in persons:
        father = father_of(person.id)
        grandfather = father_of(father.id) if father else None
        item = EnrichedPerson(
            person=person,
            given_name=person.comparison_name,
            father_name=father.comparison_name if father else None,
            grandfather_name=grandfather.comparison_name if grandfather else None,
            parent_ids=set(parents_of.get(person.id, [])),
        )
        item.grams = trigrams(item.full_name)
        enriched[person.id] = item
    return enriched


def sibling_count(a: EnrichedPerson, b: EnrichedPerson, children_of: dict[str, set[str]]) -> int:
    """Distinct other children of either person's parents."""
    siblings: set[str] = set()
    for parent_id in a.parent_ids | b.parent_ids:
        siblings |= children_of.get(parent_id, set())
    siblings.discard(a.id)
    siblings.discard(b.id)
    return len(siblings)


class DuplicateMatcher:
    """Apply the matching strategies to enriched persons."""

    def __init__(self, mode: str = "auto", threshold: float = 0.3):
        if mode not in MODES:
            raise ValidationError(f"Invalid mode: {mode}. Must be one of {', '.join(MODES)}")
        self.mode = mode
        self.threshold = threshold

    def _enabled(self, strategy: str) -> bool:
        return self.mode in ("auto", strategy)

    def match(
        self,
        a: EnrichedPerson,
        b: EnrichedPerson,
        children_of: dict[str, set[str]],
    ) -> DuplicateCandidate | None:
        """Best candidate for one ordered pair, or None when nothing matches."""
        if a.person.sex != b.person.sex:
            return None

        matches: list[tuple[str, int, float, dict]] = []
        full_a, full_b = a.full_name, b.full_name

        if self._enabled("name_exact") and full_a and full_a == full_b and a.has_patronymic:
            matches.append((
                "name_exact", 95, 1.0,
                {"matchedFullName": full_a, "strategy": "Exact full name match (given + father + grandfather)"},
            ))

        if (
            self._enabled("name_similar")
            and full_a and full_b and full_a != full_b
            and a.has_patronymic and b.has_patronymic
        ):
            score = set_similarity(a.grams, b.grams)
            if score >= self.threshold:
                matches.append((
                    "name_similar", min(int(score * 100), 90), score,
                    {"similarity": round(score, 4), "strategy": "Trigram similarity on constructed full name"},
                ))

        same_given = bool(a.given_name) and a.given_name == b.given_name

        if (
            self._enabled("mother_surn")
            and same_given
            and a.person.tree_id == b.person.tree_id
            and a.father_name and a.father_name == b.father_name
            and a.grandfather_name != b.grandfather_name
        ):
            siblings = sibling_count(a, b, children_of)
            matches.append((
                "mother_surn", min(60 + 5 * siblings, 95), 0.6,
                {
                    "siblingCount": siblings,
                    "strategy": "Same given name + father, different grandfather "
                                "(possible mother surname or data entry variant)",
                },
            ))

        shared_parents = a.parent_ids & b.parent_ids
        if self._enabled("shared_parent") and same_given and shared_parents:
            matches.append((
                "shared_parent", 92, 0.92,
                {
                    "sharedParentCount": len(shared_parents),
                    "sharedParentIds": sorted(shared_parents),
                    "strategy": "Same given name, sex, and shared parent(s)",
                },
            ))

        if (
            self._enabled("name_exact")
            and same_given
            and len(a.given_name) > 1
            and not a.father_name and not b.father_name
            and _years_close(a.birth_year, b.birth_year)
        ):
            matches.append((
                "name_exact", 55, 0.55,
                {
                    "matchedGivenName": a.given_name,
                    "note": "Given name only match (no parent data available for either person)",
                    "strategy": "Exact given name match (no patronymic data)",
                },
            ))

        if not matches:
            return None
        match_type, confidence, score, evidence = max(matches, key=lambda m: m[1])
        evidence.update({"fullNameA": full_a, "fullNameB": full_b})
        return _candidate(a, b, match_type, confidence, score, len(shared_parents), evidence)


def _years_close(year_a: int | None, year_b: int | None) -> bool:
    if year_a is None and year_b is None:
        return True
    if year_a is None or year_b is None:
        return False
    return abs(year_a - year_b) <= GIVEN_ONLY_MAX_YEAR_GAP


def _candidate(
    a: EnrichedPerson,
    b: EnrichedPerson,
    match_type: str,
    confidence: int,
    score: float,
    shared_parent_count: int,
    evidence: dict,
) -> DuplicateCandidate:
    return DuplicateCandidate(
        person_a_id=a.id,
        person_a_tree_id=a.person.tree_id,
        person_a_name=a.person.display_name,
        person_a_full_name=a.full_name or a.given_name,
        person_a_sex=int(a.person.sex),
        person_a_birth_year=a.birth_year,
        person_b_id=b.id,
        person_b_tree_id=b.person.tree_id,
        person_b_name=b.person.display_name,
        person_b_full_name=b.full_name or b.given_name,
        person_b_sex=int(b.person.sex),
        person_b_birth_year=b.birth_year,
        match_type=match_type,
        confidence=confidence,
        similarity_score=round(score, 4),
        given_name_a=a.given_name,
        given_name_b=b.given_name,
        father_name_a=a.father_name,
        father_name_b=b.father_name,
        grandfather_name_a=a.grandfather_name,
        grandfather_name_b=b.grandfather_name,
        shared_parent_count=shared_parent_count,
        evidence=evidence,
    )


# =============================================================================
# Merge
# =============================================================================


def merge_persons(conn: sqlite3.Connection, keep: Person, remove: Person, user_id: int | None) -> int:
    """Fold ``remove`` into ``keep`` on an open transaction.

    Copies values the kept person lacks, moves parent-child links and union
    memberships over (dropping any that would duplicate or loop), and soft
    deletes the removed person.

    Returns:
        Number of relationship rows moved to the kept person
    """
    persons = PersonRepository(conn)
    relationships = RelationshipRepository(conn)

    fills = {
        name: getattr(remove, name)
        for name in MERGE_FILL_FIELDS
        if getattr(keep, name) is None and getattr(remove, name) is not None
    }
    for prefix in ("birth", "death"):
        if f"{prefix}_date" in fills:
            fills[f"{prefix}_precision"] = getattr(remove, f"{prefix}_precision")
    if keep.sex == Sex.UNKNOWN and remove.sex != Sex.UNKNOWN:
        fills["sex"] = remove.sex
    persons.update(keep.id, {**fills, "needs_review": True})

    moved = 0
    for link in relationships.links_touching(remove.id):
        if link.parent_id == remove.id:
            column, parent_id, child_id = "parent_id", keep.id, link.child_id
        else:
            column, parent_id, child_id = "child_id", link.parent_id, keep.id
        if parent_id == child_id or relationships.find_parent_child(parent_id, child_id):
            relationships.soft_delete_parent_child(link.id, user_id)
            continue
        relationships.repoint_parent_child(link.id, column, keep.id)
        moved += 1

    kept_unions = {m.union_id for m in relationships.memberships_of(keep.id)}
    for member in relationships.memberships_of(remove.id):
        if member.union_id in kept_unions:
            relationships.delete_member(member.id)
            continue
        relationships.repoint_member(member.id, keep.id)
        moved += 1

    persons.soft_delete(remove.id, user_id)
    return moved


class DuplicateDetectionService:
    """Scan for duplicate persons and resolve reviewed pairs."""

    def __init__(self, db: Database, config: Config | None = None):
        self.db = db
        self.config = config or get_config()

    # =========================================================================
    # Scan
    # =========================================================================

    def scan(self, actor: UserContext, request: DuplicateScanRequest) -> DuplicateScanResult:
        page = max(request.page, 1)
        page_size = min(max(request.page_size, 1), self.config.duplicate_max_page_size)
        candidates = self.find_candidates(actor, request)
        start = (page - 1) * page_size
        return DuplicateScanResult(
            total=len(candidates),
            page=page,
            page_size=page_size,
            items=candidates[start:start + page_size],
        )

    def summary(self, actor: UserContext, request: DuplicateScanRequest) -> DuplicateSummary:
        candidates = self.find_candidates(actor, request)
        grouped: dict[str, list[int]] = {}
        for candidate in candidates:
            grouped.setdefault(candidate.match_type, []).append(candidate.confidence)

        items = [
            DuplicateSummaryItem(
                match_type=match_type,
                candidate_count=len(values),
                avg_confidence=round(sum(values) / len(values), 1),
                min_confidence=min(values),
                max_confidence=max(values),
            )
            for match_type, values in grouped.items()
        ]
        items.sort(key=lambda item: (-item.candidate_count, item.match_type))
        return DuplicateSummary(
            tree_id=request.tree_id,
            target_tree_id=request.target_tree_id,
            total_candidates=len(candidates),
            by_match_type=items,
        )

    def find_candidates(self, actor: UserContext, request: DuplicateScanRequest) -> list[DuplicateCandidate]:
        """Every candidate above the minimum confidence, best first."""
        if request.target_tree_id and not request.tree_id:
            raise ValidationError("tree_id is required when target_tree_id is specified")
        matcher = DuplicateMatcher(request.mode, self.config.trigram_similarity_threshold)
        min_confidence = (
            request.min_confidence
            if request.min_confidence is not None
            else self.config.duplicate_default_min_confidence
        )

        with self.db.connection() as conn:
            access = TreeAccess(conn, actor)
            access.require_admin_scope(request.tree_id)
            if request.target_tree_id:
                access.require_admin_scope(request.target_tree_id)

            tree_ids = self._scope_tree_ids(conn, request)
            persons: list[Person] = []
            links: list[ParentChild] = []
            people = PersonRepository(conn)
            relationships = RelationshipRepository(conn)
            for tree_id in tree_ids:
                persons.extend(people.list_in_tree(tree_id))
                links.extend(relationships.parent_child_in_tree(tree_id))
            linked = PersonLinkRepository(conn).linked_pairs()

        enriched = enrich_persons(persons, links)
        children_of: dict[str, set[str]] = {}
        for link in links:
            children_of.setdefault(link.parent_id, set()).add(link.child_id)

        candidates = []
        for a, b in self._pairs(list(enriched.values()), request):
            if frozenset((a.id, b.id)) in linked:
                continue
            candidate = matcher.match(a, b, children_of)
            if candidate is not None and candidate.confidence >= min_confidence:
                candidates.append(candidate)

        candidates.sort(key=lambda c: (-c.confidence, c.match_type, c.person_a_full_name or ""))
        logger.info(
            f"Duplicate scan (tree={request.tree_id}, target={request.target_tree_id}, "
            f"mode={request.mode}): {len(persons)} persons, {len(candidates)} candidates"
        )
        return candidates

    @staticmethod
    def _scope_tree_ids(conn: sqlite3.Connection, request: DuplicateScanRequest) -> list[str]:
        if request.tree_id is None:
            return [tree.id for tree in TreeRepository(conn).list_all()]
        tree_ids = [request.tree_id]
        if request.target_tree_id and request.target_tree_id != request.tree_id:
            tree_ids.append(request.target_tree_id)
        return tree_ids

    @staticmethod
    def _pairs(people: list[EnrichedPerson], request: DuplicateScanRequest):
        """Candidate pairs ``(a, b)`` with ``a.id < b.id``.

        Cross-tree scans pair each person of the tree with each person of
        the target tree; other scans pair everyone in scope.
        """
        cross_tree = request.target_tree_id and request.target_tree_id != request.tree_id
        if cross_tree:
            source = [p for p in people if p.person.tree_id == request.tree_id]
            target = [p for p in people if p.person.tree_id == request.target_tree_id]
            for x in source:
                for y in target:
                    yield (x, y) if x.id < y.id else (y, x)
            return

        ordered = sorted(people, key=lambda p: p.id)
        for index, a in enumerate(ordered):
            for b in ordered[index + 1:]:
                yield a, b

    # =========================================================================
    # Resolve
    # =========================================================================

    def resolve(self, actor: UserContext, request: DuplicateResolveRequest) -> DuplicateResolveResult:
        action = request.action.lower()
        if action not in RESOLVE_ACTIONS:
            raise ValidationError(
                f"Invalid action: {request.action}. Must be 'approve_link', 'reject', or 'merge'"
            )
        if request.person_a_id == request.person_b_id:
            raise ValidationError("Cannot resolve a person against itself")

        with self.db.transaction() as conn:
            persons = PersonRepository(conn)
            person_a = persons.get(request.person_a_id, include_deleted=True)
            person_b = persons.get(request.person_b_id, include_deleted=True)
            if person_a is None or person_b is None:
                raise NotFoundError("One or both persons not found")
            if person_a.is_deleted or person_b.is_deleted:
                raise ValidationError("Cannot resolve deleted persons")

            access = TreeAccess(conn, actor)
            access.require_admin_scope(person_a.tree_id)
            if person_b.tree_id != person_a.tree_id:
                access.require_admin_scope(person_b.tree_id)

            links = PersonLinkRepository(conn)
            if links.exists_between(person_a.id, person_b.id):
                raise ConflictError("A link already exists between these persons")

            if action == "approve_link":
                link = links.create(
                    person_a.id, person_b.id, PersonLinkStatus.APPROVED, 100, actor.user_id, notes=request.notes
                )
                logger.info(f"Approved same-person link between {person_a.id} and {person_b.id}")
                return DuplicateResolveResult(action=action, link_id=link.id, message="Link approved")

            if action == "reject":
                link = links.create(
                    person_a.id, person_b.id, PersonLinkStatus.REJECTED, 0, actor.user_id, notes=request.notes
                )
                logger.info(f"Rejected duplicate pair {person_a.id} / {person_b.id}")
                return DuplicateResolveResult(action=action, link_id=link.id, message="Marked as not duplicate")

            if request.keep_person_id is None:
                raise ValidationError("keep_person_id is required for merge action")
            if request.keep_person_id not in (person_a.id, person_b.id):
                raise ValidationError("keep_person_id must be one of the two persons being merged")
            keep, remove = (person_a, person_b) if request.keep_person_id == person_a.id else (person_b, person_a)

            moved = merge_persons(conn, keep, remove, actor.user_id)
            link = links.create(
                keep.id, remove.id, PersonLinkStatus.APPROVED, 100, actor.user_id, notes=request.notes
            )
            AuditLogRepository(conn).record(
                actor.user_id, "person.merged", "person", keep.id,
                {"removed_person_id": remove.id, "relationships_moved": moved},
            )
            logger.info(f"Merged person {remove.id} into {keep.id} ({moved} relationships moved)")
            return DuplicateResolveResult(
                action=action,
                link_id=link.id,
                kept_person_id=keep.id,
                removed_person_id=remove.id,
                relationships_moved=moved,
                message=f"Merged {remove.display_name} into {keep.display_name}",
            )
