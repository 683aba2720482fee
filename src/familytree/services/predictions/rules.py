"""
Prediction rules.

Each rule looks at one tree snapshot and proposes links that are probably
missing. Rules never write; the service aggregates and stores what they find.
"""

import sqlite3
from dataclasses import dataclass, field
from datetime import date

from familytree.models.enums import PredictedType, RelationshipType, Sex
from familytree.models.person import Person
from familytree.models.prediction import PredictionCandidate
from familytree.models.relationship import ParentChild, Union
from familytree.repositories import PersonRepository, RelationshipRepository
from familytree.services.name_utils import normalize_name

DAYS_PER_YEAR = 365.25


@dataclass
class TreeSnapshot:
    """Live persons, parent-child links and unions of one tree."""

    tree_id: str
    persons: dict[str, Person] = field(default_factory=dict)
    links: list[ParentChild] = field(default_factory=list)
    unions: list[Union] = field(default_factory=list)

    @classmethod
    def load(cls, conn: sqlite3.Connection, tree_id: str) -> "TreeSnapshot":
        relationships = RelationshipRepository(conn)
        return cls(
            tree_id=tree_id,
            persons={p.id: p for p in PersonRepository(conn).list_in_tree(tree_id)},
            links=relationships.parent_child_in_tree(tree_id),
            unions=relationships.list_unions(tree_id),
        )

    def parents_of(self) -> dict[str, list[str]]:
        result: dict[str, list[str]] = {}
        for link in self.links:
            parents = result.setdefault(link.child_id, [])
            if link.parent_id not in parents:
                parents.append(link.parent_id)
        return result

    def children_of(self) -> dict[str, list[str]]:
        result: dict[str, list[str]] = {}
        for link in self.links:
            children = result.setdefault(link.parent_id, [])
            if link.child_id not in children:
                children.append(link.child_id)
        return result

    def biological_parent_count(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for link in self.links:
            if link.relationship_type == RelationshipType.BIOLOGICAL:
                counts[link.child_id] = counts.get(link.child_id, 0) + 1
        return counts

    def link_keys(self) -> set[tuple[str, str]]:
        return {(link.parent_id, link.child_id) for link in self.links}

    def partner_pairs(self) -> set[frozenset[str]]:
        """Every pair of persons sharing at least one union."""
        pairs: set[frozenset[str]] = set()
        for union in self.unions:
            ids = [m.person_id for m in union.members]
            for i, first in enumerate(ids):
                for second in ids[i + 1:]:
                    if first != second:
                        pairs.add(frozenset((first, second)))
        return pairs

    def name(self, person_id: str) -> str:
        person = self.persons.get(person_id)
        return person.display_name if person else "?"


def years_between(earlier: date, later: date) -> float:
    return (later - earlier).days / DAYS_PER_YEAR


class PredictionRule:
    """Base class for a rule; subclasses set ``rule_id`` and implement ``detect``."""

    rule_id = ""
    description = ""
    # Rules that can explode on large trees keep only their strongest candidates
    capped = False

    def detect(self, snapshot: TreeSnapshot) -> list[PredictionCandidate]:
        raise NotImplementedError


class SpouseChildGapRule(PredictionRule):
    rule_id = "spouse_child_gap"
    description = "Spouse not linked to children"

    def detect(self, snapshot: TreeSnapshot) -> list[PredictionCandidate]:
        children_of = snapshot.children_of()
        parents_of = snapshot.parents_of()
        bio_count = snapshot.biological_parent_count()
        seen: set[tuple[str, str]] = set()
        candidates = []

        for union in snapshot.unions:
            member_ids = [m.person_id for m in union.members]
            if len(member_ids) < 2:
                continue
            for parent_id in member_ids:
                for spouse_id in member_ids:
                    if spouse_id == parent_id:
                        continue
                    for child_id in children_of.get(parent_id, []):
                        if child_id == spouse_id or spouse_id in parents_of.get(child_id, []):
                            continue
                        if bio_count.get(child_id, 0) >= 2 or (spouse_id, child_id) in seen:
                            continue
                        seen.add((spouse_id, child_id))
                        candidates.append(PredictionCandidate(
                            rule_id=self.rule_id,
                            predicted_type=PredictedType.PARENT_CHILD,
                            source_person_id=spouse_id,
                            target_person_id=child_id,
                            confidence=self._confidence(union, snapshot.persons.get(child_id)),
                            explanation=(
                                f"{snapshot.name(spouse_id)} is in a union with {snapshot.name(parent_id)} "
                                f"who is parent of {snapshot.name(child_id)}, "
                                f"but {snapshot.name(spouse_id)} is not linked as parent"
                            ),
                        ))
        return candidates

    @staticmethod
    def _confidence(union: Union, child: Person | None) -> float:
        if child is None or child.birth_date is None or union.start_date is None:
            return 85.0
        born = child.birth_date
        if born >= union.start_date and (union.end_date is None or born <= union.end_date):
            return 95.0
        return 60.0


class MissingUnionRule(PredictionRule):
    rule_id = "missing_union"
    description = "Co-parents without a union"

    def detect(self, snapshot: TreeSnapshot) -> list[PredictionCandidate]:
        parents_of = snapshot.parents_of()
        children_of = snapshot.children_of()
        partners = snapshot.partner_pairs()
        checked: set[frozenset[str]] = set()
        candidates = []

        for parent_ids in parents_of.values():
            for i, parent_a in enumerate(parent_ids):
                for parent_b in parent_ids[i + 1:]:
                    pair = frozenset((parent_a, parent_b))
                    if pair in checked:
                        continue
                    checked.add(pair)
                    if pair in partners:
                        continue

                    shared = len(set(children_of.get(parent_a, [])) & set(children_of.get(parent_b, [])))
                    confidence = 95.0 if shared >= 3 else {2: 90.0, 1: 80.0}.get(shared, 70.0)
                    sex_a = snapshot.persons[parent_a].sex
                    sex_b = snapshot.persons[parent_b].sex
                    if Sex.UNKNOWN not in (sex_a, sex_b) and sex_a != sex_b:
                        confidence = min(confidence + 5, 99.0)

                    candidates.append(PredictionCandidate(
                        rule_id=self.rule_id,
                        predicted_type=PredictedType.UNION,
                        source_person_id=parent_a,
                        target_person_id=parent_b,
                        confidence=confidence,
                        explanation=(
                            f"{snapshot.name(parent_a)} and {snapshot.name(parent_b)} are both parents "
                            f"of {shared} child(ren) but have no union"
                        ),
                    ))
        return candidates


class SiblingParentGapRule(PredictionRule):
    rule_id = "sibling_parent_gap"
    description = "Sibling missing second parent"

    def detect(self, snapshot: TreeSnapshot) -> list[PredictionCandidate]:
        parents_of = snapshot.parents_of()
        children_of = snapshot.children_of()
        bio_count = snapshot.biological_parent_count()
        partners = snapshot.partner_pairs()
        with_two = {child: set(parents) for child, parents in parents_of.items() if len(parents) >= 2}
        processed: set[tuple[str, str]] = set()
        candidates = []

        for parents in parents_of.values():
            if len(parents) < 2:
                continue
            for i, parent_a in enumerate(parents):
                for parent_b in parents[i + 1:]:
                    if frozenset((parent_a, parent_b)) not in partners:
                        continue
                    siblings_with_both = sum(
                        1 for linked in with_two.values() if parent_a in linked and parent_b in linked
                    )
                    confidence = 90.0 if siblings_with_both >= 3 else 80.0 if siblings_with_both >= 1 else 70.0
                    for linked_parent, missing_parent in ((parent_a, parent_b), (parent_b, parent_a)):
                        missing_children = set(children_of.get(missing_parent, []))
                        for child_id in children_of.get(linked_parent, []):
                            if child_id in missing_children or (missing_parent, child_id) in processed:
                                continue
                            processed.add((missing_parent, child_id))
                            if bio_count.get(child_id, 0) >= 2:
                                continue
                            candidates.append(PredictionCandidate(
                                rule_id=self.rule_id,
                                predicted_type=PredictedType.PARENT_CHILD,
                                source_person_id=missing_parent,
                                target_person_id=child_id,
                                confidence=confidence,
                                explanation=(
                                    f"{snapshot.name(missing_parent)} is in a union with "
                                    f"{snapshot.name(linked_parent)}. {siblings_with_both} sibling(s) have "
                                    f"both parents, but {snapshot.name(child_id)} only has "
                                    f"{snapshot.name(linked_parent)}"
                                ),
                            ))
        return candidates


class PatronymicNameRule(PredictionRule):
    """A child's second name is usually the father's given name."""

    rule_id = "patronymic_name"
    description = "Arabic patronymic name match"
    capped = True

    def detect(self, snapshot: TreeSnapshot) -> list[PredictionCandidate]:
        parsed = []
        for person in snapshot.persons.values():
            full_name = person.name_arabic or person.primary_name or ""
            tokens = [normalize_name(token) for token in full_name.split()]
            if not tokens or len(tokens[0]) <= 1:
                continue
            parsed.append((person, full_name, tokens[0], tokens[1] if len(tokens) > 1 else ""))

        by_given: dict[str, list[tuple[Person, str]]] = {}
        for person, full_name, given, _ in parsed:
            by_given.setdefault(given, []).append((person, full_name))

        existing = snapshot.link_keys()
        candidates = []
        for child, child_name, _, father_token in parsed:
            if not father_token:
                continue
            for parent, parent_name in by_given.get(father_token, []):
                if parent.id == child.id or (parent.id, child.id) in existing:
                    continue
                confidence = 35.0
                if parent.sex == Sex.MALE:
                    confidence += 10
                if _same_family(parent, child):
                    confidence += 10
                if child.birth_date and parent.birth_date:
                    gap = years_between(parent.birth_date, child.birth_date)
                    if gap < 0 or gap > 60:
                        continue
                    if 15 <= gap <= 50:
                        confidence += 10
                confidence = min(confidence, 65.0)
                if confidence < 40:
                    continue
                candidates.append(PredictionCandidate(
                    rule_id=self.rule_id,
                    predicted_type=PredictedType.PARENT_CHILD,
                    source_person_id=parent.id,
                    target_person_id=child.id,
                    confidence=confidence,
                    explanation=(
                        f"{child_name}'s second name matches {parent_name}'s given name "
                        f"(Arabic patronymic pattern)"
                    ),
                ))
        return candidates


class AgeFamilyRule(PredictionRule):
    """Members of one family whose birth years are a generation apart."""

    rule_id = "age_family"
    description = "Age gap and family membership"
    capped = True

    def detect(self, snapshot: TreeSnapshot) -> list[PredictionCandidate]:
        families: dict[str, list[Person]] = {}
        for person in snapshot.persons.values():
            if person.birth_date is None or not person.family_name:
                continue
            families.setdefault(normalize_name(person.family_name), []).append(person)

        existing = snapshot.link_keys()
        candidates = []
        for members in families.values():
            for older in members:
                for younger in members:
                    if older.id == younger.id:
                        continue
                    gap = years_between(older.birth_date, younger.birth_date)
                    if gap < 15 or gap > 50:
                        continue
                    if (older.id, younger.id) in existing or (younger.id, older.id) in existing:
                        continue
                    candidates.append(PredictionCandidate(
                        rule_id=self.rule_id,
                        predicted_type=PredictedType.PARENT_CHILD,
                        source_person_id=older.id,
                        target_person_id=younger.id,
                        confidence=55.0 if 20 <= gap <= 40 else 45.0,
                        explanation=(
                            f"{_rule_name(older)} and {_rule_name(younger)} are in the same family "
                            f"with a {round(gap)}-year age gap"
                        ),
                    ))
        return candidates


def _same_family(a: Person, b: Person) -> bool:
    return bool(a.family_name and b.family_name) and normalize_name(a.family_name) == normalize_name(b.family_name)


def _rule_name(person: Person) -> str:
    return person.name_arabic or person.primary_name or "?"


def default_rules() -> list[PredictionRule]:
    return [
        SpouseChildGapRule(),
        MissingUnionRule(),
        SiblingParentGapRule(),
        PatronymicNameRule(),
        AgeFamilyRule(),
    ]


RULE_DESCRIPTIONS = {rule.rule_id: rule.description for rule in default_rules()}
