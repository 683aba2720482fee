"""Tests for relationship prediction rules, aggregation and review."""

from datetime import date

import pytest

from familytree.errors import NotFoundError, PermissionDeniedError, ValidationError
from familytree.models.enums import ConfidenceLevel, MemberRole, PredictedType, PredictionStatus, Sex
from familytree.models.person import Person
from familytree.models.prediction import PredictionCandidate
from familytree.models.relationship import ParentChild, Union, UnionMember
from familytree.services.predictions import (
    AgeFamilyRule,
    MissingUnionRule,
    PatronymicNameRule,
    PredictionRule,
    PredictionService,
    SiblingParentGapRule,
    SpouseChildGapRule,
    TreeSnapshot,
    aggregate_candidates,
    confidence_level,
    default_rules,
    noisy_or,
)
from familytree.services.relationship_service import RelationshipService

STAMP = "2024-01-01T00:00:00"


def person(person_id: str, name: str, sex: Sex = Sex.UNKNOWN, birth_year: int | None = None, **fields) -> Person:
    return Person(
        id=person_id,
        tree_id="t1",
        primary_name=name,
        sex=sex,
        birth_date=date(birth_year, 6, 1) if birth_year else None,
        created_at=STAMP,
        updated_at=STAMP,
        **fields,
    )


def link(parent_id: str, child_id: str) -> ParentChild:
    return ParentChild(id=f"{parent_id}>{child_id}", parent_id=parent_id, child_id=child_id, created_at=STAMP)


def union(*member_ids: str, start_year: int | None = None) -> Union:
    union_id = "u-" + "-".join(member_ids)
    return Union(
        id=union_id,
        tree_id="t1",
        start_date=date(start_year, 1, 1) if start_year else None,
        created_at=STAMP,
        updated_at=STAMP,
        members=[
            UnionMember(id=f"{union_id}-{m}", union_id=union_id, person_id=m, role=MemberRole.PARTNER, created_at=STAMP)
            for m in member_ids
        ],
    )


def snapshot(persons: list[Person], links=(), unions=()) -> TreeSnapshot:
    return TreeSnapshot(tree_id="t1", persons={p.id: p for p in persons}, links=list(links), unions=list(unions))


def candidate(rule_id: str, confidence: float, source="a", target="b") -> PredictionCandidate:
    return PredictionCandidate(
        rule_id=rule_id,
        predicted_type=PredictedType.PARENT_CHILD,
        source_person_id=source,
        target_person_id=target,
        confidence=confidence,
        explanation=f"{rule_id} says so",
    )


class TestAggregation:
    """Test combining candidates from several rules."""

    def test_noisy_or(self):
        assert noisy_or([80, 60]) == 92.0
        assert noisy_or([50]) == 50.0

    def test_noisy_or_is_capped(self):
        assert noisy_or([99, 99]) == 99.0

    def test_same_link_merged(self):
        merged = aggregate_candidates([candidate("first", 60), candidate("second", 80), candidate("other", 50, "x", "y")])

        assert len(merged) == 2
        top = merged[0]
        assert top.rule_id == "second"
        assert top.confidence == 92.0
        assert top.explanation == "second says so (also matched by: second, first)"

    def test_confidence_levels(self):
        assert confidence_level(85) == ConfidenceLevel.HIGH
        assert confidence_level(60) == ConfidenceLevel.MEDIUM
        assert confidence_level(59.9) == ConfidenceLevel.LOW


class TestSpouseChildGapRule:
    """Test a spouse of a parent missing from the child's parents."""

    def people(self, child_birth=None):
        return [
            person("father", "Hassan", Sex.MALE),
            person("mother", "Amina", Sex.FEMALE),
            person("child", "Ali", Sex.MALE, child_birth),
        ]

    def test_spouse_proposed_as_parent(self):
        found = SpouseChildGapRule().detect(
            snapshot(self.people(), [link("father", "child")], [union("father", "mother")])
        )

        assert len(found) == 1
        assert (found[0].source_person_id, found[0].target_person_id) == ("mother", "child")
        assert found[0].confidence == 85.0

    @pytest.mark.parametrize("birth_year,expected", [(1955, 95.0), (1940, 60.0)])
    def test_birth_within_union(self, birth_year, expected):
        found = SpouseChildGapRule().detect(
            snapshot(self.people(birth_year), [link("father", "child")], [union("father", "mother", start_year=1950)])
        )

        assert found[0].confidence == expected

    def test_child_with_two_parents_skipped(self):
        people = self.people() + [person("other", "Sara", Sex.FEMALE)]
        links = [link("father", "child"), link("other", "child")]

        assert SpouseChildGapRule().detect(snapshot(people, links, [union("father", "mother")])) == []


class TestMissingUnionRule:
    """Test co-parents without a union."""

    def test_co_parents(self):
        people = [person("f", "Hassan", Sex.MALE), person("m", "Amina", Sex.FEMALE), person("c", "Ali")]

        found = MissingUnionRule().detect(snapshot(people, [link("f", "c"), link("m", "c")]))

        assert len(found) == 1
        assert found[0].predicted_type == PredictedType.UNION
        # one shared child plus the opposite-sex bonus
        assert found[0].confidence == 85.0

    def test_existing_union_not_proposed(self):
        people = [person("f", "Hassan", Sex.MALE), person("m", "Amina", Sex.FEMALE), person("c", "Ali")]

        found = MissingUnionRule().detect(snapshot(people, [link("f", "c"), link("m", "c")], [union("f", "m")]))

        assert found == []


class TestSiblingParentGapRule:
    """Test a child missing one parent that their siblings have."""

    def test_missing_second_parent(self):
        people = [
            person("f", "Hassan", Sex.MALE),
            person("m", "Amina", Sex.FEMALE),
            person("c1", "Ali"),
            person("c2", "Mona"),
        ]
        links = [link("f", "c1"), link("m", "c1"), link("f", "c2")]

        found = SiblingParentGapRule().detect(snapshot(people, links, [union("f", "m")]))

        assert [(c.source_person_id, c.target_person_id) for c in found] == [("m", "c2")]
        assert found[0].confidence == 80.0


class TestPatronymicNameRule:
    """Test the child's second name matching a parent's given name."""

    def test_father_name_match(self):
        people = [
            person("father", "Mohamed Ali", Sex.MALE, 1920, family_name="Hassan"),
            person("child", "Ahmed Mohamed", Sex.MALE, 1945, family_name="Hassan"),
        ]

        found = PatronymicNameRule().detect(snapshot(people))

        assert len(found) == 1
        assert (found[0].source_person_id, found[0].target_person_id) == ("father", "child")
        assert found[0].confidence == 65.0

    def test_arabic_spelling_variants_match(self):
        people = [person("father", "أحمد", Sex.MALE), person("child", "علي احمد", Sex.MALE)]

        found = PatronymicNameRule().detect(snapshot(people))

        assert [c.source_person_id for c in found] == ["father"]
        assert found[0].confidence == 45.0

    def test_impossible_age_gap_skipped(self):
        people = [
            person("father", "Mohamed", Sex.MALE, 1950),
            person("child", "Ahmed Mohamed", Sex.MALE, 1940),
        ]

        assert PatronymicNameRule().detect(snapshot(people)) == []

    def test_existing_link_skipped(self):
        people = [person("father", "Mohamed", Sex.MALE), person("child", "Ahmed Mohamed", Sex.MALE)]

        assert PatronymicNameRule().detect(snapshot(people, [link("father", "child")])) == []


class TestAgeFamilyRule:
    """Test same-family persons a generation apart."""

    def test_generation_gap(self):
        people = [
            person("old", "Hassan", Sex.MALE, 1900, family_name="Saleh"),
            person("young", "Ali", Sex.MALE, 1930, family_name="Saleh"),
            person("peer", "Omar", Sex.MALE, 1905, family_name="Saleh"),
            person("stranger", "Karim", Sex.MALE, 1930, family_name="Other"),
        ]

        found = AgeFamilyRule().detect(snapshot(people))

        pairs = {(c.source_person_id, c.target_person_id): c.confidence for c in found}
        assert pairs == {("old", "young"): 55.0, ("peer", "young"): 55.0}

    def test_default_rules(self):
        assert [rule.rule_id for rule in default_rules()] == [
            "spouse_child_gap",
            "missing_union",
            "sibling_parent_gap",
            "patronymic_name",
            "age_family",
        ]


class BrokenRule(PredictionRule):
    rule_id = "broken"
    description = "Always fails"

    def detect(self, snapshot):
        raise RuntimeError("boom")


class TestPredictionService:
    """Test scans and their review."""

    @pytest.fixture
    def service(self, db, config):
        return PredictionService(db, config)

    @pytest.fixture
    def co_parents(self, db, owner, person_factory):
        """Two parents of one child without a union."""
        father = person_factory("Hassan", sex=Sex.MALE)
        mother = person_factory("Amina", sex=Sex.FEMALE)
        child = person_factory("Ali", sex=Sex.MALE)
        relationships = RelationshipService(db)
        relationships.add_parent(owner, child.id, father.id)
        relationships.add_parent(owner, child.id, mother.id)
        return father, mother, child

    def scan_one(self, service, super_admin, tree):
        service.scan(super_admin, tree.id)
        page = service.list_page(super_admin, tree.id, status=PredictionStatus.NEW)
        assert page.total == 1
        return page.items[0]

    def test_scan(self, service, super_admin, tree, co_parents):
        result = service.scan(super_admin, tree.id)

        assert result.total_predictions == 1
        assert result.high_confidence == 1
        assert result.by_rule == {"missing_union": 1}
        assert result.rule_errors == []

    def test_rescan_replaces_unreviewed(self, service, super_admin, tree, co_parents):
        service.scan(super_admin, tree.id)
        service.scan(super_admin, tree.id)

        assert service.list_page(super_admin, tree.id).total == 1

    def test_list_filters(self, service, super_admin, tree, co_parents):
        service.scan(super_admin, tree.id)

        assert service.list_page(super_admin, tree.id, rule_id="missing_union").total == 1
        assert service.list_page(super_admin, tree.id, predicted_type=PredictedType.PARENT_CHILD).total == 0
        assert service.list_page(super_admin, tree.id, confidence_level=ConfidenceLevel.LOW).total == 0

    def test_accept_creates_union(self, service, db, owner, super_admin, tree, co_parents):
        father, mother, _ = co_parents
        prediction = self.scan_one(service, super_admin, tree)

        accepted = service.accept(super_admin, prediction.id)

        assert accepted.status == PredictionStatus.APPLIED
        assert accepted.applied_entity_type == "union"
        assert accepted.rule_description == "Co-parents without a union"
        spouses = RelationshipService(db).get_spouses(owner, father.id)
        assert [s.person_id for s in spouses] == [mother.id]
        assert service.scan(super_admin, tree.id).total_predictions == 0

    def test_accept_twice_rejected(self, service, super_admin, tree, co_parents):
        prediction = self.scan_one(service, super_admin, tree)
        service.accept(super_admin, prediction.id)

        with pytest.raises(ValidationError, match="already applied"):
            service.accept(super_admin, prediction.id)

    def test_dismissed_not_proposed_again(self, service, super_admin, tree, co_parents):
        prediction = self.scan_one(service, super_admin, tree)

        dismissed = service.dismiss(super_admin, prediction.id, "Half siblings")

        assert dismissed.status == PredictionStatus.DISMISSED
        assert dismissed.dismiss_reason == "Half siblings"
        assert service.scan(super_admin, tree.id).total_predictions == 0

    def test_accept_all(self, service, super_admin, tree, co_parents):
        service.scan(super_admin, tree.id)

        result = service.accept_all(super_admin, tree.id)

        assert (result.accepted, result.failed) == (1, 0)

    def test_accept_all_threshold(self, service, super_admin, tree, co_parents):
        service.scan(super_admin, tree.id)

        assert service.accept_all(super_admin, tree.id, min_confidence=99).accepted == 0

    def test_failing_rule_reported(self, db, config, super_admin, tree, co_parents):
        service = PredictionService(db, config, rules=[BrokenRule(), MissingUnionRule()])

        result = service.scan(super_admin, tree.id)

        assert result.rule_errors == ["broken: boom"]
        assert result.total_predictions == 1

    def test_requires_administrator(self, service, owner, tree):
        with pytest.raises(PermissionDeniedError):
            service.scan(owner, tree.id)

    def test_unknown_prediction(self, service, super_admin):
        with pytest.raises(NotFoundError):
            service.get(super_admin, "missing")
