"""Tests for links between persons in different trees."""

from datetime import date

import pytest
from pydantic import ValidationError as PydanticValidationError

from familytree.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from familytree.models.enums import PersonLinkStatus, PersonLinkType, TreeRole
from familytree.models.person import PersonCreate
from familytree.models.relationship import PersonLinkCreate, PersonLinkReview
from familytree.models.tree import TreeCreate
from familytree.services.person_links import PersonLinkService
from familytree.services.person_service import PersonService
from familytree.services.tree_service import TreeService

from conftest import create_user


@pytest.fixture
def service(db):
    return PersonLinkService(db)


@pytest.fixture
def keeper(db):
    """Owner of the second tree."""
    return create_user(db, "keeper")


@pytest.fixture
def other_tree(db, keeper):
    return TreeService(db).create_tree(
        keeper, TreeCreate(name="Osman Family", is_public=True, allow_cross_tree_linking=True)
    )


@pytest.fixture
def other_person(db, keeper, other_tree):
    return PersonService(db).create(
        keeper, other_tree.id, PersonCreate(primary_name="Ali Hassan", birth_date=date(1920, 5, 1))
    )


def link(service, actor, source, target, **fields):
    return service.create(
        actor, PersonLinkCreate(source_person_id=source.id, target_person_id=target.id, **fields)
    )


class TestLinkRequests:
    """Test requesting and reviewing links."""

    def test_cross_tree_link_waits_for_target_admin(self, service, owner, keeper, person_factory, other_person):
        ours = person_factory("Ali Hassan")

        pending = link(service, owner, ours, other_person, notes="Same grandfather")

        assert pending.status == PersonLinkStatus.PENDING
        assert pending.approved_by_user_id is None
        assert [item.id for item in service.pending(keeper)] == [pending.id]
        assert service.pending(owner) == []

        approved = service.review(keeper, pending.id, PersonLinkReview(approve=True, notes="Checked records"))

        assert approved.status == PersonLinkStatus.APPROVED
        assert approved.approved_by_user_id == keeper.user_id
        assert approved.notes == "Same grandfather\n\nReview: Checked records"
        assert service.pending(keeper) == []

    def test_target_tree_must_allow_linking(self, db, service, owner, keeper, person_factory):
        closed = TreeService(db).create_tree(keeper, TreeCreate(name="Closed Family"))
        target = PersonService(db).create(keeper, closed.id, PersonCreate(primary_name="Omar"))

        with pytest.raises(ValidationError, match="does not allow"):
            link(service, owner, person_factory("Omar"), target)

    def test_same_tree_link_approved_at_once(self, service, owner, person_factory):
        result = link(service, owner, person_factory("Ahmed"), person_factory("Ahmad"))

        assert result.status == PersonLinkStatus.APPROVED
        assert result.approved_by_user_id == owner.user_id

    def test_target_admin_link_approved_at_once(self, db, service, owner, keeper, other_tree, person_factory, other_person):
        TreeService(db).add_member(keeper, other_tree.id, owner.user_id, TreeRole.ADMIN)

        result = link(service, owner, person_factory("Ali"), other_person, link_type=PersonLinkType.ANCESTOR)

        assert result.status == PersonLinkStatus.APPROVED
        assert result.link_type == PersonLinkType.ANCESTOR

    def test_existing_link_conflicts(self, service, owner, person_factory, other_person):
        ours = person_factory("Ali")
        link(service, owner, ours, other_person)

        with pytest.raises(ConflictError):
            link(service, owner, ours, other_person)

    def test_requester_must_edit_source_tree(self, service, outsider, person_factory, other_person):
        with pytest.raises(PermissionDeniedError):
            link(service, outsider, person_factory("Ali"), other_person)

    def test_missing_person(self, service, owner, person_factory):
        with pytest.raises(NotFoundError):
            service.create(
                owner, PersonLinkCreate(source_person_id=person_factory("Ali").id, target_person_id="missing")
            )

    def test_person_cannot_link_to_itself(self):
        with pytest.raises(PydanticValidationError):
            PersonLinkCreate(source_person_id="p1", target_person_id="p1")

    def test_only_target_admin_reviews(self, service, owner, keeper, person_factory, other_person):
        pending = link(service, owner, person_factory("Ali"), other_person)

        with pytest.raises(PermissionDeniedError):
            service.review(owner, pending.id, PersonLinkReview(approve=True))

        rejected = service.review(keeper, pending.id, PersonLinkReview(approve=False))
        assert rejected.status == PersonLinkStatus.REJECTED
        with pytest.raises(ValidationError, match="already been reviewed"):
            service.review(keeper, pending.id, PersonLinkReview(approve=True))

    def test_delete_by_creator_or_admin(self, service, owner, keeper, outsider, person_factory, other_person):
        first = link(service, owner, person_factory("Ali"), other_person)
        second = link(service, owner, person_factory("Ali Hassan"), other_person)

        with pytest.raises(PermissionDeniedError):
            service.delete(outsider, first.id)
        service.delete(owner, first.id)
        service.delete(keeper, second.id)

        assert service.for_person(keeper, other_person.id) == []
        with pytest.raises(NotFoundError):
            service.delete(owner, first.id)


class TestLinkQueries:
    """Test browsing links and searching for link targets."""

    def test_tree_summary_from_both_sides(self, service, owner, keeper, tree, other_tree, person_factory, other_person):
        ours = person_factory("Ali")
        pending = link(service, owner, ours, other_person)
        assert service.tree_summary(owner, tree.id) == {}

        service.review(keeper, pending.id, PersonLinkReview(approve=True))

        ours_view = service.tree_summary(owner, tree.id)
        assert list(ours_view) == [ours.id]
        assert ours_view[ours.id][0].person_id == other_person.id
        assert ours_view[ours.id][0].tree_name == "Osman Family"
        theirs_view = service.tree_summary(keeper, other_tree.id)
        assert theirs_view[other_person.id][0].person_name == "Ali"
        assert theirs_view[other_person.id][0].tree_id == tree.id

    def test_same_tree_links_not_in_summary(self, service, owner, tree, person_factory):
        link(service, owner, person_factory("Ahmed"), person_factory("Ahmad"))

        assert service.tree_summary(owner, tree.id) == {}

    def test_person_links_need_read_access(self, db, service, owner, keeper, person_factory):
        private = TreeService(db).create_tree(keeper, TreeCreate(name="Private Family"))
        person = PersonService(db).create(keeper, private.id, PersonCreate(primary_name="Omar"))

        with pytest.raises(PermissionDeniedError):
            service.for_person(owner, person.id)

    def test_search_finds_similar_names_in_linkable_trees(self, service, owner, tree, person_factory, other_person):
        person_factory("Ali Hassan")

        contains = service.search_matches(owner, "ali")
        fuzzy = service.search_matches(owner, "Aly Hasan")

        assert [m.person_id for m in contains] == [other_person.id]
        assert contains[0].score == 1.0
        assert contains[0].tree_name == "Osman Family"
        assert [m.person_id for m in fuzzy] == [other_person.id]
        assert 0.3 <= fuzzy[0].score < 1.0

    def test_search_filters(self, service, owner, other_tree, other_person):
        assert service.search_matches(owner, "ali", birth_year=1920)[0].person_id == other_person.id
        assert service.search_matches(owner, "ali", birth_year=1921) == []
        assert service.search_matches(owner, "ali", exclude_tree_id=other_tree.id) == []
        assert service.search_matches(owner, "zzzz") == []

    def test_search_skips_private_trees(self, db, service, owner, keeper):
        hidden = TreeService(db).create_tree(
            keeper, TreeCreate(name="Hidden Family", allow_cross_tree_linking=True)
        )
        PersonService(db).create(keeper, hidden.id, PersonCreate(primary_name="Ali"))

        assert service.search_matches(owner, "ali") == []
        assert len(service.search_matches(keeper, "ali")) == 1

    def test_search_needs_two_characters(self, service, owner):
        with pytest.raises(ValidationError):
            service.search_matches(owner, " a ")
