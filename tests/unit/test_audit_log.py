"""Tests for the audit log."""

import pytest

from familytree.errors import PermissionDeniedError
from familytree.services.audit_log import AuditLogService
from familytree.services.person_service import PersonService
from familytree.services.tree_service import TreeService


@pytest.fixture
def service(db):
    return AuditLogService(db)


@pytest.fixture
def deleted_person(db, owner, person_factory):
    person = person_factory("Omar")
    PersonService(db).delete(owner, person.id)
    return person


class TestAuditLog:
    """Test listing audit entries."""

    def test_delete_recorded(self, service, owner, deleted_person):
        page = service.list_entries(owner, entity_type="person")

        entry = page.items[0]
        assert entry.action == "person.deleted"
        assert entry.entity_id == deleted_person.id
        assert entry.actor_user_id == owner.user_id
        assert entry.details == {"name": "Omar", "relationships_removed": 0}

    def test_newest_first(self, service, db, owner, tree, deleted_person):
        TreeService(db).delete_tree(owner, tree.id)

        actions = [entry.action for entry in service.list_entries(owner).items]

        assert actions == ["tree.deleted", "person.deleted"]

    def test_filter_by_entity(self, service, owner, deleted_person):
        assert service.list_entries(owner, entity_type="person", entity_id="other").items == []

    def test_users_see_only_their_entries(self, service, outsider, deleted_person):
        assert service.list_entries(outsider).items == []

    def test_users_cannot_ask_for_others(self, service, owner, outsider, deleted_person):
        with pytest.raises(PermissionDeniedError):
            service.list_entries(outsider, actor_user_id=owner.user_id)

    def test_global_admin_sees_everything(self, service, owner, super_admin, deleted_person):
        page = service.list_entries(super_admin, actor_user_id=owner.user_id)

        assert [entry.entity_id for entry in page.items] == [deleted_person.id]

    def test_paging(self, service, owner, deleted_person):
        page = service.list_entries(owner, page=2, page_size=1)

        assert page.items == []
        assert page.page == 2
