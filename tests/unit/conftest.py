"""Shared fixtures for familytree unit tests."""

from datetime import date
from pathlib import Path

import pytest

from familytree.config import Config
from familytree.database import Database
from familytree.models.enums import Sex, SystemRole, TreeRole
from familytree.models.person import Person, PersonCreate
from familytree.models.tree import Tree, TreeCreate
from familytree.repositories import UserRepository
from familytree.services.access import UserContext
from familytree.services.person_service import PersonService
from familytree.services.tree_service import TreeService


def create_user(db: Database, username: str, role: SystemRole = SystemRole.USER) -> UserContext:
    with db.transaction() as conn:
        user = UserRepository(conn).create(username, None, role)
    return UserContext(user_id=user.id, system_role=user.system_role, username=user.username)


@pytest.fixture
def db(tmp_path: Path) -> Database:
    """Create a fresh database for each test."""
    return Database(tmp_path / "familytree.db")


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(
        database_path=str(tmp_path / "familytree.db"),
        log_file=str(tmp_path / "logs" / "familytree.log"),
    )


@pytest.fixture
def super_admin(db: Database) -> UserContext:
    return create_user(db, "root", SystemRole.SUPER_ADMIN)


@pytest.fixture
def owner(db: Database) -> UserContext:
    return create_user(db, "owner")


@pytest.fixture
def outsider(db: Database) -> UserContext:
    return create_user(db, "outsider")


@pytest.fixture
def tree(db: Database, owner: UserContext) -> Tree:
    return TreeService(db).create_tree(owner, TreeCreate(name="Test Family"))


@pytest.fixture
def member_factory(db: Database, owner: UserContext, tree: Tree):
    """Create a user holding ``role`` in the test tree."""

    def make(username: str, role: TreeRole, system_role: SystemRole = SystemRole.USER) -> UserContext:
        user = create_user(db, username, system_role)
        TreeService(db).add_member(owner, tree.id, user.user_id, role)
        return user

    return make


@pytest.fixture
def person_factory(db: Database, owner: UserContext, tree: Tree):
    """Create persons in the test tree as its owner."""
    service = PersonService(db)

    def make(
        name: str,
        sex: Sex = Sex.UNKNOWN,
        birth: date | None = None,
        tree_id: str | None = None,
        **fields,
    ) -> Person:
        data = PersonCreate(primary_name=name, sex=sex, birth_date=birth, **fields)
        return service.create(owner, tree_id or tree.id, data)

    return make
