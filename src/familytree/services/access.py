"""
Access control for trees.

Two role systems meet here: the platform-wide ``SystemRole`` on the user
account, and the per-tree ``TreeRole`` from membership. Super admins and
developers see every tree; plain admins review only trees they own or
administer, or that were assigned to them.
"""

import sqlite3
from dataclasses import dataclass

from loguru import logger

from familytree.errors import AuthenticationError, NotFoundError, PermissionDeniedError
from familytree.models.enums import SystemRole, TreeRole
from familytree.models.tree import Tree
from familytree.repositories import TreeRepository, UserRepository


@dataclass(frozen=True)
class UserContext:
    """Identity of the caller for one request."""

    user_id: int
    system_role: SystemRole = SystemRole.USER
    username: str = ""

    @property
    def is_global_admin(self) -> bool:
        return self.system_role in (SystemRole.SUPER_ADMIN, SystemRole.DEVELOPER)

    @property
    def is_admin_or_higher(self) -> bool:
        return self.system_role != SystemRole.USER


def load_user_context(conn: sqlite3.Connection, user_id: int | None) -> UserContext:
    """Build the caller's context from a user id.

    Raises:
        AuthenticationError: If no id was given or the user does not exist
    """
    if user_id is None:
        raise AuthenticationError("Missing user identity")
    user = UserRepository(conn).get(user_id)
    if user is None:
        raise AuthenticationError(f"Unknown user: {user_id}")
    return UserContext(user_id=user.id, system_role=user.system_role, username=user.username)


class TreeAccess:
    """Permission checks for one caller against trees on a connection."""

    def __init__(self, conn: sqlite3.Connection, user: UserContext):
        self.conn = conn
        self.user = user
        self.trees = TreeRepository(conn)

    def get_tree(self, tree_id: str) -> Tree:
        tree = self.trees.get(tree_id)
        if tree is None:
            raise NotFoundError(f"Tree not found: {tree_id}")
        return tree

    def role_in(self, tree_id: str) -> TreeRole | None:
        return self.trees.get_member_role(tree_id, self.user.user_id)

    def can_read(self, tree: Tree) -> bool:
        if self.user.is_global_admin or tree.is_public:
            return True
        if self.role_in(tree.id) is not None:
            return True
        return self.user.system_role == SystemRole.ADMIN and self.trees.has_admin_assignment(
            self.user.user_id, tree.id
        )

    def can_review(self, tree_id: str) -> bool:
        """Tree owners/admins, assigned system admins and global admins review."""
        if self.user.is_global_admin:
            return True
        role = self.role_in(tree_id)
        if role is not None and role >= TreeRole.ADMIN:
            return True
        return self.user.system_role == SystemRole.ADMIN and self.trees.has_admin_assignment(
            self.user.user_id, tree_id
        )

    def require_read(self, tree_id: str) -> Tree:
        tree = self.get_tree(tree_id)
        if not self.can_read(tree):
            logger.warning(f"User {self.user.user_id} denied read access to tree {tree_id}")
            raise PermissionDeniedError("You do not have access to this tree")
        return tree

    def require_role(self, tree_id: str, minimum: TreeRole) -> Tree:
        """Require a tree role of at least ``minimum`` (global admins pass)."""
        tree = self.get_tree(tree_id)
        if self.user.is_global_admin:
            return tree
        role = self.role_in(tree_id)
        if role is None or role < minimum:
            logger.warning(
                f"User {self.user.user_id} lacks {minimum.name} on tree {tree_id} (has {role})"
            )
            raise PermissionDeniedError(f"This action requires the {minimum.name.lower()} role")
        return tree

    def require_reviewer(self, tree_id: str) -> Tree:
        tree = self.get_tree(tree_id)
        if not self.can_review(tree_id):
            raise PermissionDeniedError("You are not a reviewer for this tree")
        return tree

    def require_admin_scope(self, tree_id: str | None) -> None:
        """Gate admin analysis tools (duplicate scans, predictions).

        Requires a system admin role. Plain admins must name a tree they
        review; global admins may omit the tree to work across all trees.
        """
        if not self.user.is_admin_or_higher:
            raise PermissionDeniedError("This action requires an administrator")
        if tree_id is None:
            if not self.user.is_global_admin:
                raise PermissionDeniedError("Administrators must specify a tree")
            return
        self.get_tree(tree_id)
        if not self.can_review(tree_id):
            raise PermissionDeniedError("You do not administer this tree")
