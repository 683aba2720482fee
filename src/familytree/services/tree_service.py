"""User accounts, trees and tree membership."""

from loguru import logger

from familytree.database import Database
from familytree.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from familytree.models.enums import SystemRole, TreeRole
from familytree.models.tree import Tree, TreeCreate, TreeMember, TreeUpdate, User, UserCreate
from familytree.repositories import AuditLogRepository, TreeRepository, UserRepository
from familytree.services.access import TreeAccess, UserContext


class TreeService:
    """Manage users, trees and who may work on them."""

    def __init__(self, db: Database):
        self.db = db

    # =========================================================================
    # Users
    # =========================================================================

    def create_user(self, data: UserCreate, actor: UserContext | None = None) -> User:
        """Create a user account.

        ``actor=None`` is a trusted local caller (CLI, bootstrap); otherwise
        only super admins create accounts.
        """
        if actor is not None and actor.system_role != SystemRole.SUPER_ADMIN:
            raise PermissionDeniedError("Only super administrators can create users")
        with self.db.transaction() as conn:
            return UserRepository(conn).create(data.username, data.display_name, data.system_role)

    def has_users(self) -> bool:
        with self.db.connection() as conn:
            return bool(UserRepository(conn).list_all())

    def get_user(self, user_id: int) -> User:
        with self.db.connection() as conn:
            user = UserRepository(conn).get(user_id)
        if user is None:
            raise NotFoundError(f"User not found: {user_id}")
        return user

    def list_users(self, actor: UserContext) -> list[User]:
        if not actor.is_admin_or_higher:
            raise PermissionDeniedError("This action requires an administrator")
        with self.db.connection() as conn:
            return UserRepository(conn).list_all()

    def set_system_role(self, actor: UserContext, user_id: int, role: SystemRole) -> User:
        if actor.system_role != SystemRole.SUPER_ADMIN:
            raise PermissionDeniedError("Only super administrators can change system roles")
        with self.db.transaction() as conn:
            users = UserRepository(conn)
            if not users.set_role(user_id, role):
                raise NotFoundError(f"User not found: {user_id}")
            AuditLogRepository(conn).record(
                actor.user_id, "user.role_changed", "user", str(user_id), {"role": role.value}
            )
            logger.info(f"User {user_id} system role set to {role.value} by {actor.user_id}")
            return users.get(user_id)

    def assign_admin(self, actor: UserContext, admin_user_id: int, tree_id: str) -> None:
        """Let a system admin review a tree they are not a member of."""
        if not actor.is_global_admin:
            raise PermissionDeniedError("Only super administrators can assign trees")
        with self.db.transaction() as conn:
            admin = UserRepository(conn).get(admin_user_id)
            if admin is None:
                raise NotFoundError(f"User not found: {admin_user_id}")
            if admin.system_role != SystemRole.ADMIN:
                raise ValidationError("Only users with the admin role can be assigned trees")
            TreeAccess(conn, actor).get_tree(tree_id)
            TreeRepository(conn).assign_admin(admin_user_id, tree_id)

    # =========================================================================
    # Trees
    # =========================================================================

    def create_tree(self, actor: UserContext, data: TreeCreate) -> Tree:
        with self.db.transaction() as conn:
            trees = TreeRepository(conn)
            tree = trees.create(
                name=data.name.strip(),
                owner_id=actor.user_id,
                description=data.description,
                is_public=data.is_public,
                allow_cross_tree_linking=data.allow_cross_tree_linking,
            )
            trees.add_member(tree.id, actor.user_id, TreeRole.OWNER)
            logger.info(f"Created tree '{tree.name}' ({tree.id}) for user {actor.user_id}")
            return tree

    def list_trees(self, actor: UserContext) -> list[Tree]:
        with self.db.connection() as conn:
            trees = TreeRepository(conn)
            if actor.is_global_admin:
                return trees.list_all()
            return trees.list_visible(actor.user_id)

    def get_tree(self, actor: UserContext, tree_id: str) -> Tree:
        with self.db.connection() as conn:
            return TreeAccess(conn, actor).require_read(tree_id)

    def update_tree(self, actor: UserContext, tree_id: str, data: TreeUpdate) -> Tree:
        with self.db.transaction() as conn:
            TreeAccess(conn, actor).require_role(tree_id, TreeRole.ADMIN)
            trees = TreeRepository(conn)
            trees.update(tree_id, data.model_dump(exclude_unset=True))
            return trees.get(tree_id)

    def delete_tree(self, actor: UserContext, tree_id: str) -> None:
        with self.db.transaction() as conn:
            tree = TreeAccess(conn, actor).require_role(tree_id, TreeRole.OWNER)
            TreeRepository(conn).delete(tree_id)
            AuditLogRepository(conn).record(
                actor.user_id, "tree.deleted", "tree", tree_id, {"name": tree.name}
            )
            logger.info(f"Deleted tree '{tree.name}' ({tree_id})")

    # =========================================================================
    # Members
    # =========================================================================

    def list_members(self, actor: UserContext, tree_id: str) -> list[TreeMember]:
        with self.db.connection() as conn:
            TreeAccess(conn, actor).require_read(tree_id)
            return TreeRepository(conn).list_members(tree_id)

    def add_member(self, actor: UserContext, tree_id: str, user_id: int, role: TreeRole) -> TreeMember:
        with self.db.transaction() as conn:
            access = TreeAccess(conn, actor)
            access.require_role(tree_id, TreeRole.ADMIN)
            self._check_grant(access, tree_id, role)
            if UserRepository(conn).get(user_id) is None:
                raise NotFoundError(f"User not found: {user_id}")
            return TreeRepository(conn).add_member(tree_id, user_id, role)

    def update_member(self, actor: UserContext, tree_id: str, user_id: int, role: TreeRole) -> TreeMember:
        with self.db.transaction() as conn:
            access = TreeAccess(conn, actor)
            access.require_role(tree_id, TreeRole.ADMIN)
            self._check_grant(access, tree_id, role)
            trees = TreeRepository(conn)
            current = trees.get_member_role(tree_id, user_id)
            if current is None:
                raise NotFoundError("User is not a member of this tree")
            if current == TreeRole.OWNER and role != TreeRole.OWNER and trees.count_owners(tree_id) <= 1:
                raise ConflictError("A tree must keep at least one owner")
            trees.update_member_role(tree_id, user_id, role)
            return trees.get_member(tree_id, user_id)

    def remove_member(self, actor: UserContext, tree_id: str, user_id: int) -> None:
        with self.db.transaction() as conn:
            if actor.user_id != user_id:
                TreeAccess(conn, actor).require_role(tree_id, TreeRole.ADMIN)
            trees = TreeRepository(conn)
            current = trees.get_member_role(tree_id, user_id)
            if current is None:
                raise NotFoundError("User is not a member of this tree")
            if current == TreeRole.OWNER and trees.count_owners(tree_id) <= 1:
                raise ConflictError("Cannot remove the last owner of a tree")
            trees.remove_member(tree_id, user_id)

    @staticmethod
    def _check_grant(access: TreeAccess, tree_id: str, role: TreeRole) -> None:
        if role == TreeRole.OWNER and not access.user.is_global_admin:
            if access.role_in(tree_id) != TreeRole.OWNER:
                raise PermissionDeniedError("Only owners can grant the owner role")
