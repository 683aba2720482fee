"""
REST endpoints for users, trees and tree membership.

Provides HTTP API for:
- Health checks
- User accounts and system roles
- Tree CRUD and member management
"""

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel

from familytree.database import Database
from familytree.errors import AuthenticationError
from familytree.models.enums import SystemRole, TreeRole
from familytree.models.tree import Tree, TreeCreate, TreeMember, TreeMemberRequest, TreeUpdate, User, UserCreate
from familytree.services.access import UserContext
from familytree.services.tree_service import TreeService
from familytree.version import VERSION, latest_schema_version


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str = VERSION
    schema_version: int
    schema_current: bool


class SystemRoleUpdate(BaseModel):
    system_role: SystemRole


class MemberRoleUpdate(BaseModel):
    role: TreeRole


def create_tree_router(db: Database, current_user, optional_user) -> APIRouter:
    """
    Create router with user and tree endpoints.

    Args:
        db: Database the services work against
        current_user: Dependency resolving the authenticated caller
        optional_user: Dependency resolving the caller when a header is sent

    Returns:
        Configured APIRouter instance
    """
    router = APIRouter()
    trees = TreeService(db)

    # -------------------------------------------------------------------------
    # Health Check
    # -------------------------------------------------------------------------

    @router.get("/health", response_model=HealthResponse)
    def health_check():
        """Health check endpoint."""
        logger.debug("Health check requested")
        schema_version = db.schema_version()
        return HealthResponse(
            status="ok",
            schema_version=schema_version,
            schema_current=schema_version == latest_schema_version(),
        )

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    @router.post("/users", response_model=User, status_code=201)
    def create_user(data: UserCreate, actor: UserContext | None = Depends(optional_user)):
        """
        Create a user account.

        The very first account may be created without credentials and
        becomes the super administrator. After that only super
        administrators create accounts.

        Raises:
            AuthenticationError: If users exist and no caller was identified
        """
        if not trees.has_users():
            logger.info(f"Bootstrapping first user '{data.username}' as super admin")
            return trees.create_user(data.model_copy(update={"system_role": SystemRole.SUPER_ADMIN}))
        if actor is None:
            raise AuthenticationError("Missing user identity")
        return trees.create_user(data, actor)

    @router.get("/users", response_model=list[User])
    def list_users(actor: UserContext = Depends(current_user)):
        return trees.list_users(actor)

    @router.get("/users/me", response_model=User)
    def get_me(actor: UserContext = Depends(current_user)):
        return trees.get_user(actor.user_id)

    @router.get("/users/{user_id}", response_model=User)
    def get_user(user_id: int, actor: UserContext = Depends(current_user)):
        return trees.get_user(user_id)

    @router.put("/users/{user_id}/role", response_model=User)
    def set_system_role(user_id: int, data: SystemRoleUpdate, actor: UserContext = Depends(current_user)):
        return trees.set_system_role(actor, user_id, data.system_role)

    # -------------------------------------------------------------------------
    # Trees
    # -------------------------------------------------------------------------

    @router.post("/trees", response_model=Tree, status_code=201)
    def create_tree(data: TreeCreate, actor: UserContext = Depends(current_user)):
        return trees.create_tree(actor, data)

    @router.get("/trees", response_model=list[Tree])
    def list_trees(actor: UserContext = Depends(current_user)):
        """Trees the caller can see: public ones, memberships and assignments."""
        return trees.list_trees(actor)

    @router.get("/trees/{tree_id}", response_model=Tree)
    def get_tree(tree_id: str, actor: UserContext = Depends(current_user)):
        return trees.get_tree(actor, tree_id)

    @router.put("/trees/{tree_id}", response_model=Tree)
    def update_tree(tree_id: str, data: TreeUpdate, actor: UserContext = Depends(current_user)):
        return trees.update_tree(actor, tree_id, data)

    @router.delete("/trees/{tree_id}", status_code=204)
    def delete_tree(tree_id: str, actor: UserContext = Depends(current_user)):
        """Delete a tree with all of its persons and relationships (owners only)."""
        trees.delete_tree(actor, tree_id)

    @router.post("/trees/{tree_id}/admins/{user_id}", status_code=204)
    def assign_admin(tree_id: str, user_id: int, actor: UserContext = Depends(current_user)):
        """Give a system admin review rights over a tree they are not a member of."""
        trees.assign_admin(actor, user_id, tree_id)

    # -------------------------------------------------------------------------
    # Members
    # -------------------------------------------------------------------------

    @router.get("/trees/{tree_id}/members", response_model=list[TreeMember])
    def list_members(tree_id: str, actor: UserContext = Depends(current_user)):
        return trees.list_members(actor, tree_id)

    @router.post("/trees/{tree_id}/members", response_model=TreeMember, status_code=201)
    def add_member(tree_id: str, data: TreeMemberRequest, actor: UserContext = Depends(current_user)):
        return trees.add_member(actor, tree_id, data.user_id, data.role)

    @router.put("/trees/{tree_id}/members/{user_id}", response_model=TreeMember)
    def update_member(
        tree_id: str, user_id: int, data: MemberRoleUpdate, actor: UserContext = Depends(current_user)
    ):
        return trees.update_member(actor, tree_id, user_id, data.role)

    @router.delete("/trees/{tree_id}/members/{user_id}", status_code=204)
    def remove_member(tree_id: str, user_id: int, actor: UserContext = Depends(current_user)):
        """Remove a member; members may always remove themselves."""
        trees.remove_member(actor, tree_id, user_id)

    return router
