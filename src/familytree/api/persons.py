"""
REST endpoints for persons, relationships and tree views.

Provides HTTP API for:
- Person CRUD and name search within a tree
- Parent-child links, siblings and spouses
- Unions and their members
- Pedigree, descendant and relationship views
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from familytree.config import Config
from familytree.config.constants import DEFAULT_TREE_VIEW_GENERATIONS
from familytree.database import Database
from familytree.models.person import Person, PersonCreate, PersonPage, PersonUpdate
from familytree.models.relationship import (
    ParentChild,
    ParentChildCreate,
    SiblingInfo,
    SpouseInfo,
    Union,
    UnionCreate,
    UnionMember,
    UnionUpdate,
)
from familytree.models.tree_view import (
    BloodRelationshipResult,
    DescendantNode,
    PedigreeNode,
    RelationshipPathResult,
    RootPersonsResult,
)
from familytree.services.access import UserContext
from familytree.services.person_service import PersonService
from familytree.services.relationship_service import RelationshipService
from familytree.services.tree_view import TreeViewService


class UnionMemberRequest(BaseModel):
    person_id: str


def create_person_router(db: Database, config: Config, current_user) -> APIRouter:
    """
    Create router with person, relationship and tree view endpoints.

    Args:
        db: Database the services work against
        config: Settings for relationship search depth
        current_user: Dependency resolving the authenticated caller

    Returns:
        Configured APIRouter instance
    """
    router = APIRouter()
    persons = PersonService(db)
    relationships = RelationshipService(db)
    views = TreeViewService(db, config)

    # -------------------------------------------------------------------------
    # Persons
    # -------------------------------------------------------------------------

    @router.get("/trees/{tree_id}/persons", response_model=PersonPage)
    def search_persons(
        tree_id: str,
        q: str | None = None,
        page: int = 1,
        page_size: int = 50,
        actor: UserContext = Depends(current_user),
    ):
        """
        List a tree's persons, optionally filtered by name.

        Args:
            tree_id: Tree to list
            q: Case-insensitive substring matched against every name column
            page: 1-based page number
            page_size: Persons per page (capped)

        Returns:
            Page of persons with the total match count
        """
        return persons.search(actor, tree_id, q, page, page_size)

    @router.post("/trees/{tree_id}/persons", response_model=Person, status_code=201)
    def create_person(tree_id: str, data: PersonCreate, actor: UserContext = Depends(current_user)):
        return persons.create(actor, tree_id, data)

    @router.get("/persons/{person_id}", response_model=Person)
    def get_person(person_id: str, actor: UserContext = Depends(current_user)):
        return persons.get(actor, person_id)

    @router.put("/persons/{person_id}", response_model=Person)
    def update_person(person_id: str, data: PersonUpdate, actor: UserContext = Depends(current_user)):
        """Partial update: only fields present in the body change."""
        return persons.update(actor, person_id, data)

    @router.delete("/persons/{person_id}", status_code=204)
    def delete_person(person_id: str, actor: UserContext = Depends(current_user)):
        """Soft-delete a person along with their links and union memberships."""
        persons.delete(actor, person_id)

    # -------------------------------------------------------------------------
    # Parent-Child
    # -------------------------------------------------------------------------

    @router.get("/persons/{person_id}/parents", response_model=list[Person])
    def get_parents(person_id: str, actor: UserContext = Depends(current_user)):
        return relationships.get_parents(actor, person_id)

    @router.get("/persons/{person_id}/children", response_model=list[Person])
    def get_children(person_id: str, actor: UserContext = Depends(current_user)):
        return relationships.get_children(actor, person_id)

    @router.get("/persons/{person_id}/siblings", response_model=list[SiblingInfo])
    def get_siblings(person_id: str, actor: UserContext = Depends(current_user)):
        return relationships.get_siblings(actor, person_id)

    @router.post("/persons/{child_id}/parents/{parent_id}", response_model=ParentChild, status_code=201)
    def add_parent(
        child_id: str,
        parent_id: str,
        data: ParentChildCreate | None = None,
        actor: UserContext = Depends(current_user),
    ):
        """
        Link a parent to a child.

        Raises:
            ValidationError: Self-link, different trees, third biological
                parent or a link that would create a cycle
            ConflictError: If the link already exists
        """
        data = data or ParentChildCreate()
        return relationships.add_parent(actor, child_id, parent_id, data.relationship_type, data.notes)

    @router.delete("/parent-child/{link_id}", status_code=204)
    def remove_parent_child(link_id: str, actor: UserContext = Depends(current_user)):
        relationships.remove_parent_child(actor, link_id)

    # -------------------------------------------------------------------------
    # Unions
    # -------------------------------------------------------------------------

    @router.get("/persons/{person_id}/spouses", response_model=list[SpouseInfo])
    def get_spouses(person_id: str, actor: UserContext = Depends(current_user)):
        return relationships.get_spouses(actor, person_id)

    @router.get("/trees/{tree_id}/unions", response_model=list[Union])
    def list_unions(tree_id: str, actor: UserContext = Depends(current_user)):
        return relationships.list_unions(actor, tree_id)

    @router.post("/trees/{tree_id}/unions", response_model=Union, status_code=201)
    def create_union(tree_id: str, data: UnionCreate, actor: UserContext = Depends(current_user)):
        return relationships.create_union(actor, tree_id, data)

    @router.get("/unions/{union_id}", response_model=Union)
    def get_union(union_id: str, actor: UserContext = Depends(current_user)):
        return relationships.get_union(actor, union_id)

    @router.put("/unions/{union_id}", response_model=Union)
    def update_union(union_id: str, data: UnionUpdate, actor: UserContext = Depends(current_user)):
        return relationships.update_union(actor, union_id, data)

    @router.delete("/unions/{union_id}", status_code=204)
    def delete_union(union_id: str, actor: UserContext = Depends(current_user)):
        relationships.delete_union(actor, union_id)

    @router.post("/unions/{union_id}/members", response_model=UnionMember, status_code=201)
    def add_union_member(union_id: str, data: UnionMemberRequest, actor: UserContext = Depends(current_user)):
        return relationships.add_union_member(actor, union_id, data.person_id)

    @router.delete("/unions/{union_id}/members/{person_id}", status_code=204)
    def remove_union_member(union_id: str, person_id: str, actor: UserContext = Depends(current_user)):
        relationships.remove_union_member(actor, union_id, person_id)

    @router.get("/unions/{union_id}/children", response_model=list[Person])
    def get_union_children(union_id: str, actor: UserContext = Depends(current_user)):
        return relationships.get_union_children(actor, union_id)

    # -------------------------------------------------------------------------
    # Tree Views
    # -------------------------------------------------------------------------

    @router.get("/trees/{tree_id}/pedigree/{person_id}", response_model=PedigreeNode)
    def pedigree(
        tree_id: str,
        person_id: str,
        generations: int = DEFAULT_TREE_VIEW_GENERATIONS,
        actor: UserContext = Depends(current_user),
    ):
        """Ancestor tree rooted at a person."""
        return views.pedigree(actor, person_id, generations)

    @router.get("/trees/{tree_id}/descendants/{person_id}", response_model=DescendantNode)
    def descendants(
        tree_id: str,
        person_id: str,
        generations: int = DEFAULT_TREE_VIEW_GENERATIONS,
        actor: UserContext = Depends(current_user),
    ):
        """Descendant tree rooted at a person, children grouped under their unions."""
        return views.descendants(actor, person_id, generations)

    @router.get("/trees/{tree_id}/roots", response_model=RootPersonsResult)
    def root_persons(tree_id: str, actor: UserContext = Depends(current_user)):
        return views.root_persons(actor, tree_id)

    @router.get("/trees/{tree_id}/relationship-path", response_model=RelationshipPathResult)
    def relationship_path(
        tree_id: str,
        person1: str = Query(...),
        person2: str = Query(...),
        max_depth: int | None = Query(default=None, ge=1, le=100),
        actor: UserContext = Depends(current_user),
    ):
        """
        Shortest chain of parent, child and spouse steps between two persons.

        Returns:
            The path with a relationship name from person 1's point of view
        """
        return views.relationship_path(actor, tree_id, person1, person2, max_depth)

    @router.get("/trees/{tree_id}/blood-relationship", response_model=BloodRelationshipResult)
    def blood_relationship(
        tree_id: str,
        person1: str = Query(...),
        person2: str = Query(...),
        actor: UserContext = Depends(current_user),
    ):
        return views.blood_relationship(actor, tree_id, person1, person2)

    return router
