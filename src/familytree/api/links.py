"""REST endpoints for links between persons in different trees."""

from fastapi import APIRouter, Depends

from familytree.database import Database
from familytree.models.relationship import LinkedPerson, LinkMatch, PersonLink, PersonLinkCreate, PersonLinkReview
from familytree.services.access import UserContext
from familytree.services.person_links import PersonLinkService


def create_link_router(db: Database, current_user) -> APIRouter:
    """
    Create router with person link endpoints.

    Args:
        db: Database the services work against
        current_user: Dependency resolving the authenticated caller

    Returns:
        Configured APIRouter instance
    """
    router = APIRouter()
    links = PersonLinkService(db)

    # -------------------------------------------------------------------------
    # Link Requests
    # -------------------------------------------------------------------------

    @router.post("/links", response_model=PersonLink, status_code=201)
    def create_link(data: PersonLinkCreate, actor: UserContext = Depends(current_user)):
        """
        Link a person to a person in another tree.

        The link is approved immediately when both persons share a tree or
        the caller administers the target tree; otherwise it waits for review.
        """
        return links.create(actor, data)

    @router.get("/links/pending", response_model=list[PersonLink])
    def pending_links(actor: UserContext = Depends(current_user)):
        return links.pending(actor)

    @router.get("/links/search", response_model=list[LinkMatch])
    def search_link_matches(
        name: str,
        birth_year: int | None = None,
        exclude_tree_id: str | None = None,
        actor: UserContext = Depends(current_user),
    ):
        return links.search_matches(actor, name, birth_year, exclude_tree_id)

    @router.post("/links/{link_id}/review", response_model=PersonLink)
    def review_link(link_id: str, data: PersonLinkReview, actor: UserContext = Depends(current_user)):
        return links.review(actor, link_id, data)

    @router.delete("/links/{link_id}", status_code=204)
    def delete_link(link_id: str, actor: UserContext = Depends(current_user)):
        """Remove a link; its creator or an administrator of either tree may."""
        links.delete(actor, link_id)

    # -------------------------------------------------------------------------
    # Browsing
    # -------------------------------------------------------------------------

    @router.get("/persons/{person_id}/links", response_model=list[PersonLink])
    def person_links(person_id: str, actor: UserContext = Depends(current_user)):
        return links.for_person(actor, person_id)

    @router.get("/trees/{tree_id}/links", response_model=dict[str, list[LinkedPerson]])
    def tree_link_summary(tree_id: str, actor: UserContext = Depends(current_user)):
        return links.tree_summary(actor, tree_id)

    return router
