"""
REST API for familytree.

Every route lives under ``/api``. Callers identify themselves with an
``X-User-Id`` header; domain errors raised by services are turned into JSON
responses by the handlers in ``familytree.api.dependencies``.
"""

from fastapi import APIRouter

from familytree.api.dependencies import optional_user_dependency, user_dependency
from familytree.api.gedcom import create_gedcom_router
from familytree.api.links import create_link_router
from familytree.api.persons import create_person_router
from familytree.api.review import create_review_router
from familytree.api.tickets import create_ticket_router
from familytree.api.trees import create_tree_router
from familytree.config import Config, get_config
from familytree.database import Database


def create_api_router(db: Database, config: Config | None = None) -> APIRouter:
    """
    Create FastAPI router with all API endpoints.

    Args:
        db: Database every service works against
        config: Settings (defaults to the global configuration)

    Returns:
        Configured APIRouter instance
    """
    config = config or get_config()
    current_user = user_dependency(db)

    router = APIRouter(prefix="/api")
    router.include_router(create_tree_router(db, current_user, optional_user_dependency(db)))
    router.include_router(create_person_router(db, config, current_user))
    router.include_router(create_gedcom_router(db, config, current_user))
    router.include_router(create_review_router(db, config, current_user))
    router.include_router(create_ticket_router(db, current_user))
    router.include_router(create_link_router(db, current_user))
    return router
