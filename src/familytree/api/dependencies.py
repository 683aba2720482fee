"""Request dependencies and error mapping shared by the API routers."""

from typing import Callable

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse
from loguru import logger

from familytree.database import Database
from familytree.errors import FamilyTreeError
from familytree.services.access import UserContext, load_user_context


def user_dependency(db: Database) -> Callable[..., UserContext]:
    """
    Build the dependency that resolves the calling user.

    The caller identifies itself with an ``X-User-Id`` header; an unknown or
    missing id is rejected with 401.

    Args:
        db: Database holding the users table

    Returns:
        FastAPI dependency returning the caller's UserContext
    """

    def current_user(x_user_id: int | None = Header(default=None)) -> UserContext:
        with db.connection() as conn:
            return load_user_context(conn, x_user_id)

    return current_user


def optional_user_dependency(db: Database) -> Callable[..., UserContext | None]:
    """Like ``user_dependency`` but yields None when no header was sent."""

    def optional_user(x_user_id: int | None = Header(default=None)) -> UserContext | None:
        if x_user_id is None:
            return None
        with db.connection() as conn:
            return load_user_context(conn, x_user_id)

    return optional_user


def register_error_handlers(app: FastAPI) -> None:
    """Map domain errors to JSON responses with their status codes."""

    @app.exception_handler(FamilyTreeError)
    async def handle_family_tree_error(request: Request, exc: FamilyTreeError) -> JSONResponse:
        if exc.status_code >= 403:
            logger.warning(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
        else:
            logger.debug(f"{request.method} {request.url.path} failed ({exc.status_code}): {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
