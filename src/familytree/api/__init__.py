"""REST API for familytree."""

from familytree.api.dependencies import register_error_handlers
from familytree.api.endpoints import create_api_router

__all__ = ["create_api_router", "register_error_handlers"]
