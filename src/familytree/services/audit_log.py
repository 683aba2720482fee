"""Read access to the audit log.

Entries are written by the services that make the changes (imports, merges,
accepted predictions, suggestion reviews, tree deletion); this module only
lists them.
"""

import json

from familytree.database import Database
from familytree.errors import PermissionDeniedError
from familytree.models.audit import AuditEntry, AuditPage
from familytree.repositories import AuditLogRepository
from familytree.services.access import UserContext

MAX_PAGE_SIZE = 200


class AuditLogService:
    def __init__(self, db: Database):
        self.db = db

    def list_entries(
        self,
        actor: UserContext,
        entity_type: str | None = None,
        entity_id: str | None = None,
        actor_user_id: int | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> AuditPage:
        """Newest first. Users other than global admins only see their own actions."""
        if not actor.is_global_admin:
            if actor_user_id is not None and actor_user_id != actor.user_id:
                raise PermissionDeniedError("You can only view your own audit entries")
            actor_user_id = actor.user_id
        page = max(page, 1)
        page_size = min(max(page_size, 1), MAX_PAGE_SIZE)
        with self.db.connection() as conn:
            rows = AuditLogRepository(conn).list_entries(
                entity_type=entity_type,
                entity_id=entity_id,
                actor_user_id=actor_user_id,
                limit=page_size,
                offset=(page - 1) * page_size,
            )
        return AuditPage(items=[_entry(row) for row in rows], page=page, page_size=page_size)


def _entry(row: dict) -> AuditEntry:
    details = row.get("details")
    if details:
        try:
            details = json.loads(details)
        except json.JSONDecodeError:
            pass  # plain-text details are kept as written
    return AuditEntry.model_validate({**row, "details": details})
