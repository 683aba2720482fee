"""Audit log models."""

from typing import Any

from pydantic import BaseModel


class AuditEntry(BaseModel):
    id: int
    actor_user_id: int | None = None
    action: str
    entity_type: str
    entity_id: str | None = None
    details: Any = None
    created_at: str


class AuditPage(BaseModel):
    items: list[AuditEntry]
    page: int
    page_size: int
