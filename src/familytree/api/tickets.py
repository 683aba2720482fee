"""REST endpoints for support tickets and the audit log."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from familytree.database import Database
from familytree.models.audit import AuditPage
from familytree.models.enums import TicketCategory, TicketPriority, TicketStatus
from familytree.models.ticket import (
    SupportTicket,
    TicketAssign,
    TicketComment,
    TicketCreate,
    TicketNotesUpdate,
    TicketPage,
    TicketPriorityUpdate,
    TicketStatusUpdate,
)
from familytree.services.access import UserContext
from familytree.services.audit_log import AuditLogService
from familytree.services.support_tickets import SupportTicketService


class TicketCommentRequest(BaseModel):
    content: str = Field(min_length=1, max_length=10000)


def create_ticket_router(db: Database, current_user) -> APIRouter:
    """
    Create router with support ticket and audit log endpoints.

    Args:
        db: Database the services work against
        current_user: Dependency resolving the authenticated caller

    Returns:
        Configured APIRouter instance
    """
    router = APIRouter()
    tickets = SupportTicketService(db)
    audit = AuditLogService(db)

    # -------------------------------------------------------------------------
    # Support Tickets
    # -------------------------------------------------------------------------

    @router.post("/tickets", response_model=SupportTicket, status_code=201)
    def create_ticket(data: TicketCreate, actor: UserContext = Depends(current_user)):
        return tickets.create(actor, data)

    @router.get("/tickets", response_model=TicketPage)
    def list_tickets(
        status: TicketStatus | None = None,
        category: TicketCategory | None = None,
        priority: TicketPriority | None = None,
        assigned_to_user_id: int | None = None,
        page: int = 1,
        page_size: int = 50,
        actor: UserContext = Depends(current_user),
    ):
        """
        List tickets, newest first.

        Developers and super admins see every ticket; other users only see
        the tickets they submitted.
        """
        return tickets.list_tickets(actor, status, category, priority, assigned_to_user_id, page, page_size)

    @router.get("/tickets/{ticket_id}", response_model=SupportTicket)
    def get_ticket(ticket_id: str, actor: UserContext = Depends(current_user)):
        return tickets.get(actor, ticket_id)

    @router.post("/tickets/{ticket_id}/comments", response_model=TicketComment, status_code=201)
    def add_ticket_comment(ticket_id: str, data: TicketCommentRequest, actor: UserContext = Depends(current_user)):
        return tickets.add_comment(actor, ticket_id, data.content)

    @router.put("/tickets/{ticket_id}/status", response_model=SupportTicket)
    def update_ticket_status(ticket_id: str, data: TicketStatusUpdate, actor: UserContext = Depends(current_user)):
        return tickets.update_status(actor, ticket_id, data.status)

    @router.put("/tickets/{ticket_id}/assign", response_model=SupportTicket)
    def assign_ticket(ticket_id: str, data: TicketAssign, actor: UserContext = Depends(current_user)):
        return tickets.assign(actor, ticket_id, data.assigned_to_user_id)

    @router.put("/tickets/{ticket_id}/priority", response_model=SupportTicket)
    def set_ticket_priority(ticket_id: str, data: TicketPriorityUpdate, actor: UserContext = Depends(current_user)):
        return tickets.set_priority(actor, ticket_id, data.priority)

    @router.put("/tickets/{ticket_id}/notes", response_model=SupportTicket)
    def set_ticket_notes(ticket_id: str, data: TicketNotesUpdate, actor: UserContext = Depends(current_user)):
        return tickets.set_admin_notes(actor, ticket_id, data.admin_notes)

    # -------------------------------------------------------------------------
    # Audit Log
    # -------------------------------------------------------------------------

    @router.get("/audit", response_model=AuditPage)
    def list_audit_entries(
        entity_type: str | None = None,
        entity_id: str | None = None,
        actor_user_id: int | None = None,
        page: int = 1,
        page_size: int = 50,
        actor: UserContext = Depends(current_user),
    ):
        return audit.list_entries(actor, entity_type, entity_id, actor_user_id, page, page_size)

    return router
