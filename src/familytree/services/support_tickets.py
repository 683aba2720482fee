"""Support tickets: bug reports and enhancement requests from users."""

from loguru import logger

from familytree.database import Database, now_iso
from familytree.errors import NotFoundError, PermissionDeniedError, ValidationError
from familytree.models.enums import TicketCategory, TicketPriority, TicketStatus
from familytree.models.ticket import SupportTicket, TicketComment, TicketCreate, TicketPage
from familytree.repositories import TicketRepository, UserRepository
from familytree.services.access import UserContext

MAX_PAGE_SIZE = 100


def is_ticket_admin(actor: UserContext) -> bool:
    """Developers and super admins triage tickets."""
    return actor.is_global_admin


class SupportTicketService:
    """Submit, discuss and triage support tickets."""

    def __init__(self, db: Database):
        self.db = db

    def create(self, actor: UserContext, data: TicketCreate) -> SupportTicket:
        with self.db.transaction() as conn:
            ticket = TicketRepository(conn).create(data, actor.user_id)
        logger.info(f"User {actor.user_id} opened ticket #{ticket.ticket_number}: {ticket.subject}")
        return ticket

    def list_tickets(
        self,
        actor: UserContext,
        status: TicketStatus | None = None,
        category: TicketCategory | None = None,
        priority: TicketPriority | None = None,
        assigned_to_user_id: int | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> TicketPage:
        """Admins see every ticket; other users see their own."""
        page = max(page, 1)
        page_size = min(max(page_size, 1), MAX_PAGE_SIZE)
        admin = is_ticket_admin(actor)
        with self.db.connection() as conn:
            items, total = TicketRepository(conn).list_page(
                submitted_by_user_id=None if admin else actor.user_id,
                status=status,
                category=category,
                priority=priority,
                assigned_to_user_id=assigned_to_user_id if admin else None,
                page=page,
                page_size=page_size,
            )
        if not admin:
            items = [_hide_admin_fields(ticket) for ticket in items]
        return TicketPage(items=items, total=total, page=page, page_size=page_size)

    def get(self, actor: UserContext, ticket_id: str) -> SupportTicket:
        with self.db.connection() as conn:
            ticket = self._require_visible(TicketRepository(conn), actor, ticket_id)
        return ticket if is_ticket_admin(actor) else _hide_admin_fields(ticket)

    def add_comment(self, actor: UserContext, ticket_id: str, content: str) -> TicketComment:
        content = content.strip()
        if not content:
            raise ValidationError("Comment cannot be empty")
        with self.db.transaction() as conn:
            tickets = TicketRepository(conn)
            self._require_visible(tickets, actor, ticket_id)
            return tickets.add_comment(ticket_id, actor.user_id, content, is_ticket_admin(actor))

    # =========================================================================
    # Admin Operations
    # =========================================================================

    def update_status(self, actor: UserContext, ticket_id: str, status: TicketStatus) -> SupportTicket:
        fields: dict = {"status": status}
        if status == TicketStatus.RESOLVED:
            fields.update(resolved_at=now_iso(), resolved_by_user_id=actor.user_id)
        elif status in (TicketStatus.OPEN, TicketStatus.WORKING_ON_IT):
            fields.update(resolved_at=None, resolved_by_user_id=None)
        ticket = self._admin_update(actor, ticket_id, fields)
        logger.info(f"Ticket #{ticket.ticket_number} moved to {status.name}")
        return ticket

    def assign(self, actor: UserContext, ticket_id: str, user_id: int | None) -> SupportTicket:
        if user_id is not None:
            with self.db.connection() as conn:
                if UserRepository(conn).get(user_id) is None:
                    raise NotFoundError(f"User not found: {user_id}")
        return self._admin_update(actor, ticket_id, {"assigned_to_user_id": user_id})

    def set_priority(self, actor: UserContext, ticket_id: str, priority: TicketPriority) -> SupportTicket:
        return self._admin_update(actor, ticket_id, {"priority": priority})

    def set_admin_notes(self, actor: UserContext, ticket_id: str, notes: str | None) -> SupportTicket:
        return self._admin_update(actor, ticket_id, {"admin_notes": notes})

    def _admin_update(self, actor: UserContext, ticket_id: str, fields: dict) -> SupportTicket:
        if not is_ticket_admin(actor):
            raise PermissionDeniedError("Only developers and super admins can manage tickets")
        with self.db.transaction() as conn:
            tickets = TicketRepository(conn)
            if tickets.get(ticket_id) is None:
                raise NotFoundError("Ticket not found")
            tickets.update(ticket_id, fields)
            return tickets.get(ticket_id)

    @staticmethod
    def _require_visible(tickets: TicketRepository, actor: UserContext, ticket_id: str) -> SupportTicket:
        ticket = tickets.get(ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket not found")
        if not is_ticket_admin(actor) and ticket.submitted_by_user_id != actor.user_id:
            raise PermissionDeniedError("You can only view your own tickets")
        return ticket


def _hide_admin_fields(ticket: SupportTicket) -> SupportTicket:
    return ticket.model_copy(update={"admin_notes": None})
