"""Support ticket persistence."""

from typing import Any

from familytree.models.enums import TicketCategory, TicketPriority, TicketStatus
from familytree.models.ticket import SupportTicket, TicketComment, TicketCreate
from familytree.repositories.base import BaseRepository, to_db


class TicketRepository(BaseRepository):
    """Repository for support tickets and their comments."""

    _UPDATABLE = (
        "status",
        "priority",
        "assigned_to_user_id",
        "admin_notes",
        "resolved_at",
        "resolved_by_user_id",
    )

    def create(self, data: TicketCreate, submitted_by_user_id: int) -> SupportTicket:
        ticket_id = self.new_id()
        now = self._now_iso()
        next_number = self.conn.execute(
            "SELECT COALESCE(MAX(ticket_number), 0) + 1 FROM support_tickets"
        ).fetchone()[0]
        self.conn.execute(
            """
            INSERT INTO support_tickets (
                id, ticket_number, category, priority, status, subject, description,
                steps_to_reproduce, page_url, browser_info, submitted_by_user_id,
                created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                ticket_id, next_number, int(data.category), int(data.priority),
                int(TicketStatus.OPEN), data.subject.strip(), data.description,
                data.steps_to_reproduce, data.page_url, data.browser_info,
                submitted_by_user_id, now, now,
            ),
        )
        return self.get(ticket_id)

    def get(self, ticket_id: str) -> SupportTicket | None:
        row = self.conn.execute(
            "SELECT * FROM support_tickets WHERE id = ?", (ticket_id,)
        ).fetchone()
        if not row:
            return None
        ticket = SupportTicket.model_validate(dict(row))
        ticket.comments = self.list_comments(ticket_id)
        return ticket

    def list_page(
        self,
        submitted_by_user_id: int | None = None,
        status: TicketStatus | None = None,
        category: TicketCategory | None = None,
        priority: TicketPriority | None = None,
        assigned_to_user_id: int | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[SupportTicket], int]:
        clauses = []
        params: list[Any] = []
        for column, value in (
            ("submitted_by_user_id", submitted_by_user_id),
            ("status", status),
            ("category", category),
            ("priority", priority),
            ("assigned_to_user_id", assigned_to_user_id),
        ):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(to_db(value))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        total = self.conn.execute(
            f"SELECT COUNT(*) FROM support_tickets {where}", params
        ).fetchone()[0]
        rows = self.conn.execute(
            f"""
            SELECT * FROM support_tickets {where}
            ORDER BY priority DESC, ticket_number DESC
            LIMIT ? OFFSET ?
            """,
            [*params, page_size, (page - 1) * page_size],
        ).fetchall()
        return [SupportTicket.model_validate(dict(row)) for row in rows], total

    def update(self, ticket_id: str, fields: dict[str, Any]) -> bool:
        return self._update_columns("support_tickets", ticket_id, fields, self._UPDATABLE) > 0

    def add_comment(
        self, ticket_id: str, author_user_id: int, content: str, is_admin_response: bool
    ) -> TicketComment:
        comment_id = self.new_id()
        self.conn.execute(
            """
            INSERT INTO ticket_comments (id, ticket_id, author_user_id, content, is_admin_response, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (comment_id, ticket_id, author_user_id, content, int(is_admin_response), self._now_iso()),
        )
        self.conn.execute(
            "UPDATE support_tickets SET updated_at = ? WHERE id = ?", (self._now_iso(), ticket_id)
        )
        row = self.conn.execute("SELECT * FROM ticket_comments WHERE id = ?", (comment_id,)).fetchone()
        return TicketComment.model_validate(dict(row))

    def list_comments(self, ticket_id: str) -> list[TicketComment]:
        rows = self.conn.execute(
            "SELECT * FROM ticket_comments WHERE ticket_id = ? ORDER BY created_at, id",
            (ticket_id,),
        ).fetchall()
        return [TicketComment.model_validate(dict(row)) for row in rows]
