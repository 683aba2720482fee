"""Support ticket models."""

from pydantic import BaseModel, Field

from familytree.models.enums import TicketCategory, TicketPriority, TicketStatus


class TicketComment(BaseModel):
    id: str
    ticket_id: str
    author_user_id: int
    content: str
    is_admin_response: bool = False
    created_at: str


class SupportTicket(BaseModel):
    id: str
    ticket_number: int
    category: TicketCategory
    priority: TicketPriority
    status: TicketStatus
    subject: str
    description: str
    steps_to_reproduce: str | None = None
    page_url: str | None = None
    browser_info: str | None = None
    submitted_by_user_id: int
    assigned_to_user_id: int | None = None
    admin_notes: str | None = None
    resolved_at: str | None = None
    resolved_by_user_id: int | None = None
    created_at: str
    updated_at: str
    comments: list[TicketComment] = Field(default_factory=list)


class TicketCreate(BaseModel):
    category: TicketCategory = TicketCategory.BUG
    priority: TicketPriority = TicketPriority.MEDIUM
    subject: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=10000)
    steps_to_reproduce: str | None = Field(default=None, max_length=5000)
    page_url: str | None = Field(default=None, max_length=1000)
    browser_info: str | None = Field(default=None, max_length=500)


class TicketStatusUpdate(BaseModel):
    status: TicketStatus


class TicketAssign(BaseModel):
    assigned_to_user_id: int | None = None


class TicketPriorityUpdate(BaseModel):
    priority: TicketPriority


class TicketNotesUpdate(BaseModel):
    admin_notes: str | None = Field(default=None, max_length=10000)


class TicketPage(BaseModel):
    items: list[SupportTicket]
    total: int
    page: int
    page_size: int
