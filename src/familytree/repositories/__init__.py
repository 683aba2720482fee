"""Repository layer for familytree data access."""

from familytree.repositories.link_repository import AuditLogRepository, PersonLinkRepository
from familytree.repositories.person_repository import PersonRepository
from familytree.repositories.prediction_repository import PredictionRepository
from familytree.repositories.relationship_repository import RelationshipRepository
from familytree.repositories.suggestion_repository import SuggestionRepository
from familytree.repositories.ticket_repository import TicketRepository
from familytree.repositories.user_repository import TreeRepository, UserRepository

__all__ = [
    "AuditLogRepository",
    "PersonLinkRepository",
    "PersonRepository",
    "PredictionRepository",
    "RelationshipRepository",
    "SuggestionRepository",
    "TicketRepository",
    "TreeRepository",
    "UserRepository",
]
