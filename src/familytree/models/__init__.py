"""Data models for familytree."""

from familytree.models.enums import (
    ConfidenceLevel,
    DatePrecision,
    MemberRole,
    PersonLinkStatus,
    PersonLinkType,
    PredictedType,
    PredictionStatus,
    RelationshipType,
    Sex,
    SuggestionStatus,
    SuggestionType,
    SystemRole,
    TicketCategory,
    TicketPriority,
    TicketStatus,
    TreeRole,
    UnionType,
)
from familytree.models.person import Person, PersonCreate, PersonUpdate
from familytree.models.relationship import ParentChild, PersonLink, Union, UnionMember
from familytree.models.tree import Tree, TreeMember, User

__all__ = [
    "ConfidenceLevel",
    "DatePrecision",
    "MemberRole",
    "ParentChild",
    "Person",
    "PersonCreate",
    "PersonLink",
    "PersonLinkStatus",
    "PersonLinkType",
    "PersonUpdate",
    "PredictedType",
    "PredictionStatus",
    "RelationshipType",
    "Sex",
    "SuggestionStatus",
    "SuggestionType",
    "SystemRole",
    "TicketCategory",
    "TicketPriority",
    "TicketStatus",
    "Tree",
    "TreeMember",
    "TreeRole",
    "Union",
    "UnionMember",
    "UnionType",
    "User",
]
