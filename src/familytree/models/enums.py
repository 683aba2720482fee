"""Enumerations shared by models, repositories and the API.

Integer-valued enums are stored as integers in SQLite; string-valued enums
are stored as their value.
"""

from enum import Enum, IntEnum


class Sex(IntEnum):
    MALE = 0
    FEMALE = 1
    UNKNOWN = 2


class DatePrecision(str, Enum):
    """How exactly a stored date is known."""

    EXACT = "exact"
    ABOUT = "about"  # ABT / EST / CAL in GEDCOM
    BEFORE = "before"
    AFTER = "after"
    UNKNOWN = "unknown"


class RelationshipType(str, Enum):
    """Kind of parent-child link."""

    BIOLOGICAL = "biological"
    ADOPTIVE = "adoptive"
    STEP = "step"
    FOSTER = "foster"


class UnionType(str, Enum):
    MARRIAGE = "marriage"
    CIVIL_UNION = "civil_union"
    PARTNERSHIP = "partnership"


class MemberRole(str, Enum):
    """Role of a person inside a union."""

    HUSBAND = "Husband"
    WIFE = "Wife"
    PARTNER = "Partner"


class TreeRole(IntEnum):
    """Membership role within a single tree, ordered by privilege."""

    VIEWER = 0
    CONTRIBUTOR = 1
    EDITOR = 2
    SUB_ADMIN = 3
    ADMIN = 4
    OWNER = 5


class SystemRole(str, Enum):
    """Platform-wide role of a user account."""

    USER = "user"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"
    DEVELOPER = "developer"


class PersonLinkType(IntEnum):
    SAME_PERSON = 0
    ANCESTOR = 1
    RELATED = 2


class PersonLinkStatus(IntEnum):
    PENDING = 0
    APPROVED = 1
    REJECTED = 2


class PredictionStatus(IntEnum):
    NEW = 0
    CONFIRMED = 1
    DISMISSED = 2
    APPLIED = 3


class PredictedType(str, Enum):
    PARENT_CHILD = "parent_child"
    UNION = "union"


class ConfidenceLevel(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class SuggestionType(str, Enum):
    ADD_PERSON = "add_person"
    UPDATE_PERSON = "update_person"
    ADD_PARENT = "add_parent"
    ADD_CHILD = "add_child"
    ADD_SPOUSE = "add_spouse"
    REMOVE_RELATIONSHIP = "remove_relationship"
    MERGE_PERSON = "merge_person"
    DELETE_PERSON = "delete_person"


class SuggestionStatus(str, Enum):
    PENDING = "pending"
    NEEDS_INFO = "needs_info"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class TicketCategory(IntEnum):
    BUG = 0
    ENHANCEMENT = 1


class TicketPriority(IntEnum):
    LOW = 0
    MEDIUM = 1
    HIGH = 2


class TicketStatus(IntEnum):
    OPEN = 0
    WORKING_ON_IT = 1
    RESOLVED = 2
    CLOSED = 3
