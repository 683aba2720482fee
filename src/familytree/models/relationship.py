"""Parent-child, union and person-link models."""

from datetime import date

from pydantic import BaseModel, Field, model_validator

from familytree.models.enums import (
    DatePrecision,
    MemberRole,
    PersonLinkStatus,
    PersonLinkType,
    RelationshipType,
    Sex,
    UnionType,
)


class ParentChild(BaseModel):
    id: str
    parent_id: str
    child_id: str
    relationship_type: RelationshipType = RelationshipType.BIOLOGICAL
    notes: str | None = None
    created_at: str
    is_deleted: bool = False


class ParentChildCreate(BaseModel):
    relationship_type: RelationshipType = RelationshipType.BIOLOGICAL
    notes: str | None = None


class UnionMember(BaseModel):
    id: str
    union_id: str
    person_id: str
    role: MemberRole = MemberRole.PARTNER
    created_at: str


class Union(BaseModel):
    id: str
    tree_id: str
    type: UnionType = UnionType.MARRIAGE
    start_date: date | None = None
    start_precision: DatePrecision = DatePrecision.UNKNOWN
    start_place: str | None = None
    end_date: date | None = None
    end_precision: DatePrecision = DatePrecision.UNKNOWN
    notes: str | None = None
    created_at: str
    updated_at: str
    is_deleted: bool = False
    members: list[UnionMember] = Field(default_factory=list)


class UnionCreate(BaseModel):
    type: UnionType = UnionType.MARRIAGE
    member_ids: list[str] = Field(min_length=1, max_length=2)
    start_date: date | None = None
    start_precision: DatePrecision = DatePrecision.EXACT
    start_place: str | None = None
    end_date: date | None = None
    end_precision: DatePrecision = DatePrecision.EXACT
    notes: str | None = None

    @model_validator(mode="after")
    def check_union(self) -> "UnionCreate":
        if len(set(self.member_ids)) != len(self.member_ids):
            raise ValueError("A person cannot be listed twice in a union")
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("Union end date cannot be before start date")
        return self


class UnionUpdate(BaseModel):
    type: UnionType | None = None
    start_date: date | None = None
    start_precision: DatePrecision | None = None
    start_place: str | None = None
    end_date: date | None = None
    end_precision: DatePrecision | None = None
    notes: str | None = None


class SiblingInfo(BaseModel):
    """A sibling of some person and how many parents they share."""

    person_id: str
    name: str
    shared_parent_count: int
    is_full_sibling: bool


class SpouseInfo(BaseModel):
    person_id: str
    name: str
    union_id: str
    union_type: UnionType


class PersonLink(BaseModel):
    id: str
    source_person_id: str
    target_person_id: str
    link_type: PersonLinkType = PersonLinkType.SAME_PERSON
    status: PersonLinkStatus = PersonLinkStatus.PENDING
    confidence: int = 0
    notes: str | None = None
    created_by_user_id: int | None = None
    approved_by_user_id: int | None = None
    created_at: str
    updated_at: str


class PersonLinkCreate(BaseModel):
    """Request to link a person in one tree to a person in another."""

    source_person_id: str
    target_person_id: str
    link_type: PersonLinkType = PersonLinkType.SAME_PERSON
    confidence: int = Field(default=100, ge=0, le=100)
    notes: str | None = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def check_people(self) -> "PersonLinkCreate":
        if self.source_person_id == self.target_person_id:
            raise ValueError("A person cannot be linked to themselves")
        return self


class PersonLinkReview(BaseModel):
    approve: bool
    notes: str | None = Field(default=None, max_length=2000)


class LinkedPerson(BaseModel):
    """The far side of an approved link, as seen from one tree."""

    link_id: str
    link_type: PersonLinkType
    person_id: str
    person_name: str
    tree_id: str
    tree_name: str


class LinkMatch(BaseModel):
    """A person in a linkable tree whose name resembles a search."""

    person_id: str
    name: str
    sex: Sex
    birth_date: date | None = None
    death_date: date | None = None
    tree_id: str
    tree_name: str
    score: float
