"""
Person models.

A person belongs to exactly one tree and may carry a name in up to three
scripts (Arabic, English/Latin, Nobiin/Coptic) plus a free-form primary name.
"""

from datetime import date

from pydantic import BaseModel, Field, field_validator, model_validator

from familytree.models.enums import DatePrecision, Sex

NAME_FIELDS = ("primary_name", "name_arabic", "name_english", "name_nobiin")


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class Person(BaseModel):
    """Stored person record."""

    id: str
    tree_id: str
    primary_name: str | None = None
    name_arabic: str | None = None
    name_english: str | None = None
    name_nobiin: str | None = None
    family_name: str | None = None
    sex: Sex = Sex.UNKNOWN
    birth_date: date | None = None
    birth_precision: DatePrecision = DatePrecision.UNKNOWN
    birth_place: str | None = None
    death_date: date | None = None
    death_precision: DatePrecision = DatePrecision.UNKNOWN
    death_place: str | None = None
    occupation: str | None = None
    notes: str | None = None
    needs_review: bool = False
    created_at: str
    updated_at: str
    is_deleted: bool = False
    deleted_at: str | None = None
    deleted_by_user_id: int | None = None

    @property
    def display_name(self) -> str:
        """Best name for showing to a reader."""
        for value in (self.name_english, self.primary_name, self.name_arabic, self.name_nobiin):
            if value and value.strip():
                return value.strip()
        return "Unknown"

    @property
    def comparison_name(self) -> str | None:
        """Given name used when comparing persons for duplicates."""
        for value in (self.name_arabic, self.primary_name, self.name_english, self.name_nobiin):
            if value and value.strip():
                return value.strip()
        return None


class PersonCreate(BaseModel):
    """Fields accepted when creating a person."""

    primary_name: str | None = Field(default=None, max_length=200)
    name_arabic: str | None = Field(default=None, max_length=200)
    name_english: str | None = Field(default=None, max_length=200)
    name_nobiin: str | None = Field(default=None, max_length=200)
    family_name: str | None = Field(default=None, max_length=200)
    sex: Sex = Sex.UNKNOWN
    birth_date: date | None = None
    birth_precision: DatePrecision = DatePrecision.EXACT
    birth_place: str | None = Field(default=None, max_length=300)
    death_date: date | None = None
    death_precision: DatePrecision = DatePrecision.EXACT
    death_place: str | None = Field(default=None, max_length=300)
    occupation: str | None = Field(default=None, max_length=200)
    notes: str | None = None

    @field_validator(*NAME_FIELDS, "family_name", "birth_place", "death_place", "occupation")
    @classmethod
    def strip_text(cls, v: str | None) -> str | None:
        """Trim whitespace; empty strings become None."""
        return _clean(v)

    @model_validator(mode="after")
    def check_person(self) -> "PersonCreate":
        if not any(getattr(self, name) for name in NAME_FIELDS):
            raise ValueError("At least one name is required")
        if self.birth_date and self.death_date and self.death_date < self.birth_date:
            raise ValueError("Death date cannot be before birth date")
        return self


class PersonUpdate(BaseModel):
    """Partial update; only fields explicitly set are applied."""

    primary_name: str | None = Field(default=None, max_length=200)
    name_arabic: str | None = Field(default=None, max_length=200)
    name_english: str | None = Field(default=None, max_length=200)
    name_nobiin: str | None = Field(default=None, max_length=200)
    family_name: str | None = Field(default=None, max_length=200)
    sex: Sex | None = None
    birth_date: date | None = None
    birth_precision: DatePrecision | None = None
    birth_place: str | None = None
    death_date: date | None = None
    death_precision: DatePrecision | None = None
    death_place: str | None = None
    occupation: str | None = None
    notes: str | None = None
    needs_review: bool | None = None

    @field_validator(*NAME_FIELDS, "family_name", "birth_place", "death_place", "occupation")
    @classmethod
    def strip_text(cls, v: str | None) -> str | None:
        return _clean(v)

    @field_validator("sex", "birth_precision", "death_precision", "needs_review", mode="before")
    @classmethod
    def reject_null(cls, v, info):
        # these columns are NOT NULL; omit the key to leave them unchanged
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v


class PersonPage(BaseModel):
    """One page of a person listing."""

    items: list[Person]
    total: int
    page: int
    page_size: int
