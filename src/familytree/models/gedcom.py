"""
GEDCOM data structures.

Parsed records are plain dataclasses (they never leave the process); preview
and import results are Pydantic models returned over the API.
"""

from dataclasses import dataclass, field
from datetime import date

from pydantic import BaseModel, Field


@dataclass
class GedcomDate:
    """A GEDCOM date value with its qualifier."""

    original: str
    value: date | None = None
    modifier: str | None = None
    is_approximate: bool = False
    is_range: bool = False


@dataclass
class GedcomIndividual:
    id: str
    full_name: str | None = None
    given_name: str | None = None
    surname: str | None = None
    sex: str | None = None
    birth_date: GedcomDate | None = None
    birth_place: str | None = None
    death_date: GedcomDate | None = None
    death_place: str | None = None
    occupation: str | None = None
    notes: str | None = None
    family_child_ids: list[str] = field(default_factory=list)
    family_spouse_ids: list[str] = field(default_factory=list)


@dataclass
class GedcomFamily:
    id: str
    husband_id: str | None = None
    wife_id: str | None = None
    child_ids: list[str] = field(default_factory=list)
    marriage_date: GedcomDate | None = None
    marriage_place: str | None = None
    divorce_date: GedcomDate | None = None


@dataclass
class GedcomParseResult:
    """Everything read from one GEDCOM file."""

    individuals: list[GedcomIndividual] = field(default_factory=list)
    families: list[GedcomFamily] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    encoding: str = "utf-8"
    line_count: int = 0


# -----------------------------------------------------------------------------
# Preview
# -----------------------------------------------------------------------------


class PreviewIndividual(BaseModel):
    id: str
    full_name: str | None = None
    given_name: str | None = None
    surname: str | None = None
    sex: str | None = None
    birth_date: str | None = None
    birth_place: str | None = None
    death_date: str | None = None
    death_place: str | None = None
    has_famc: bool = False
    has_fams: bool = False
    is_in_family: bool = False
    is_orphaned: bool = False
    famc_ids: list[str] = Field(default_factory=list)
    fams_ids: list[str] = Field(default_factory=list)


class PreviewFamilyMember(BaseModel):
    id: str
    name: str | None = None
    found: bool = True


class PreviewFamilyGroup(BaseModel):
    id: str
    husband: PreviewFamilyMember | None = None
    wife: PreviewFamilyMember | None = None
    children: list[PreviewFamilyMember] = Field(default_factory=list)
    marriage_date: str | None = None
    marriage_place: str | None = None
    issues: list[str] = Field(default_factory=list)


class LinkageStatistics(BaseModel):
    total_individuals: int = 0
    individuals_with_famc: int = 0
    individuals_with_fams: int = 0
    individuals_in_families: int = 0
    orphaned_count: int = 0
    total_families: int = 0
    families_with_both_spouses: int = 0
    families_with_children: int = 0
    families_with_no_children: int = 0
    linking_method: str = "NONE"
    linking_method_description: str = ""


class DataQualityIssue(BaseModel):
    severity: str  # Error / Warning / Info
    category: str  # Structure / Data / Linkage
    message: str
    count: int = 0
    affected_ids: list[str] = Field(default_factory=list)


class GedcomPreviewResult(BaseModel):
    file_name: str | None = None
    encoding: str
    total_lines: int
    individuals: list[PreviewIndividual]
    family_groups: list[PreviewFamilyGroup]
    statistics: LinkageStatistics
    quality_issues: list[DataQualityIssue]
    warnings: list[str]
    individuals_truncated: bool = False
    family_groups_truncated: bool = False
    warnings_truncated: bool = False


# -----------------------------------------------------------------------------
# Import
# -----------------------------------------------------------------------------


class GedcomImportOptions(BaseModel):
    """Options controlling a GEDCOM import."""

    tree_id: str | None = None
    tree_name: str | None = Field(default=None, max_length=200)
    tree_description: str | None = None
    import_occupations: bool = True
    import_notes: bool = True


class GedcomImportResult(BaseModel):
    success: bool
    message: str
    tree_id: str | None = None
    individuals_imported: int = 0
    families_imported: int = 0
    relationships_created: int = 0
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    duration_seconds: float = 0.0
