"""
GEDCOM preview: analyse a file before importing it.

Nothing is written to the database. The preview reports how individuals and
families are linked (FAMC/FAMS pointers, HUSB/WIFE/CHIL member lists, both,
or neither), lists family groups with unresolved members, and flags data
quality problems a reviewer should look at before importing.
"""

from loguru import logger

from familytree.config import Config, get_config
from familytree.config.constants import MAX_AFFECTED_IDS
from familytree.models.gedcom import (
    DataQualityIssue,
    GedcomDate,
    GedcomParseResult,
    GedcomPreviewResult,
    LinkageStatistics,
    PreviewFamilyGroup,
    PreviewFamilyMember,
    PreviewIndividual,
)
from familytree.services.gedcom_parser import GedcomParser

LINKING_DESCRIPTIONS = {
    "FAMC_FAMS": "Individuals point to their families (FAMC/FAMS) and families list their members.",
    "FAM_ONLY": "Families list their members (HUSB/WIFE/CHIL) but individuals carry no FAMC/FAMS pointers.",
    "MIXED": "Some links are recorded on only one side; both directions are combined on import.",
    "NONE": "No family links found; individuals will be imported without relationships.",
}


def _date_text(value: GedcomDate | None) -> str | None:
    return value.original if value else None


def _issue(severity: str, category: str, message: str, ids: list[str]) -> DataQualityIssue:
    return DataQualityIssue(
        severity=severity,
        category=category,
        message=message,
        count=len(ids),
        affected_ids=ids[:MAX_AFFECTED_IDS],
    )


class GedcomPreviewService:
    """Summarise a GEDCOM file for review."""

    def __init__(self, parser: GedcomParser | None = None, config: Config | None = None):
        self.parser = parser or GedcomParser()
        self.config = config or get_config()

    def preview_bytes(self, data: bytes, file_name: str | None = None) -> GedcomPreviewResult:
        return self.analyze(self.parser.parse_bytes(data), file_name)

    def analyze(self, parsed: GedcomParseResult, file_name: str | None = None) -> GedcomPreviewResult:
        individuals = {}
        duplicate_ids: list[str] = []
        for person in parsed.individuals:
            key = person.id.upper()
            if key in individuals:
                duplicate_ids.append(person.id)
                continue
            individuals[key] = person

        families = {}
        for family in parsed.families:
            key = family.id.upper()
            if key in families:
                duplicate_ids.append(family.id)
                continue
            families[key] = family

        # Who do the family records mention?
        referenced: set[str] = set()
        missing_refs: list[str] = []
        groups: list[PreviewFamilyGroup] = []
        for family in families.values():
            group = PreviewFamilyGroup(
                id=family.id,
                marriage_date=_date_text(family.marriage_date),
                marriage_place=family.marriage_place,
            )
            for role, person_id in (("Husband", family.husband_id), ("Wife", family.wife_id)):
                if not person_id:
                    continue
                member = self._member(person_id, individuals)
                if member.found:
                    referenced.add(person_id.upper())
                else:
                    group.issues.append(f"{role} {person_id} not found in individuals")
                    missing_refs.append(f"{family.id}:{person_id}")
                if role == "Husband":
                    group.husband = member
                else:
                    group.wife = member
            for child_id in family.child_ids:
                member = self._member(child_id, individuals)
                if member.found:
                    referenced.add(child_id.upper())
                else:
                    group.issues.append(f"Child {child_id} not found in individuals")
                    missing_refs.append(f"{family.id}:{child_id}")
                group.children.append(member)
            groups.append(group)

        preview_people: list[PreviewIndividual] = []
        nameless: list[str] = []
        orphaned: list[str] = []
        for person in individuals.values():
            for family_id in (*person.family_child_ids, *person.family_spouse_ids):
                if family_id.upper() not in families:
                    missing_refs.append(f"{person.id}:{family_id}")
            in_family = person.id.upper() in referenced
            is_orphaned = not (person.family_child_ids or person.family_spouse_ids or in_family)
            if is_orphaned:
                orphaned.append(person.id)
            if not (person.full_name or person.given_name or person.surname):
                nameless.append(person.id)
            preview_people.append(
                PreviewIndividual(
                    id=person.id,
                    full_name=person.full_name,
                    given_name=person.given_name,
                    surname=person.surname,
                    sex=person.sex,
                    birth_date=_date_text(person.birth_date),
                    birth_place=person.birth_place,
                    death_date=_date_text(person.death_date),
                    death_place=person.death_place,
                    has_famc=bool(person.family_child_ids),
                    has_fams=bool(person.family_spouse_ids),
                    is_in_family=in_family,
                    is_orphaned=is_orphaned,
                    famc_ids=list(person.family_child_ids),
                    fams_ids=list(person.family_spouse_ids),
                )
            )

        statistics = self._statistics(preview_people, list(families.values()))
        empty_families = [g.id for g in groups if not (g.husband or g.wife or g.children)]

        issues: list[DataQualityIssue] = []
        if duplicate_ids:
            issues.append(_issue("Warning", "Structure", "Duplicate record identifiers", duplicate_ids))
        if nameless:
            issues.append(_issue("Warning", "Data", "Individuals without a name", nameless))
        if empty_families:
            issues.append(_issue("Warning", "Structure", "Families without any members", empty_families))
        if missing_refs:
            issues.append(_issue("Error", "Linkage", "References to records that do not exist", missing_refs))
        if orphaned:
            issues.append(_issue("Info", "Linkage", "Individuals not linked to any family", orphaned))
        if statistics.linking_method == "FAM_ONLY":
            issues.append(
                _issue(
                    "Info",
                    "Linkage",
                    "Links come only from family records; individuals have no FAMC/FAMS tags",
                    [],
                )
            )

        max_people = self.config.gedcom_preview_max_individuals
        max_groups = self.config.gedcom_preview_max_family_groups
        max_warnings = self.config.gedcom_preview_max_warnings

        logger.info(
            f"GEDCOM preview {file_name or '<upload>'}: {statistics.total_individuals} individuals, "
            f"{statistics.total_families} families, linking={statistics.linking_method}"
        )
        return GedcomPreviewResult(
            file_name=file_name,
            encoding=parsed.encoding,
            total_lines=parsed.line_count,
            individuals=preview_people[:max_people],
            family_groups=groups[:max_groups],
            statistics=statistics,
            quality_issues=issues,
            warnings=parsed.warnings[:max_warnings],
            individuals_truncated=len(preview_people) > max_people,
            family_groups_truncated=len(groups) > max_groups,
            warnings_truncated=len(parsed.warnings) > max_warnings,
        )

    @staticmethod
    def _member(person_id: str, individuals: dict) -> PreviewFamilyMember:
        person = individuals.get(person_id.upper())
        if person is None:
            return PreviewFamilyMember(id=person_id, found=False)
        return PreviewFamilyMember(id=person.id, name=person.full_name, found=True)

    @staticmethod
    def _statistics(people: list[PreviewIndividual], families: list) -> LinkageStatistics:
        stats = LinkageStatistics(
            total_individuals=len(people),
            individuals_with_famc=sum(1 for p in people if p.has_famc),
            individuals_with_fams=sum(1 for p in people if p.has_fams),
            individuals_in_families=sum(1 for p in people if p.is_in_family),
            orphaned_count=sum(1 for p in people if p.is_orphaned),
            total_families=len(families),
            families_with_both_spouses=sum(1 for f in families if f.husband_id and f.wife_id),
            families_with_children=sum(1 for f in families if f.child_ids),
            families_with_no_children=sum(1 for f in families if not f.child_ids),
        )

        has_pointers = any(p.has_famc or p.has_fams for p in people)
        has_member_lists = any(f.husband_id or f.wife_id or f.child_ids for f in families)
        if has_pointers and has_member_lists:
            one_sided = any(p.is_in_family != (p.has_famc or p.has_fams) for p in people)
            method = "MIXED" if one_sided else "FAMC_FAMS"
        elif has_member_lists:
            method = "FAM_ONLY"
        elif has_pointers:
            method = "MIXED"
        else:
            method = "NONE"

        stats.linking_method = method
        stats.linking_method_description = LINKING_DESCRIPTIONS[method]
        return stats
