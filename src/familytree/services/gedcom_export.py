"""
GEDCOM 5.5.1 export.

Writes one INDI record per live person and one FAM record per live union.
Children whose parents share no union get a family record of their own so
no parent-child link is lost on export.
"""

from datetime import date

from loguru import logger

from familytree.database import Database
from familytree.models.enums import DatePrecision, MemberRole, Sex
from familytree.models.person import Person
from familytree.models.relationship import ParentChild, Union
from familytree.repositories import PersonRepository, RelationshipRepository
from familytree.services.access import TreeAccess, UserContext
from familytree.version import GEDCOM_VERSION, VERSION

MONTHS = ("JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC")
_PREFIX = {DatePrecision.ABOUT: "ABT ", DatePrecision.BEFORE: "BEF ", DatePrecision.AFTER: "AFT "}
_SEX = {Sex.MALE: "M", Sex.FEMALE: "F", Sex.UNKNOWN: "U"}
MAX_LINE_VALUE = 200


def format_gedcom_date(value: date, precision: DatePrecision = DatePrecision.EXACT) -> str:
    """``12 MAR 1901``, prefixed ``ABT``/``BEF``/``AFT`` by precision."""
    return f"{_PREFIX.get(precision, '')}{value.day} {MONTHS[value.month - 1]} {value.year}"


def text_lines(level: int, tag: str, text: str) -> list[str]:
    """Emit a text value, continuing newlines with CONT and long lines with CONC."""
    lines: list[str] = []
    for index, paragraph in enumerate(text.split("\n")):
        chunks = [paragraph[i:i + MAX_LINE_VALUE] for i in range(0, len(paragraph), MAX_LINE_VALUE)] or [""]
        for chunk_index, chunk in enumerate(chunks):
            if index == 0 and chunk_index == 0:
                line = f"{level} {tag} {chunk}"
            elif chunk_index == 0:
                line = f"{level + 1} CONT {chunk}"
            else:
                line = f"{level + 1} CONC {chunk}"
            # a space before a CONC split belongs to the value
            lines.append(line.rstrip() if chunk_index == len(chunks) - 1 else line)
    return lines


class _Family:
    def __init__(self, family_id: str):
        self.id = family_id
        self.husband: str | None = None
        self.wife: str | None = None
        self.children: list[str] = []
        self.union: Union | None = None


class GedcomWriter:
    """Serialise persons and relationships to GEDCOM text."""

    def write(
        self,
        persons: list[Person],
        unions: list[Union],
        links: list[ParentChild],
        today: date | None = None,
    ) -> str:
        today = today or date.today()
        xrefs = {person.id: f"I{index}" for index, person in enumerate(persons, start=1)}
        by_id = {person.id: person for person in persons}
        families = self._families(by_id, unions, links)

        famc: dict[str, list[str]] = {}
        fams: dict[str, list[str]] = {}
        for family in families:
            for spouse in (family.husband, family.wife):
                if spouse:
                    fams.setdefault(spouse, []).append(family.id)
            for child in family.children:
                famc.setdefault(child, []).append(family.id)

        lines = [
            "0 HEAD",
            "1 SOUR familytree",
            f"2 VERS {VERSION}",
            "2 NAME familytree",
            f"1 DATE {format_gedcom_date(today)}",
            "1 SUBM @U1@",
            "1 GEDC",
            f"2 VERS {GEDCOM_VERSION}",
            "2 FORM LINEAGE-LINKED",
            "1 CHAR UTF-8",
            "0 @U1@ SUBM",
            "1 NAME familytree",
        ]
        for person in persons:
            lines.extend(self._individual(person, xrefs, famc.get(person.id, []), fams.get(person.id, [])))
        for family in families:
            lines.extend(self._family(family, xrefs))
        lines.append("0 TRLR")
        return "\n".join(lines) + "\n"

    @staticmethod
    def _individual(person: Person, xrefs: dict[str, str], famc: list[str], fams: list[str]) -> list[str]:
        given = person.primary_name or person.display_name
        surname = person.family_name or ""
        lines = [f"0 @{xrefs[person.id]}@ INDI", f"1 NAME {given} /{surname}/"]
        lines.append(f"2 GIVN {given}")
        if surname:
            lines.append(f"2 SURN {surname}")
        lines.append(f"1 SEX {_SEX[person.sex]}")
        for tag, event_date, precision, place in (
            ("BIRT", person.birth_date, person.birth_precision, person.birth_place),
            ("DEAT", person.death_date, person.death_precision, person.death_place),
        ):
            if event_date or place:
                lines.append(f"1 {tag}")
                if event_date:
                    lines.append(f"2 DATE {format_gedcom_date(event_date, precision)}")
                if place:
                    lines.append(f"2 PLAC {place}")
        if person.occupation:
            lines.append(f"1 OCCU {person.occupation}")
        if person.notes:
            lines.extend(text_lines(1, "NOTE", person.notes))
        lines.extend(f"1 FAMC @{family_id}@" for family_id in famc)
        lines.extend(f"1 FAMS @{family_id}@" for family_id in fams)
        return lines

    @staticmethod
    def _family(family: _Family, xrefs: dict[str, str]) -> list[str]:
        lines = [f"0 @{family.id}@ FAM"]
        if family.husband:
            lines.append(f"1 HUSB @{xrefs[family.husband]}@")
        if family.wife:
            lines.append(f"1 WIFE @{xrefs[family.wife]}@")
        lines.extend(f"1 CHIL @{xrefs[child]}@" for child in family.children)
        union = family.union
        if union is not None and (union.start_date or union.start_place):
            lines.append("1 MARR")
            if union.start_date:
                lines.append(f"2 DATE {format_gedcom_date(union.start_date, union.start_precision)}")
            if union.start_place:
                lines.append(f"2 PLAC {union.start_place}")
        if union is not None and union.end_date:
            lines.append("1 DIV")
            lines.append(f"2 DATE {format_gedcom_date(union.end_date, union.end_precision)}")
        return lines

    @staticmethod
    def _families(by_id: dict[str, Person], unions: list[Union], links: list[ParentChild]) -> list[_Family]:
        parents_of: dict[str, set[str]] = {}
        for link in links:
            if link.parent_id in by_id and link.child_id in by_id:
                parents_of.setdefault(link.child_id, set()).add(link.parent_id)

        families: list[_Family] = []
        covered: set[str] = set()
        for union in unions:
            member_ids = [m.person_id for m in union.members if m.person_id in by_id][:2]
            if not member_ids:
                continue
            family = _Family(f"F{len(families) + 1}")
            family.union = union
            for member in union.members:
                if member.person_id not in member_ids:
                    continue
                person = by_id[member.person_id]
                if member.role == MemberRole.HUSBAND or (
                    member.role == MemberRole.PARTNER and person.sex == Sex.MALE
                ):
                    slot = "husband" if family.husband is None else "wife"
                elif member.role == MemberRole.WIFE or person.sex == Sex.FEMALE:
                    slot = "wife" if family.wife is None else "husband"
                else:
                    slot = "husband" if family.husband is None else "wife"
                setattr(family, slot, member.person_id)

            spouses = set(member_ids)
            for child_id, parents in parents_of.items():
                if child_id not in covered and parents == spouses:
                    family.children.append(child_id)
                    covered.add(child_id)
            families.append(family)

        # Parents without a union still need a family record
        synthetic: dict[tuple[str, ...], _Family] = {}
        for child_id, parents in parents_of.items():
            if child_id in covered:
                continue
            key = tuple(sorted(parents))
            family = synthetic.get(key)
            if family is None:
                family = _Family(f"F{len(families) + 1}")
                for parent_id in key[:2]:
                    if by_id[parent_id].sex == Sex.FEMALE and family.wife is None:
                        family.wife = parent_id
                    elif family.husband is None:
                        family.husband = parent_id
                    else:
                        family.wife = parent_id
                synthetic[key] = family
                families.append(family)
            family.children.append(child_id)
        return families


class GedcomExportService:
    """Export a tree the caller can read."""

    def __init__(self, db: Database, writer: GedcomWriter | None = None):
        self.db = db
        self.writer = writer or GedcomWriter()

    def export_tree(self, actor: UserContext, tree_id: str) -> str:
        with self.db.connection() as conn:
            tree = TreeAccess(conn, actor).require_read(tree_id)
            persons = PersonRepository(conn).list_in_tree(tree_id)
            relationships = RelationshipRepository(conn)
            unions = relationships.list_unions(tree_id)
            links = relationships.parent_child_in_tree(tree_id)

        content = self.writer.write(persons, unions, links)
        logger.info(
            f"Exported tree '{tree.name}' ({tree_id}): {len(persons)} persons, {len(unions)} unions"
        )
        return content
