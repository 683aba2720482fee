"""
GEDCOM import into a new or existing tree.

The whole import runs in one transaction; individual records that fail are
reported in ``errors`` and skipped rather than aborting the import.
"""

import time
from datetime import datetime
from pathlib import Path

from loguru import logger

from familytree.config.constants import GEDCOM_AFTER_MODIFIERS, GEDCOM_BEFORE_MODIFIERS
from familytree.database import Database
from familytree.errors import ConflictError
from familytree.models.enums import DatePrecision, MemberRole, RelationshipType, Sex, TreeRole, UnionType
from familytree.models.gedcom import (
    GedcomDate,
    GedcomFamily,
    GedcomImportOptions,
    GedcomImportResult,
    GedcomIndividual,
    GedcomParseResult,
)
from familytree.repositories import (
    AuditLogRepository,
    PersonRepository,
    RelationshipRepository,
    TreeRepository,
)
from familytree.services.access import TreeAccess, UserContext
from familytree.services.gedcom_parser import GedcomParser, merge_pointer_links
from familytree.services.name_utils import script_name_field

_SEX = {"M": Sex.MALE, "F": Sex.FEMALE}


def date_precision(value: GedcomDate | None) -> DatePrecision:
    if value is None or value.value is None:
        return DatePrecision.UNKNOWN
    if value.modifier in GEDCOM_BEFORE_MODIFIERS:
        return DatePrecision.BEFORE
    if value.modifier in GEDCOM_AFTER_MODIFIERS:
        return DatePrecision.AFTER
    if value.is_approximate:
        return DatePrecision.ABOUT
    return DatePrecision.EXACT


def person_fields(individual: GedcomIndividual, options: GedcomImportOptions) -> dict:
    """Column values for a person created from a GEDCOM individual."""
    given = individual.given_name or individual.full_name or "?"
    full = individual.full_name or given
    fields = {
        "primary_name": given,
        "family_name": individual.surname,
        "sex": _SEX.get((individual.sex or "").upper(), Sex.UNKNOWN),
        "birth_date": individual.birth_date.value if individual.birth_date else None,
        "birth_precision": date_precision(individual.birth_date),
        "birth_place": individual.birth_place,
        "death_date": individual.death_date.value if individual.death_date else None,
        "death_precision": date_precision(individual.death_date),
        "death_place": individual.death_place,
    }
    if full != "?":
        fields[script_name_field(full)] = full
    if options.import_occupations and individual.occupation:
        fields["occupation"] = individual.occupation
    if options.import_notes and individual.notes:
        fields["notes"] = individual.notes
    return fields


class GedcomImportService:
    """Create persons, unions and parent-child links from a GEDCOM file."""

    def __init__(self, db: Database, parser: GedcomParser | None = None):
        self.db = db
        self.parser = parser or GedcomParser()

    def import_bytes(
        self,
        actor: UserContext,
        data: bytes,
        options: GedcomImportOptions,
        file_name: str | None = None,
    ) -> GedcomImportResult:
        return self.import_parsed(actor, self.parser.parse_bytes(data), options, file_name)

    def import_parsed(
        self,
        actor: UserContext,
        parsed: GedcomParseResult,
        options: GedcomImportOptions,
        file_name: str | None = None,
    ) -> GedcomImportResult:
        started = time.perf_counter()
        result = GedcomImportResult(success=False, message="", warnings=list(parsed.warnings))

        if not parsed.individuals:
            result.message = "No individuals found in GEDCOM file"
            result.duration_seconds = round(time.perf_counter() - started, 3)
            return result

        added = merge_pointer_links(parsed)
        if added:
            logger.debug(f"Merged {added} FAMC/FAMS pointers into family records")

        with self.db.transaction() as conn:
            tree_id = self._resolve_tree(conn, actor, options, file_name)
            result.tree_id = tree_id

            id_map = self._import_individuals(conn, tree_id, parsed, options, result)
            self._import_families(conn, tree_id, parsed.families, id_map, result)

            AuditLogRepository(conn).record(
                actor.user_id,
                "gedcom.imported",
                "tree",
                tree_id,
                f"GEDCOM imported: {result.individuals_imported} people, "
                f"{result.families_imported} unions",
            )

        result.success = True
        result.message = (
            f"Imported {result.individuals_imported} individuals, "
            f"{result.families_imported} families and "
            f"{result.relationships_created} parent-child relationships"
        )
        result.duration_seconds = round(time.perf_counter() - started, 3)
        logger.info(f"GEDCOM import into tree {tree_id}: {result.message} ({result.duration_seconds}s)")
        if result.errors:
            logger.warning(f"GEDCOM import finished with {len(result.errors)} record errors")
        return result

    def _resolve_tree(
        self, conn, actor: UserContext, options: GedcomImportOptions, file_name: str | None
    ) -> str:
        if options.tree_id:
            TreeAccess(conn, actor).require_role(options.tree_id, TreeRole.EDITOR)
            return options.tree_id

        name = (options.tree_name or "").strip()
        if not name and file_name:
            name = Path(file_name).stem
        if not name:
            name = f"GEDCOM Import {datetime.now():%Y-%m-%d %H:%M}"

        trees = TreeRepository(conn)
        tree = trees.create(name=name, owner_id=actor.user_id, description=options.tree_description)
        trees.add_member(tree.id, actor.user_id, TreeRole.OWNER)
        logger.info(f"Created tree '{name}' ({tree.id}) for GEDCOM import")
        return tree.id

    def _import_individuals(
        self,
        conn,
        tree_id: str,
        parsed: GedcomParseResult,
        options: GedcomImportOptions,
        result: GedcomImportResult,
    ) -> dict[str, str]:
        persons = PersonRepository(conn)
        id_map: dict[str, str] = {}
        for individual in parsed.individuals:
            key = individual.id.upper()
            if key in id_map:
                result.warnings.append(f"Duplicate individual {individual.id} skipped")
                continue
            try:
                person = persons.create(tree_id, person_fields(individual, options))
            except Exception as e:
                result.errors.append(
                    f"Failed to import individual {individual.id} "
                    f"({individual.full_name or '?'}): {e}"
                )
                continue
            id_map[key] = person.id
            result.individuals_imported += 1
        return id_map

    def _import_families(
        self,
        conn,
        tree_id: str,
        families: list[GedcomFamily],
        id_map: dict[str, str],
        result: GedcomImportResult,
    ) -> None:
        relationships = RelationshipRepository(conn)
        linked = {(link.parent_id, link.child_id) for link in relationships.parent_child_in_tree(tree_id)}

        for family in families:
            # each family is all-or-nothing inside the import transaction
            conn.execute("SAVEPOINT import_family")
            added: list[tuple[str, str]] = []
            try:
                husband = id_map.get((family.husband_id or "").upper())
                wife = id_map.get((family.wife_id or "").upper())
                if husband and husband == wife:
                    result.warnings.append(f"Family {family.id}: HUSB and WIFE are the same individual")
                    wife = None

                union_created = False
                if husband or wife:
                    fields = {}
                    if family.marriage_date and family.marriage_date.value:
                        fields["start_date"] = family.marriage_date.value
                        fields["start_precision"] = date_precision(family.marriage_date)
                    if family.marriage_place:
                        fields["start_place"] = family.marriage_place
                    if family.divorce_date and family.divorce_date.value:
                        fields["end_date"] = family.divorce_date.value
                        fields["end_precision"] = date_precision(family.divorce_date)
                    union_id = relationships.create_union(tree_id, {**fields, "type": UnionType.MARRIAGE})
                    if husband:
                        relationships.add_member(union_id, husband, MemberRole.HUSBAND)
                    if wife:
                        relationships.add_member(union_id, wife, MemberRole.WIFE)
                    union_created = True

                for child_ref in family.child_ids:
                    child = id_map.get(child_ref.upper())
                    if child is None:
                        result.warnings.append(f"Family {family.id}: child {child_ref} not found")
                        continue
                    for parent in (husband, wife):
                        if parent is None or parent == child:
                            continue
                        if (parent, child) in linked or (parent, child) in added:
                            continue
                        try:
                            relationships.create_parent_child(parent, child, RelationshipType.BIOLOGICAL)
                        except ConflictError:
                            continue
                        added.append((parent, child))
            except Exception as e:
                conn.execute("ROLLBACK TO import_family")
                conn.execute("RELEASE import_family")
                result.errors.append(f"Failed to import family {family.id}: {e}")
                continue

            conn.execute("RELEASE import_family")
            linked.update(added)
            result.relationships_created += len(added)
            if union_created:
                result.families_imported += 1
