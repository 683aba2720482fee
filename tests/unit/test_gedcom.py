"""Tests for GEDCOM parsing, preview, import and export."""

from datetime import date
from unittest.mock import patch

import pytest

from familytree.errors import PermissionDeniedError
from familytree.models.enums import DatePrecision, MemberRole, Sex
from familytree.models.gedcom import GedcomImportOptions
from familytree.repositories import PersonRepository, RelationshipRepository
from familytree.services.gedcom_export import GedcomExportService, format_gedcom_date, text_lines
from familytree.services.gedcom_import import GedcomImportService
from familytree.services.gedcom_parser import (
    GedcomParser,
    detect_encoding,
    merge_pointer_links,
    parse_gedcom_date,
    parse_name,
)
from familytree.services.gedcom_preview import GedcomPreviewService
from familytree.services.relationship_service import RelationshipService

SMITH_FAMILY = """0 HEAD
1 CHAR UTF-8
0 @I1@ INDI
1 NAME John /Smith/
1 SEX M
1 BIRT
2 DATE 12 MAR 1901
2 PLAC Aswan
1 OCCU Farmer
1 NOTE First line
2 CONT second line
1 FAMS @F1@
0 @I2@ INDI
1 NAME Mary /Jones/
1 SEX F
1 BIRT
2 DATE ABT 1905
1 FAMS @F1@
0 @I3@ INDI
1 NAME Peter /Smith/
1 SEX M
1 FAMC @F1@
0 @I4@ INDI
1 NAME Loner
0 @F1@ FAM
1 HUSB @I1@
1 WIFE @I2@
1 CHIL @I3@
1 MARR
2 DATE 1925
0 TRLR
"""


def without_pointers(text: str) -> str:
    return "\n".join(line for line in text.splitlines() if " FAMS " not in line and " FAMC " not in line)


@pytest.fixture
def parser():
    return GedcomParser()


class TestDateParsing:
    """Test GEDCOM date values."""

    def test_exact_date(self):
        parsed = parse_gedcom_date("12 MAR 1901")

        assert parsed.value == date(1901, 3, 12)
        assert not parsed.is_approximate

    def test_month_and_year(self):
        assert parse_gedcom_date("JUN 1950").value == date(1950, 6, 1)

    def test_about_year(self):
        parsed = parse_gedcom_date("ABT 1905")

        assert parsed.value == date(1905, 1, 1)
        assert parsed.modifier == "ABT"
        assert parsed.is_approximate

    def test_range_keeps_first_bound(self):
        parsed = parse_gedcom_date("BET 1900 AND 1905")

        assert parsed.value == date(1900, 1, 1)
        assert parsed.is_range

    def test_numeric_format(self):
        assert parse_gedcom_date("1950-07-04").value == date(1950, 7, 4)

    def test_free_text_falls_back_to_year(self):
        parsed = parse_gedcom_date("sometime in 1888 probably")

        assert parsed.value == date(1888, 1, 1)
        assert parsed.is_approximate
        assert parsed.original == "sometime in 1888 probably"

    def test_empty(self):
        assert parse_gedcom_date("  ") is None


class TestNameParsing:
    """Test NAME value splitting."""

    def test_slashed_surname(self):
        assert parse_name("John /Smith/") == ("John Smith", "John", "Smith")

    def test_last_word_is_surname_without_slashes(self):
        assert parse_name("Mohamed Ahmed Ali") == ("Mohamed Ahmed Ali", "Mohamed Ahmed", "Ali")

    def test_single_word(self):
        assert parse_name("Loner") == ("Loner", "Loner", None)


class TestEncodingDetection:
    """Test codec selection."""

    def test_utf8_bom(self):
        assert detect_encoding(b"\xef\xbb\xbf0 HEAD\n") == "utf-8-sig"

    def test_ansi_header(self):
        assert detect_encoding(b"0 HEAD\n1 CHAR ANSI\n") == "cp1252"

    def test_unknown_charset_falls_back_to_utf8(self):
        assert detect_encoding(b"0 HEAD\n1 CHAR ANSEL\n") == "utf-8"

    def test_cp1252_bytes_decoded(self, parser):
        data = b"0 HEAD\n1 CHAR ANSI\n0 @I1@ INDI\n1 NAME Jos\xe9 /Garc\xeda/\n0 TRLR\n"

        result = parser.parse_bytes(data)

        assert result.encoding == "cp1252"
        assert result.individuals[0].full_name == "José García"


class TestGedcomParser:
    """Test record parsing."""

    def test_individuals_and_families(self, parser):
        result = parser.parse_text(SMITH_FAMILY)

        assert len(result.individuals) == 4
        assert len(result.families) == 1
        john = result.individuals[0]
        assert john.given_name == "John"
        assert john.surname == "Smith"
        assert john.sex == "M"
        assert john.birth_place == "Aswan"
        assert john.occupation == "Farmer"
        assert john.family_spouse_ids == ["F1"]
        family = result.families[0]
        assert (family.husband_id, family.wife_id, family.child_ids) == ("I1", "I2", ["I3"])
        assert family.marriage_date.value == date(1925, 1, 1)

    def test_continuation_lines(self, parser):
        result = parser.parse_text(SMITH_FAMILY)

        assert result.individuals[0].notes == "First line\nsecond line"

    def test_space_before_conc_kept(self, parser):
        text = "0 @I1@ INDI\n1 NOTE Born in the village \n2 CONC of Dabod\n2 CONC ; farmer\n0 TRLR\n"

        result = parser.parse_text(text)

        assert result.individuals[0].notes == "Born in the village of Dabod; farmer"

    def test_split_note_reads_back(self, parser):
        note = "word " * 60
        lines = ["0 @I1@ INDI", *text_lines(1, "NOTE", note), "0 TRLR"]

        result = parser.parse_text("\n".join(lines))

        assert result.individuals[0].notes == note.rstrip()

    def test_bad_line_is_warning(self, parser):
        result = parser.parse_text("0 HEAD\nnot a gedcom line\n0 @I1@ INDI\n1 NAME A /B/\n0 TRLR\n")

        assert len(result.individuals) == 1
        assert result.warnings == ["Line 2: Invalid format - cannot parse level"]

    def test_merge_pointer_links(self, parser):
        """Test pointers on individuals fill empty family records."""
        text = "0 @I1@ INDI\n1 SEX M\n1 FAMS @F1@\n0 @I2@ INDI\n1 FAMC @F1@\n0 @F1@ FAM\n"
        result = parser.parse_text(text)

        assert merge_pointer_links(result) == 2
        assert result.families[0].husband_id == "I1"
        assert result.families[0].child_ids == ["I2"]


class TestGedcomPreview:
    """Test file analysis before import."""

    @pytest.fixture
    def previewer(self, config):
        return GedcomPreviewService(config=config)

    def test_statistics(self, previewer):
        preview = previewer.preview_bytes(SMITH_FAMILY.encode("utf-8"), "smith.ged")

        stats = preview.statistics
        assert stats.total_individuals == 4
        assert stats.total_families == 1
        assert stats.families_with_both_spouses == 1
        assert stats.orphaned_count == 1
        assert stats.linking_method == "FAMC_FAMS"
        assert preview.family_groups[0].husband.name == "John Smith"

    def test_orphans_reported(self, previewer):
        preview = previewer.preview_bytes(SMITH_FAMILY.encode("utf-8"))

        orphan_issues = [i for i in preview.quality_issues if i.message == "Individuals not linked to any family"]
        assert orphan_issues[0].affected_ids == ["I4"]
        assert orphan_issues[0].severity == "Info"

    def test_family_only_links(self, previewer):
        preview = previewer.preview_bytes(without_pointers(SMITH_FAMILY).encode("utf-8"))

        assert preview.statistics.linking_method == "FAM_ONLY"
        assert preview.statistics.individuals_in_families == 3

    def test_missing_member(self, previewer):
        text = SMITH_FAMILY.replace("1 CHIL @I3@", "1 CHIL @I3@\n1 CHIL @I9@")

        preview = previewer.preview_bytes(text.encode("utf-8"))

        assert preview.family_groups[0].issues == ["Child I9 not found in individuals"]
        assert any(i.severity == "Error" and i.category == "Linkage" for i in preview.quality_issues)

    def test_preview_limits(self, previewer, config):
        config.gedcom_preview_max_individuals = 2

        preview = previewer.preview_bytes(SMITH_FAMILY.encode("utf-8"))

        assert len(preview.individuals) == 2
        assert preview.individuals_truncated


class TestGedcomImport:
    """Test importing into new and existing trees."""

    @pytest.fixture
    def importer(self, db):
        return GedcomImportService(db)

    def test_import_new_tree(self, importer, db, owner):
        result = importer.import_bytes(owner, SMITH_FAMILY.encode("utf-8"), GedcomImportOptions(), "smith.ged")

        assert result.success
        assert result.individuals_imported == 4
        assert result.families_imported == 1
        assert result.relationships_created == 2
        with db.connection() as conn:
            tree = conn.execute("SELECT * FROM trees WHERE id = ?", (result.tree_id,)).fetchone()
            persons = {p.primary_name: p for p in PersonRepository(conn).list_in_tree(result.tree_id)}
            unions = RelationshipRepository(conn).list_unions(result.tree_id)
        assert tree["name"] == "smith"
        john = persons["John"]
        assert john.family_name == "Smith"
        assert john.name_english == "John Smith"
        assert john.sex == Sex.MALE
        assert john.birth_date == date(1901, 3, 12)
        assert john.birth_precision == DatePrecision.EXACT
        assert john.occupation == "Farmer"
        assert persons["Mary"].birth_precision == DatePrecision.ABOUT
        assert unions[0].start_date == date(1925, 1, 1)
        assert {m.role for m in unions[0].members} == {MemberRole.HUSBAND, MemberRole.WIFE}

    def test_import_family_only_links(self, importer, owner):
        data = without_pointers(SMITH_FAMILY).encode("utf-8")

        result = importer.import_bytes(owner, data, GedcomImportOptions(tree_name="Smiths"))

        assert result.relationships_created == 2

    def test_skip_occupations_and_notes(self, importer, db, owner):
        options = GedcomImportOptions(import_occupations=False, import_notes=False)

        result = importer.import_bytes(owner, SMITH_FAMILY.encode("utf-8"), options)

        with db.connection() as conn:
            john = next(p for p in PersonRepository(conn).list_in_tree(result.tree_id) if p.primary_name == "John")
        assert john.occupation is None
        assert john.notes is None

    def test_import_into_existing_tree(self, importer, owner, tree, person_factory):
        person_factory("Existing")

        result = importer.import_bytes(owner, SMITH_FAMILY.encode("utf-8"), GedcomImportOptions(tree_id=tree.id))

        assert result.tree_id == tree.id
        assert result.individuals_imported == 4

    def test_existing_tree_requires_editor(self, importer, outsider, tree):
        with pytest.raises(PermissionDeniedError):
            importer.import_bytes(outsider, SMITH_FAMILY.encode("utf-8"), GedcomImportOptions(tree_id=tree.id))

    def test_no_individuals(self, importer, owner):
        result = importer.import_bytes(owner, b"0 HEAD\n0 TRLR\n", GedcomImportOptions())

        assert not result.success
        assert result.message == "No individuals found in GEDCOM file"
        assert result.tree_id is None

    def test_same_spouse_twice(self, importer, db, owner):
        data = (
            "0 HEAD\n0 @I1@ INDI\n1 NAME Ali /Hassan/\n1 SEX M\n0 @I2@ INDI\n1 NAME Omar /Ali/\n"
            "0 @F1@ FAM\n1 HUSB @I1@\n1 WIFE @I1@\n1 CHIL @I2@\n0 TRLR\n"
        ).encode("utf-8")

        result = importer.import_bytes(owner, data, GedcomImportOptions())

        assert result.errors == []
        assert "Family F1: HUSB and WIFE are the same individual" in result.warnings
        assert result.families_imported == 1
        assert result.relationships_created == 1
        with db.connection() as conn:
            unions = RelationshipRepository(conn).list_unions(result.tree_id)
        assert [m.role for m in unions[0].members] == [MemberRole.HUSBAND]

    def test_failed_family_leaves_nothing_behind(self, importer, db, owner):
        with patch.object(RelationshipRepository, "create_parent_child", side_effect=RuntimeError("disk full")):
            result = importer.import_bytes(owner, SMITH_FAMILY.encode("utf-8"), GedcomImportOptions())

        assert result.errors == ["Failed to import family F1: disk full"]
        assert result.families_imported == 0
        assert result.individuals_imported == 4
        with db.connection() as conn:
            relationships = RelationshipRepository(conn)
            assert relationships.list_unions(result.tree_id) == []
            assert relationships.parent_child_in_tree(result.tree_id) == []


class TestGedcomExport:
    """Test writing trees as GEDCOM."""

    def test_format_date(self):
        assert format_gedcom_date(date(1901, 3, 12)) == "12 MAR 1901"
        assert format_gedcom_date(date(1905, 1, 1), DatePrecision.ABOUT) == "ABT 1 JAN 1905"

    def test_long_text_split(self):
        lines = text_lines(1, "NOTE", "a" * 250 + "\nnext")

        assert lines[0] == "1 NOTE " + "a" * 200
        assert lines[1] == "2 CONC " + "a" * 50
        assert lines[2] == "2 CONT next"

    def test_export_imported_tree(self, db, owner, parser):
        imported = GedcomImportService(db).import_bytes(owner, SMITH_FAMILY.encode("utf-8"), GedcomImportOptions())

        content = GedcomExportService(db).export_tree(owner, imported.tree_id)

        assert content.startswith("0 HEAD\n")
        assert content.endswith("0 TRLR\n")
        assert "1 CHAR UTF-8" in content
        assert "1 NAME John /Smith/" in content
        assert "2 DATE ABT 1 JAN 1905" in content
        reparsed = parser.parse_text(content)
        assert len(reparsed.individuals) == 4
        assert len(reparsed.families) == 1
        names = {p.id: p.full_name for p in reparsed.individuals}
        family = reparsed.families[0]
        assert names[family.husband_id] == "John Smith"
        assert [names[c] for c in family.child_ids] == ["Peter Smith"]

    def test_parents_without_union_get_family(self, db, owner, tree, person_factory, parser):
        mother = person_factory("Amina", sex=Sex.FEMALE)
        child = person_factory("Ali", sex=Sex.MALE)
        RelationshipService(db).add_parent(owner, child.id, mother.id)

        reparsed = parser.parse_text(GedcomExportService(db).export_tree(owner, tree.id))

        family = reparsed.families[0]
        names = {p.id: p.given_name for p in reparsed.individuals}
        assert family.husband_id is None
        assert names[family.wife_id] == "Amina"
        assert [names[c] for c in family.child_ids] == ["Ali"]

    def test_private_tree_not_exported_to_outsider(self, db, outsider, tree):
        with pytest.raises(PermissionDeniedError):
            GedcomExportService(db).export_tree(outsider, tree.id)
