"""
GEDCOM 5.5 reader.

Reads the subset of GEDCOM a family tree needs: individuals (names, sex,
birth, death, occupation, notes, family pointers) and families (spouses,
children, marriage, divorce). Everything else is skipped without complaint.

Line grammar::

    LEVEL [@XREF@] TAG [VALUE]

Malformed lines are reported as warnings ("Line N: ...") and skipped so a
single bad line never aborts an import.
"""

import re
from datetime import date, datetime
from pathlib import Path

from loguru import logger

from familytree.config.constants import (
    GEDCOM_APPROXIMATE_MODIFIERS,
    GEDCOM_CHARSETS,
    GEDCOM_DATE_MODIFIERS,
    GEDCOM_ENCODING_SCAN_LINES,
    GEDCOM_MONTHS,
)
from familytree.models.gedcom import GedcomDate, GedcomFamily, GedcomIndividual, GedcomParseResult

_CHAR_LINE = re.compile(r"^\s*1\s+CHAR\s+(\S+)", re.IGNORECASE)
_YEAR = re.compile(r"\b(\d{4})\b")
_NUMERIC_FORMATS = ("%d/%m/%Y", "%m/%d/%Y", "%Y-%m-%d")


def detect_encoding(data: bytes) -> str:
    """Pick a codec from the BOM or the header's ``1 CHAR`` line.

    Defaults to UTF-8 when nothing is declared or the charset is unknown.
    """
    if data.startswith(b"\xef\xbb\xbf"):
        return "utf-8-sig"
    if data.startswith((b"\xff\xfe", b"\xfe\xff")):
        return "utf-16"

    head = data[:16384].decode("latin-1")
    for line in head.splitlines()[:GEDCOM_ENCODING_SCAN_LINES]:
        match = _CHAR_LINE.match(line)
        if match:
            charset = match.group(1).upper()
            encoding = GEDCOM_CHARSETS.get(charset)
            if encoding is None:
                logger.debug(f"Unsupported GEDCOM charset {charset}, falling back to UTF-8")
                return "utf-8"
            return encoding
    return "utf-8"


def parse_gedcom_date(text: str | None) -> GedcomDate | None:
    """Parse a GEDCOM date value such as ``ABT 12 MAR 1901`` or ``BET 1900 AND 1905``.

    Ranges keep their first bound. Values no format matches fall back to the
    first four-digit year (January 1st, marked approximate).
    """
    if not text or not text.strip():
        return None

    original = text.strip()
    tokens = original.upper().split()
    result = GedcomDate(original=original)

    if tokens[0] in GEDCOM_DATE_MODIFIERS:
        result.modifier = tokens[0]
        result.is_approximate = tokens[0] in GEDCOM_APPROXIMATE_MODIFIERS
        result.is_range = tokens[0] in ("BET", "FROM") and len(tokens) > 2
        tokens = tokens[1:]

    bound: list[str] = []
    for token in tokens:
        if token in ("AND", "TO"):
            break
        bound.append(token)

    result.value = _parse_date_tokens(bound)
    if result.value is None:
        match = _YEAR.search(original)
        if match and int(match.group(1)) > 0:
            result.value = date(int(match.group(1)), 1, 1)
            result.is_approximate = True
    return result


def _parse_date_tokens(tokens: list[str]) -> date | None:
    try:
        if len(tokens) == 3 and tokens[1] in GEDCOM_MONTHS:
            return date(int(tokens[2]), GEDCOM_MONTHS[tokens[1]], int(tokens[0]))
        if len(tokens) == 2 and tokens[0] in GEDCOM_MONTHS:
            return date(int(tokens[1]), GEDCOM_MONTHS[tokens[0]], 1)
        if len(tokens) == 1 and tokens[0].isdigit() and len(tokens[0]) == 4:
            return date(int(tokens[0]), 1, 1)
    except ValueError:
        return None

    if len(tokens) == 1:
        for fmt in _NUMERIC_FORMATS:
            try:
                return datetime.strptime(tokens[0], fmt).date()
            except ValueError:
                continue
    return None


def parse_name(value: str) -> tuple[str | None, str | None, str | None]:
    """Split a NAME value into (full name, given name, surname).

    The surname is the part between slashes (``John /Smith/``); without
    slashes the last word is taken as the surname.
    """
    value = value.strip()
    if not value:
        return None, None, None

    if "/" in value:
        before, _, remainder = value.partition("/")
        surname, _, after = remainder.partition("/")
        given = before.strip() or None
        surname = surname.strip() or None
        full = " ".join(part for part in (before.strip(), surname or "", after.strip()) if part)
        return full or None, given, surname

    words = value.split()
    if len(words) == 1:
        return value, value, None
    return " ".join(words), " ".join(words[:-1]), words[-1]


def _pointer(value: str) -> str:
    return value.strip().strip("@")


def merge_pointer_links(result: GedcomParseResult) -> int:
    """Fill family records from individuals' FAMS/FAMC pointers.

    Some exporters record links only on the individual side. Spouses are
    placed by sex (M -> husband, F -> wife, otherwise the free slot).

    Returns:
        Number of links added to family records
    """
    families = {family.id.upper(): family for family in result.families}
    added = 0
    for person in result.individuals:
        for family_id in person.family_child_ids:
            family = families.get(family_id.upper())
            if family is not None and not any(c.upper() == person.id.upper() for c in family.child_ids):
                family.child_ids.append(person.id)
                added += 1
        for family_id in person.family_spouse_ids:
            family = families.get(family_id.upper())
            if family is None:
                continue
            spouse_ids = {s.upper() for s in (family.husband_id, family.wife_id) if s}
            if person.id.upper() in spouse_ids:
                continue
            if person.sex == "M" and not family.husband_id:
                family.husband_id = person.id
            elif person.sex == "F" and not family.wife_id:
                family.wife_id = person.id
            elif not family.husband_id and person.sex != "F":
                family.husband_id = person.id
            elif not family.wife_id and person.sex != "M":
                family.wife_id = person.id
            else:
                continue
            added += 1
    return added


class GedcomParser:
    """Parse GEDCOM files into individuals and families."""

    def parse_file(self, path: str | Path, encoding: str | None = None) -> GedcomParseResult:
        return self.parse_bytes(Path(path).read_bytes(), encoding)

    def parse_bytes(self, data: bytes, encoding: str | None = None) -> GedcomParseResult:
        encoding = encoding or detect_encoding(data)
        text = data.decode(encoding, errors="replace")
        result = self.parse_text(text)
        result.encoding = "utf-8" if encoding == "utf-8-sig" else encoding
        return result

    def parse_text(self, text: str) -> GedcomParseResult:
        result = GedcomParseResult()
        text = text.lstrip("\ufeff")

        individual: GedcomIndividual | None = None
        family: GedcomFamily | None = None
        level1_tag: str | None = None
        last_text: tuple[object, str] | None = None
        previous_tail = ""

        lines = text.splitlines()
        result.line_count = len(lines)

        for line_number, raw in enumerate(lines, start=1):
            # trailing spaces can be significant before a CONC line
            line = raw.lstrip()
            if not line.strip():
                continue

            first, _, rest = line.partition(" ")
            try:
                level = int(first)
            except ValueError:
                result.warnings.append(f"Line {line_number}: Invalid format - cannot parse level")
                continue

            rest = rest.lstrip()
            xref = None
            if rest.startswith("@"):
                end = rest.find("@", 1)
                if end > 0:
                    xref = rest[1:end]
                    rest = rest[end + 1:].lstrip()
            tag, _, raw_value = rest.partition(" ")
            tag = tag.upper()
            value = raw_value.strip()
            tail = raw_value[len(raw_value.rstrip()):]
            joiner, previous_tail = previous_tail, tail
            if not tag:
                result.warnings.append(f"Line {line_number}: Missing tag")
                continue

            if tag in ("CONC", "CONT"):
                if last_text is not None:
                    target, attribute = last_text
                    current = getattr(target, attribute) or ""
                    if tag == "CONT":
                        joiner = "\n"
                    setattr(target, attribute, f"{current}{joiner}{raw_value.rstrip()}")
                continue

            if level == 0:
                individual = family = None
                level1_tag = None
                last_text = None
                if tag == "INDI" and xref:
                    individual = GedcomIndividual(id=xref)
                    result.individuals.append(individual)
                elif tag == "FAM" and xref:
                    family = GedcomFamily(id=xref)
                    result.families.append(family)
                continue

            if level == 1:
                level1_tag = tag
                last_text = None
                if individual is not None:
                    last_text = self._individual_level1(individual, tag, value)
                elif family is not None:
                    self._family_level1(family, tag, value)
                continue

            if level == 2:
                last_text = None
                if individual is not None:
                    last_text = self._individual_level2(individual, level1_tag, tag, value)
                elif family is not None:
                    self._family_level2(family, level1_tag, tag, value)
            else:
                last_text = None

        logger.debug(
            f"Parsed GEDCOM: {len(result.individuals)} individuals, "
            f"{len(result.families)} families, {len(result.warnings)} warnings"
        )
        return result

    @staticmethod
    def _individual_level1(person: GedcomIndividual, tag: str, value: str) -> tuple[object, str] | None:
        if tag == "NAME":
            if person.full_name is None:
                person.full_name, person.given_name, person.surname = parse_name(value)
        elif tag == "SEX":
            person.sex = value.strip()[:1].upper() or None
        elif tag == "OCCU":
            person.occupation = value.strip() or None
            return (person, "occupation")
        elif tag == "NOTE" and not value.strip().startswith("@"):
            person.notes = f"{person.notes}\n{value}" if person.notes else value
            return (person, "notes")
        elif tag == "FAMS":
            person.family_spouse_ids.append(_pointer(value))
        elif tag == "FAMC":
            person.family_child_ids.append(_pointer(value))
        return None

    @staticmethod
    def _individual_level2(
        person: GedcomIndividual, parent_tag: str | None, tag: str, value: str
    ) -> tuple[object, str] | None:
        if parent_tag == "NAME":
            if tag == "GIVN" and value.strip():
                person.given_name = value.strip()
            elif tag == "SURN" and value.strip():
                person.surname = value.strip()
        elif parent_tag == "BIRT":
            if tag == "DATE":
                person.birth_date = parse_gedcom_date(value)
            elif tag == "PLAC":
                person.birth_place = value.strip() or None
                return (person, "birth_place")
        elif parent_tag == "DEAT":
            if tag == "DATE":
                person.death_date = parse_gedcom_date(value)
            elif tag == "PLAC":
                person.death_place = value.strip() or None
                return (person, "death_place")
        return None

    @staticmethod
    def _family_level1(family: GedcomFamily, tag: str, value: str) -> None:
        if tag == "HUSB":
            family.husband_id = _pointer(value)
        elif tag == "WIFE":
            family.wife_id = _pointer(value)
        elif tag == "CHIL":
            family.child_ids.append(_pointer(value))

    @staticmethod
    def _family_level2(family: GedcomFamily, parent_tag: str | None, tag: str, value: str) -> None:
        if parent_tag == "MARR":
            if tag == "DATE":
                family.marriage_date = parse_gedcom_date(value)
            elif tag == "PLAC":
                family.marriage_place = value.strip() or None
        elif parent_tag == "DIV" and tag == "DATE":
            family.divorce_date = parse_gedcom_date(value)
