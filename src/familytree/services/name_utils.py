"""Name helpers: script detection and Arabic-aware normalisation."""

from familytree.models.person import Person

ARABIC_RANGE = (0x0600, 0x06FF)
COPTIC_RANGE = (0x2C80, 0x2CFF)

_ARABIC_FOLDS = str.maketrans({"أ": "ا", "إ": "ا", "آ": "ا", "ة": "ه", "ى": "ي"})


def detect_script(text: str | None) -> str:
    """Return ``"arabic"``, ``"nobiin"`` or ``"english"`` for the text's script.

    Nobiin is written in the Old Nubian (Coptic block) alphabet; anything
    that is neither Arabic nor Coptic is treated as Latin/English.
    """
    if not text:
        return "english"
    for char in text:
        code = ord(char)
        if ARABIC_RANGE[0] <= code <= ARABIC_RANGE[1]:
            return "arabic"
        if COPTIC_RANGE[0] <= code <= COPTIC_RANGE[1]:
            return "nobiin"
    return "english"


def script_name_field(text: str | None) -> str:
    """Person column that should hold a name written in this script."""
    return {
        "arabic": "name_arabic",
        "nobiin": "name_nobiin",
        "english": "name_english",
    }[detect_script(text)]


def normalize_name(text: str | None) -> str:
    """Fold Arabic letter variants and case so spellings compare equal."""
    if not text:
        return ""
    return " ".join(text.translate(_ARABIC_FOLDS).lower().split())


def given_name(person: Person) -> str | None:
    """First token of the person's comparison name."""
    name = person.comparison_name
    if not name:
        return None
    return name.split()[0]


def birth_year(person: Person) -> int | None:
    return person.birth_date.year if person.birth_date else None
