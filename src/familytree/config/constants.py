"""Constants for relationship naming, GEDCOM exchange, and review thresholds."""


# Ordinal words used in cousin descriptions ("first cousin", "second cousin", ...)
ORDINAL_WORDS: dict[int, str] = {
    1: "first",
    2: "second",
    3: "third",
    4: "fourth",
    5: "fifth",
    6: "sixth",
    7: "seventh",
    8: "eighth",
}

# Gendered relationship terms: (base term, sex) -> word. None means unknown sex.
GENDERED_TERMS: dict[str, tuple[str, str, str]] = {
    # base: (male, female, neutral)
    "parent": ("father", "mother", "parent"),
    "child": ("son", "daughter", "child"),
    "grandparent": ("grandfather", "grandmother", "grandparent"),
    "grandchild": ("grandson", "granddaughter", "grandchild"),
    "sibling": ("brother", "sister", "sibling"),
    "spouse": ("husband", "wife", "spouse"),
    "pibling": ("uncle", "aunt", "aunt/uncle"),
    "nibling": ("nephew", "niece", "niece/nephew"),
    "parentInLaw": ("father-in-law", "mother-in-law", "parent-in-law"),
    "childInLaw": ("son-in-law", "daughter-in-law", "child-in-law"),
    "siblingInLaw": ("brother-in-law", "sister-in-law", "sibling-in-law"),
}

# Keys of the per-hop relationship labels in a path
KEY_FATHER_OF = "relationship.fatherOf"
KEY_MOTHER_OF = "relationship.motherOf"
KEY_PARENT_OF = "relationship.parentOf"
KEY_SON_OF = "relationship.sonOf"
KEY_DAUGHTER_OF = "relationship.daughterOf"
KEY_CHILD_OF = "relationship.childOf"
KEY_SPOUSE_OF = "relationship.spouseOf"
KEY_RELATED_TO = "relationship.relatedTo"
KEY_SAME_PERSON = "relationship.samePerson"
KEY_NO_RELATION = "relationship.noRelationFound"
KEY_RELATED_BY_MARRIAGE = "relationship.relatedByMarriage"

# GEDCOM date handling
GEDCOM_MONTHS: dict[str, int] = {
    "JAN": 1, "FEB": 2, "MAR": 3, "APR": 4, "MAY": 5, "JUN": 6,
    "JUL": 7, "AUG": 8, "SEP": 9, "OCT": 10, "NOV": 11, "DEC": 12,
}
GEDCOM_DATE_MODIFIERS: tuple[str, ...] = (
    "ABOUT", "ABT", "EST", "CAL", "BEFORE", "BEF", "AFTER", "AFT", "BET", "FROM", "TO",
)
GEDCOM_APPROXIMATE_MODIFIERS: frozenset[str] = frozenset({"ABT", "ABOUT", "EST", "CAL"})
GEDCOM_BEFORE_MODIFIERS: frozenset[str] = frozenset({"BEF", "BEFORE"})
GEDCOM_AFTER_MODIFIERS: frozenset[str] = frozenset({"AFT", "AFTER"})

# "1 CHAR <name>" header value -> Python codec
GEDCOM_CHARSETS: dict[str, str] = {
    "UTF-8": "utf-8",
    "UTF8": "utf-8",
    "ANSI": "cp1252",
    "ASCII": "ascii",
    "UNICODE": "utf-16",
}
GEDCOM_ENCODING_SCAN_LINES = 50

# Quality issue lists never report more ids than this
MAX_AFFECTED_IDS = 20

# Prediction confidence levels
PREDICTION_LEVEL_HIGH = 85.0
PREDICTION_LEVEL_MEDIUM = 60.0
PREDICTION_CONFIDENCE_CAP = 99.0

# Tree views
MAX_ROOT_PERSONS = 50
DEFAULT_TREE_VIEW_GENERATIONS = 4
