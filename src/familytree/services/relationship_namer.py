"""
Name the relationship described by a path.

Walking the path from person 1, every step up to a parent adds a generation
on person 1's side (``gen1``) until the first step down; every step down
adds a generation on person 2's side (``gen2``). A step up after the turning
point cancels a step down. Spouse steps are counted separately and switch
the naming to in-law terms.

Examples (person 2 relative to person 1)::

    up                      -> father            gen1=1 gen2=0
    up, up, down, down      -> first cousin      gen1=2 gen2=2
    spouse, up              -> mother-in-law     gen1=1 gen2=0 (with spouse)
"""

from dataclasses import dataclass

from familytree.config.constants import (
    GENDERED_TERMS,
    KEY_RELATED_BY_MARRIAGE,
    KEY_RELATED_TO,
    KEY_SAME_PERSON,
    ORDINAL_WORDS,
)
from familytree.models.enums import Sex
from familytree.models.tree_view import PathEdge, PathNode

# Term bases whose i18n key differs from the base name for unknown sex
_NEUTRAL_KEYS = {
    "pibling": "auntOrUncle",
    "nibling": "nieceOrNephew",
}
_GENDERED_KEYS = {
    "parent": ("father", "mother"),
    "child": ("son", "daughter"),
    "grandparent": ("grandfather", "grandmother"),
    "grandchild": ("grandson", "granddaughter"),
    "sibling": ("brother", "sister"),
    "spouse": ("husband", "wife"),
    "pibling": ("uncle", "aunt"),
    "nibling": ("nephew", "niece"),
    "parentInLaw": ("fatherInLaw", "motherInLaw"),
    "childInLaw": ("sonInLaw", "daughterInLaw"),
    "siblingInLaw": ("brotherInLaw", "sisterInLaw"),
}


@dataclass(frozen=True)
class RelationshipName:
    key: str
    description: str


@dataclass(frozen=True)
class PathAnalysis:
    gen1: int
    gen2: int
    has_spouse: bool
    only_spouse: bool
    descended_then_ascended: bool
    length: int

    @property
    def is_direct_line(self) -> bool:
        return (self.gen1 == 0 or self.gen2 == 0) and not self.has_spouse


def gendered_term(base: str, sex: Sex) -> tuple[str, str]:
    """Return ``(i18n key, English word)`` for a term base and sex."""
    words = GENDERED_TERMS.get(base)
    if words is None:
        return f"relationship.{base}", base
    male, female, neutral = words
    if sex == Sex.MALE:
        return f"relationship.{_GENDERED_KEYS[base][0]}", male
    if sex == Sex.FEMALE:
        return f"relationship.{_GENDERED_KEYS[base][1]}", female
    return f"relationship.{_NEUTRAL_KEYS.get(base, base)}", neutral


def ordinal(n: int) -> str:
    return ORDINAL_WORDS.get(n, f"{n}th")


def great_prefix(count: int) -> str:
    if count <= 0:
        return ""
    if count == 1:
        return "great-"
    if count == 2:
        return "great-great-"
    return f"{count}x great-"


def analyze_path(edges: list[PathEdge]) -> PathAnalysis:
    """Count generations on each side of the path's turning point.

    Args:
        edges: What each next person is to the previous one, in path order
    """
    gen1 = gen2 = 0
    found_pivot = False
    spouse_edges = 0
    descended = False
    descended_then_ascended = False

    for edge in edges:
        if edge == PathEdge.SPOUSE:
            spouse_edges += 1
            continue
        if edge == PathEdge.PARENT:
            if descended and not found_pivot:
                descended_then_ascended = True
            if not found_pivot:
                gen1 += 1
            else:
                gen2 -= 1
        elif edge == PathEdge.CHILD:
            descended = True
            if not found_pivot and gen1 > 0:
                found_pivot = True
            gen2 += 1

    return PathAnalysis(
        gen1=gen1,
        gen2=gen2,
        has_spouse=spouse_edges > 0,
        only_spouse=spouse_edges == len(edges),
        descended_then_ascended=descended_then_ascended,
        length=len(edges) + 1,
    )


class RelationshipNamer:
    """Turn a path of persons into an i18n key and an English sentence."""

    def name(self, nodes: list[PathNode]) -> RelationshipName:
        if len(nodes) <= 1:
            return RelationshipName(KEY_SAME_PERSON, "Same person")

        first, last = nodes[0], nodes[-1]
        name1, name2 = first.name, last.name
        edges = [node.edge_to_next for node in nodes[:-1]]
        analysis = analyze_path(edges)

        if len(nodes) == 2 and edges[0] == PathEdge.SPOUSE:
            return RelationshipName("relationship.spouse", f"{name1} is married to {name2}")

        if analysis.only_spouse:
            return RelationshipName(KEY_RELATED_BY_MARRIAGE, f"{name2} is related to {name1} by marriage")

        # Down to a child and back up to its other parent: co-parents without a union
        if analysis.descended_then_ascended and not analysis.has_spouse:
            return RelationshipName(KEY_RELATED_TO, f"{name2} is related to {name1}")

        if analysis.has_spouse:
            return self._in_law(analysis, last.sex, name1, name2)
        if analysis.is_direct_line:
            return self._direct_line(analysis, last.sex, name1, name2)
        if analysis.gen1 == 1 and analysis.gen2 == 1:
            key, term = gendered_term("sibling", last.sex)
            return RelationshipName(key, f"{name2} is {name1}'s {term}")
        return self._collateral(analysis, last.sex, name1, name2)

    @staticmethod
    def _direct_line(analysis: PathAnalysis, sex: Sex, name1: str, name2: str) -> RelationshipName:
        generations = max(analysis.gen1, analysis.gen2)
        # gen1 == 0 means person 2 is a descendant of person 1
        single, double, multi = (
            ("child", "grandchild", "Grandchild") if analysis.gen1 == 0
            else ("parent", "grandparent", "Grandparent")
        )
        if generations == 1:
            key, term = gendered_term(single, sex)
        elif generations == 2:
            key, term = gendered_term(double, sex)
        elif generations == 3:
            key = f"relationship.great{multi}"
            term = f"great-{gendered_term(double, sex)[1]}"
        else:
            key = f"relationship.great{multi}{generations - 2}"
            term = f"{generations - 2}x great-{gendered_term(double, sex)[1]}"
        return RelationshipName(key, f"{name2} is {name1}'s {term}")

    @staticmethod
    def _collateral(analysis: PathAnalysis, sex: Sex, name1: str, name2: str) -> RelationshipName:
        gen1, gen2 = analysis.gen1, analysis.gen2

        # Up to a grandparent (or higher), then down one: a parent's sibling
        if gen1 >= 2 and gen2 == 1:
            greats = gen1 - 2
            key, term = gendered_term("pibling", sex)
            if greats:
                key = f"relationship.greatPibling{greats}"
            return RelationshipName(key, f"{name2} is {name1}'s {great_prefix(greats)}{term}")

        # Up one to a parent, then down two or more: a sibling's descendant
        if gen1 == 1 and gen2 >= 2:
            greats = gen2 - 2
            key, term = gendered_term("nibling", sex)
            if greats:
                key = f"relationship.greatNibling{greats}"
            return RelationshipName(key, f"{name2} is {name1}'s {great_prefix(greats)}{term}")

        degree = min(gen1, gen2) - 1
        removed = abs(gen1 - gen2)
        removed_key = f"{removed}xRemoved" if removed else ""
        removed_text = f", {removed} time{'s' if removed > 1 else ''} removed" if removed else ""
        return RelationshipName(
            f"relationship.cousin{degree}{removed_key}",
            f"{name2} is {name1}'s {ordinal(degree)} cousin{removed_text}",
        )

    @staticmethod
    def _in_law(analysis: PathAnalysis, sex: Sex, name1: str, name2: str) -> RelationshipName:
        gen1, gen2 = analysis.gen1, analysis.gen2
        # Spouse's parent: one step up. Child's spouse: one step down.
        if gen1 == 1 and gen2 == 0:
            base = "parentInLaw"
        elif gen1 == 0 and gen2 == 1:
            base = "childInLaw"
        elif gen1 in (0, 1) and gen2 in (0, 1) and analysis.length <= 4:
            base = "siblingInLaw"
        else:
            return RelationshipName(KEY_RELATED_BY_MARRIAGE, f"{name2} is related to {name1} by marriage")
        key, term = gendered_term(base, sex)
        return RelationshipName(key, f"{name2} is {name1}'s {term}")
