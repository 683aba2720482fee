"""Tree view and relationship path models."""

from enum import Enum

from pydantic import BaseModel, Field

from familytree.models.enums import Sex, UnionType


class PathEdge(str, Enum):
    """What the next person on a path is to the current one."""

    PARENT = "parent"  # next person is a parent of the current one
    CHILD = "child"  # next person is a child of the current one
    SPOUSE = "spouse"


class PathNode(BaseModel):
    person_id: str
    name: str
    name_english: str | None = None
    name_arabic: str | None = None
    sex: Sex
    birth_year: int | None = None
    death_year: int | None = None
    edge_to_next: PathEdge | None = None
    relationship_to_next_key: str | None = None


class CommonAncestorInfo(BaseModel):
    person_id: str
    name: str
    generations_from_person1: int
    generations_from_person2: int


class RelationshipPathResult(BaseModel):
    """Shortest chain of relationships between two persons, and its name."""

    path_found: bool
    person1_id: str
    person2_id: str
    path: list[PathNode] = Field(default_factory=list)
    path_length: int = 0
    relationship_key: str
    relationship_description: str
    common_ancestors: list[CommonAncestorInfo] = Field(default_factory=list)
    message: str | None = None


class BloodRelationshipResult(BaseModel):
    """Relationship named from the closest common ancestor only."""

    person1_id: str
    person2_id: str
    relationship_type: str
    description: str
    generations_from_person1: int | None = None
    generations_from_person2: int | None = None
    common_ancestor_ids: list[str] = Field(default_factory=list)


class TreeViewUnion(BaseModel):
    union_id: str
    type: UnionType
    partner_ids: list[str] = Field(default_factory=list)
    partner_names: list[str] = Field(default_factory=list)


class PedigreeNode(BaseModel):
    person_id: str
    name: str
    sex: Sex
    birth_year: int | None = None
    death_year: int | None = None
    generation: int
    has_more_ancestors: bool = False
    unions: list[TreeViewUnion] = Field(default_factory=list)
    parents: list["PedigreeNode"] = Field(default_factory=list)


class DescendantNode(BaseModel):
    person_id: str
    name: str
    sex: Sex
    birth_year: int | None = None
    death_year: int | None = None
    generation: int
    has_more_descendants: bool = False
    unions: list[TreeViewUnion] = Field(default_factory=list)
    children: list["DescendantNode"] = Field(default_factory=list)


class RootPerson(BaseModel):
    person_id: str
    name: str
    sex: Sex
    birth_year: int | None = None
    child_count: int = 0
    descendant_count: int = 0
    generation_depth: int = 0


class RootPersonsResult(BaseModel):
    tree_id: str
    tree_name: str
    root_persons: list[RootPerson]
    total_count: int
    max_limit: int


PedigreeNode.model_rebuild()
DescendantNode.model_rebuild()
