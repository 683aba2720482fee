"""User, tree and membership models."""

from pydantic import BaseModel, Field, field_validator

from familytree.models.enums import SystemRole, TreeRole


class User(BaseModel):
    id: int
    username: str
    display_name: str | None = None
    system_role: SystemRole = SystemRole.USER
    created_at: str


class UserCreate(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    display_name: str | None = Field(default=None, max_length=200)
    system_role: SystemRole = SystemRole.USER

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Username cannot be blank")
        return v


class Tree(BaseModel):
    id: str
    name: str
    description: str | None = None
    owner_id: int | None = None
    is_public: bool = False
    allow_cross_tree_linking: bool = False
    created_at: str
    updated_at: str


class TreeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    is_public: bool = False
    allow_cross_tree_linking: bool = False


class TreeUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    is_public: bool | None = None
    allow_cross_tree_linking: bool | None = None


class TreeMember(BaseModel):
    tree_id: str
    user_id: int
    role: TreeRole
    joined_at: str
    username: str | None = None


class TreeMemberRequest(BaseModel):
    user_id: int
    role: TreeRole = TreeRole.VIEWER
