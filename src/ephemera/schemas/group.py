"""Group-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

GROUP_NAME_MAX_LENGTH = 64
GROUP_MAX_MEMBERS = 50


def _strip_name(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("group name must not be blank")
    return value


class GroupCreate(BaseModel):
    """Schema for creating a group out of some of the caller's friends."""

    name: str = Field(..., min_length=1, max_length=GROUP_NAME_MAX_LENGTH)
    member_ids: list[str] = Field(..., min_length=1, max_length=GROUP_MAX_MEMBERS)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        return _strip_name(value)


class GroupRename(BaseModel):
    name: str = Field(..., min_length=1, max_length=GROUP_NAME_MAX_LENGTH)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        return _strip_name(value)


class GroupMemberAdd(BaseModel):
    user_id: str = Field(..., min_length=1)


class GroupMember(BaseModel):
    id: str
    name: str
    image: str | None = None


class GroupResponse(BaseModel):
    """A group the caller belongs to, with its current members."""

    id: str
    name: str
    created_by: str
    created_at: datetime
    members: list[GroupMember]
    member_count: int


class GroupCreated(BaseModel):
    group_id: str
    name: str


class GroupMemberAdded(BaseModel):
    ok: bool = True
    already_member: bool
