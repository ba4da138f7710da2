from pydantic import BaseModel, field_validator
from typing import List


# Create group
class CreateGroupModel(BaseModel):
    name: str
    member_ids: List[int]

    @field_validator("name")
    @classmethod
    def validate_name(cls, name: str) -> str:
        name = name.strip()
        if not (1 <= len(name) <= 64):
            raise ValueError("Group name must be between 1 and 64 characters long.")
        return name

    @field_validator("member_ids")
    @classmethod
    def validate_members(cls, member_ids: List[int]) -> List[int]:
        if not member_ids:
            raise ValueError("member_ids cannot be empty.")
        return member_ids


class GroupIDResponseModel(BaseModel):
    group_id: int


# Rename group
class UpdateGroupNameModel(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, name: str) -> str:
        name = name.strip()
        if not (1 <= len(name) <= 64):
            raise ValueError("Group name must be between 1 and 64 characters long.")
        return name


# Group photo
class GroupPhotoResponseModel(BaseModel):
    photo_url: str


# Add members
class AddMembersModel(BaseModel):
    user_ids: List[int]

    @field_validator("user_ids")
    @classmethod
    def validate_user_ids(cls, user_ids: List[int]) -> List[int]:
        if not user_ids:
            raise ValueError("user_ids cannot be empty.")
        return user_ids


class MemberAddResultData(BaseModel):
    user_id: int
    outcome: str


class AddMembersResponseModel(BaseModel):
    results: List[MemberAddResultData]
