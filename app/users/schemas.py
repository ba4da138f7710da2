from pydantic import BaseModel, field_validator
from typing import List


def _validate_name(name: str) -> str:
    name = name.strip()
    # Length check (min 3, max 16)
    if not (3 <= len(name) <= 16):
        raise ValueError(f"Name must be between 3 and 16 characters long (got {len(name)}).")

    return name


class UserData(BaseModel):
    id: int
    name: str
    photo_url: str = ""


"""
POST /session
"""


class LoginModel(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, name: str) -> str:
        return _validate_name(name)


class LoginResponseModel(BaseModel):
    identifier: int


"""
PUT /me/name
"""


class SetUserNameModel(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, name: str) -> str:
        return _validate_name(name)


"""
PUT /me/photo
"""


class PhotoResponseModel(BaseModel):
    photo_url: str


"""
GET /users/search
"""


class SearchUsersResponseModel(BaseModel):
    users: List[UserData]
