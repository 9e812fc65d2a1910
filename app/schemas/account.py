"""
Account schemas: the store-row mapping used by services, and the public views.
"""
from pydantic import BaseModel, ConfigDict, field_validator
from typing import Optional
from datetime import datetime


class AccountRecord(BaseModel):
    """
    One row of the `account` table as the services see it.
    `role` is the resolved role name; it is not a column and is filled in by
    AccountService when the role lookup succeeds.
    """
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str
    username_login: str
    password_login: str
    username: Optional[str] = None
    email: str
    gmail: Optional[str] = None
    provider: Optional[str] = None
    openid_sub: Optional[str] = None
    email_verified: bool = False
    role_id: Optional[str] = None
    role: Optional[str] = None
    status: int
    image: Optional[str] = None
    description: Optional[str] = None
    place_of_residence: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # PostgREST may hand back UUID columns; ids are opaque strings everywhere
    @field_validator("id", "role_id", mode="before")
    @classmethod
    def uuid_to_str(cls, v):
        return None if v is None else str(v)


class AccountOut(BaseModel):
    """
    Public-safe account representation.
    password_login is never included; Pydantic only exposes fields declared here.
    """
    model_config = ConfigDict(from_attributes=True)

    id: str
    username_login: str
    username: Optional[str] = None
    email: str
    provider: Optional[str] = None
    email_verified: bool
    role: Optional[str] = None
    status: int
    image: Optional[str] = None
    description: Optional[str] = None
    place_of_residence: Optional[str] = None
    created_at: Optional[datetime] = None


class UpdateProfileRequest(BaseModel):
    """Only the fields that are sent are changed; nothing here touches credentials."""
    username: Optional[str] = None
    description: Optional[str] = None
    place_of_residence: Optional[str] = None
    image: Optional[str] = None

    @field_validator("username")
    @classmethod
    def username_valid(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if len(v) < 1 or len(v) > 100:
            raise ValueError("Display name must be between 1 and 100 characters")
        return v

    @field_validator("description")
    @classmethod
    def description_length(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and len(v) > 1000:
            raise ValueError("Description must be at most 1000 characters")
        return v

    @field_validator("place_of_residence")
    @classmethod
    def place_length(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and len(v) > 255:
            raise ValueError("Place of residence must be at most 255 characters")
        return v

    @field_validator("image")
    @classmethod
    def image_is_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if len(v) > 500 or not v.startswith(("http://", "https://")):
            raise ValueError("Image must be an http(s) URL of at most 500 characters")
        return v
