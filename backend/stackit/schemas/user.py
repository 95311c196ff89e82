"""
StackIt Backend — User and Auth Schemas
=========================================

Request bodies for /api/auth and the user representations returned by it.
Password rules: 8-72 bytes (bcrypt only looks at the first 72), at least one
uppercase letter, one lowercase letter and one digit.
"""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

USERNAME_PATTERN = r"^[A-Za-z0-9_]+$"


def check_password_strength(value: str) -> str:
    if len(value.encode("utf-8")) > 72:
        raise ValueError("Password must be at most 72 bytes long")
    if not re.search(r"[a-z]", value):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", value):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"\d", value):
        raise ValueError("Password must contain at least one number")
    return value


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class UserSummary(BaseModel):
    """Author block embedded in questions and answers."""

    id: int
    username: str
    reputation: int
    avatar_url: Optional[str] = None

    model_config = {"from_attributes": True}


class UserPublic(UserSummary):
    role: str
    bio: Optional[str] = None
    created_at: datetime


class UserPrivate(UserPublic):
    """What a user sees about themselves. Still no password hash."""

    email: str
    updated_at: datetime


class AuthPayload(BaseModel):
    user: UserPrivate
    token: str = Field(description="JWT for the Authorization: Bearer header")
    token_type: str = Field(default="bearer")
    expires_in: int = Field(description="Token lifetime in seconds")


class PasswordResetIssued(BaseModel):
    """Returned by the reset request; the token itself only in development."""

    reset_token: Optional[str] = None


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    email: EmailStr
    password: str = Field(min_length=8, max_length=72)
    confirm_password: str

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password_strength(v)

    @model_validator(mode="after")
    def passwords_match(self) -> "RegisterRequest":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=72)


class ProfileUpdateRequest(BaseModel):
    username: Optional[str] = Field(default=None, min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    email: Optional[EmailStr] = None
    bio: Optional[str] = Field(default=None, max_length=500)
    avatar_url: Optional[str] = Field(default=None, max_length=500)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=72)
    new_password: str = Field(min_length=8, max_length=72)
    confirm_password: str

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password_strength(v)

    @model_validator(mode="after")
    def passwords_match(self) -> "ChangePasswordRequest":
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class PasswordResetRequest(BaseModel):
    email: EmailStr


class PasswordResetConfirm(BaseModel):
    token: str = Field(min_length=1)
    password: str = Field(min_length=8, max_length=72)
    confirm_password: str

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password_strength(v)

    @model_validator(mode="after")
    def passwords_match(self) -> "PasswordResetConfirm":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class DeleteAccountRequest(BaseModel):
    password: str = Field(min_length=1, max_length=72)
