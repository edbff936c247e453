"""Request/response schemas for authentication endpoints."""

from __future__ import annotations

from pydantic import BaseModel, EmailStr, Field, field_validator


class RegisterRequest(BaseModel):
    """Sign-up payload. The account stays inactive until its activation link is used."""

    name: str = Field(..., min_length=1, max_length=64)
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    age: int = Field(..., ge=0, le=150)
    gender: int = Field(0, ge=0, le=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            msg = "name cannot be blank"
            raise ValueError(msg)
        return v


class RegisterResponse(BaseModel):
    id: int
    name: str
    email: str
    state: str


class ResendActivationRequest(BaseModel):
    email: EmailStr


class LoginRequest(BaseModel):
    """Exchange email + password for a bearer token."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
