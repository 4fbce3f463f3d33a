"""Pydantic models for POST /auth/local-user."""
import re

from pydantic import BaseModel, field_validator

# Loose shape check only; the address is never contacted
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class LocalUserRequest(BaseModel):
    name: str
    email: str

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Please fill in all fields.")
        return v

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Please fill in all fields.")
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Email must look like name@example.com.")
        return v


class LocalUserResponse(BaseModel):
    id: str
    name: str
    email: str
    image: str
    created_at: str
