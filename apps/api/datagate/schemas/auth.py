"""Authentication schemas."""

from typing import Literal

from pydantic import BaseModel, Field

Role = Literal["user", "admin"]


class AuthPrincipal(BaseModel):
    """Normalized authenticated principal used by business services."""

    user_id: str = Field(min_length=1)
    role: Role = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class RegisterRequest(BaseModel):
    email: str = Field(min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(min_length=8)


class LoginRequest(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class User(BaseModel):
    id: str
    email: str
    role: Role


class UserEnvelope(BaseModel):
    user: User


class MessageResponse(BaseModel):
    message: str
