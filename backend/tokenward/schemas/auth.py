"""Pydantic schemas for authentication.

Includes the account read model, decoded token claims, the results handed
back by the authentication service and the request bodies accepted by the
authentication routes.
"""

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, TypeAdapter

TokenType = Literal["access", "refresh"]


class Account(BaseModel):
    """Account as seen by the authentication core.

    Identity fields are never changed here; ``is_active``,
    ``hashed_password`` and ``last_login_at`` may be.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    username: str
    first_name: str | None = None
    last_name: str | None = None
    role: str = "USER"
    is_active: bool = True
    hashed_password: str
    last_login_at: datetime | None = None
    created_at: datetime | None = None


class PublicUser(BaseModel):
    """Public account representation returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    username: str
    first_name: str | None = None
    last_name: str | None = None
    role: str


class AccessTokenClaims(BaseModel):
    type: Literal["access"]
    sub: str
    email: str
    username: str
    role: str
    iat: datetime
    exp: datetime
    iss: str
    jti: str | None = None


class RefreshTokenClaims(BaseModel):
    type: Literal["refresh"]
    sub: str
    iat: datetime
    exp: datetime
    iss: str
    jti: str | None = None


TokenClaims = Annotated[
    Union[AccessTokenClaims, RefreshTokenClaims], Field(discriminator="type")
]
claims_adapter = TypeAdapter(TokenClaims)


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class AuthResult(TokenPair):
    """Outcome of a successful register or login."""

    user: PublicUser


class RefreshTokenRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    token: str
    user_id: str
    created_at: datetime | None = None
    expires_at: datetime
    revoked: bool = False


class Session(BaseModel):
    """An active refresh token, without the token value itself."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    created_at: datetime | None = None
    expires_at: datetime


class CleanupResult(BaseModel):
    refresh_tokens: int
    blacklisted_tokens: int


class RegisterRequest(BaseModel):
    email: EmailStr
    username: str = Field(min_length=3, max_length=30, pattern=r"^[A-Za-z0-9]+$")
    first_name: str = Field(min_length=2, max_length=50)
    last_name: str = Field(min_length=2, max_length=50)
    password: str = Field(min_length=6)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class TokenRefresh(BaseModel):
    """Request body for refreshing the access token using a refresh token."""

    refresh_token: str


class LogoutRequest(BaseModel):
    refresh_token: str | None = None


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=6)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr
