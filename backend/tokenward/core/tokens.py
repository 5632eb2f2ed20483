"""Signing, verification and decoding of access and refresh tokens.

Both token kinds are HS256 JWTs carrying a ``type`` tag. Decoded payloads
are validated into :class:`~tokenward.schemas.auth.AccessTokenClaims` or
:class:`~tokenward.schemas.auth.RefreshTokenClaims` before callers see them,
so a token of the wrong kind or with a malformed payload is rejected as
``InvalidTokenError`` rather than slipping through as a loose dict.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import NamedTuple

import jwt
from pydantic import ValidationError as PydanticValidationError

from tokenward.config.config import Settings
from tokenward.core.errors import (
    ConfigurationError,
    InvalidSignatureError,
    InvalidTokenError,
    TokenExpiredError,
)
from tokenward.schemas.auth import (
    AccessTokenClaims,
    Account,
    RefreshTokenClaims,
    TokenType,
    claims_adapter,
)

ACCESS = "access"
REFRESH = "refresh"


class IssuedToken(NamedTuple):
    token: str
    expires_at: datetime


def _utcnow() -> datetime:
    # JWT numeric dates have second precision; keep stored expiries aligned.
    return datetime.now(timezone.utc).replace(microsecond=0)


class TokenCodec:
    """Stateless JWT codec holding only secret material and lifetimes."""

    def __init__(
        self,
        secret: str | None,
        refresh_secret: str | None = None,
        algorithm: str = "HS256",
        issuer: str = "blog-api",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
    ):
        if not secret:
            raise ConfigurationError("Token signing secret is not configured")
        self._access_secret = secret
        self._refresh_secret = refresh_secret or secret
        self.algorithm = algorithm
        self.issuer = issuer
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenCodec":
        return cls(
            secret=settings.SECRET_KEY,
            refresh_secret=settings.refresh_secret,
            algorithm=settings.ALGORITHM,
            issuer=settings.TOKEN_ISSUER,
            access_ttl=settings.access_token_ttl,
            refresh_ttl=settings.refresh_token_ttl,
        )

    def _secret_for(self, token_type: TokenType) -> str:
        return self._access_secret if token_type == ACCESS else self._refresh_secret

    def _encode(self, claims: dict, token_type: TokenType, ttl: timedelta) -> IssuedToken:
        issued_at = _utcnow()
        expire = issued_at + ttl
        to_encode = dict(claims)
        to_encode.update(
            {
                "type": token_type,
                "iat": issued_at,
                "exp": expire,
                "iss": self.issuer,
                # NOTE: random id keeps tokens minted in the same second distinct
                "jti": secrets.token_urlsafe(16),
            }
        )
        encoded = jwt.encode(
            to_encode, self._secret_for(token_type), algorithm=self.algorithm
        )
        return IssuedToken(encoded, expire)

    def issue_access(self, account: Account, ttl: timedelta | None = None) -> IssuedToken:
        """Create a short-lived access token describing ``account``.

        Args:
            account: The authenticated account.
            ttl: Optional lifetime override, defaults to the configured one.

        Returns:
            IssuedToken: encoded token and its expiry.
        """
        return self._encode(
            {
                "sub": account.id,
                "email": account.email,
                "username": account.username,
                "role": account.role,
            },
            ACCESS,
            self.access_ttl if ttl is None else ttl,
        )

    def issue_refresh(self, owner_id: str, ttl: timedelta | None = None) -> IssuedToken:
        """Create a long-lived refresh token for ``owner_id``."""
        return self._encode(
            {"sub": owner_id},
            REFRESH,
            self.refresh_ttl if ttl is None else ttl,
        )

    def verify(
        self, token: str, expected_type: TokenType
    ) -> AccessTokenClaims | RefreshTokenClaims:
        """Verify signature, expiry and issuer and return typed claims.

        Raises:
            TokenExpiredError: The token's ``exp`` has passed.
            InvalidSignatureError: The signature does not match.
            InvalidTokenError: The token is malformed, has the wrong issuer,
                or its ``type`` is not ``expected_type``.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_for(expected_type),
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"require": ["exp", "iat", "sub", "type"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpiredError("Token has expired") from exc
        except jwt.InvalidSignatureError as exc:
            raise InvalidSignatureError("Token signature is invalid") from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidTokenError("Malformed token", {"reason": str(exc)}) from exc

        try:
            claims = claims_adapter.validate_python(payload)
        except PydanticValidationError as exc:
            raise InvalidTokenError(
                "Malformed token payload", {"type": payload.get("type")}
            ) from exc

        if claims.type != expected_type:
            raise InvalidTokenError(
                "Unexpected token type",
                {"expected": expected_type, "actual": claims.type},
            )
        return claims

    def decode_unsafe(self, token: str) -> dict | None:
        """Decode a token without checking its signature or expiry.

        Only for bookkeeping (reading ``exp`` of a token being blacklisted),
        never for authorization decisions.
        """
        try:
            return jwt.decode(
                token,
                options={"verify_signature": False, "verify_exp": False},
                algorithms=[self.algorithm],
            )
        except jwt.InvalidTokenError:
            return None

    def expiry_of(self, token: str) -> datetime | None:
        payload = self.decode_unsafe(token)
        if not payload:
            return None
        exp = payload.get("exp")
        if not isinstance(exp, (int, float)) or isinstance(exp, bool):
            return None
        try:
            return datetime.fromtimestamp(exp, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
