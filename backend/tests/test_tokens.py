"""Unit tests for the token codec."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from tokenward.core.errors import (
    ConfigurationError,
    InvalidSignatureError,
    InvalidTokenError,
    TokenExpiredError,
)
from tokenward.core.tokens import TokenCodec
from tokenward.schemas.auth import AccessTokenClaims, Account, RefreshTokenClaims


@pytest.fixture
def account():
    return Account(
        id="user-123",
        email="bob@example.com",
        username="bob",
        role="AUTHOR",
        hashed_password="not-used",
    )


class TestIssueAndVerify:
    def test_access_token_carries_account_claims(self, codec, account):
        issued = codec.issue_access(account)

        claims = codec.verify(issued.token, "access")

        assert isinstance(claims, AccessTokenClaims)
        assert claims.sub == "user-123"
        assert claims.email == "bob@example.com"
        assert claims.username == "bob"
        assert claims.role == "AUTHOR"
        assert claims.iss == "tokenward-tests"
        assert claims.exp == issued.expires_at

    def test_access_expiry_follows_configured_ttl(self, codec, account):
        before = datetime.now(timezone.utc)
        issued = codec.issue_access(account)

        lifetime = issued.expires_at - before
        assert timedelta(minutes=14) < lifetime <= timedelta(minutes=15)

    def test_refresh_token_is_typed_refresh(self, codec):
        issued = codec.issue_refresh("user-123")

        claims = codec.verify(issued.token, "refresh")

        assert isinstance(claims, RefreshTokenClaims)
        assert claims.sub == "user-123"
        assert claims.type == "refresh"

    def test_tokens_minted_back_to_back_differ(self, codec):
        first = codec.issue_refresh("user-123")
        second = codec.issue_refresh("user-123")

        assert first.token != second.token


class TestRejection:
    def test_type_mismatch_is_invalid_token_not_signature_error(self, codec, account):
        access = codec.issue_access(account)

        with pytest.raises(InvalidTokenError) as exc_info:
            codec.verify(access.token, "refresh")

        assert type(exc_info.value) is InvalidTokenError

    def test_expired_token(self, codec, account):
        issued = codec.issue_access(account, ttl=timedelta(seconds=-30))

        with pytest.raises(TokenExpiredError):
            codec.verify(issued.token, "access")

    def test_foreign_signature(self, codec, account):
        forged = TokenCodec(secret="another-secret", issuer=codec.issuer)
        token = forged.issue_access(account).token

        with pytest.raises(InvalidSignatureError):
            codec.verify(token, "access")

    def test_wrong_issuer(self, codec, account, settings):
        other = TokenCodec(secret=settings.SECRET_KEY, issuer="someone-else")
        token = other.issue_access(account).token

        with pytest.raises(InvalidTokenError):
            codec.verify(token, "access")

    def test_malformed_payload_is_invalid_token(self, codec, settings):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {
                "sub": "user-123",
                "type": "access",
                "iat": now,
                "exp": now + timedelta(minutes=5),
                "iss": codec.issuer,
            },
            settings.SECRET_KEY,
            algorithm="HS256",
        )

        with pytest.raises(InvalidTokenError) as exc_info:
            codec.verify(token, "access")

        assert type(exc_info.value) is InvalidTokenError

    def test_garbage_is_invalid_token(self, codec):
        with pytest.raises(InvalidTokenError):
            codec.verify("not-a-jwt", "access")

    def test_separate_refresh_secret(self, account):
        codec = TokenCodec(secret="access-secret", refresh_secret="refresh-secret")
        refresh = codec.issue_refresh("user-123")

        assert codec.verify(refresh.token, "refresh").sub == "user-123"
        with pytest.raises(InvalidSignatureError):
            codec.verify(refresh.token, "access")


def test_missing_secret_is_configuration_error():
    with pytest.raises(ConfigurationError):
        TokenCodec(secret="")


class TestUnsafeDecode:
    def test_reads_expiry_of_expired_token(self, codec, account):
        issued = codec.issue_access(account, ttl=timedelta(seconds=-30))

        assert codec.expiry_of(issued.token) == issued.expires_at

    def test_ignores_signature(self, account):
        token = TokenCodec(secret="unknown").issue_access(account).token

        payload = TokenCodec(secret="mine").decode_unsafe(token)

        assert payload["sub"] == "user-123"

    def test_undecodable_token(self, codec):
        assert codec.decode_unsafe("definitely.not.jwt") is None
        assert codec.expiry_of("garbage") is None
