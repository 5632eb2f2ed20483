"""Authentication service: login, registration and token lifecycle.

TOKEN FLOW:

1. REGISTER / LOGIN:
   - Credentials are checked against the account store
   - Login revokes every refresh token the account already holds
   - A fresh pair is issued:
     * Access Token (JWT, minutes) - verified by signature alone
     * Refresh Token (JWT, days) - also stored, so it can be revoked

2. REFRESH:
   - The stored record must exist, be unrevoked and unexpired
   - The JWT must verify and carry type "refresh"
   - The presented token is revoked and a new pair is issued (rotation),
     so a refresh token mints a new pair at most once
   - Any failure along the way revokes the presented token

3. LOGOUT:
   - The current access token is blacklisted until its own expiry, at most
     one access token lifetime from now
   - The refresh token (or, for logout-all, every refresh token) is revoked

4. VALIDATION:
   - Blacklist, signature/expiry/type and account state are checked; any
     failure yields None without saying which check failed
"""

import asyncio
from datetime import datetime, timezone

from tokenward.config.config import Settings, settings as default_settings
from tokenward.core.errors import (
    AppError,
    ConflictError,
    ForbiddenError,
    InvalidTokenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from tokenward.core.logging import logger, token_hint
from tokenward.core.security import get_password_hash, verify_password
from tokenward.core.tokens import ACCESS, REFRESH, TokenCodec
from tokenward.schemas.auth import (
    Account,
    AuthResult,
    CleanupResult,
    PublicUser,
    Session,
    TokenPair,
)
from tokenward.services.account_store import AccountStore
from tokenward.services.token_store import BlacklistStore, RefreshTokenStore

INVALID_CREDENTIALS = "Invalid email or password"
INVALID_SESSION = "Invalid or expired session"

# verified against when the email is unknown, so both login failures cost a hash
_DUMMY_HASH = get_password_hash("tokenward-timing-equaliser")


class AuthenticationService:
    """Orchestrates accounts, token stores and the token codec.

    All collaborators are injected; when omitted they are built from the
    process-wide settings.
    """

    def __init__(
        self,
        accounts: AccountStore | None = None,
        refresh_tokens: RefreshTokenStore | None = None,
        blacklist: BlacklistStore | None = None,
        codec: TokenCodec | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or default_settings
        self.accounts = accounts or AccountStore()
        self.refresh_tokens = refresh_tokens or RefreshTokenStore()
        self.blacklist = blacklist or BlacklistStore()
        self.codec = codec or TokenCodec.from_settings(self.settings)

    # ---- credentials ----------------------------------------------------

    async def _hash(self, password: str) -> str:
        return await asyncio.to_thread(get_password_hash, password)

    async def _verify(self, password: str, hashed: str | None) -> bool:
        return await asyncio.to_thread(verify_password, password, hashed)

    async def _issue_pair(self, account: Account) -> TokenPair:
        access = self.codec.issue_access(account)
        refresh = self.codec.issue_refresh(account.id)
        await self.refresh_tokens.create(refresh.token, account.id, refresh.expires_at)
        return TokenPair(access_token=access.token, refresh_token=refresh.token)

    # ---- public operations ----------------------------------------------

    async def register(
        self,
        email: str,
        username: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> AuthResult:
        """Create an account and issue its first token pair.

        Raises:
            ConflictError: email and/or username already taken. Every
                conflicting field is listed in ``context["fields"]``; the
                message names the first one, email before username.
        """
        existing_email, existing_username = await asyncio.gather(
            self.accounts.find_by_email(email),
            self.accounts.find_by_username(username),
        )
        conflicts = {}
        if existing_email:
            conflicts["email"] = email
        if existing_username:
            conflicts["username"] = username
        if conflicts:
            first = next(iter(conflicts))
            logger.info("Registration conflict on {}", ", ".join(conflicts))
            raise ConflictError(
                f"{first.capitalize()} already exists",
                {"fields": list(conflicts), **conflicts},
            )

        hashed_password = await self._hash(password)
        account = await self.accounts.create(
            email=email,
            username=username,
            hashed_password=hashed_password,
            first_name=first_name,
            last_name=last_name,
        )
        pair = await self._issue_pair(account)
        logger.info(
            "User registered id={} email={} username={}",
            account.id,
            account.email,
            account.username,
        )
        user = PublicUser.model_validate(account.model_dump())
        return AuthResult(user=user, **pair.model_dump())

    async def login(self, email: str, password: str) -> AuthResult:
        """Authenticate by email and password and issue a new token pair.

        A successful login revokes every refresh token previously issued to
        the account, on any device.

        Raises:
            UnauthorizedError: unknown email or wrong password (same message).
            ForbiddenError: the account is deactivated. Only raised once the
                password has verified, so a deactivated account with a wrong
                password gets UnauthorizedError.
        """
        account = await self.accounts.find_by_email(email)
        password_ok = await self._verify(
            password, account.hashed_password if account else _DUMMY_HASH
        )
        if not account or not password_ok:
            logger.warning("Failed login attempt email={}", email)
            raise UnauthorizedError(INVALID_CREDENTIALS, {"email": email})

        if not account.is_active:
            logger.warning("Login refused for deactivated account id={}", account.id)
            raise ForbiddenError("Account is deactivated", {"user_id": account.id})

        await asyncio.gather(
            self.accounts.update_last_login(account.id),
            self.refresh_tokens.revoke_all_for_owner(account.id),
        )
        pair = await self._issue_pair(account)
        logger.info("User logged in id={} email={}", account.id, account.email)
        user = PublicUser.model_validate(account.model_dump())
        return AuthResult(user=user, **pair.model_dump())

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Rotate a refresh token into a new access/refresh pair.

        Raises:
            InvalidTokenError: for every rejection, with the same message.
        """
        record = await self.refresh_tokens.find_by_token(refresh_token)
        if record is None or record.revoked:
            logger.warning(
                "Refresh with unknown or revoked token {}", token_hint(refresh_token)
            )
            raise InvalidTokenError(INVALID_SESSION)

        if datetime.now(timezone.utc) > record.expires_at:
            await self.refresh_tokens.revoke(refresh_token)
            raise InvalidTokenError(INVALID_SESSION, {"user_id": record.user_id})

        try:
            claims = self.codec.verify(refresh_token, REFRESH)
        except InvalidTokenError as exc:
            # a stored token that no longer verifies is treated as compromised
            await self.refresh_tokens.revoke(refresh_token)
            logger.warning(
                "Refresh token failed verification ({}) user_id={}",
                exc.code,
                record.user_id,
            )
            raise InvalidTokenError(INVALID_SESSION, {"user_id": record.user_id}) from exc

        if claims.sub != record.user_id:
            await self.refresh_tokens.revoke(refresh_token)
            logger.warning("Refresh token subject mismatch user_id={}", record.user_id)
            raise InvalidTokenError(INVALID_SESSION, {"user_id": record.user_id})

        account = await self.accounts.find_by_id(record.user_id)
        if account is None or not account.is_active:
            await self.refresh_tokens.revoke(refresh_token)
            raise InvalidTokenError(INVALID_SESSION, {"user_id": record.user_id})

        if not await self.refresh_tokens.revoke(refresh_token):
            # a concurrent refresh consumed this token first
            logger.warning("Refresh token replayed user_id={}", account.id)
            raise InvalidTokenError(INVALID_SESSION, {"user_id": account.id})

        pair = await self._issue_pair(account)
        logger.info("Tokens refreshed for user id={}", account.id)
        return pair

    async def _blacklist(self, token: str, user_id: str | None = None) -> None:
        # no access token outlives one access lifetime, so neither does its row
        ceiling = datetime.now(timezone.utc) + self.settings.access_token_ttl
        expires_at = self.codec.expiry_of(token)
        if expires_at is None:
            expires_at = ceiling
            logger.debug("Blacklisting undecodable token with fallback expiry")
        expires_at = min(expires_at, ceiling)
        await self.blacklist.insert(token, user_id, expires_at)

    async def logout(
        self,
        access_token: str,
        refresh_token: str | None = None,
        user_id: str | None = None,
    ) -> None:
        """Blacklist the access token and revoke the refresh token, if any.

        Best effort: store failures are logged and the call still returns.
        """
        try:
            await self._blacklist(access_token, user_id)
        except AppError:
            logger.exception("Could not blacklist access token during logout")
        if refresh_token:
            try:
                await self.refresh_tokens.revoke(refresh_token)
            except AppError:
                logger.exception("Could not revoke refresh token during logout")
        logger.info("User logged out")

    async def logout_all(self, user_id: str, current_access_token: str) -> None:
        await asyncio.gather(
            self._blacklist(current_access_token, user_id),
            self.refresh_tokens.revoke_all_for_owner(user_id),
        )
        logger.info("User logged out from all devices id={}", user_id)

    async def validate_access_token(self, token: str) -> Account | None:
        """Return the account behind a valid access token, else None.

        None covers blacklisted, expired, tampered or wrongly typed tokens
        and missing or deactivated accounts alike.
        """
        if not token or await self.blacklist.contains(token):
            return None
        try:
            claims = self.codec.verify(token, ACCESS)
        except InvalidTokenError as exc:
            logger.debug("Invalid access token ({})", exc.code)
            return None

        account = await self.accounts.find_by_id(claims.sub)
        if account is None or not account.is_active:
            return None
        return account

    async def change_password(
        self, user_id: str, current_password: str, new_password: str
    ) -> None:
        """Replace the password and end every standing session.

        Raises:
            NotFoundError: no such account.
            ValidationError: current password wrong, or unchanged password.
        """
        account = await self.accounts.find_by_id(user_id)
        if account is None:
            raise NotFoundError("User not found", {"user_id": user_id})

        if not await self._verify(current_password, account.hashed_password):
            raise ValidationError("Current password is incorrect", {"user_id": user_id})

        if await self._verify(new_password, account.hashed_password):
            raise ValidationError(
                "New password must be different from current password",
                {"user_id": user_id},
            )

        hashed_password = await self._hash(new_password)
        await asyncio.gather(
            self.accounts.update_password(user_id, hashed_password),
            self.refresh_tokens.revoke_all_for_owner(user_id),
        )
        logger.info("Password changed for user id={}", user_id)

    async def forgot_password(self, email: str) -> None:
        """Record a password reset request. Unknown emails are not reported."""
        account = await self.accounts.find_by_email(email)
        if account is None:
            logger.warning("Password reset requested for unknown email={}", email)
            return
        logger.info("Password reset requested id={} email={}", account.id, email)

    async def list_sessions(self, user_id: str) -> list[Session]:
        return await self.refresh_tokens.list_active_for_owner(user_id)

    async def is_token_blacklisted(self, token: str) -> bool:
        return await self.blacklist.contains(token)

    async def cleanup_expired_tokens(self) -> CleanupResult | None:
        """Delete expired refresh and blacklist records. Never raises."""
        now = datetime.now(timezone.utc)
        # both sweeps run to completion even when one of them fails
        results = await asyncio.gather(
            self.refresh_tokens.purge_expired(now),
            self.blacklist.purge_expired(now),
            return_exceptions=True,
        )
        failed = False
        for table, result in zip(("refresh_tokens", "token_blacklist"), results):
            if isinstance(result, Exception):
                failed = True
                logger.opt(exception=result).error(
                    "Error cleaning up expired tokens in {}", table
                )
        if failed:
            return None
        refresh_count, blacklist_count = results
        logger.info(
            "Expired tokens cleaned up refresh_tokens={} blacklisted={}",
            refresh_count,
            blacklist_count,
        )
        return CleanupResult(
            refresh_tokens=refresh_count, blacklisted_tokens=blacklist_count
        )


