"""Persistence of refresh tokens and blacklisted access tokens.

REFRESH TOKEN LIFECYCLE:

    ISSUED --(rotation | logout | login | password change)--> REVOKED
    ISSUED --(expires_at passes)--> EXPIRED --(sweep)--> deleted

Revoked rows are kept until they expire so a replayed token is still
recognised as revoked. ``revoke`` is a conditional update and reports
whether it flipped the flag; of two calls racing on the same token only
one gets ``True``.
"""

from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError

from tokenward.core.logging import logger, token_hint
from tokenward.db.session import SqlStore, as_utc, guarded
from tokenward.models.auth import BlacklistedToken
from tokenward.models.auth import RefreshToken as RefreshTokenModel
from tokenward.schemas.auth import RefreshTokenRecord, Session


def _to_record(row: RefreshTokenModel) -> RefreshTokenRecord:
    return RefreshTokenRecord(
        token=row.token,
        user_id=row.user_id,
        created_at=as_utc(row.created_at),
        expires_at=as_utc(row.expires_at),
        revoked=row.revoked,
    )


class RefreshTokenStore(SqlStore):
    """Issued refresh tokens, their owner, expiry and revocation flag."""

    @guarded("refresh_tokens.create")
    async def create(
        self, token: str, user_id: str, expires_at: datetime
    ) -> RefreshTokenRecord:
        async with self._sessions() as db:
            row = RefreshTokenModel(token=token, user_id=user_id, expires_at=expires_at)
            db.add(row)
            await db.commit()
            await db.refresh(row)
        logger.debug("Stored refresh token {} for user_id={}", token_hint(token), user_id)
        return _to_record(row)

    @guarded("refresh_tokens.find_by_token")
    async def find_by_token(self, token: str) -> RefreshTokenRecord | None:
        async with self._sessions() as db:
            result = await db.execute(
                select(RefreshTokenModel).filter(RefreshTokenModel.token == token)
            )
            row = result.scalars().first()
            return _to_record(row) if row else None

    @guarded("refresh_tokens.revoke")
    async def revoke(self, token: str) -> bool:
        """Mark a refresh token as revoked.

        Returns:
            bool: True if this call revoked the token, False if it was
                missing or already revoked.
        """
        async with self._sessions() as db:
            result = await db.execute(
                update(RefreshTokenModel)
                .where(
                    RefreshTokenModel.token == token,
                    RefreshTokenModel.revoked == False,  # noqa: E712
                )
                .values(revoked=True)
            )
            count = result.rowcount
            await db.commit()
        changed = count == 1
        if changed:
            logger.info("Revoked refresh token {}", token_hint(token))
        return changed

    @guarded("refresh_tokens.revoke_all_for_owner")
    async def revoke_all_for_owner(self, user_id: str) -> int:
        """Revoke all active refresh tokens for a user.

        Returns:
            int: number of tokens that were revoked by this call.
        """
        async with self._sessions() as db:
            result = await db.execute(
                update(RefreshTokenModel)
                .where(
                    RefreshTokenModel.user_id == user_id,
                    RefreshTokenModel.revoked == False,  # noqa: E712
                )
                .values(revoked=True)
            )
            count = result.rowcount
            await db.commit()
        logger.info(
            "Revoked all refresh tokens for user_id={} (count={})",
            user_id,
            count,
        )
        return count

    @guarded("refresh_tokens.list_active_for_owner")
    async def list_active_for_owner(self, user_id: str) -> list[Session]:
        async with self._sessions() as db:
            result = await db.execute(
                select(RefreshTokenModel)
                .filter(
                    RefreshTokenModel.user_id == user_id,
                    RefreshTokenModel.revoked == False,  # noqa: E712
                    RefreshTokenModel.expires_at > datetime.now(timezone.utc),
                )
                .order_by(RefreshTokenModel.created_at)
            )
            return [
                Session(
                    id=row.id,
                    created_at=as_utc(row.created_at),
                    expires_at=as_utc(row.expires_at),
                )
                for row in result.scalars().all()
            ]

    @guarded("refresh_tokens.purge_expired")
    async def purge_expired(self, now: datetime | None = None) -> int:
        """Delete refresh tokens whose ``expires_at`` lies before ``now``."""
        cutoff = now or datetime.now(timezone.utc)
        async with self._sessions() as db:
            result = await db.execute(
                delete(RefreshTokenModel).where(RefreshTokenModel.expires_at < cutoff)
            )
            count = result.rowcount
            await db.commit()
        return count


class BlacklistStore(SqlStore):
    """Access tokens that must be rejected before they expire."""

    @guarded("blacklist.insert")
    async def insert(
        self, token: str, user_id: str | None, expires_at: datetime
    ) -> None:
        """Blacklist ``token`` until ``expires_at``. Re-inserting is a no-op."""
        async with self._sessions() as db:
            existing = await db.execute(
                select(BlacklistedToken.id).filter(BlacklistedToken.token == token)
            )
            if existing.first() is not None:
                return
            db.add(BlacklistedToken(token=token, user_id=user_id, expires_at=expires_at))
            try:
                await db.commit()
            except IntegrityError:
                # another logout inserted the same token first
                await db.rollback()
                return
        logger.info(
            "Blacklisted access token {} user_id={} until {}",
            token_hint(token),
            user_id,
            expires_at.isoformat(),
        )

    @guarded("blacklist.contains")
    async def contains(self, token: str) -> bool:
        async with self._sessions() as db:
            result = await db.execute(
                select(BlacklistedToken.id).filter(BlacklistedToken.token == token)
            )
            return result.first() is not None

    @guarded("blacklist.purge_expired")
    async def purge_expired(self, now: datetime | None = None) -> int:
        cutoff = now or datetime.now(timezone.utc)
        async with self._sessions() as db:
            result = await db.execute(
                delete(BlacklistedToken).where(BlacklistedToken.expires_at < cutoff)
            )
            count = result.rowcount
            await db.commit()
        return count
