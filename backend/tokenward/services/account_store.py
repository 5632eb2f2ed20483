"""Account lookups and the two account mutations the auth core performs."""

from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from tokenward.core.errors import ConflictError
from tokenward.core.logging import logger
from tokenward.db.session import SqlStore, guarded
from tokenward.models.auth import User as UserModel
from tokenward.schemas.auth import Account


class AccountStore(SqlStore):
    """Read and update rows of the ``users`` table as :class:`Account`."""

    async def _find_one(self, *criteria) -> Account | None:
        async with self._sessions() as db:
            result = await db.execute(select(UserModel).filter(*criteria))
            user = result.scalars().first()
            return Account.model_validate(user) if user else None

    @guarded("accounts.find_by_email")
    async def find_by_email(self, email: str) -> Account | None:
        return await self._find_one(UserModel.email == email)

    @guarded("accounts.find_by_username")
    async def find_by_username(self, username: str) -> Account | None:
        return await self._find_one(UserModel.username == username)

    @guarded("accounts.find_by_id")
    async def find_by_id(self, user_id: str) -> Account | None:
        return await self._find_one(UserModel.id == user_id)

    @guarded("accounts.create")
    async def create(
        self,
        email: str,
        username: str,
        hashed_password: str,
        first_name: str | None = None,
        last_name: str | None = None,
        role: str = "USER",
        is_active: bool = True,
    ) -> Account:
        """Insert a new account.

        Raises:
            ConflictError: email or username is already taken. Concurrent
                registrations that both passed the existence checks end up
                here through the unique constraints.
        """
        async with self._sessions() as db:
            user = UserModel(
                email=email,
                username=username,
                hashed_password=hashed_password,
                first_name=first_name,
                last_name=last_name,
                role=role,
                is_active=is_active,
            )
            db.add(user)
            try:
                await db.commit()
            except IntegrityError as exc:
                await db.rollback()
                logger.warning(
                    "Account insert hit a uniqueness constraint email={} username={}",
                    email,
                    username,
                )
                raise ConflictError(
                    "Email or username already exists",
                    {"email": email, "username": username},
                ) from exc
            await db.refresh(user)
            logger.info("Created account id={} username={}", user.id, username)
            return Account.model_validate(user)

    @guarded("accounts.update_last_login")
    async def update_last_login(self, user_id: str, when: datetime | None = None) -> None:
        async with self._sessions() as db:
            await db.execute(
                update(UserModel)
                .where(UserModel.id == user_id)
                .values(last_login_at=when or datetime.now(timezone.utc))
            )
            await db.commit()

    @guarded("accounts.update_password")
    async def update_password(self, user_id: str, hashed_password: str) -> None:
        async with self._sessions() as db:
            await db.execute(
                update(UserModel)
                .where(UserModel.id == user_id)
                .values(hashed_password=hashed_password)
            )
            await db.commit()
