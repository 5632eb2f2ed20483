"""Authentication models: users, refresh tokens and blacklisted tokens.

Refresh tokens are tracked so they can be revoked and rotated; access
tokens are only stored once they are blacklisted before their natural
expiry.
"""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from tokenward.db.session import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """Database model representing an application account.

    Attributes:
        id: Primary key (UUID string).
        email: Unique email address used to log in.
        username: Unique login name.
        first_name: Given name.
        last_name: Family name.
        role: One of USER, AUTHOR, ADMIN.
        is_active: Whether the account may authenticate.
        hashed_password: Password hash.
        last_login_at: Timestamp of the last successful login.
        created_at: Account creation timestamp.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String, nullable=False, unique=True, index=True)
    username = Column(String, nullable=False, unique=True, index=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    role = Column(String, nullable=False, default="USER")
    is_active = Column(Boolean, nullable=False, default=True)
    hashed_password = Column(String, nullable=False)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class RefreshToken(Base):
    """Refresh token issued to a user.

    Rows are marked ``revoked`` on rotation and logout and deleted by the
    expiry sweep.

    Attributes:
        id: Primary key.
        token: The encoded refresh token.
        user_id: Foreign key to `users.id`.
        created_at: Record creation timestamp.
        expires_at: Expiration timestamp.
        revoked: Boolean flag indicating revocation status.
    """

    __tablename__ = "refresh_tokens"

    id = Column(String(36), primary_key=True, default=_new_id)
    token = Column(String, unique=True, nullable=False, index=True)
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    revoked = Column(Boolean, default=False, nullable=False)

    user = relationship("User", backref="refresh_tokens")


class BlacklistedToken(Base):
    """Access token rejected before its natural expiry.

    Attributes:
        id: Primary key.
        token: The encoded access token.
        user_id: Optional foreign key to `users.id`.
        created_at: Record creation timestamp.
        expires_at: When the token would have expired on its own.
    """

    __tablename__ = "token_blacklist"

    id = Column(String(36), primary_key=True, default=_new_id)
    token = Column(String, unique=True, nullable=False, index=True)
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
