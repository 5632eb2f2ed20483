"""Authentication routes.

Thin HTTP adapter over :class:`AuthenticationService`. Domain errors are
rendered by the application's exception handler; routes only translate
requests into service calls.

Endpoints:
    - POST /auth/register: Create an account (returns access + refresh tokens)
    - POST /auth/login: Login (returns access + refresh tokens)
    - POST /auth/refresh: Exchange a refresh token for a new pair
    - POST /auth/logout: Blacklist the access token, revoke a refresh token
    - POST /auth/logout-all: Revoke all user's refresh tokens
    - POST /auth/change-password: Change password, ending all sessions
    - POST /auth/forgot-password: Request a password reset
    - GET  /auth/me, /auth/me/sessions: Current account and its sessions
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from tokenward.core.logging import logger
from tokenward.schemas.auth import (
    Account,
    AuthResult,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    PublicUser,
    RegisterRequest,
    Session,
    TokenPair,
    TokenRefresh,
)
from tokenward.services.auth import AuthenticationService

router = APIRouter(prefix="/auth", tags=["auth"])

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def get_auth_service(request: Request) -> AuthenticationService:
    return request.app.state.auth_service


AuthServiceDep = Annotated[AuthenticationService, Depends(get_auth_service)]
BearerToken = Annotated[str, Depends(oauth2_scheme)]


async def get_current_user(token: BearerToken, service: AuthServiceDep) -> Account:
    """Resolve the bearer access token to an active account.

    Only accepts valid, non-blacklisted access tokens of active accounts.
    """
    account = await service.validate_access_token(token)
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return account


CurrentUser = Annotated[Account, Depends(get_current_user)]


@router.post("/register", response_model=AuthResult, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, service: AuthServiceDep):
    return await service.register(
        email=body.email,
        username=body.username,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )


@router.post("/login", response_model=AuthResult)
async def login(body: LoginRequest, service: AuthServiceDep):
    """Authenticate with email and password.

    Every refresh token previously issued to the account is revoked.
    """
    return await service.login(body.email, body.password)


@router.post("/refresh", response_model=TokenPair)
async def refresh_tokens(body: TokenRefresh, service: AuthServiceDep):
    """Exchange a refresh token for a new access + refresh token pair.

    The presented refresh token is revoked (rotation) and cannot be reused.
    """
    return await service.refresh(body.refresh_token)


@router.post("/logout")
async def logout(
    token: BearerToken,
    current_user: CurrentUser,
    service: AuthServiceDep,
    body: LogoutRequest | None = None,
):
    """Blacklist the presented access token and revoke the refresh token.

    The bearer token must be valid, so forged tokens are never stored.
    """
    await service.logout(
        token, body.refresh_token if body else None, user_id=current_user.id
    )
    return {"message": "Successfully logged out"}


@router.post("/logout-all")
async def logout_all_devices(
    token: BearerToken, current_user: CurrentUser, service: AuthServiceDep
):
    """Revoke all refresh tokens for the current user (logout everywhere).

    Useful when a user suspects account compromise or wants to force
    re-authentication on all devices.
    """
    await service.logout_all(current_user.id, token)
    return {"message": "Successfully logged out from all devices"}


@router.post("/change-password")
async def change_password(
    body: ChangePasswordRequest, current_user: CurrentUser, service: AuthServiceDep
):
    await service.change_password(
        current_user.id, body.current_password, body.new_password
    )
    return {"message": "Password changed successfully"}


@router.post("/forgot-password", status_code=status.HTTP_202_ACCEPTED)
async def forgot_password(body: ForgotPasswordRequest, service: AuthServiceDep):
    await service.forgot_password(body.email)
    # same answer whether or not the email exists
    return {"message": "If the email is registered, reset instructions will follow"}


@router.get("/me", response_model=PublicUser)
async def read_users_me(current_user: CurrentUser):
    return PublicUser.model_validate(current_user.model_dump())


@router.get("/me/sessions", response_model=list[Session])
async def get_active_sessions(current_user: CurrentUser, service: AuthServiceDep):
    """Return active (non-revoked, unexpired) refresh token sessions."""
    sessions = await service.list_sessions(current_user.id)
    logger.debug("Listed {} sessions for user id={}", len(sessions), current_user.id)
    return sessions
