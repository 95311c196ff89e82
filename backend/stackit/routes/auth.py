"""
StackIt Backend — Auth Route Handlers
=======================================

What:  /api/auth: registration, login, profile and password management,
       account deletion.
How:   Thin handlers; AuthService does the work and raises typed errors that
       the application's exception handlers turn into the error envelope.

Tokens are stateless JWTs, so logout only tells the client to drop its copy.
"""

import logging

from fastapi import APIRouter, Depends, status

from stackit.database import MonitoredSession, get_db_session
from stackit.dependencies import get_current_user
from stackit.models import User
from stackit.schemas.common import ApiResponse, ErrorResponse
from stackit.schemas.user import (
    AuthPayload,
    ChangePasswordRequest,
    DeleteAccountRequest,
    LoginRequest,
    PasswordResetConfirm,
    PasswordResetIssued,
    PasswordResetRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    UserPrivate,
    UserPublic,
)
from stackit.services.auth_service import auth_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])

RESET_REQUESTED = "If that email is registered, a password reset link has been sent"


@router.post(
    "/register",
    response_model=ApiResponse[AuthPayload],
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Username or email taken", "model": ErrorResponse}},
    summary="Create an account",
)
async def register(
    body: RegisterRequest,
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[AuthPayload]:
    payload = await auth_service.register(db, body)
    return ApiResponse(message="User registered successfully", data=payload)


@router.post(
    "/login",
    response_model=ApiResponse[AuthPayload],
    responses={401: {"description": "Invalid credentials", "model": ErrorResponse}},
    summary="Exchange email and password for a bearer token",
)
async def login(
    body: LoginRequest,
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[AuthPayload]:
    payload = await auth_service.login(db, body.email, body.password)
    return ApiResponse(message="Login successful", data=payload)


@router.post("/logout", response_model=ApiResponse[None], summary="Log out")
async def logout(user: User = Depends(get_current_user)) -> ApiResponse[None]:
    logger.info("User %d logged out", user.id)
    return ApiResponse(message="Logout successful")


@router.get("/profile", response_model=ApiResponse[UserPrivate], summary="Current user's profile")
async def get_profile(user: User = Depends(get_current_user)) -> ApiResponse[UserPrivate]:
    return ApiResponse(data=UserPrivate.model_validate(user))


@router.put("/profile", response_model=ApiResponse[UserPrivate], summary="Update the current user's profile")
async def update_profile(
    body: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[UserPrivate]:
    profile = await auth_service.update_profile(db, user, body)
    return ApiResponse(message="Profile updated successfully", data=profile)


@router.get("/users/{user_id}", response_model=ApiResponse[UserPublic], summary="Public profile of a user")
async def get_user(
    user_id: int,
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[UserPublic]:
    return ApiResponse(data=await auth_service.get_public_profile(db, user_id))


@router.put("/change-password", response_model=ApiResponse[None], summary="Change password")
async def change_password(
    body: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[None]:
    await auth_service.change_password(db, user, body)
    return ApiResponse(message="Password changed successfully")


@router.post(
    "/password-reset/request",
    response_model=ApiResponse[PasswordResetIssued],
    summary="Request a password reset token",
)
async def request_password_reset(
    body: PasswordResetRequest,
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[PasswordResetIssued]:
    issued = await auth_service.request_password_reset(db, body.email)
    return ApiResponse(message=RESET_REQUESTED, data=issued)


@router.post("/password-reset", response_model=ApiResponse[None], summary="Set a new password with a reset token")
async def reset_password(
    body: PasswordResetConfirm,
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[None]:
    await auth_service.reset_password(db, body)
    return ApiResponse(message="Password has been reset successfully")


@router.delete("/delete-account", response_model=ApiResponse[None], summary="Delete the current account")
async def delete_account(
    body: DeleteAccountRequest,
    user: User = Depends(get_current_user),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[None]:
    await auth_service.delete_account(db, user, body.password)
    return ApiResponse(message="Account deleted successfully")
