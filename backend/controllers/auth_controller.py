"""Controller layer for OTP login, warden login and logout."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from backend.controllers.dependencies import CurrentUser, get_auth_service, get_current_user
from backend.domain.models import UserProfile
from backend.repository.data_repository import StoreError
from backend.services.auth_service import (
    AdminLoginNotConfiguredError,
    AuthService,
    EmailDomainNotAllowedError,
    InvalidAdminCredentialsError,
    InvalidOtpError,
)
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class SendOtpRequest(BaseModel):
    email: str = Field(min_length=3)


class SendOtpResponse(BaseModel):
    message: str
    debug_code: Optional[str] = None


class VerifyOtpRequest(BaseModel):
    email: str = Field(min_length=3)
    otp: str = Field(min_length=1)


class AdminLoginRequest(BaseModel):
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)


class UserResponse(BaseModel):
    id: str
    email: str
    role: str
    name: Optional[str] = None
    branch: Optional[str] = None
    year: Optional[int] = None


class LoginResponse(BaseModel):
    message: str
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


def _user_response(profile: UserProfile) -> UserResponse:
    return UserResponse(
        id=profile.user_id,
        email=profile.email,
        role=profile.role,
        name=profile.name,
        branch=profile.branch,
        year=profile.year,
    )


@router.post("/send-otp", response_model=SendOtpResponse, status_code=status.HTTP_200_OK)
async def send_otp(
    payload: SendOtpRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> SendOtpResponse:
    try:
        issue = auth_service.request_otp(payload.email)
    except EmailDomainNotAllowedError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - unexpected failure
        logger.exception("Unexpected OTP issue failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send OTP. Try again.",
        ) from exc

    return SendOtpResponse(
        message="OTP sent to your email. Check your inbox.",
        debug_code=issue.code if auth_service.debug_echo_enabled else None,
    )


@router.post("/verify-otp", response_model=LoginResponse, status_code=status.HTTP_200_OK)
async def verify_otp(
    payload: VerifyOtpRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    try:
        session, profile = auth_service.verify_otp(payload.email, payload.otp)
    except EmailDomainNotAllowedError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=str(exc),
        ) from exc
    except InvalidOtpError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc
    except StoreError as exc:
        logger.exception("Profile provisioning failed during OTP verification")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        ) from exc
    return LoginResponse(
        message="Verified successfully",
        access_token=session.token,
        user=_user_response(profile),
    )


@router.post("/admin-login", response_model=LoginResponse, status_code=status.HTTP_200_OK)
async def admin_login(
    payload: AdminLoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    try:
        session, profile = auth_service.admin_login(payload.email, payload.password)
    except (AdminLoginNotConfiguredError, InvalidAdminCredentialsError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc
    except StoreError as exc:
        logger.exception("Admin profile provisioning failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        ) from exc
    return LoginResponse(
        message="Admin login successful",
        access_token=session.token,
        user=_user_response(profile),
    )


@router.post("/logout", status_code=status.HTTP_200_OK)
async def logout(
    current_user: CurrentUser = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> dict[str, str]:
    auth_service.logout(current_user.token)
    return {"message": "Logged out"}
