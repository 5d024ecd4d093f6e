"""HTTP controller layer for room allotment, window status and slips."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from backend.controllers.dependencies import (
    CurrentUser,
    get_coordinator,
    get_current_user,
    get_scoped_reader,
    get_slip_service,
    get_window_gate,
    require_student,
)
from backend.domain.models import Allotment, AllotmentWindow
from backend.repository.data_repository import StoreError
from backend.repository.scoped_reader import StudentScopedReader
from backend.services.allotment_service import (
    AllotmentCoordinator,
    AllotmentDeniedError,
    AllotmentStoreError,
    AllotmentValidationError,
    InconsistentAllotmentStateError,
)
from backend.services.slip_service import AllotmentNotFoundError, SlipAccessDeniedError, SlipService
from backend.services.window_service import AllotmentWindowGate
from backend.utils.logger import get_logger


logger = get_logger(__name__)

ALLOT_RETRY_MESSAGE = "Failed to allot room. Try again."

router = APIRouter(tags=["allotment"])


class AllotRequest(BaseModel):
    """Input DTO validated before entering service layer."""

    room_id: int = Field(gt=0)


class AllotmentResponse(BaseModel):
    allotment_id: str
    student_id: str
    room_id: int = Field(gt=0)
    allotted_at: datetime


class AllotResponse(BaseModel):
    message: str
    action: str
    previous_room_id: Optional[int] = None
    allotment: AllotmentResponse


class MyAllotmentResponse(BaseModel):
    allotment: Optional[AllotmentResponse] = None


class WindowResponse(BaseModel):
    window_id: int
    title: str
    open_at: datetime
    close_at: datetime


class WindowStatusResponse(BaseModel):
    open: bool
    active_window: Optional[WindowResponse] = None


class SlipResponse(BaseModel):
    allotment_id: str
    student_name: str
    email: str
    branch: str
    year: int
    hostel_name: str
    room_number: str
    floor: int
    allotted_at: datetime
    verify_url: str


class VerifiedAllotment(BaseModel):
    allotment_id: str
    student_name: str
    email: str
    branch: str
    year: int
    hostel: str
    room_number: str
    floor: int
    allotted_at: datetime


class VerifyResponse(BaseModel):
    valid: bool
    message: str
    allotment: Optional[VerifiedAllotment] = None


def _allotment_response(allotment: Allotment) -> AllotmentResponse:
    return AllotmentResponse(
        allotment_id=allotment.allotment_id,
        student_id=allotment.student_id,
        room_id=allotment.room_id,
        allotted_at=allotment.allotted_at,
    )


def _window_response(window: Optional[AllotmentWindow]) -> Optional[WindowResponse]:
    if window is None:
        return None
    return WindowResponse(
        window_id=window.window_id,
        title=window.title,
        open_at=window.open_at,
        close_at=window.close_at,
    )


@router.post("/allot", response_model=AllotResponse, status_code=status.HTTP_201_CREATED)
async def allot_room(
    payload: AllotRequest,
    current_user: CurrentUser = Depends(require_student),
    coordinator: AllotmentCoordinator = Depends(get_coordinator),
) -> AllotResponse:
    """Allot a room, or switch to it when the student already holds one."""
    try:
        outcome = coordinator.allot(student_id=current_user.user_id, room_id=payload.room_id)
    except AllotmentValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except AllotmentDeniedError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=exc.reason,
        ) from exc
    except (InconsistentAllotmentStateError, AllotmentStoreError, StoreError) as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=ALLOT_RETRY_MESSAGE,
        ) from exc
    except Exception as exc:  # pragma: no cover - unexpected failure
        logger.exception("Unexpected allotment failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=ALLOT_RETRY_MESSAGE,
        ) from exc

    return AllotResponse(
        message=f"Room {outcome.action} successfully!",
        action=outcome.action,
        previous_room_id=outcome.previous_room_id,
        allotment=_allotment_response(outcome.allotment),
    )


@router.get("/allot/mine", response_model=MyAllotmentResponse, status_code=status.HTTP_200_OK)
async def my_allotment(
    reader: StudentScopedReader = Depends(get_scoped_reader),
) -> MyAllotmentResponse:
    try:
        allotment = reader.own_allotment()
    except StoreError as exc:
        logger.exception("Fetching own allotment failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch allotment",
        ) from exc
    return MyAllotmentResponse(
        allotment=_allotment_response(allotment) if allotment is not None else None
    )


@router.get("/allot/window", response_model=WindowStatusResponse, status_code=status.HTTP_200_OK)
async def window_status(
    _: CurrentUser = Depends(get_current_user),
    window_gate: AllotmentWindowGate = Depends(get_window_gate),
) -> WindowStatusResponse:
    result = window_gate.is_window_open()
    return WindowStatusResponse(open=result.open, active_window=_window_response(result.active_window))


@router.get("/allot/{allotment_id}/slip", response_model=SlipResponse, status_code=status.HTTP_200_OK)
async def allotment_slip(
    allotment_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    slip_service: SlipService = Depends(get_slip_service),
) -> SlipResponse:
    if current_user.profile is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied",
        )
    try:
        return SlipResponse(**slip_service.slip(allotment_id=allotment_id, requester=current_user.profile))
    except AllotmentNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except SlipAccessDeniedError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=str(exc),
        ) from exc
    except StoreError as exc:
        logger.exception("Slip lookup failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate slip",
        ) from exc


@router.get("/verify/{allotment_id}", response_model=VerifyResponse, status_code=status.HTTP_200_OK)
async def verify_allotment(
    allotment_id: str,
    slip_service: SlipService = Depends(get_slip_service),
):
    """Public QR target; answers without authentication."""
    try:
        result = slip_service.verify(allotment_id)
    except AllotmentNotFoundError:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={
                "valid": False,
                "message": "Allotment not found. This may be an invalid or expired QR code.",
                "allotment": None,
            },
        )
    except StoreError as exc:
        logger.exception("Allotment verification failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Verification failed",
        ) from exc
    return VerifyResponse(
        valid=True,
        message="Allotment verified successfully",
        allotment=VerifiedAllotment(**result),
    )
