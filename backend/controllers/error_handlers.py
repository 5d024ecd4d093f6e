"""Application-wide exception handlers."""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


def install_error_handlers(app: FastAPI) -> None:
    """Answer malformed request bodies and parameters with 400 instead of 422."""
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
