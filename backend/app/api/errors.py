"""
Exception handlers mapping admission errors to HTTP responses.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.exceptions import AdmissionError, PersistenceError
from app.core.logging import get_logger

logger = get_logger(__name__)


async def admission_error_handler(request: Request, exc: AdmissionError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "admission_rejected",
        error_code=exc.error_code,
        status_code=exc.status_code,
        message=exc.message,
        details=exc.details,
    )

    headers = {}
    if isinstance(exc, PersistenceError):
        headers["Retry-After"] = "1"

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.message,
            "error_code": exc.error_code,
            "details": exc.details,
        },
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AdmissionError, admission_error_handler)
