from enum import Enum
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class ErrorCategory(str, Enum):
    INVALID_INPUT = "InvalidInput"
    EMAIL_ALREADY_IN_USE = "EmailAlreadyInUse"
    WEAK_SECRET = "WeakSecret"
    INVALID_EMAIL = "InvalidEmail"
    SLUG_RESOLUTION_FAILED = "SlugResolutionFailed"
    WRITE_FAILED = "WriteFailed"
    UNKNOWN = "Unknown"


USER_MESSAGES: Dict[ErrorCategory, str] = {
    ErrorCategory.INVALID_INPUT: "Some required information is missing or invalid.",
    ErrorCategory.EMAIL_ALREADY_IN_USE: (
        "This email address is already registered. Please use a different email or try logging in."
    ),
    ErrorCategory.WEAK_SECRET: "Password is too weak. Please choose a stronger password.",
    ErrorCategory.INVALID_EMAIL: "Please enter a valid email address.",
    ErrorCategory.SLUG_RESOLUTION_FAILED: "We could not reserve a web address for your HOA. Please try again later.",
    ErrorCategory.WRITE_FAILED: "We could not save your account details. Please try again later.",
    ErrorCategory.UNKNOWN: "Failed to create account. Please try again later.",
}

STATUS_CODES: Dict[ErrorCategory, int] = {
    ErrorCategory.INVALID_INPUT: 400,
    ErrorCategory.EMAIL_ALREADY_IN_USE: 409,
    ErrorCategory.WEAK_SECRET: 400,
    ErrorCategory.INVALID_EMAIL: 400,
    ErrorCategory.SLUG_RESOLUTION_FAILED: 503,
    ErrorCategory.WRITE_FAILED: 503,
    ErrorCategory.UNKNOWN: 500,
}


class OnboardingError(Exception):
    def __init__(self, category: ErrorCategory, stage: str, message: Optional[str] = None) -> None:
        self.category = category
        self.stage = stage
        self.message = message or USER_MESSAGES[category]
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.category]


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(OnboardingError)
    async def onboarding_exception_handler(request: Request, exc: OnboardingError) -> JSONResponse:  # type: ignore[override]
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": exc.message,
                "code": exc.category.value,
                "stage": exc.stage,
                "path": str(request.url),
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:  # type: ignore[override]
        return JSONResponse(
            status_code=422,
            content={
                "detail": "Validation failed.",
                "errors": jsonable_errors(exc),
                "path": str(request.url),
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # type: ignore[override]
        payload: Dict[str, Any] = {"detail": exc.detail or "HTTP error.", "path": str(request.url)}
        return JSONResponse(status_code=exc.status_code, content=payload, headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # type: ignore[override]
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error.",
                "path": str(request.url),
            },
        )


def jsonable_errors(exc: RequestValidationError) -> list:
    errors = []
    for error in exc.errors():
        cleaned = {key: value for key, value in error.items() if key != "ctx"}
        errors.append(cleaned)
    return errors
