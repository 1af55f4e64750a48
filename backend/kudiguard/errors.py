from __future__ import annotations

import logging
from typing import Any, Dict, Literal

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from kudiguard.services.common import response_meta

logger = logging.getLogger(__name__)

Severity = Literal["LOW", "MEDIUM", "HIGH"]

RETRY_ACTION = "Try again"
UPDATE_DATA_ACTION = "Update my financial data"
CANCEL_ACTION = "Cancel"


class EngineError(Exception):
    code = "UNHANDLED_EXCEPTION"
    severity: Severity = "HIGH"
    status_code = 500
    default_details = "Something went wrong on our side. Please try again."
    default_actions: tuple[str, ...] = (RETRY_ACTION, CANCEL_ACTION)

    def __init__(self, details: str | None = None, *, suggested_actions: list[str] | None = None) -> None:
        self.details = details or self.default_details
        self.suggested_actions = list(suggested_actions or self.default_actions)
        super().__init__(self.details)


class InputValidationError(EngineError):
    code = "INVALID_INPUT"
    severity: Severity = "LOW"
    status_code = 400
    default_details = "Some of the information provided is not valid."
    default_actions = (RETRY_ACTION, CANCEL_ACTION)


class AuthError(EngineError):
    code = "UNAUTHORIZED_ACCESS"
    severity: Severity = "LOW"
    status_code = 401
    default_details = "Authentication required. Please sign in again."
    default_actions = ("Sign in again",)


class NoFinancialDataError(EngineError):
    code = "NO_FINANCIAL_DATA"
    severity: Severity = "LOW"
    status_code = 404
    default_details = "No financial data found. Please add your financial information first."
    default_actions = (UPDATE_DATA_ACTION, CANCEL_ACTION)


class RecommendationNotFoundError(EngineError):
    code = "RECOMMENDATION_NOT_FOUND"
    severity: Severity = "LOW"
    status_code = 404
    default_details = "That recommendation could not be found."
    default_actions = (CANCEL_ACTION,)


class ConcurrentTurnError(EngineError):
    code = "CONCURRENT_TURN"
    severity: Severity = "LOW"
    status_code = 409
    default_details = "Your previous message is still being processed. Please wait a moment and try again."
    default_actions = (RETRY_ACTION,)


class DecisionProcessingError(EngineError):
    code = "DECISION_PROCESSING_FAILED"
    severity: Severity = "HIGH"
    status_code = 500
    default_details = "We couldn't complete your decision right now. Please try again."
    default_actions = (RETRY_ACTION, UPDATE_DATA_ACTION, CANCEL_ACTION)


class StoreUnavailableError(EngineError):
    code = "STORE_UNAVAILABLE"
    severity: Severity = "HIGH"
    status_code = 503
    default_details = "Our records are temporarily unavailable. Please try again shortly."
    default_actions = (RETRY_ACTION,)


def error_body(code: str, severity: str, details: str, suggested_actions: list[str]) -> Dict[str, Any]:
    return {
        "success": False,
        "data": None,
        "error": {
            "code": code,
            "severity": severity,
            "details": details,
            "suggested_actions": suggested_actions,
        },
        "meta": response_meta(),
    }


def create_error_response(exc: EngineError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.severity, exc.details, exc.suggested_actions),
    )


async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    logger.warning(
        "engine_error code=%s status=%s path=%s",
        exc.code,
        exc.status_code,
        request.url.path,
    )
    return create_error_response(exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for item in exc.errors():
        location = ".".join(str(part) for part in item.get("loc", ()) if part != "body")
        problems.append(f"{location or 'body'}: {item.get('msg', 'invalid value')}")
    logger.info("request_validation_failed path=%s errors=%s", request.url.path, len(problems))
    return create_error_response(InputValidationError("; ".join(problems) or None))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    if exc.status_code == 401:
        return create_error_response(AuthError())
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body("HTTP_ERROR", "LOW", str(exc.detail), [RETRY_ACTION]),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception path=%s", request.url.path)
    return create_error_response(EngineError())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EngineError, engine_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
