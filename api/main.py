"""FastAPI application for the Care Billing API."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from care_billing import __version__
from care_billing.config import config
from care_billing.logging_utils import configure_logging
from care_billing.models import (
    BillingError,
    ConflictError,
    InvoiceValidationError,
    NotFoundError,
)

from api.routes import router
from api.schemas import ErrorResponse

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Care Billing API",
    description="Invoice generation, billing-rate resolution and invoice lifecycle for care staffing.",
    version=__version__,
)

# CORS: ALLOWED_ORIGINS is a comma-separated list; "*" allows any origin
_origins_list = [o.strip() for o in config.ALLOWED_ORIGINS.split(",") if o.strip()]

_allow_all = "*" in _origins_list

if _allow_all:
    ALLOWED_ORIGINS: list[str] = ["*"]
elif _origins_list:
    ALLOWED_ORIGINS = _origins_list
else:
    ALLOWED_ORIGINS = [
        "http://localhost:8080",
        "http://localhost:3000",
        "http://127.0.0.1:8080",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=not _allow_all,  # credentials not allowed with wildcard
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=3600,
)

app.include_router(router)


def _error(status_code: int, error_type: str, errors: list[str]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error_type=error_type, errors=errors).model_dump(),
    )


@app.exception_handler(InvoiceValidationError)
async def validation_error_handler(request: Request, exc: InvoiceValidationError):
    return _error(422, "validation_error", [f"{name}: {msg}" for name, msg in exc.errors.items()])


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}"
        for err in exc.errors()
    ]
    return _error(422, "validation_error", errors)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error(404, "not_found", [exc.message])


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return _error(400, "conflict", [exc.message])


@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError):
    logger.error("Unhandled billing error on %s %s: %s", request.method, request.url.path, exc.message)
    return _error(500, "processing_error", [exc.message])


@app.get("/")
async def root():
    return {
        "name": "Care Billing API",
        "version": __version__,
        "docs": "/docs",
        "health": "/api/v1/health",
    }
