"""
FastAPI application entry-point.
"""
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.routers import ask, catalog
from src.assistant.errors import AssistantError, MalformedRequest
from src.assistant.llm_client import available_providers, describe_provider
from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)

app = FastAPI(
    title="CRM Assistant",
    version="0.1.0",
    description="Natural-language questions over CRM data, answered from templated queries",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ask.router, prefix="/ask", tags=["Assistant"])
app.include_router(catalog.router, tags=["Catalog"])


def _error_response(request: Request, exc: AssistantError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s: %s %s", exc.code, request.url.path, exc.message, exc.details)
    else:
        logger.warning("%s on %s: %s", exc.code, request.url.path, exc.message)
    include_details = not get_settings().is_production
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(include_details))


@app.exception_handler(AssistantError)
async def handle_assistant_error(request: Request, exc: AssistantError) -> JSONResponse:
    return _error_response(request, exc)


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = MalformedRequest(details={"errors": [e.get("msg", "") for e in exc.errors()]})
    return _error_response(request, error)


@app.get("/health")
def health():
    return {
        "status": "ok",
        "llm": describe_provider(),
        "providers": available_providers(),
    }
