"""FastAPI application entry point."""

import logging

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from api import institutions, sync, webhooks
from api.sync import error_response
from logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

# Routes whose clients expect {"error", "details"} instead of FastAPI's 422
_ERROR_BODY_PREFIX = "/api/sync"


app = FastAPI(
    title="feedsync",
    description="Bank transaction ingestion and reconciliation",
    version="0.1.0",
)

# CORS configuration for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed sync requests as 400 with an error body."""
    if request.url.path.startswith(_ERROR_BODY_PREFIX):
        messages = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
        logger.info("Rejected invalid request to %s: %s", request.url.path, messages)
        return error_response(400, "Invalid request", "; ".join(messages))
    return await request_validation_exception_handler(request, exc)


# Include API routers
app.include_router(sync.router)
app.include_router(webhooks.router)
app.include_router(institutions.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
