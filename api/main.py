"""
Friends - Story extraction staging and review service
FastAPI Application Entry Point

Run locally with:

    uvicorn api.main:app --host 0.0.0.0 --port 8000
"""
# Load environment variables from .env file first, before any imports
from dotenv import load_dotenv
load_dotenv()

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import mentions, people, preferences, review, stories
from api.services.app_context import AppContext
from api.services.errors import (
    AlreadyReviewed,
    CandidateRejected,
    DuplicateFact,
    NotFound,
    UnresolvedAmbiguity,
)
from config.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown."""
    app.state.context = AppContext.load()
    logger.info(
        f"Friends started (data: {settings.data_path}, "
        f"extraction {'enabled' if settings.extraction_enabled else 'disabled'}, "
        f"auto-accept {'on' if app.state.context.auto_accept_enabled else 'off'})"
    )
    yield
    logger.info("Friends shutting down")


app = FastAPI(
    title="Friends",
    description="Stage, review and commit relationship facts extracted from personal stories",
    version="0.1.0",
    lifespan=lifespan
)

# CORS middleware for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(mentions.router)
app.include_router(people.router)
app.include_router(stories.router)
app.include_router(review.router)
app.include_router(preferences.router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Convert validation errors to 400 with clear messages."""
    sanitized_errors = []
    for error in exc.errors():
        sanitized = dict(error)
        if "input" in sanitized and isinstance(sanitized["input"], bytes):
            sanitized["input"] = sanitized["input"].decode("utf-8", errors="replace")
        if "ctx" in sanitized:
            sanitized["ctx"] = {k: str(v) for k, v in sanitized["ctx"].items()}
        sanitized_errors.append(sanitized)

    return JSONResponse(
        status_code=400,
        content={"error": "Validation error", "detail": sanitized_errors}
    )


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"error": "Not found", "detail": str(exc)})


@app.exception_handler(AlreadyReviewed)
async def already_reviewed_handler(request: Request, exc: AlreadyReviewed):
    return JSONResponse(
        status_code=409,
        content={"error": "Already reviewed", "detail": str(exc), "review_status": exc.review_status},
    )


@app.exception_handler(DuplicateFact)
async def duplicate_fact_handler(request: Request, exc: DuplicateFact):
    return JSONResponse(
        status_code=409,
        content={"error": "Duplicate fact", "detail": str(exc), "existing_id": exc.existing_id},
    )


@app.exception_handler(UnresolvedAmbiguity)
async def unresolved_ambiguity_handler(request: Request, exc: UnresolvedAmbiguity):
    return JSONResponse(
        status_code=409,
        content={"error": "Unresolved ambiguity", "detail": str(exc), "names": exc.names},
    )


@app.exception_handler(CandidateRejected)
async def candidate_rejected_handler(request: Request, exc: CandidateRejected):
    logger.warning(f"Rejected candidate ({exc.reason}): {exc.message}")
    return JSONResponse(
        status_code=422,
        content={"error": exc.reason, "detail": exc.message, "value": exc.value},
    )


@app.get("/health")
async def health_check():
    """Health check endpoint that verifies critical dependencies."""
    checks = {
        "api_key_configured": settings.extraction_enabled,
    }

    all_healthy = all(checks.values())

    return {
        "status": "healthy" if all_healthy else "degraded",
        "service": "friends",
        "checks": checks,
    }


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run("api.main:app", host=settings.host, port=settings.port)
