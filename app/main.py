# -*- coding: utf-8 -*-
"""
FastAPI application — product search, scrape-and-compare, and user accounts.

Endpoints:
  POST /user/create                 → signup (credentials or Google)
  POST /user/login                  → login, re-sends link when unverified
  POST /user/logout                 → clears the session cookie
  GET  /user/{userId}/verify/{token}→ consumes a verification token
  POST /auth/verify                 → session payload (+ nested history)
  POST /search/create               → SerpAPI → Gemini → searches/products
  POST /search/generate-form        → Gemini-designed preference form
  POST /compare/product             → ScrapeNinja → Gemini → compares/products
  GET  /                            → Service info
  GET  /health                      → Health check
"""
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.agents.reconciler import Reconciler
from app.compare.service import CompareSettings, run_compare
from app.config import Settings, settings
from app.db.models import engine, get_db, init_db
from app.deps import (
    get_current_user, get_mailer, get_reconciler, get_scraper, get_serp, get_settings,
)
from app.errors import ExtractionError, UpstreamError, UserNotFound
from app.schemas import CompareRequest, CreateUserRequest, FormRequest, LoginRequest, SearchRequest
from app.scraping.scraper_api import ScrapeClient
from app.search.serp import SerpClient
from app.search.service import generate_form, run_search
from app.users.email_sender import Mailer
from app.users.history import get_user_nested_data
from app.users.security import clear_session_cookie, set_session_cookie
from app.users.service import AuthOutcome, create_user, login_user, verify_user
from app.utils.llm_client import GeminiClient
from app.utils.logger import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("=== Startup: ShopLens API (%s) ===", settings.app_env)

    llm = GeminiClient(settings)
    if not llm.enabled:
        logger.error("GEMINI_API_KEY is missing from .env — extraction will fail")
    else:
        logger.info("Gemini ready: %s ✓", llm.model)

    app.state.settings = settings
    app.state.llm = llm
    app.state.reconciler = Reconciler(llm, max_attempts=settings.llm_max_attempts)
    app.state.scraper = ScrapeClient(settings)
    app.state.serp = SerpClient(settings)
    app.state.mailer = Mailer(settings)

    if not settings.scrapeninja_api_key:
        logger.warning("SCRAPENINJA_API_KEY not set — /compare/product will fail")
    if not settings.serpapi_key:
        logger.warning("SERPAPI_KEY not set — /search/create will fail")
    if not app.state.mailer.configured:
        logger.warning("SMTP credentials not set — verification emails are skipped")
    if settings.session_secret == "change-me" and settings.is_production:
        logger.error("SESSION_SECRET is the default value in production")

    await init_db()

    yield
    await engine.dispose()
    logger.info("=== Shutdown ===")


app = FastAPI(
    title="ShopLens API",
    description="Product search and comparison backed by SerpAPI, ScrapeNinja and Gemini",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ═══════════════════════════════════════════════════════════════════════════════
# Error mapping: every failure body is {"message": ...}
# ═══════════════════════════════════════════════════════════════════════════════


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.errors()[:3])
    return JSONResponse(status_code=400, content={"message": "Missing required fields"})


@app.exception_handler(UserNotFound)
async def user_not_found(request: Request, exc: UserNotFound):
    logger.info("%s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=404, content={"message": "User not found"})


@app.exception_handler(UpstreamError)
@app.exception_handler(ExtractionError)
async def pipeline_error(request: Request, exc: Exception):
    logger.error("❌ %s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"message": "Internal Server Error"})


@app.exception_handler(SQLAlchemyError)
async def database_error(request: Request, exc: SQLAlchemyError):
    logger.error("❌ %s %s database error: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"message": "Internal Server Error"})


def _auth_response(outcome: AuthOutcome, settings: Settings) -> JSONResponse:
    body: Dict[str, Any] = {"message": outcome.message}
    if outcome.user is not None:
        body["user"] = outcome.user
        body["verified"] = bool(outcome.user.get("verified"))
    response = JSONResponse(status_code=outcome.status_code, content=body)
    if outcome.issue_session and outcome.user is not None:
        set_session_cookie(response, outcome.user, settings)
    return response


# ═══════════════════════════════════════════════════════════════════════════════
# Users
# ═══════════════════════════════════════════════════════════════════════════════


@app.post("/user/create")
async def user_create(
    req:      CreateUserRequest,
    db=Depends(get_db),
    settings: Settings = Depends(get_settings),
    mailer:   Mailer = Depends(get_mailer),
):
    outcome = await create_user(db, req, settings, mailer)
    return _auth_response(outcome, settings)


@app.post("/user/login")
async def user_login(
    req:      LoginRequest,
    db=Depends(get_db),
    settings: Settings = Depends(get_settings),
    mailer:   Mailer = Depends(get_mailer),
):
    outcome = await login_user(db, req, settings, mailer)
    return _auth_response(outcome, settings)


@app.post("/user/logout")
async def user_logout(settings: Settings = Depends(get_settings)):
    response = JSONResponse(status_code=200, content={"message": "Logged out successfully"})
    clear_session_cookie(response, settings)
    return response


@app.get("/user/{user_id}/verify/{token}")
async def user_verify(
    user_id:  str,
    token:    str,
    db=Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    outcome = await verify_user(db, user_id, token)
    return _auth_response(outcome, settings)


# ═══════════════════════════════════════════════════════════════════════════════
# Session
# ═══════════════════════════════════════════════════════════════════════════════


@app.post("/auth/verify")
async def auth_verify(
    include_data: bool = False,
    user: Dict[str, Any] = Depends(get_current_user),
    db=Depends(get_db),
):
    """POST /auth/verify[?include_data=true] → session user, optionally with history."""
    if not include_data:
        return {"message": "Authorized", "user": user}

    nested = await get_user_nested_data(db, user["id"])
    return {"message": "Authorized", **nested}


# ═══════════════════════════════════════════════════════════════════════════════
# Search
# ═══════════════════════════════════════════════════════════════════════════════


@app.post("/search/create")
async def search_create(
    req:        SearchRequest,
    user:       Dict[str, Any] = Depends(get_current_user),
    db=Depends(get_db),
    serp:       SerpClient = Depends(get_serp),
    reconciler: Reconciler = Depends(get_reconciler),
    settings:   Settings = Depends(get_settings),
):
    """POST /search/create → SerpAPI → batched Gemini structuring → persisted search."""
    return await run_search(
        db, serp, reconciler,
        batch_size=settings.llm_batch_size,
        user_id=user["id"],
        query=req.query,
        filters=req.filters,
    )


@app.post("/search/generate-form")
async def search_generate_form(
    req:        FormRequest,
    reconciler: Reconciler = Depends(get_reconciler),
):
    return await generate_form(reconciler, req.query)


# ═══════════════════════════════════════════════════════════════════════════════
# Compare
# ═══════════════════════════════════════════════════════════════════════════════


@app.post("/compare/product")
async def compare_product(
    req:        CompareRequest,
    db=Depends(get_db),
    scraper:    ScrapeClient = Depends(get_scraper),
    reconciler: Reconciler = Depends(get_reconciler),
    settings:   Settings = Depends(get_settings),
):
    """POST /compare/product → scrape every URL → structure → summarize → persist."""
    options = CompareSettings(
        max_concurrent=settings.scrape_max_concurrent,
        cache_dir=settings.scrape_cache_dir,
    )
    return await run_compare(db, scraper, reconciler, options, req.user_id, req.query_list())


# ═══════════════════════════════════════════════════════════════════════════════
# Info / Health
# ═══════════════════════════════════════════════════════════════════════════════


@app.get("/")
async def root():
    return {
        "name": "ShopLens API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }


@app.get("/health")
async def health(settings: Settings = Depends(get_settings)):
    return {
        "status": "ok",
        "env": settings.app_env,
        "llm_enabled": bool(settings.gemini_api_key),
        "llm_model": settings.gemini_model if settings.gemini_api_key else None,
        "scraper_configured": bool(settings.scrapeninja_api_key),
        "serpapi_configured": bool(settings.serpapi_key),
        "smtp_configured": bool(settings.smtp_user and settings.smtp_password),
        "database": engine.dialect.name,
    }
