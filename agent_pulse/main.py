"""
Agent Pulse FastAPI application — main entry point.
Audits e-commerce storefronts for AI shopping-agent readiness.
"""
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import get_settings
from .database import close_db, connect_db, get_db
from .logger import get_logger
from .routers.analyze_router import router as analyze_router
from .services.analysis_job import JobRunner
from .utils.store import AnalysisStore

settings = get_settings()
log = get_logger("agent_pulse", settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await connect_db()
    except Exception as e:
        log.warning(f"MongoDB not available, using in-memory store: {e}")
        await close_db()

    app.state.store = AnalysisStore(get_db())
    app.state.runner = JobRunner(app.state.store, settings, log=log)

    yield

    await app.state.runner.drain()
    await close_db()


app = FastAPI(
    title="Agent Pulse API",
    description=(
        "**Agent Pulse** — AI agent readiness audits for e-commerce stores\n\n"
        "Features:\n"
        "- Bot access, sitemap and llms.txt discovery checks\n"
        "- Product / Offer / Organization schema validation\n"
        "- Product feed discovery and protocol readiness (UCP, ACP, MCP)\n"
        "- Scored report with prioritized recommendations\n"
    ),
    version=__version__,
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
    lifespan=lifespan,
)

_dev_origins = [
    "http://localhost:5173",
    "http://localhost:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:3000",
]
_extra = os.getenv("EXTRA_ALLOWED_ORIGINS", "")
_extra_origins = [o.strip() for o in _extra.split(",") if o.strip()]

ALLOWED_ORIGINS = _extra_origins + (_dev_origins if settings.environment != "production" else [])

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(analyze_router)


@app.get("/", tags=["Health"])
async def root():
    return {"service": "Agent Pulse API", "version": __version__, "status": "running", "docs": "/docs"}


@app.api_route("/health", methods=["GET", "HEAD"], tags=["Health"])
async def health():
    return {
        "status": "ok",
        "database": "connected" if get_db() is not None else "in-memory fallback",
        "environment": settings.environment,
        "render_fallback": bool(settings.firecrawl_api_key),
        "pagespeed": bool(settings.google_pagespeed_api_key),
    }
