from __future__ import annotations

import json
import logging
import re
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from pydantic import BaseModel, EmailStr, Field, field_validator

from exposure_scan.backend.breach_store import BreachStore, StoredBreach
from exposure_scan.backend.config import Settings
from exposure_scan.backend.email_info import enrich_email
from exposure_scan.backend.metrics import RateLimiter, RequestMetrics, Sweeper, hash_client
from exposure_scan.backend.models import utc_now_iso
from exposure_scan.backend.orchestrator import ScanOrchestrator
from exposure_scan.backend.passwords import PREFIX_RE, check_password, format_range, lookup_range

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"
DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")


# Data Models
class ScanRequest(BaseModel):
    input: Optional[str] = Field(default=None, validate_default=True)

    @field_validator("input", mode="before")
    @classmethod
    def input_required(cls, v):
        if not isinstance(v, str) or not v.strip():
            raise ValueError("Input is required")
        return v


class BreachImportRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    domain: Optional[str] = None
    breach_date: Optional[str] = None
    description: Optional[str] = None
    data_classes: List[str] = Field(default_factory=list)
    pwn_count: int = Field(default=0, ge=0)
    emails: List[EmailStr] = Field(default_factory=list)

    @field_validator("breach_date")
    @classmethod
    def breach_date_format(cls, v):
        if v is not None and not DATE_RE.fullmatch(v):
            raise ValueError("breach_date must be YYYY-MM-DD")
        return v


class PasswordCheckRequest(BaseModel):
    password: str = Field(min_length=1)
    live: bool = True


class PasswordRangeRequest(BaseModel):
    prefix: str
    live: bool = True

    @field_validator("prefix")
    @classmethod
    def prefix_format(cls, v):
        if not PREFIX_RE.fullmatch(v):
            raise ValueError("Prefix must be exactly 5 hex characters (first 5 chars of the SHA-1 hash)")
        return v.upper()


class EmailEnrichRequest(BaseModel):
    email: EmailStr


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    msg = str(errors[0].get("msg", "Invalid request"))
    return msg[len("Value error, "):] if msg.startswith("Value error, ") else msg


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[ScanOrchestrator] = None,
    store: Optional[BreachStore] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.getLogger().setLevel(getattr(logging, settings.log_level, logging.INFO))

    store = store or BreachStore()
    orchestrator = orchestrator or ScanOrchestrator.from_settings(settings, store)
    request_metrics = RequestMetrics(window_seconds=settings.metrics_window_seconds)
    rate_limiter = RateLimiter(settings.rate_limit_per_minute)
    sweeper = Sweeper(request_metrics, rate_limiter)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper.start()
        logger.info(f"Exposure scan API started (breach provider: {orchestrator.breach_provider.name})")
        yield
        await sweeper.stop()

    app = FastAPI(
        title="Exposure Scan API",
        description="Best-effort digital exposure estimator with transparent provenance",
        version=API_VERSION,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.store = store
    app.state.orchestrator = orchestrator
    app.state.metrics = request_metrics
    app.state.rate_limiter = rate_limiter
    app.state.sweeper = sweeper

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def record_request_metrics(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        if request.url.path.startswith("/api/"):
            request_metrics.record(
                endpoint=request.url.path,
                method=request.method,
                status_code=response.status_code,
                response_time_ms=(time.perf_counter() - started) * 1000,
                client_hash=hash_client(request.client.host if request.client else ""),
            )
        return response

    def enforce_rate_limit(request: Request, bucket: str, detail: str) -> None:
        client = hash_client(request.client.host if request.client else "")
        allowed, retry_after = rate_limiter.hit(f"{bucket}:{client}")
        if not allowed:
            logger.warning(f"Rate limit exceeded on {bucket} for client {client}")
            raise HTTPException(status_code=429, detail=detail, headers={"Retry-After": str(retry_after)})

    # API Endpoints
    @app.post("/api/scan")
    async def scan(payload: ScanRequest, request: Request):
        """Stream scan progress as server-sent events, ending with the result."""
        enforce_rate_limit(request, "scan", "Too many scan requests. Please try again later.")

        async def event_source():
            request_metrics.stream_opened()
            try:
                async for envelope in orchestrator.stream(payload.input):
                    yield f"data: {json.dumps(envelope)}\n\n"
            finally:
                request_metrics.stream_closed()

        return StreamingResponse(
            event_source(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"},
        )

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "timestamp": utc_now_iso(),
            "version": API_VERSION,
            "breach_provider": orchestrator.breach_provider.name,
            "correlation_platforms": orchestrator.correlator.platform_names,
            "breach_store": store.stats(),
        }

    @app.get("/api/metrics")
    async def get_metrics():
        return {**request_metrics.snapshot(), "last_updated": utc_now_iso()}

    @app.get("/api/breaches")
    async def list_breaches(limit: int = 50):
        breaches = store.list_breaches()[: max(0, limit)]
        return {"total": store.breach_count(), "breaches": [b.to_dict() for b in breaches]}

    @app.get("/api/breaches/stats")
    async def breach_stats():
        return store.stats()

    @app.post("/api/breaches/import")
    async def import_breach(payload: BreachImportRequest):
        """Upsert a breach source. Emails are hashed before they are stored."""
        breach = StoredBreach(
            name=payload.name.strip(),
            domain=payload.domain,
            breach_date=payload.breach_date,
            description=payload.description,
            data_classes=tuple(payload.data_classes),
            pwn_count=payload.pwn_count,
        )
        added = store.upsert_breach(breach, [str(e) for e in payload.emails])
        return {"name": breach.name, "emails_added": added, "stats": store.stats()}

    @app.post("/api/check-password")
    async def check_password_endpoint(payload: PasswordCheckRequest, request: Request):
        """k-anonymity check: only a 5-character hash prefix is ever sent upstream."""
        enforce_rate_limit(request, "password", "Too many password checks. Please try again later.")
        return await check_password(
            payload.password, store, live=payload.live, timeout=settings.probe_timeout
        )

    @app.post("/api/check-password/range")
    async def password_range_endpoint(payload: PasswordRangeRequest, request: Request):
        """Return SUFFIX:COUNT lines for a hash prefix. The password never reaches this service."""
        enforce_rate_limit(request, "password", "Too many password checks. Please try again later.")
        entries, source = await lookup_range(
            payload.prefix, store, live=payload.live, timeout=settings.probe_timeout
        )
        return PlainTextResponse(format_range(entries), headers={"X-Range-Source": source})

    @app.post("/api/email/enrich")
    async def email_enrich_endpoint(payload: EmailEnrichRequest):
        return enrich_email(str(payload.email), store)

    # Error handlers
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request, exc):
        message = "Input is required" if request.url.path == "/api/scan" else _validation_message(exc)
        return JSONResponse(
            status_code=400,
            content={
                "error": True,
                "message": message,
                "timestamp": datetime.now().isoformat(),
                "path": str(request.url),
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request, exc):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": True,
                "message": exc.detail,
                "timestamp": datetime.now().isoformat(),
                "path": str(request.url),
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc):
        logger.error(f"Unhandled exception: {str(exc)}")
        return JSONResponse(
            status_code=500,
            content={
                "error": True,
                "message": "Internal server error",
                "timestamp": datetime.now().isoformat(),
                "path": str(request.url),
            },
        )

    return app


app = create_app()
