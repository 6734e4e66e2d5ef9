"""
Safe Scroll - Backend API
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

FastAPI server for real-time social-media content risk scoring,
overlay mitigation and protection stats.
"""

import logging
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

import time
import secrets
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator
import uvicorn

from app_profiles import APP_PROFILES
from errors import ConfigurationError, SafeScrollError
from service import ProtectionService
from settings import load_settings

API_VERSION = "1.0.0"

settings = load_settings()
service = ProtectionService(settings)
service.activate()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    try:
        await service.shutdown()
    except SafeScrollError as e:
        logger.error(f"Shutdown incomplete: {e}")
        raise


app = FastAPI(
    title="Safe Scroll API",
    description="Scores social-media content for psychological risk and manages blocking overlays",
    version=API_VERSION,
    lifespan=lifespan,
)

# Security headers middleware
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """Attach security headers (X-Content-Type-Options, X-Frame-Options, etc.)."""
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=()"
    return response

# API Key Authentication middleware (optional - set API_SECRET_KEY in .env to enable)
_api_secret = settings.api_secret_key
# Endpoints that don't require authentication
_PUBLIC_ENDPOINTS = {"/health", "/docs", "/openapi.json", "/redoc"}

if _api_secret:
    logger.info("API authentication: ENABLED (API_SECRET_KEY set)")
else:
    logger.warning("API authentication: DISABLED. Set API_SECRET_KEY in .env to require auth.")

@app.middleware("http")
async def api_key_middleware(request: Request, call_next):
    """Require X-API-Key header on protected endpoints when API_SECRET_KEY is configured."""
    if not _api_secret:
        return await call_next(request)

    path = request.url.path.rstrip("/")
    if path in _PUBLIC_ENDPOINTS or request.method == "OPTIONS":
        return await call_next(request)

    provided_key = request.headers.get("X-API-Key", "")
    if not secrets.compare_digest(provided_key, _api_secret):
        return JSONResponse(status_code=401, content={"detail": "Invalid or missing API key"})

    return await call_next(request)

# Per-IP rate limiting middleware
_rate_limit_store: dict[str, list[float]] = {}
RATE_LIMIT_WINDOW = 60  # seconds
RATE_LIMITS = {
    "/analyze": 60,                   # 60 requests per minute
    "/events/content-changed": 240,   # feeds fire change events often
    "/health": 60,
    "/config": 20,
}
DEFAULT_RATE_LIMIT = 30  # For unlisted endpoints

@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    """Enforce per-IP, per-endpoint rate limits using a sliding window."""
    client_ip = request.client.host if request.client else "unknown"
    path = request.url.path.rstrip("/")
    limit = RATE_LIMITS.get(path, DEFAULT_RATE_LIMIT)
    key = f"{client_ip}:{path}"

    now = time.time()
    timestamps = _rate_limit_store.get(key, [])
    # Remove old timestamps outside the window
    timestamps = [t for t in timestamps if now - t < RATE_LIMIT_WINDOW]

    if len(timestamps) >= limit:
        return JSONResponse(
            status_code=429,
            content={"detail": f"Rate limit exceeded. Max {limit} requests per minute for {path}."}
        )

    timestamps.append(now)
    _rate_limit_store[key] = timestamps

    # Periodic cleanup of old entries
    if len(_rate_limit_store) > 200:
        cutoff = now - RATE_LIMIT_WINDOW
        stale_keys = [
            k for k, v in _rate_limit_store.items()
            if not v or v[-1] < cutoff
        ]
        for k in stale_keys:
            del _rate_limit_store[k]

    return await call_next(request)


# Request/Response models
class AnalyzeRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=10000)
    app_id: str = Field("", max_length=200)


class AnalysisResponse(BaseModel):
    total_score: int
    per_category_score: dict[str, int]
    matched_triggers: list[str]
    contextual_factors: list[str]
    should_block: bool
    confidence: int
    primary_category: str
    reason: str
    risk_tier: str
    latency_ms: int
    emotional_tone: str
    app_id: str


class ContentEventRequest(BaseModel):
    app_id: str = Field(..., min_length=1, max_length=200)
    text: str = Field("", max_length=10000)
    regions: list[Any] = Field(default_factory=list, max_length=50)

    @field_validator('app_id')
    @classmethod
    def strip_app_id(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("app_id must not be blank")
        return v


class ContentEventResponse(BaseModel):
    app_id: str
    verdict: str


class TriggerRequest(BaseModel):
    phrase: str = Field(..., min_length=1, max_length=200)


class ProtectionRequest(BaseModel):
    active: Optional[bool] = None
    auto_scroll: Optional[bool] = None
    level: Optional[int] = Field(None, ge=25, le=100)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": API_VERSION,
        "active": service.is_active,
    }


@app.post("/analyze", response_model=AnalysisResponse)
async def analyze_text(request: AnalyzeRequest):
    """
    Score a piece of text immediately.

    Unlike /events/content-changed this bypasses throttling and never
    shows overlays. The result is still counted in /stats.
    """
    try:
        result = service.analyze_text(request.text, request.app_id)
        return result.to_dict()
    except Exception as e:
        logger.error(f"Analysis endpoint error: {e}")
        raise HTTPException(status_code=500, detail="Internal analysis error")


@app.post("/events/content-changed", response_model=ContentEventResponse)
async def content_changed(request: ContentEventRequest):
    """
    Report that on-screen content changed in an app.

    The verdict says whether analysis was dispatched or why the event
    was dropped (throttled, busy, ignored app, protection inactive).
    """
    try:
        verdict = service.submit_content(request.app_id, request.text, tuple(request.regions))
        return {"app_id": request.app_id, "verdict": verdict.value}
    except Exception as e:
        logger.error(f"Content event error: {e}")
        raise HTTPException(status_code=500, detail="Failed to process content event")


@app.get("/config")
async def get_config():
    """Current configuration summary (trigger phrases stripped to prevent evasion)"""
    return service.config_store.snapshot().describe()


@app.post("/config")
async def update_config(payload: dict):
    """
    Apply a configuration update atomically.

    Accepts `sensitivity` (category -> 25..100), `customTriggers`
    (category -> phrases) and `blockThreshold`. A rejected update leaves
    the previous configuration active.
    """
    try:
        config = service.apply_config(payload)
    except ConfigurationError as e:
        logger.warning(f"Rejected configuration update: {e}")
        raise HTTPException(status_code=400, detail="Invalid configuration update")
    return config.describe()


@app.post("/config/reset")
async def reset_config():
    return service.config_store.reset().describe()


@app.post("/config/triggers/{category}")
async def add_trigger(category: str, request: TriggerRequest):
    """Add a custom trigger phrase to an existing category"""
    try:
        config = service.add_custom_trigger(category, request.phrase)
    except ConfigurationError as e:
        logger.warning(f"Rejected trigger: {e}")
        raise HTTPException(status_code=400, detail="Invalid trigger")
    return config.describe()


@app.delete("/config/triggers/{category}")
async def remove_trigger(category: str, phrase: str):
    if not service.remove_custom_trigger(category, phrase):
        raise HTTPException(status_code=404, detail="Trigger not found")
    return service.config_store.snapshot().describe()


@app.get("/categories")
async def get_categories():
    """Get trigger categories (phrases stripped, counts only)"""
    return service.config_store.snapshot().describe()["categories"]


@app.get("/apps")
async def get_apps():
    """Monitored apps and how many heuristic rules each carries"""
    return [
        {
            "app_id": profile.app_id,
            "name": profile.display_name,
            "monitored": profile.monitored,
            "rule_count": len(profile.rules),
        }
        for profile in APP_PROFILES.values()
    ]


@app.get("/stats")
async def get_stats():
    return service.get_stats()


@app.post("/stats/reset")
async def reset_stats():
    service.reset_stats()
    return service.get_stats()


@app.get("/overlays")
async def get_overlays(include_finished: bool = False):
    return service.mitigation.list_overlays(include_finished=include_finished)


@app.post("/overlays/{overlay_id}/reveal")
async def reveal_overlay(overlay_id: str):
    """User chose to see the blocked content"""
    if not service.reveal(overlay_id):
        raise HTTPException(status_code=404, detail="Overlay not found or already dismissed")
    return {"id": overlay_id, "state": service.mitigation.get_state(overlay_id).value}


@app.post("/overlays/{overlay_id}/skip")
async def skip_overlay(overlay_id: str):
    """User chose to skip the blocked content (may trigger auto-scroll)"""
    if not service.skip(overlay_id):
        raise HTTPException(status_code=404, detail="Overlay not found or already dismissed")
    return {"id": overlay_id, "state": service.mitigation.get_state(overlay_id).value}


@app.post("/protection")
async def set_protection(request: ProtectionRequest):
    """Turn protection on/off, toggle auto-scroll, or set the global protection level"""
    if request.active is not None:
        if request.active:
            try:
                service.activate()
            except SafeScrollError as e:
                logger.warning(f"Activation refused: {e}")
                raise HTTPException(status_code=409, detail="Service is shutting down")
        else:
            service.deactivate()
    if request.auto_scroll is not None:
        service.set_auto_scroll_enabled(request.auto_scroll)
    if request.level is not None:
        service.set_protection_level(request.level)
    return {
        "active": service.is_active,
        "auto_scroll": service.mitigation.auto_scroll_enabled,
        "config_version": service.config_store.version,
    }


@app.get("/blocked")
async def get_blocked(limit: int = 20):
    """Most recent block notifications, newest first"""
    limit = max(1, min(limit, 100))
    return service.recent_blocks(limit)


if __name__ == "__main__":
    logger.info("Safe Scroll API")
    logger.info("Starting server at http://127.0.0.1:8000")
    logger.info("API docs: http://127.0.0.1:8000/docs")
    # SECURITY: bind to localhost only - never 0.0.0.0 without authentication
    uvicorn.run(app, host="127.0.0.1", port=8000)
