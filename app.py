# app.py
import hmac
import logging
import threading
import time
from contextlib import asynccontextmanager
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from fastapi import FastAPI, HTTPException, Request, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from starlette.middleware.gzip import GZipMiddleware
from pydantic import BaseModel, Field
from httpx import AsyncClient, Limits, Timeout

from fetching import is_url
from menu_renderer import ImageFallback, MenuOptions
from page import Page
from pipeline import render_page
from settings import (
    ALLOWED_ORIGINS,
    BACKEND_API_KEY,
    HTTP_TIMEOUT_S,
    RATE_LIMIT_PER_MIN,
    SITE_ROOT,
)

# Logging
log = logging.getLogger("uvicorn.error")

# ────────────────────────────────────────────────────────────────────────────
# App & shared HTTP client (lifespan)
# ────────────────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.http = AsyncClient(
        limits=Limits(max_connections=50, max_keepalive_connections=10),
        timeout=Timeout(HTTP_TIMEOUT_S, connect=5.0),
    )
    # Warn (don't crash) on a half-configured deployment
    if not SITE_ROOT.is_dir():
        log.warning("SITE_ROOT %s is not a directory; /site pages will 404.", SITE_ROOT)
    if not BACKEND_API_KEY:
        log.warning("BACKEND_API_KEY not set; /render will reject every request.")
    try:
        yield
    finally:
        await app.state.http.aclose()

app = FastAPI(title="Restaurant Site Binder", version="1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)
# Compression
app.add_middleware(GZipMiddleware, minimum_size=500)

# ────────────────────────────────────────────────────────────────────────────
# Utilities: rate limiting, security
# ────────────────────────────────────────────────────────────────────────────
_ip_hits: Dict[str, List[float]] = {}
_ip_lock = threading.Lock()
MAX_IP_BUCKETS = 10_000

def _sweep_expired(window_start: float) -> None:
    # Caller holds _ip_lock
    for ip in [ip for ip, hits in _ip_hits.items() if not hits or hits[-1] < window_start]:
        del _ip_hits[ip]

def rate_limit(request: Request):
    ip = request.client.host if request.client else "unknown"
    now = time.time()
    window_start = now - 60.0

    with _ip_lock:
        if ip not in _ip_hits and len(_ip_hits) >= MAX_IP_BUCKETS:
            _sweep_expired(window_start)
            if len(_ip_hits) >= MAX_IP_BUCKETS:
                raise HTTPException(503, "Server busy")

        bucket = _ip_hits.setdefault(ip, [])
        while bucket and bucket[0] < window_start:
            bucket.pop(0)
        if len(bucket) >= RATE_LIMIT_PER_MIN:
            raise HTTPException(429, "Rate limit exceeded.")
        bucket.append(now)

def security_guard(request: Request):
    if not BACKEND_API_KEY:
        raise HTTPException(500, "Server misconfigured: missing BACKEND_API_KEY")
    sent = request.headers.get("x-api-key") or ""
    if not hmac.compare_digest(sent, BACKEND_API_KEY):
        raise HTTPException(401, "Invalid or missing X-API-Key")

def _http_client(request: Request) -> Optional[AsyncClient]:
    return getattr(request.app.state, "http", None)

def _site_file(page_path: str) -> Path:
    root = SITE_ROOT.resolve()
    target = (root / (page_path or "index.html")).resolve()
    if target.is_dir():
        target = target / "index.html"
    if root != target and root not in target.parents:
        raise HTTPException(404, "Page not found")
    if not target.is_file():
        raise HTTPException(404, "Page not found")
    return target

# ────────────────────────────────────────────────────────────────────────────
# Models
# ────────────────────────────────────────────────────────────────────────────
class RenderPayload(BaseModel):
    html: str = Field(..., description="Page markup carrying data-config markers and menu containers")
    base_url: Optional[str] = Field(None, description="http(s) page URL; config/*.json not supplied below are fetched relative to it")
    config: Optional[Dict[str, Any]] = Field(None, description="Business config document; fetched when omitted")
    menu: Optional[Dict[str, Any]] = Field(None, description="Menu document; fetched when omitted")
    image_fallback: Optional[Literal["path", "placeholder"]] = Field(None, description="Override MENU_IMAGE_FALLBACK")

class RenderOut(BaseModel):
    html: str
    meta: Dict[str, Any]

# ────────────────────────────────────────────────────────────────────────────
# Endpoints
# ────────────────────────────────────────────────────────────────────────────
@app.get("/", include_in_schema=False)
async def root():
    """Simple landing endpoint for service root."""
    return {
        "ok": True,
        "service": "Restaurant Site Binder",
        "version": getattr(app, "version", "unknown"),
        "endpoints": ["/healthz", "/site/{page}", "/render"],
    }

@app.get("/healthz", summary="Liveness probe")
async def healthz():
    return {"ok": True}

@app.get("/site/", response_class=HTMLResponse, include_in_schema=False)
@app.get("/site/{page_path:path}", response_class=HTMLResponse, summary="Serve a site page with config and menu bound")
async def site_page(
    request: Request,
    page_path: str = "index.html",
    _: None = Depends(rate_limit),
):
    target = _site_file(page_path)
    page = Page.from_file(target)
    meta = await render_page(page, client=_http_client(request), menu_options=MenuOptions.from_settings())
    log.info("site page %s: %s", target.relative_to(SITE_ROOT.resolve()), meta)
    return HTMLResponse(page.to_html())

@app.post("/render", response_model=RenderOut, summary="Bind config and menu documents into supplied markup")
async def render(
    payload: RenderPayload,
    request: Request,
    _: None = Depends(rate_limit),
    __: None = Depends(security_guard),
):
    """Binds the business config and menu into ``payload.html``.
    Returns the bound HTML plus meta (what loaded, how much was rendered).
    """
    if payload.base_url and not is_url(payload.base_url):
        raise HTTPException(400, "base_url must be an http(s) URL")

    options = MenuOptions.from_settings()
    if payload.image_fallback:
        options = replace(options, image_fallback=ImageFallback(payload.image_fallback))

    page = Page(payload.html, location=payload.base_url)
    try:
        meta = await render_page(
            page,
            client=_http_client(request),
            config=payload.config,
            menu=payload.menu,
            menu_options=options,
        )
    except Exception as e:
        log.error(f"Error rendering page: {e}")
        raise HTTPException(500, "Failed to render page")
    return RenderOut(html=page.to_html(), meta=meta)
