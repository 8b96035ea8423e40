from __future__ import annotations

import os
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from ..observability.metrics import metrics_middleware_factory
from .routers.diag import router as diag_router
from .routers.stream import router as stream_router
from .routers.suggestions import router as suggestions_router

load_dotenv()  # LOCAL_BASE_URL, OPENAI_API_KEY, THINKSTREAM_* from .env if present

APP_NAME = "thinkstream API"
APP_VERSION = "0.1.0"

app = FastAPI(title=APP_NAME, version=APP_VERSION)

# Observability: request latency histogram
app.middleware("http")(metrics_middleware_factory())

app.include_router(stream_router)
app.include_router(suggestions_router)
app.include_router(diag_router)

# Same routers under /api for deployments behind a path-prefixing proxy
app.include_router(stream_router, prefix="/api")
app.include_router(suggestions_router, prefix="/api")
app.include_router(diag_router, prefix="/api")

_cors_origins = [
    o.strip()
    for o in (os.getenv("THINKSTREAM_CORS_ORIGINS") or "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if o.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _health_payload() -> dict:
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "components": {
            "api": "ok",
            "cache": "client-side",
        },
    }


@app.get("/")
def root():
    return {"name": APP_NAME, "version": APP_VERSION}


@app.get("/health")
def health():
    return _health_payload()


@app.get("/metrics")
def metrics() -> Response:
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)


@app.get("/api")
def api_root():
    return {"name": APP_NAME, "version": APP_VERSION}


@app.get("/api/health")
def api_health():
    return _health_payload()


@app.get("/api/metrics")
def api_metrics() -> Response:
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
