"""
dependencies.py — Shared FastAPI Dependencies

Business Rules:
- One httpx.AsyncClient per process, owned by the app lifespan (app.state.http)
- Routers never build clients themselves; tests override get_http

Called by: all routers
Depends on: database, main (lifespan sets app.state.http)
"""

import httpx
from fastapi import HTTPException, Request

from .database import get_db  # noqa: F401


def get_http(request: Request) -> httpx.AsyncClient:
    client = getattr(request.app.state, "http", None)
    if client is None:
        raise HTTPException(503, "HTTP client not initialised")
    return client
