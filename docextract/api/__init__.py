"""Routers for the document extraction FastAPI application."""

from __future__ import annotations

from fastapi import APIRouter

from .extract import router as extract_router

EXTRACT_PREFIX = "/extract-text"


def build_api_router() -> APIRouter:
    """Combine all API routers for inclusion in the FastAPI app."""
    router = APIRouter()
    router.include_router(extract_router, prefix=EXTRACT_PREFIX)
    return router


__all__ = ["build_api_router", "EXTRACT_PREFIX"]
