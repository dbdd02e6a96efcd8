"""Routers for the batch field extraction FastAPI application."""

from __future__ import annotations

from fastapi import APIRouter

from .extract import router as extract_router


def build_api_router() -> APIRouter:
    """Combine all API routers for inclusion in the FastAPI app."""
    router = APIRouter()
    router.include_router(extract_router, prefix="/extract-pdf-fields", tags=["extract"])
    return router


__all__ = ["build_api_router"]
