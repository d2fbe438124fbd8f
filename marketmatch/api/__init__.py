"""API router registry used by the app factory.

This keeps route module imports and inclusion order in one place so
`marketmatch.main` stays focused on startup wiring.
"""

from __future__ import annotations

from fastapi import APIRouter

from . import health, listings, matches, preferences

API_PREFIX = "/api/v1"

API_ROUTERS: tuple[APIRouter, ...] = (
    health.router,
    listings.router,
    preferences.router,
    matches.router,
)

__all__ = ["API_PREFIX", "API_ROUTERS"]
