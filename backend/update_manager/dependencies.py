"""FastAPI dependencies for components built at application startup."""
from __future__ import annotations

from typing import Optional

from fastapi import Request

from .events import EventSink
from .services.pending_cache import PendingUpdatesCache


def get_event_sink(request: Request) -> EventSink:
    return request.app.state.event_sink


def get_pending_cache(request: Request) -> Optional[PendingUpdatesCache]:
    return getattr(request.app.state, "pending_cache", None)
