# -----------------------------------------------------------------------------
# DOMAIN LAYER
# -----------------------------------------------------------------------------
# Contains the configuration models (Pydantic) that every stage of the
# pipeline reads, and the small messages exchanged with dev clients.
# -----------------------------------------------------------------------------

from .models import (
    BuildConfiguration,
    ContentKind,
    ReloadMessage,
    WatchEvent,
    WatchEventKind,
)

__all__ = [
    "BuildConfiguration",
    "ContentKind",
    "ReloadMessage",
    "WatchEvent",
    "WatchEventKind",
]
