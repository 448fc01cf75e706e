"""Adapter registry -- one PlatformAdapter per Platform member.

build_adapters() wires each adapter to its client from Settings and refuses
to return a registry that leaves a Platform member unmapped.
"""

from __future__ import annotations

from src.reviewsync.config import Settings
from src.reviewsync.platforms.adapter import PlatformAdapter
from src.reviewsync.platforms.facebook import FacebookAdapter
from src.reviewsync.platforms.facebook_client import FacebookGraphClient
from src.reviewsync.platforms.google import GoogleAdapter
from src.reviewsync.platforms.google_client import GoogleBusinessClient
from src.reviewsync.platforms.yelp import YelpAdapter
from src.reviewsync.platforms.yelp_client import YelpClient
from src.reviewsync.sync.schemas import Platform


def ensure_complete(adapters: dict[Platform, PlatformAdapter]) -> dict[Platform, PlatformAdapter]:
    """Validate that every Platform has an adapter registered under its own tag."""
    missing = [p.value for p in Platform if p not in adapters]
    if missing:
        raise RuntimeError(f"No platform adapter registered for: {', '.join(missing)}")
    for platform, adapter in adapters.items():
        if adapter.platform is not platform:
            raise RuntimeError(
                f"Adapter {type(adapter).__name__} registered under {platform.value} "
                f"serves {adapter.platform.value}"
            )
    return adapters


def build_google_client(settings: Settings) -> GoogleBusinessClient:
    return GoogleBusinessClient(
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        max_retries=settings.PROVIDER_MAX_RETRIES,
        retry_max_wait=settings.PROVIDER_RETRY_MAX_WAIT_SECONDS,
    )


def build_adapters(
    settings: Settings,
    google_client: GoogleBusinessClient | None = None,
) -> dict[Platform, PlatformAdapter]:
    """Build the adapter for every platform from application settings."""
    transport = {
        "timeout": settings.PROVIDER_TIMEOUT_SECONDS,
        "max_retries": settings.PROVIDER_MAX_RETRIES,
        "retry_max_wait": settings.PROVIDER_RETRY_MAX_WAIT_SECONDS,
    }
    adapters: dict[Platform, PlatformAdapter] = {
        Platform.GOOGLE: GoogleAdapter(
            google_client or build_google_client(settings),
            max_pages=settings.GOOGLE_MAX_REVIEW_PAGES,
        ),
        Platform.YELP: YelpAdapter(YelpClient(api_key=settings.YELP_API_KEY, **transport)),
        Platform.FACEBOOK: FacebookAdapter(
            FacebookGraphClient(graph_version=settings.FACEBOOK_GRAPH_VERSION, **transport),
            max_pages=settings.FACEBOOK_MAX_REVIEW_PAGES,
        ),
    }
    return ensure_complete(adapters)
