"""Review platform integrations -- provider clients and normalizing adapters.

Provides the abstract PlatformAdapter interface with one implementation per
Platform member:
- GoogleAdapter: Google Business Profile (account -> location -> reviews)
- YelpAdapter: Yelp Fusion (3 newest reviews, no replies)
- FacebookAdapter: Facebook Pages ratings/recommendations

build_adapters() assembles the registry consumed by the sync orchestrator.
"""

from src.reviewsync.platforms.adapter import PlatformAdapter
from src.reviewsync.platforms.facebook import FacebookAdapter
from src.reviewsync.platforms.google import GoogleAdapter
from src.reviewsync.platforms.registry import build_adapters, ensure_complete
from src.reviewsync.platforms.yelp import YelpAdapter

__all__ = [
    "PlatformAdapter",
    "GoogleAdapter",
    "YelpAdapter",
    "FacebookAdapter",
    "build_adapters",
    "ensure_complete",
]
