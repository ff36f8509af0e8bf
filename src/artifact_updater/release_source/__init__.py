"""
Remote release lookups.

This package handles:
1. Fetching release metadata from the GitHub release API
2. Memoizing the results for a bounded time
3. Fetching raw files used as remote configuration
"""

from .github_releases import ReleaseSource
from .release_cache import DEFAULT_TTL_SECONDS, ReleaseCache

__all__ = ["ReleaseSource", "ReleaseCache", "DEFAULT_TTL_SECONDS"]
