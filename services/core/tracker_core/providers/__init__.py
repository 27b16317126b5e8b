"""Search provider integrations.

This package contains provider-specific implementations:
- Base: Abstract interface and DTOs
- Arctic Shift: public Reddit archive search client
"""

from tracker_core.providers.base import (
    FetchedPost,
    FetchedReply,
    SearchProvider,
)

__all__ = [
    "FetchedPost",
    "FetchedReply",
    "SearchProvider",
]
