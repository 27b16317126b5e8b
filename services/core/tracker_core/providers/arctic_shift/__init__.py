"""Arctic Shift search provider.

This package contains the API client and its response mappers.
"""

from tracker_core.providers.arctic_shift.client import (
    POST_PREFIX,
    REPLY_PREFIX,
    ArcticShiftClient,
    SearchAPIError,
)

__all__ = [
    "POST_PREFIX",
    "REPLY_PREFIX",
    "ArcticShiftClient",
    "SearchAPIError",
]
