"""Infrastructure components for Social Tracker.

This package contains infrastructure-level components like:
- Rate limiting and backoff
- Outbound email delivery
"""

from tracker_core.infrastructure.email import (
    EmailMessage,
    EmailSender,
    SendResult,
    SmtpEmailSender,
)
from tracker_core.infrastructure.rate_limiter import (
    BackoffStrategy,
    RateLimitConfig,
    RateLimitExceeded,
    RateLimiter,
    RateLimitState,
)

__all__ = [
    "BackoffStrategy",
    "EmailMessage",
    "EmailSender",
    "RateLimitConfig",
    "RateLimitExceeded",
    "RateLimiter",
    "RateLimitState",
    "SendResult",
    "SmtpEmailSender",
]
