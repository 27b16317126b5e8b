"""Input normalization for tenant-supplied names and terms."""

import re

SOURCE_NAME_MIN_LENGTH = 3
SOURCE_NAME_MAX_LENGTH = 21
SOURCE_NAME_PATTERN = re.compile(r"^[a-z0-9_]+$")
SOURCE_PREFIX_PATTERN = re.compile(r"^r/", re.IGNORECASE)

TAG_NAME_MAX_LENGTH = 100
SEARCH_TERM_MAX_LENGTH = 255
TAG_COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")

# Tag colors handed out in order
TAG_COLOR_PALETTE = (
    "#6366f1",  # indigo
    "#f43f5e",  # rose
    "#f59e0b",  # amber
    "#10b981",  # emerald
    "#06b6d4",  # cyan
    "#a855f7",  # purple
    "#ec4899",  # pink
    "#3b82f6",  # blue
)


class ValidationError(ValueError):
    """Raised when tenant input cannot be normalized."""

    pass


def normalize_source_name(name: str) -> str:
    """Normalize a subreddit name.

    Strips surrounding whitespace and a leading ``r/`` (any case), then
    lowercases.

    Raises:
        ValidationError: If the result is not 3-21 chars of [a-z0-9_].
    """
    if not name or not name.strip():
        raise ValidationError("Subreddit name is required")

    normalized = SOURCE_PREFIX_PATTERN.sub("", name.strip()).lower()

    if len(normalized) < SOURCE_NAME_MIN_LENGTH:
        raise ValidationError(
            f"Subreddit name must be at least {SOURCE_NAME_MIN_LENGTH} characters"
        )
    if len(normalized) > SOURCE_NAME_MAX_LENGTH:
        raise ValidationError(
            f"Subreddit name must be at most {SOURCE_NAME_MAX_LENGTH} characters"
        )
    if not SOURCE_NAME_PATTERN.match(normalized):
        raise ValidationError(
            "Subreddit name can only contain letters, numbers, and underscores"
        )

    return normalized


def normalize_search_term(term: str) -> str:
    """Lowercase and trim a search term."""
    normalized = (term or "").strip().lower()
    if not normalized:
        raise ValidationError("Search term is required")
    if len(normalized) > SEARCH_TERM_MAX_LENGTH:
        raise ValidationError(
            f"Search term must be at most {SEARCH_TERM_MAX_LENGTH} characters"
        )
    return normalized


def validate_tag_name(name: str) -> str:
    normalized = (name or "").strip()
    if not normalized:
        raise ValidationError("Tag name is required")
    if len(normalized) > TAG_NAME_MAX_LENGTH:
        raise ValidationError(f"Tag name must be at most {TAG_NAME_MAX_LENGTH} characters")
    return normalized


def validate_tag_color(color: str) -> str:
    if not TAG_COLOR_PATTERN.match(color or ""):
        raise ValidationError("Color must be a valid hex color")
    return color


def next_tag_color(existing_colors: list[str]) -> str:
    """Return the first palette color not yet used, cycling when exhausted."""
    used = set(existing_colors)
    for color in TAG_COLOR_PALETTE:
        if color not in used:
            return color
    return TAG_COLOR_PALETTE[0]
