"""Tag service for tenant keyword rules.

Tags are read by the fan-out service when content first becomes visible to
a tenant. Deleting a tag removes its search terms and every association it
produced (foreign key cascade).
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from tracker_core.domain.models import SearchTerm, Tag
from tracker_core.domain.validation import (
    ValidationError,
    next_tag_color,
    normalize_search_term,
    validate_tag_color,
    validate_tag_name,
)


# =============================================================================
# EXCEPTIONS
# =============================================================================


class TagError(Exception):
    """Exception raised for tag errors."""

    pass


class TagNotFoundError(TagError):
    """Exception raised when a tag is not found for the tenant."""

    pass


# =============================================================================
# SERVICE
# =============================================================================


class TagService:
    """Service for managing a tenant's tags and search terms."""

    def __init__(self, db: Session):
        self.db = db

    def list_tags(self, tenant_id: int) -> list[Tag]:
        return list(
            self.db.execute(
                select(Tag)
                .where(Tag.tenant_id == tenant_id)
                .options(selectinload(Tag.search_terms))
                .order_by(Tag.name)
            ).scalars()
        )

    def get_tag_or_raise(self, tenant_id: int, tag_id: int) -> Tag:
        tag = self.db.execute(
            select(Tag).where(Tag.id == tag_id, Tag.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if tag is None:
            raise TagNotFoundError("Tag not found")
        return tag

    def create_tag(
        self,
        tenant_id: int,
        name: str,
        terms: list[str],
        color: Optional[str] = None,
    ) -> Tag:
        """Create a tag with at least one search term.

        Args:
            tenant_id: Owning tenant.
            name: Tag name (unique per tenant).
            terms: Initial search terms; normalized to lowercase, duplicates dropped.
            color: Hex color; defaults to the next unused palette color.

        Raises:
            TagError: If validation fails or the name is taken.
        """
        if not terms:
            raise TagError("At least one search term is required")

        try:
            name = validate_tag_name(name)
            if color is None:
                existing_colors = list(
                    self.db.execute(select(Tag.color).where(Tag.tenant_id == tenant_id)).scalars()
                )
                color = next_tag_color(existing_colors)
            else:
                color = validate_tag_color(color)
            normalized_terms = []
            for term in terms:
                normalized = normalize_search_term(term)
                if normalized not in normalized_terms:
                    normalized_terms.append(normalized)
        except ValidationError as e:
            raise TagError(str(e)) from e

        duplicate = self.db.execute(
            select(Tag.id).where(Tag.tenant_id == tenant_id, Tag.name == name)
        ).first()
        if duplicate:
            raise TagError("Tag with this name already exists")

        tag = Tag(tenant_id=tenant_id, name=name, color=color)
        tag.search_terms = [SearchTerm(term=t) for t in normalized_terms]
        self.db.add(tag)
        self.db.flush()
        return tag

    def add_term(self, tenant_id: int, tag_id: int, term: str) -> SearchTerm:
        """Add a search term to a tag.

        Raises:
            TagNotFoundError: If the tag does not belong to the tenant.
            TagError: If the term is invalid or already present.
        """
        tag = self.get_tag_or_raise(tenant_id, tag_id)

        try:
            normalized = normalize_search_term(term)
        except ValidationError as e:
            raise TagError(str(e)) from e

        duplicate = self.db.execute(
            select(SearchTerm.id).where(SearchTerm.tag_id == tag.id, SearchTerm.term == normalized)
        ).first()
        if duplicate:
            raise TagError("Term already exists for this tag")

        search_term = SearchTerm(tag_id=tag.id, term=normalized)
        self.db.add(search_term)
        self.db.flush()
        return search_term

    def delete_tag(self, tenant_id: int, tag_id: int) -> None:
        """Delete a tag with its terms and associations.

        Raises:
            TagNotFoundError: If the tag does not belong to the tenant.
        """
        tag = self.get_tag_or_raise(tenant_id, tag_id)
        self.db.delete(tag)
        self.db.flush()


# =============================================================================
# EXPORTS
# =============================================================================


__all__ = [
    "TagService",
    "TagError",
    "TagNotFoundError",
]
