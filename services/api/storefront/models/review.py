"""Review model.

A rating left on a store. Stores reference reviews only through the
`store_id` back-reference; review lifecycle is managed elsewhere.
"""

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from storefront.models.store import utcnow
from storefront.stores.postgres import Base


class Review(Base):
    """Rating and comment for a store."""

    __tablename__ = "reviews"
    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating_range"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    store_id: Mapped[str] = mapped_column(ForeignKey("stores.id"), index=True)
    author_id: Mapped[str] = mapped_column(String(64), index=True)
    text: Mapped[str | None] = mapped_column(Text)
    rating: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "author_id": self.author_id,
            "text": self.text,
            "rating": self.rating,
            "created_at": self.created_at,
        }

    def __repr__(self) -> str:
        return f"<Review {self.store_id} {self.rating}>"
