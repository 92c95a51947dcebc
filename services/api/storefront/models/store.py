"""Store model.

Represents a storefront listing: display name, URL slug, free-form tags,
a geographic point with its street address, and the authoring user.
Reviews are attached at read time, never lazy-loaded.
"""

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from sqlalchemy import JSON, DateTime, Float, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.stores.postgres import Base

if TYPE_CHECKING:
    from storefront.models.review import Review


def generate_store_id() -> str:
    """Generate unique store ID."""
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Store(Base):
    """A store listing."""

    __tablename__ = "stores"
    __table_args__ = (
        Index("ix_stores_location", "longitude", "latitude"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_store_id)

    name: Mapped[str] = mapped_column(String(200), index=True)
    # Unique index turns a slug race into an IntegrityError instead of a duplicate
    slug: Mapped[str] = mapped_column(String(250), unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text)
    tags: Mapped[list[str]] = mapped_column(JSON, default=list)

    # Location (GeoJSON Point: coordinates are [longitude, latitude])
    location_type: Mapped[str] = mapped_column(String(20), default="Point")
    longitude: Mapped[float] = mapped_column(Float)
    latitude: Mapped[float] = mapped_column(Float)
    address: Mapped[str] = mapped_column(String(500))

    photo: Mapped[str | None] = mapped_column(String(500))

    # Weak reference: users live in another service
    author_id: Mapped[str] = mapped_column(String(64), index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    reviews: Mapped[list["Review"]] = relationship(
        "Review",
        viewonly=True,
        lazy="raise",
        order_by="Review.created_at",
    )

    @property
    def coordinates(self) -> list[float]:
        return [self.longitude, self.latitude]

    @property
    def location(self) -> dict[str, Any]:
        return {
            "type": self.location_type,
            "coordinates": self.coordinates,
            "address": self.address,
        }

    def to_document(self) -> dict[str, Any]:
        """Plain-dict form used by report pipelines."""
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "tags": list(self.tags or []),
            "created_at": self.created_at,
            "location": self.location,
            "photo": self.photo,
            "author_id": self.author_id,
        }

    def __repr__(self) -> str:
        return f"<Store {self.slug}>"
