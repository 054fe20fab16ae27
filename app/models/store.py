"""Store model.

A store is a local business listed in the directory. Location is kept as
separate lng/lat columns (indexed for the nearby query) plus the GeoJSON type,
and name/description feed a generated tsvector column for full-text search.
"""

from datetime import datetime

from sqlalchemy import Computed, DateTime, Float, ForeignKey, Index, String, Text, func
from sqlalchemy.dialects.postgresql import ARRAY, TSVECTOR
from sqlalchemy.orm import Mapped, mapped_column

from app.stores.postgres import Base

SEARCH_VECTOR_SQL = (
    "to_tsvector('english', coalesce(name, '') || ' ' || coalesce(description, ''))"
)


class Store(Base):
    """Directory entry owned by the user who created it."""

    __tablename__ = "stores"
    __table_args__ = (
        Index("ix_stores_search_vector", "search_vector", postgresql_using="gin"),
        Index("ix_stores_tags", "tags", postgresql_using="gin"),
        Index("ix_stores_lat_lng", "lat", "lng"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # Identification (slug is derived from name, e.g. "cafe-a", "cafe-a-2")
    name: Mapped[str] = mapped_column(String(200))
    slug: Mapped[str] = mapped_column(String(220), unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text)
    tags: Mapped[list[str]] = mapped_column(ARRAY(String(100)), default=list, server_default="{}")

    # Location (GeoJSON point: coordinates = [lng, lat])
    location_type: Mapped[str] = mapped_column(String(16), default="Point")
    lng: Mapped[float] = mapped_column(Float)
    lat: Mapped[float] = mapped_column(Float)
    address: Mapped[str | None] = mapped_column(String(500))

    # Uploaded photo filename under UPLOADS_DIR
    photo: Mapped[str | None] = mapped_column(String(100))

    # Ownership (set once at creation)
    author_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)

    # Full-text search document (generated by Postgres)
    search_vector: Mapped[str | None] = mapped_column(
        TSVECTOR,
        Computed(SEARCH_VECTOR_SQL, persisted=True),
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Store {self.slug} ({self.lng:.4f}, {self.lat:.4f})>"
