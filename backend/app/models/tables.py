"""SQLAlchemy ORM models — all database tables."""

from datetime import datetime, date
from typing import Optional
from sqlalchemy import (
    Integer, String, Text, Boolean, DateTime, Date, Float,
    ForeignKey, UniqueConstraint, JSON,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import false, func

from app.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JsonType = JSON().with_variant(JSONB(), "postgresql")


# ── Shows (local mirror of TMDB) ─────────────────────────────────

class Show(Base):
    __tablename__ = "shows"

    show_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)  # TMDB id
    name: Mapped[Optional[str]] = mapped_column(String(500))
    overview: Mapped[Optional[str]] = mapped_column(Text)
    tagline: Mapped[Optional[str]] = mapped_column(String(500))
    status: Mapped[Optional[str]] = mapped_column(String(50))
    backdrop_path: Mapped[Optional[str]] = mapped_column(String(200))
    poster_path: Mapped[Optional[str]] = mapped_column(String(200))
    first_air_date: Mapped[Optional[date]] = mapped_column(Date)
    last_air_date: Mapped[Optional[date]] = mapped_column(Date)
    episode_count: Mapped[Optional[int]] = mapped_column(Integer)
    season_count: Mapped[Optional[int]] = mapped_column(Integer)
    popularity: Mapped[Optional[float]] = mapped_column(Float)
    vote_average: Mapped[Optional[float]] = mapped_column(Float)
    vote_count: Mapped[Optional[int]] = mapped_column(Integer)
    genres: Mapped[Optional[list]] = mapped_column(JsonType)
    networks: Mapped[Optional[list]] = mapped_column(JsonType)
    seasons: Mapped[Optional[list]] = mapped_column(JsonType)
    last_episode_to_air: Mapped[Optional[dict]] = mapped_column(JsonType)
    next_episode_to_air: Mapped[Optional[dict]] = mapped_column(JsonType)
    watch_providers: Mapped[Optional[dict]] = mapped_column(JsonType)  # region -> {link, flatrate, rent, buy}
    fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self) -> dict:
        return {
            "show_id": self.show_id,
            "name": self.name,
            "overview": self.overview,
            "tagline": self.tagline,
            "status": self.status,
            "backdrop_path": self.backdrop_path,
            "poster_path": self.poster_path,
            "first_air_date": self.first_air_date.isoformat() if self.first_air_date else None,
            "last_air_date": self.last_air_date.isoformat() if self.last_air_date else None,
            "episode_count": self.episode_count,
            "season_count": self.season_count,
            "popularity": self.popularity,
            "vote_average": self.vote_average,
            "vote_count": self.vote_count,
            "genres": self.genres or [],
            "networks": self.networks or [],
            "seasons": self.seasons or [],
            "last_episode_to_air": self.last_episode_to_air,
            "next_episode_to_air": self.next_episode_to_air,
            "watch_providers": self.watch_providers or {},
        }


# ── Users ────────────────────────────────────────────────────────

class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    password_hash: Mapped[Optional[str]] = mapped_column(String(300))  # owned by the auth layer
    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    email: Mapped[Optional[str]] = mapped_column(String(300))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    shows: Mapped[list["UserShow"]] = relationship(
        back_populates="user", cascade="all, delete-orphan", passive_deletes=True,
    )

    def profile(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
        }


class UserShow(Base):
    """A show on a user's watchlist, with the user's own flags."""
    __tablename__ = "user_shows"
    __table_args__ = (
        UniqueConstraint("user_id", "show_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    show_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    has_watched: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    favorite: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    rating: Mapped[Optional[str]] = mapped_column(String(10))
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    user: Mapped[User] = relationship(back_populates="shows")

    def to_dict(self) -> dict:
        return {
            "show_id": self.show_id,
            "has_watched": bool(self.has_watched),
            "favorite": bool(self.favorite),
            "rating": self.rating,
        }


# ── TMDB configuration (singleton) ───────────────────────────────

class TmdbConfiguration(Base):
    __tablename__ = "configuration"

    SINGLETON_ID = 1

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    images: Mapped[dict] = mapped_column(JsonType, nullable=False)
    change_keys: Mapped[list] = mapped_column(JsonType, nullable=False)
    fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    def poster_base_path(self, preferred_size: Optional[str] = None) -> str:
        """Base path for poster images."""
        return self._image_base_path(preferred_size, "poster_sizes")

    def backdrop_base_path(self, preferred_size: Optional[str] = None) -> str:
        """Base path for backdrop images."""
        return self._image_base_path(preferred_size, "backdrop_sizes")

    def image_url(self, path: Optional[str], kind: str = "poster", preferred_size: Optional[str] = None) -> Optional[str]:
        """Full URL for an image path, e.g. a show's ``poster_path``."""
        if not path:
            return None
        return f"{self._image_base_path(preferred_size, f'{kind}_sizes')}{path}"

    def _image_base_path(self, preferred_size: Optional[str], size_key: str) -> str:
        # preferred size if supported, otherwise the first (smallest) one
        sizes = (self.images or {}).get(size_key) or []
        if preferred_size in sizes:
            size = preferred_size
        elif sizes:
            size = sizes[0]
        else:
            raise ValueError(f"TmdbConfiguration.images.{size_key} is empty")
        return f"{self.images['secure_base_url']}{size}"

    def to_dict(self) -> dict:
        return {"images": self.images, "change_keys": self.change_keys}
