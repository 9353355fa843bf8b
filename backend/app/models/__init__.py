"""Re-export all SQLAlchemy models for Alembic and import convenience."""

from app.models.tables import (  # noqa: F401
    Show,
    User,
    UserShow,
    TmdbConfiguration,
)
