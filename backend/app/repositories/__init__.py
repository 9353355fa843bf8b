"""Data access for the three persisted collections: shows, users, configuration."""

from app.repositories.shows import ShowRepository, show_record_from_details  # noqa: F401
from app.repositories.users import UserRepository  # noqa: F401
from app.repositories.configuration import ConfigurationRepository  # noqa: F401
