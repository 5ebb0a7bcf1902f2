"""Repository package for database access."""

from .projects import SqliteProjectRepository
from .features import SqliteFeatureRepository
from .tasks import SqliteTaskRepository
from .sections import SqliteSectionRepository
from .templates import SqliteDependencyRepository, SqliteTemplateRepository

__all__ = [
    "SqliteProjectRepository",
    "SqliteFeatureRepository",
    "SqliteTaskRepository",
    "SqliteSectionRepository",
    "SqliteTemplateRepository",
    "SqliteDependencyRepository",
]
