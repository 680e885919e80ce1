# backend/dateplanner/repositories/base_repository.py
"""
Base Repository Pattern for the scheduling core.

Provides the foundation for all repository classes with:
- Common CRUD operations
- Type safety with generics
- Transaction support (managed by services)

Repositories never commit. Services own the unit of work, so a
repository that hits a database error reports it as RepositoryException
and leaves rollback to the enclosing service transaction.
"""

from abc import ABC, abstractmethod
import logging
from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException

# Type variable for generic model support
T = TypeVar("T")

logger = logging.getLogger(__name__)


def constraint_name_from_error(exc: IntegrityError, known: dict[str, str]) -> Optional[str]:
    """
    Best-effort constraint name for an IntegrityError.

    PostgreSQL drivers expose diag.constraint_name; SQLite only reports the
    offending columns, so ``known`` maps message fragments to names.
    """
    orig = getattr(exc, "orig", None)
    diag = getattr(orig, "diag", None)
    name = getattr(diag, "constraint_name", None) if diag is not None else None
    if name:
        return name

    text = str(orig if orig is not None else exc)
    for fragment, constraint in known.items():
        if fragment in text:
            return constraint
    return None


class IRepository(ABC, Generic[T]):
    """
    Abstract repository interface defining core data access methods.
    """

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[T]:
        """Retrieve an entity by its primary key, None if missing."""

    @abstractmethod
    def create(self, **kwargs: Any) -> T:
        """
        Create a new entity.

        Raises:
            RepositoryException: If creation fails
        """

    @abstractmethod
    def update(self, id: str, **kwargs: Any) -> Optional[T]:
        """Update an existing entity; None if it does not exist."""


class BaseRepository(IRepository[T]):
    """
    Concrete base repository implementation with common data access patterns.

    Attributes:
        db: SQLAlchemy session
        model: SQLAlchemy model class
    """

    # Message fragment -> constraint name, for dialects without diag info
    known_constraints: dict[str, str] = {}

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    @property
    def dialect_name(self) -> str:
        """Dialect of the bound engine, e.g. "postgresql" or "sqlite"."""
        return self.db.get_bind().dialect.name

    def get_by_id(self, id: str) -> Optional[T]:
        try:
            return self.db.get(self.model, id)
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting {self.model.__name__} by id {id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve {self.model.__name__}: {str(e)}")

    def create(self, **kwargs: Any) -> T:
        """
        Create a new entity.

        Note: Does NOT commit - transaction management is handled by service layer.
        """
        try:
            entity = self.model(**kwargs)
            self.db.add(entity)
            self.db.flush()  # Get ID and fire constraints without committing
            return entity
        except IntegrityError as exc:
            constraint = constraint_name_from_error(exc, self.known_constraints)
            self.logger.warning(
                "Integrity error creating %s (constraint=%s): %s",
                self.model.__name__,
                constraint,
                exc.orig,
            )
            raise RepositoryException(
                f"Integrity constraint violated: {exc.orig}", constraint=constraint
            ) from exc
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating {self.model.__name__}: {str(e)}")
            raise RepositoryException(f"Failed to create {self.model.__name__}: {str(e)}") from e

    def update(self, id: str, **kwargs: Any) -> Optional[T]:
        """
        Update an existing entity.

        Only updates provided fields, preserves others.
        """
        try:
            entity = self.get_by_id(id)
            if not entity:
                return None

            for key, value in kwargs.items():
                if hasattr(entity, key):
                    setattr(entity, key, value)

            self.db.flush()
            return entity
        except IntegrityError as exc:
            constraint = constraint_name_from_error(exc, self.known_constraints)
            raise RepositoryException(
                f"Integrity constraint violated: {exc.orig}", constraint=constraint
            ) from exc
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating {self.model.__name__} {id}: {str(e)}")
            raise RepositoryException(f"Failed to update {self.model.__name__}: {str(e)}") from e
