"""
Base Repository Pattern

Provides common CRUD operations for all repositories.
Each specific repository inherits from this base.

Repositories flush but never commit or roll back: the session_scope() owned
by the caller decides the fate of the whole unit of work.
"""

from typing import TypeVar, Generic, Type, Optional, List
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import logging

logger = logging.getLogger(__name__)

# Type variables for generic repository
ModelType = TypeVar('ModelType')
ORMType = TypeVar('ORMType')


class RepositoryError(Exception):
    """Custom exception for repository operations"""
    pass


class DuplicateEntityError(RepositoryError):
    """Raised when trying to create a duplicate entity"""
    pass


class BaseRepository(Generic[ModelType, ORMType]):
    """
    Base repository with common CRUD operations

    Usage:
        class PositionRepository(BaseRepository[dm.Position, PositionORM]):
            def __init__(self, session: Session):
                super().__init__(session, PositionORM)
    """

    def __init__(self, session: Session, model_class: Type[ORMType]):
        self.session = session
        self.model_class = model_class

    def get_by_id(self, id: str) -> Optional[ORMType]:
        """
        Get entity by ID

        Returns:
            ORM instance or None
        """
        try:
            return self.session.query(self.model_class).filter_by(id=id).first()
        except SQLAlchemyError as e:
            logger.error(f"Error getting {self.model_class.__name__} by id {id}: {e}")
            raise RepositoryError(str(e)) from e

    def get_all(self) -> List[ORMType]:
        """Get all entities"""
        try:
            return self.session.query(self.model_class).all()
        except SQLAlchemyError as e:
            logger.error(f"Error getting all {self.model_class.__name__}: {e}")
            raise RepositoryError(str(e)) from e

    def create(self, orm_instance: ORMType) -> ORMType:
        """
        Create new entity

        Raises:
            DuplicateEntityError: primary key or unique constraint clash
            RepositoryError: any other database failure
        """
        try:
            self.session.add(orm_instance)
            self.session.flush()
            return orm_instance
        except IntegrityError as e:
            logger.error(f"Integrity error creating {self.model_class.__name__}: {e}")
            raise DuplicateEntityError(str(e)) from e
        except SQLAlchemyError as e:
            logger.error(f"Error creating {self.model_class.__name__}: {e}")
            raise RepositoryError(str(e)) from e

    def delete(self, id: str) -> bool:
        """
        Delete entity by ID

        Returns:
            True if deleted, False if it did not exist
        """
        try:
            instance = self.get_by_id(id)
            if instance is None:
                return False
            self.session.delete(instance)
            self.session.flush()
            return True
        except SQLAlchemyError as e:
            logger.error(f"Error deleting {self.model_class.__name__} {id}: {e}")
            raise RepositoryError(str(e)) from e

    def count(self) -> int:
        """Count total entities"""
        try:
            return self.session.query(self.model_class).count()
        except SQLAlchemyError as e:
            logger.error(f"Error counting {self.model_class.__name__}: {e}")
            raise RepositoryError(str(e)) from e

    def exists(self, id: str) -> bool:
        """Check if entity exists"""
        return self.get_by_id(id) is not None

    def flush(self):
        """Flush changes to database (without committing)"""
        try:
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error flushing session: {e}")
            raise RepositoryError(str(e)) from e
