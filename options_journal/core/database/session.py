"""
Database Session Management

Provides:
- Database engine creation
- Session factory
- Context managers for transactions
- Database initialization

Services never commit. The caller's session_scope() is the unit of work:
a position change and its ledger rows commit together or not at all.
"""

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from contextlib import contextmanager
from typing import Generator, Optional
import logging

from options_journal.config.settings import get_settings
from options_journal.core.database.schema import Base

logger = logging.getLogger(__name__)


# ============================================================================
# Engine & Session Factory
# ============================================================================

class DatabaseManager:
    """Manages database connections and sessions"""

    def __init__(self, database_url: Optional[str] = None):
        """
        Initialize database manager

        Args:
            database_url: Database URL (defaults to settings)
        """
        settings = get_settings()
        self.database_url = database_url or settings.database_url
        self.engine = None
        self.SessionLocal = None

        self._create_engine()

    def _create_engine(self):
        """Create SQLAlchemy engine"""
        settings = get_settings()
        engine_kwargs = settings.get_database_engine_kwargs()

        if 'sqlite' in self.database_url:
            engine_kwargs['poolclass'] = StaticPool

            self.engine = create_engine(self.database_url, **engine_kwargs)

            @event.listens_for(self.engine, "connect")
            def set_sqlite_pragma(dbapi_conn, connection_record):
                cursor = dbapi_conn.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()
        else:
            self.engine = create_engine(self.database_url, **engine_kwargs)

        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine
        )

        logger.info(f"Database engine created: {self.database_url}")

    def create_all_tables(self):
        """Create all tables"""
        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=self.engine)
        logger.info("All tables created")

    def drop_all_tables(self):
        """Drop all tables (testing only)"""
        logger.warning("Dropping all database tables...")
        Base.metadata.drop_all(bind=self.engine)
        logger.warning("All tables dropped successfully")

    def get_session(self) -> Session:
        """Get a new database session"""
        return self.SessionLocal()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope around a series of operations

        Usage:
            with db.session_scope() as session:
                service = PositionService(session)
                service.close(position_id, exit_price)
                # Commits on success, rolls back on error
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Session rollback due to error: {e}")
            raise
        finally:
            session.close()

    def health_check(self) -> bool:
        """Check if database is accessible"""
        try:
            with self.session_scope() as session:
                session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False


# ============================================================================
# Global Database Instance
# ============================================================================

_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """
    Get global database manager instance (singleton)

    Usage:
        from options_journal.core.database.session import get_db_manager

        db = get_db_manager()
        with db.session_scope() as session:
            ...
    """
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Context manager for database sessions (convenience function)"""
    db = get_db_manager()
    with db.session_scope() as session:
        yield session


def init_database():
    """Create tables if they don't exist"""
    db = get_db_manager()
    db.create_all_tables()


# ============================================================================
# Testing Support
# ============================================================================

def create_test_database() -> DatabaseManager:
    """
    Create in-memory SQLite database for testing

    Usage:
        db = create_test_database()
        with db.session_scope() as session:
            ...
    """
    db = DatabaseManager(database_url="sqlite:///:memory:")
    db.create_all_tables()
    return db
