"""
Database configuration

The application owns exactly one Database instance, created in the lifespan
handler and stored on app.state. Nothing in this module holds a global engine.
"""
import time
from collections.abc import Generator

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlmodel import SQLModel, Session, create_engine

from core.logger import logger


class DatabaseConnectionError(RuntimeError):
    """Raised when the database cannot be reached after all retries"""


class Database:
    """
    Thin wrapper around a SQLAlchemy engine with an explicit
    connect/retry routine and an explicit teardown.
    """

    def __init__(self, uri: str, echo: bool = False, **engine_kwargs):
        self.uri = uri
        if uri.startswith("sqlite"):
            engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
        self.engine = create_engine(uri, echo=echo, **engine_kwargs)
        self.connected = False

    def connect(self, max_retries: int = 5, retry_delay: float = 5.0) -> None:
        """
        Verify connectivity, retrying up to max_retries times.

        Raises:
            DatabaseConnectionError: if every attempt fails
        """
        if self.connected:
            logger.info("Database already connected")
            return

        for attempt in range(1, max_retries + 1):
            try:
                self.ping()
                self.connected = True
                logger.info("Connected to database")
                return
            except OperationalError as e:
                logger.error(
                    "Database connection attempt %d/%d failed: %s",
                    attempt, max_retries, e
                )
                if attempt < max_retries:
                    logger.info("Retrying in %s seconds...", retry_delay)
                    time.sleep(retry_delay)

        raise DatabaseConnectionError(
            "Failed to connect to database after multiple attempts"
        )

    def ping(self) -> None:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def create_tables(self) -> None:
        SQLModel.metadata.create_all(self.engine)

    def session(self) -> Generator[Session, None, None]:
        with Session(self.engine) as session:
            yield session

    def disconnect(self) -> None:
        """Dispose of the connection pool"""
        if not self.connected:
            return
        self.engine.dispose()
        self.connected = False
        logger.info("Disconnected from database")
