"""Durable storage for the scoreboard database.

The SQLite engine lives entirely in memory. At every checkpoint its full
state is serialized and written to a keyed blob store; on startup the saved
image is loaded back onto a fresh engine.
"""
import os
import sqlite3
import logging
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from scoreboard_tracker.errors import PersistenceError, StoreUnavailableError
from scoreboard_tracker.models import Base

logger = logging.getLogger(__name__)

DB_KEY = "main"
SOURCE_KEY = "dirHandle"

# Forward-only; each statement is attempted once per open and may fail harmlessly
MIGRATIONS = [
    "ALTER TABLE game_players ADD COLUMN quitter INTEGER NOT NULL DEFAULT 0",
]


class BlobStore(Protocol):
    """Keyed byte storage used for snapshots."""

    def get(self, key: str) -> Optional[bytes]:
        ...

    def put(self, key: str, data: bytes) -> None:
        ...


class MemoryBlobStore:
    """Blob store kept in a dictionary, mainly for tests."""

    def __init__(self):
        self.blobs: Dict[str, bytes] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self.blobs.get(key)

    def put(self, key: str, data: bytes) -> None:
        self.blobs[key] = bytes(data)


class FileBlobStore:
    """Blob store writing one file per key inside a directory."""

    def __init__(self, directory: str):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.bin"

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def put(self, key: str, data: bytes) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_path, self._path(key))
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


def _create_memory_engine() -> Engine:
    """Create an engine bound to a single in-memory SQLite connection."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        pool_reset_on_return=None,  # The one connection is shared by every checkout
        connect_args={"check_same_thread": False},
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(engine, "connect")
    def _set_autocommit(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


class SchemaStore:
    """Owns the in-memory engine, its schema and its snapshots."""

    def __init__(self, blob_store: BlobStore):
        """Initialize the store.

        Args:
            blob_store: Durable keyed storage for snapshots and the source handle
        """
        self.blob_store = blob_store
        self.engine: Optional[Engine] = None
        self.Session: Optional[sessionmaker] = None

    @property
    def is_open(self) -> bool:
        return self.engine is not None

    def open(self) -> "SchemaStore":
        """Load the saved snapshot, or initialize an empty schema."""
        saved = self.blob_store.get(DB_KEY)
        self._bind(_create_memory_engine())
        if saved:
            try:
                self._restore(saved)
                self._apply_schema()
                self._run_migrations()
                logger.info(f"Loaded database snapshot ({len(saved)} bytes)")
            except (sqlite3.Error, SQLAlchemyError) as e:
                logger.error(f"Failed to load saved database, creating fresh: {e}")
                self.engine.dispose()
                self._bind(_create_memory_engine())
                self._apply_schema()
        else:
            self._apply_schema()
        return self

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
        self.engine = None
        self.Session = None

    def require_engine(self) -> Engine:
        """Return the engine, failing when the store has not been opened."""
        if self.engine is None:
            raise StoreUnavailableError("Database has not been initialized")
        return self.engine

    def session(self):
        """Create a new ORM session bound to the engine."""
        self.require_engine()
        return self.Session()

    def snapshot(self) -> bytes:
        """Serialize the full database state to bytes."""
        with self.require_engine().connect() as conn:
            return conn.connection.driver_connection.serialize()

    def save(self) -> None:
        """Persist the current database image to the blob store.

        Raises:
            PersistenceError: If the blob store rejects the write
        """
        data = self.snapshot()
        try:
            self.blob_store.put(DB_KEY, data)
        except OSError as e:
            raise PersistenceError(f"Failed to save database snapshot: {e}") from e
        logger.debug(f"Saved database snapshot ({len(data)} bytes)")

    def reset(self) -> None:
        """Discard all data, recreate an empty schema and persist it."""
        self.require_engine().dispose()
        self._bind(_create_memory_engine())
        self._apply_schema()
        self.save()
        logger.info("Database cleared")

    def remember_source(self, handle: str) -> None:
        """Persist the handle of the last ingested source."""
        try:
            self.blob_store.put(SOURCE_KEY, handle.encode("utf-8"))
        except OSError as e:
            raise PersistenceError(f"Failed to save source handle: {e}") from e

    def load_source(self) -> Optional[str]:
        data = self.blob_store.get(SOURCE_KEY)
        return data.decode("utf-8") if data else None

    def _bind(self, engine: Engine) -> None:
        self.engine = engine
        self.Session = sessionmaker(bind=engine)

    def _restore(self, data: bytes) -> None:
        with self.engine.connect() as conn:
            conn.connection.driver_connection.deserialize(data)

    def _apply_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    def _run_migrations(self) -> None:
        for sql in MIGRATIONS:
            try:
                with self.engine.begin() as conn:
                    conn.exec_driver_sql(sql)
            except OperationalError as e:
                logger.debug(f"Skipping migration ({e.orig})")
