from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

from sqlalchemy import func, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from esm.core.errors import InvalidInput, StoreUnavailable, WriteFailed
from esm.core.logger import get_logger
from esm.core.timeutil import now_ms
from esm.db.base import Base, make_engine
from esm.db.models import Record as RecordModel
from esm.schemas.record import Record

logger = get_logger(__name__)


class RecordStore:
    """Durable storage of capture records.

    The backing connection is opened lazily on first use and shared for the
    lifetime of the handle. Records are created and bulk-deleted, never updated.
    """

    def __init__(self, url: str, clock: Callable[[], int] = now_ms, **engine_kwargs):
        self.url = url
        self.clock = clock
        self.engine_kwargs = engine_kwargs
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None
        self._initialized = False

    def _open(self) -> sessionmaker:
        if self._session_factory is not None:
            return self._session_factory

        try:
            engine = make_engine(self.url, **dict(self.engine_kwargs))
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error(f"Could not open database {self.url}: {e}")
            raise StoreUnavailable() from e

        logger.info(f"Opened database: {self.url}")
        self._engine = engine
        self._session_factory = sessionmaker(
            autocommit=False, autoflush=False, bind=engine
        )
        return self._session_factory

    def _session(self) -> Session:
        if not self._initialized:
            self.initialize()
        return self._open()()

    def initialize(self):
        """Ensure the records table exists. Idempotent."""
        if self._initialized:
            return
        self._open()
        try:
            Base.metadata.create_all(bind=self._engine)
        except SQLAlchemyError as e:
            logger.error(f"Database initialization failed: {e}")
            raise StoreUnavailable() from e
        self._initialized = True
        logger.debug("Records table ready.")

    def insert(
        self,
        sentiment: int,
        video_uri: str,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> Record:
        try:
            score = int(sentiment)
        except (TypeError, ValueError):
            score = None
        if score is None or not 1 <= score <= 5:
            raise InvalidInput(f"Sentiment must be between 1 and 5, got {sentiment!r}")
        if not video_uri:
            raise InvalidInput("A video path is required.")

        with self._session() as db:
            entry = RecordModel(
                sentiment=score,
                video_uri=str(video_uri),
                latitude=latitude,
                longitude=longitude,
                timestamp=self.clock(),
            )
            try:
                db.add(entry)
                db.commit()
                db.refresh(entry)
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to save record: {e}")
                raise WriteFailed() from e

            record = Record.model_validate(entry)

        logger.info(f"Record saved: sentiment={record.sentiment}, video={record.video_uri}")
        return record

    def count(self) -> int:
        with self._session() as db:
            try:
                return db.query(func.count(RecordModel.id)).scalar() or 0
            except SQLAlchemyError as e:
                logger.error(f"Failed to count records: {e}")
                raise StoreUnavailable() from e

    def list_all(self) -> List[Record]:
        with self._session() as db:
            try:
                rows = db.query(RecordModel).order_by(RecordModel.id.asc()).all()
            except SQLAlchemyError as e:
                logger.error(f"Failed to read records: {e}")
                raise StoreUnavailable() from e
            return [Record.model_validate(row) for row in rows]

    def delete_all(self) -> int:
        """Remove every record. Video files are left to the caller."""
        with self._session() as db:
            try:
                deleted = db.query(RecordModel).delete()
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to delete records: {e}")
                raise WriteFailed() from e
        logger.info(f"Deleted {deleted} records.")
        return deleted

    def close(self):
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._session_factory = None
        self._initialized = False


@contextmanager
def open_store(url: str, **kwargs) -> Iterator[RecordStore]:
    store = RecordStore(url, **kwargs)
    store.initialize()
    try:
        yield store
    finally:
        store.close()
