"""
Database storage module for drift patch.

This module persists drift results, patches and patch snapshots with
SQLAlchemy. Every save commits before returning.
"""

from typing import Optional

import structlog
from sqlalchemy import JSON, Column, DateTime, Integer, LargeBinary, String, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config.settings import Settings
from ..models import PatchSnapshot
from ..utils import StorageException
from ..utils.helpers import format_timestamp, parse_timestamp
from .interface import PatchStore, Record, record_from_dict

logger = structlog.get_logger(__name__)

Base = declarative_base()

IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


class StoredRecord(Base):
    """SQLAlchemy model for drift results and patches."""
    __tablename__ = "drift_patch_records"

    id = Column(String(64), primary_key=True)
    record_type = Column(String(32), nullable=False, index=True)
    model_id = Column(String(255), nullable=False, index=True)
    timestamp = Column(DateTime)
    payload = Column(JSON, nullable=False)


class StoredSnapshot(Base):
    """SQLAlchemy model for patch snapshots."""
    __tablename__ = "patch_snapshots"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(64), nullable=False, unique=True)
    patch_id = Column(String(64), nullable=False, index=True)
    model_id = Column(String(255), nullable=False)
    created_at = Column(String(40), nullable=False)
    pre_apply_state = Column(LargeBinary, nullable=False)
    post_apply_state = Column(LargeBinary)


class SqlPatchStore(PatchStore):
    """
    Patch store backed by a SQL database.
    """

    def __init__(self, settings: Optional[Settings] = None, database_url: Optional[str] = None):
        """
        Initialize database store.

        Args:
            settings: Configuration settings
            database_url: Overrides settings.database_url
        """
        self.settings = settings or Settings()
        url = database_url or self.settings.database_url
        if url in IN_MEMORY_URLS:
            self.engine = create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(url)
        self.SessionLocal = sessionmaker(bind=self.engine)

        # Create tables if they don't exist
        Base.metadata.create_all(self.engine)

        logger.info("patch_store_initialized", dialect=self.engine.dialect.name)

    def _snapshot_row(self, session: Session, snapshot_id: str) -> Optional[StoredSnapshot]:
        return session.query(StoredSnapshot).filter(StoredSnapshot.id == snapshot_id).one_or_none()

    def save(self, record: Record) -> None:
        """
        Insert or replace a record.

        Raises:
            StorageException: Database error
        """
        session: Session = self.SessionLocal()
        try:
            if isinstance(record, PatchSnapshot):
                row = self._snapshot_row(session, record.id)
                if row is None:
                    row = StoredSnapshot(id=record.id)
                    session.add(row)
                row.patch_id = record.patch_id
                row.model_id = record.model_id
                row.created_at = format_timestamp(record.timestamp)
                row.pre_apply_state = record.pre_apply_state
                row.post_apply_state = record.post_apply_state
            else:
                data = record.to_dict()
                timestamp = getattr(record, "timestamp", None) or getattr(record, "created_at", None)
                session.merge(StoredRecord(
                    id=record.id,
                    record_type=data["record_type"],
                    model_id=record.model_id,
                    timestamp=timestamp.replace(tzinfo=None) if timestamp else None,
                    payload=data,
                ))
            session.commit()
            logger.debug("record_saved", record_id=record.id, record_type=type(record).__name__)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("failed_to_save_record", record_id=record.id, error=str(e))
            raise StorageException(
                "Failed to save record",
                details={"record_id": record.id, "error": str(e)}
            )
        finally:
            session.close()

    @staticmethod
    def _to_snapshot(row: StoredSnapshot) -> PatchSnapshot:
        return PatchSnapshot(
            id=row.id,
            patch_id=row.patch_id,
            model_id=row.model_id,
            timestamp=parse_timestamp(row.created_at),
            pre_apply_state=bytes(row.pre_apply_state),
            post_apply_state=bytes(row.post_apply_state) if row.post_apply_state is not None else None,
        )

    def load(self, record_id: str) -> Optional[Record]:
        session: Session = self.SessionLocal()
        try:
            row = session.get(StoredRecord, record_id)
            if row is not None:
                return record_from_dict(row.payload)
            snapshot = self._snapshot_row(session, record_id)
            return self._to_snapshot(snapshot) if snapshot is not None else None
        except SQLAlchemyError as e:
            logger.error("failed_to_load_record", record_id=record_id, error=str(e))
            raise StorageException(
                "Failed to load record",
                details={"record_id": record_id, "error": str(e)}
            )
        finally:
            session.close()

    def latest_snapshot(self, patch_id: str) -> Optional[PatchSnapshot]:
        session: Session = self.SessionLocal()
        try:
            row = (
                session.query(StoredSnapshot)
                .filter(StoredSnapshot.patch_id == patch_id)
                .order_by(StoredSnapshot.seq.desc())
                .first()
            )
            return self._to_snapshot(row) if row is not None else None
        except SQLAlchemyError as e:
            logger.error("failed_to_load_snapshot", patch_id=patch_id, error=str(e))
            raise StorageException(
                "Failed to load snapshot",
                details={"patch_id": patch_id, "error": str(e)}
            )
        finally:
            session.close()

    def delete(self, record_id: str) -> bool:
        session: Session = self.SessionLocal()
        try:
            deleted = session.query(StoredRecord).filter(StoredRecord.id == record_id).delete()
            deleted += session.query(StoredSnapshot).filter(StoredSnapshot.id == record_id).delete()
            session.commit()
            if deleted:
                logger.debug("record_deleted", record_id=record_id)
            return bool(deleted)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("failed_to_delete_record", record_id=record_id, error=str(e))
            raise StorageException(
                "Failed to delete record",
                details={"record_id": record_id, "error": str(e)}
            )
        finally:
            session.close()
