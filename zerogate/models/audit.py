"""
Asset status history - the append-only audit log for AssetListing transitions.

Every status-changing write to an asset inserts exactly one AuditEntry in the
same commit (see PersistenceGateway.transition_asset).
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, JSON, Enum as SQLEnum
from zerogate.database import Base
from zerogate.models.enums import AssetStatus


class AuditEntry(Base):
    """
    Immutable record of one asset status transition.

    Invariants:
    - Once written, never edited or deleted
    - Append-only
    """
    __tablename__ = "asset_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    asset_id = Column(String(36), nullable=False, index=True)
    previous_status = Column(SQLEnum(AssetStatus), nullable=False)
    new_status = Column(SQLEnum(AssetStatus), nullable=False)
    changed_by = Column(String, nullable=True)  # Nullable for system transitions
    change_reason = Column(String, nullable=True)
    metadata_snapshot = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
