from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String

from common_core.config import AREA_NAME_COLUMN_LEN
from common_core.db import Base


class AreaRow(Base):
    __tablename__ = "areas"
    area_id = Column(String(64), primary_key=True)
    name = Column(String(AREA_NAME_COLUMN_LEN), nullable=False)
    machines = Column(JSON, nullable=False, default=list)
    # Column name kept as parentId for compatibility with existing databases.
    parent_id = Column(
        "parentId",
        String(64),
        ForeignKey("areas.area_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )


class AuditLog(Base):
    __tablename__ = "audit_log"
    id = Column(Integer, primary_key=True, autoincrement=True)
    site_code = Column(String(16), nullable=False, index=True)
    actor = Column(String(64), nullable=True, index=True)
    action = Column(String(64), nullable=False, index=True)
    entity_type = Column(String(32), nullable=False, index=True)
    entity_id = Column(String(64), nullable=False, index=True)
    request_id = Column(String(64), nullable=True, index=True)
    details_json = Column(JSON, nullable=False)
    created_at_utc = Column(DateTime, nullable=False, index=True)
