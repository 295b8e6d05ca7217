from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, String

from ..config import Base


def utcnow() -> datetime:
    # Stored naive; every timestamp in the store is UTC.
    return datetime.now(timezone.utc).replace(tzinfo=None)


class DocumentRecord(Base):
    __tablename__ = "documents"

    collection = Column(String(64), primary_key=True)
    key = Column(String(255), primary_key=True)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Principal(Base):
    __tablename__ = "principals"

    uid = Column(String(64), primary_key=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(60), nullable=False)
    disabled = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    last_sign_in_at = Column(DateTime, nullable=True)
