import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, String

from marketmatch.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class User(Base):
    """A marketplace account; the same row acts as buyer and seller."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    phone = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_users_email", "email"),
    )
