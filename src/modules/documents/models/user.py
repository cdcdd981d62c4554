import uuid

from sqlalchemy import Column, String, DateTime, Boolean
from sqlalchemy.orm import relationship

from database import Base
from modules.common.clock import utcnow


class User(Base):
    __tablename__ = 'users'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False)
    password_hash = Column(String, nullable=False)

    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)

    # Relationship with documents
    documents = relationship("Document", back_populates="user")

    # Relationship with notifications
    notifications = relationship(
        "Notification",
        back_populates="user",
        cascade="all, delete-orphan"
    )
