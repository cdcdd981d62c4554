import uuid
from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Enum, ForeignKey
from sqlalchemy.orm import relationship

from database import Base
from modules.common.clock import utcnow


class DocumentStatus(str, PyEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    # Never stored: derived from expires_at at read time
    EXPIRED = "expired"


class Document(Base):
    __tablename__ = 'documents'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String, nullable=False)
    file_path = Column(String, nullable=False)
    status = Column(
        Enum(DocumentStatus, values_callable=lambda enum: [member.value for member in enum]),
        nullable=False,
        default=DocumentStatus.PENDING,
    )
    signatories_count = Column(Integer, nullable=False, default=0)
    signed_count = Column(Integer, nullable=False, default=0)

    expires_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    password_protected = Column(Boolean, nullable=False, default=False)
    password_hash = Column(String, nullable=True)
    publicly_viewable = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user_id = Column(String(36), ForeignKey('users.id'), nullable=False)
    user = relationship("User", back_populates="documents")

    signatories = relationship(
        "Signatory", back_populates="document",
        order_by="Signatory.created_at", cascade="all, delete-orphan"
    )
    fields = relationship("SignatureField", back_populates="document", cascade="all, delete-orphan")
    signatures = relationship(
        "Signature", back_populates="document",
        order_by="Signature.created_at", cascade="all, delete-orphan"
    )
    tokens = relationship("SigningToken", back_populates="document", cascade="all, delete-orphan")
    views = relationship("DocumentView", back_populates="document", cascade="all, delete-orphan")
    shares = relationship("DocumentShare", back_populates="document", cascade="all, delete-orphan")

    @property
    def is_draft(self) -> bool:
        return not self.signatories_count

    @property
    def is_completed(self) -> bool:
        return self.status == DocumentStatus.COMPLETED

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None or self.is_completed:
            return False
        return (now or utcnow()) > self.expires_at

    def effective_status(self, now: Optional[datetime] = None) -> DocumentStatus:
        if self.is_expired(now):
            return DocumentStatus.EXPIRED
        return self.status
