import uuid

from sqlalchemy import Column, String, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship

from database import Base
from modules.common.clock import utcnow


class DocumentView(Base):
    __tablename__ = "document_views"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    document_id = Column(String(36), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    viewer_email = Column(String, nullable=True)
    viewed_at = Column(DateTime, default=utcnow, nullable=False)

    document = relationship("Document", back_populates="views")


class DocumentShare(Base):
    __tablename__ = "document_shares"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    document_id = Column(String(36), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    recipient_email = Column(String, nullable=False)
    message = Column(Text, nullable=True)
    shared_at = Column(DateTime, default=utcnow, nullable=False)

    document = relationship("Document", back_populates="shares")
