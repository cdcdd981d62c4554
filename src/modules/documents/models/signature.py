# src/modules/documents/models/signature.py
import uuid
from enum import Enum as PyEnum

from sqlalchemy import Column, ForeignKey, DateTime, String, Text, Enum
from sqlalchemy.orm import relationship

from database import Base
from modules.common.clock import utcnow


class SignatureType(str, PyEnum):
    DRAW = "draw"
    TYPE = "type"


class Signature(Base):
    __tablename__ = "signatures"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    document_id = Column(String(36), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    signatory_id = Column(String(36), ForeignKey("signatories.id", ondelete="CASCADE"), nullable=False)
    # Image data URI for drawn signatures, plain text for typed ones
    signature_data = Column(Text, nullable=False)
    signature_type = Column(
        Enum(SignatureType, values_callable=lambda enum: [member.value for member in enum]),
        nullable=False,
    )
    created_at = Column(DateTime, default=utcnow, nullable=False)

    document = relationship("Document", back_populates="signatures")
    signatory = relationship("Signatory", back_populates="signatures")
