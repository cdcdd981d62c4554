import uuid

from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from modules.common.clock import utcnow


class Signatory(Base):
    __tablename__ = "signatories"
    __table_args__ = (
        UniqueConstraint("document_id", "email_key", name="uq_signatories_document_email"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    document_id = Column(String(36), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    email = Column(String, nullable=False)
    # Lower-cased email, the dedup key
    email_key = Column(String, nullable=False)
    name = Column(String, nullable=True)
    signed = Column(Boolean, nullable=False, default=False)
    signed_at = Column(DateTime, nullable=True)
    last_reminded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    document = relationship("Document", back_populates="signatories")
    signatures = relationship("Signature", back_populates="signatory")

    @property
    def display_name(self) -> str:
        return self.name or self.email
