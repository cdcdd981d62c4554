import uuid

from sqlalchemy import Column, Integer, Float, String, Text, Enum, ForeignKey
from sqlalchemy.orm import relationship

from database import Base
from modules.documents.models.field_type import FieldType


class SignatureField(Base):
    __tablename__ = "signature_fields"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    document_id = Column(String(36), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    signatory_id = Column(String(36), ForeignKey("signatories.id", ondelete="SET NULL"), nullable=True)

    # Percent-of-page coordinates
    x = Column(Float, nullable=False)
    y = Column(Float, nullable=False)
    page = Column(Integer, nullable=False, default=1)

    field_type = Column(
        Enum(FieldType, values_callable=lambda enum: [member.value for member in enum]),
        nullable=False,
        default=FieldType.SIGNATURE,
    )
    value = Column(Text, nullable=True)
    width = Column(Float, nullable=True)
    height = Column(Float, nullable=True)

    document = relationship("Document", back_populates="fields")
    signatory = relationship("Signatory")
