from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from modules.documents.models.document import Document, DocumentStatus
from modules.documents.models.field import SignatureField
from modules.documents.models.field_type import FIELD_SPECS, FieldType, InputMode


class DocumentResponse(BaseModel):
    id: str
    title: str
    status: DocumentStatus
    is_draft: bool
    signatories_count: int
    signed_count: int
    expires_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    password_protected: bool
    publicly_viewable: bool
    created_at: datetime

    @classmethod
    def from_document(cls, document: Document, now: Optional[datetime] = None) -> "DocumentResponse":
        return cls(
            id=document.id,
            title=document.title,
            status=document.effective_status(now),
            is_draft=document.is_draft,
            signatories_count=document.signatories_count,
            signed_count=document.signed_count,
            expires_at=document.expires_at,
            completed_at=document.completed_at,
            password_protected=document.password_protected,
            publicly_viewable=document.publicly_viewable,
            created_at=document.created_at,
        )


class SignatoryIn(BaseModel):
    # Plain str: the service answers malformed addresses with its own 400
    email: str
    name: Optional[str] = None


class SignatoryResponse(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    signed: bool
    signed_at: Optional[datetime] = None
    last_reminded_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class FieldIn(BaseModel):
    x: float
    y: float
    page: int = 1
    field_type: FieldType = FieldType.SIGNATURE
    value: Optional[str] = None
    signatory_id: Optional[str] = None
    width: Optional[float] = None
    height: Optional[float] = None


class FieldResponse(BaseModel):
    id: str
    signatory_id: Optional[str] = None
    x: float
    y: float
    page: int
    field_type: FieldType
    value: Optional[str] = None
    width: Optional[float] = None
    height: Optional[float] = None
    label: str
    placeholder: str
    input_mode: InputMode
    default_value: Optional[str] = None

    @classmethod
    def from_field(cls, field: SignatureField, default_value: Optional[str] = None) -> "FieldResponse":
        spec = FIELD_SPECS[field.field_type]
        return cls(
            id=field.id,
            signatory_id=field.signatory_id,
            x=field.x,
            y=field.y,
            page=field.page,
            field_type=field.field_type,
            value=field.value,
            width=field.width,
            height=field.height,
            label=spec.label,
            placeholder=spec.placeholder,
            input_mode=spec.input_mode,
            default_value=default_value,
        )


class DocumentDetailResponse(DocumentResponse):
    signatories: List[SignatoryResponse] = []
    fields: List[FieldResponse] = []


class SendRequest(BaseModel):
    recipients: List[SignatoryIn] = Field(min_length=1)
    message: Optional[str] = None


class SigningLinkResponse(BaseModel):
    email: str
    name: Optional[str] = None
    link: str


class SendResponse(BaseModel):
    requested: int
    sent: List[SigningLinkResponse]


class ReminderRequest(BaseModel):
    signatory_ids: Optional[List[str]] = None
    message: Optional[str] = None


class ExpirationRequest(BaseModel):
    expires_at: Optional[datetime] = None


class AccessControlRequest(BaseModel):
    password_protected: bool = False
    password: Optional[str] = None
    publicly_viewable: bool = False


class AuditEventResponse(BaseModel):
    event: str
    timestamp: datetime
    user: str
    details: str

    model_config = {"from_attributes": True}
