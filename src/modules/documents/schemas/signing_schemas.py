from typing import Dict, List, Optional

from pydantic import BaseModel

from modules.documents.models.document import DocumentStatus
from modules.documents.models.signature import SignatureType
from modules.documents.schemas.document_schemas import FieldResponse, SignatoryResponse


class SigningPageResponse(BaseModel):
    document_id: str
    document_title: str
    status: DocumentStatus
    signatory: SignatoryResponse
    already_signed: bool
    fields: List[FieldResponse]


class SignRequest(BaseModel):
    signature_data: str
    signature_type: SignatureType = SignatureType.DRAW
    field_values: Optional[Dict[str, str]] = None
    password: Optional[str] = None


class SignResponse(BaseModel):
    message: str
    signed_count: int
    signatories_count: int
    status: DocumentStatus
