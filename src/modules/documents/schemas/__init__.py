from .document_schemas import (
    DocumentResponse, DocumentDetailResponse, SignatoryIn, SignatoryResponse,
    FieldIn, FieldResponse, SendRequest, SendResponse, SigningLinkResponse,
    ReminderRequest, ExpirationRequest, AccessControlRequest, AuditEventResponse
)
from .signing_schemas import SigningPageResponse, SignRequest, SignResponse

__all__ = [
    'DocumentResponse', 'DocumentDetailResponse', 'SignatoryIn', 'SignatoryResponse',
    'FieldIn', 'FieldResponse', 'SendRequest', 'SendResponse', 'SigningLinkResponse',
    'ReminderRequest', 'ExpirationRequest', 'AccessControlRequest', 'AuditEventResponse',
    'SigningPageResponse', 'SignRequest', 'SignResponse'
]
