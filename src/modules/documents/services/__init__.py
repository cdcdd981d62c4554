from .document_service import DocumentService
from .field_service import FieldService
from .signatory_service import SignatoryService, Recipient
from .signing_token_service import SigningTokenService
from .signing_workflow_service import SigningWorkflowService, SigningLink, SigningSession
from .audit_trail_service import AuditTrailService, AuditEvent, audit_trail_to_csv

__all__ = [
    'DocumentService', 'FieldService', 'SignatoryService', 'Recipient',
    'SigningTokenService', 'SigningWorkflowService', 'SigningLink', 'SigningSession',
    'AuditTrailService', 'AuditEvent', 'audit_trail_to_csv',
]
