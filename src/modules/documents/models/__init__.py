from .user import User
from .document import Document, DocumentStatus
from .signatory import Signatory
from .field_type import FieldType, InputMode, FieldSpec, FIELD_SPECS
from .field import SignatureField
from .signing_token import SigningToken
from .signature import Signature, SignatureType
from .activity import DocumentView, DocumentShare

__all__ = [
    'User', 'Document', 'DocumentStatus', 'Signatory', 'FieldType', 'InputMode',
    'FieldSpec', 'FIELD_SPECS', 'SignatureField', 'SigningToken', 'Signature',
    'SignatureType', 'DocumentView', 'DocumentShare',
]
