import logging
from typing import Iterable, List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from modules.documents.exceptions import NotFoundError, PersistenceError, ValidationError
from modules.documents.models.document import Document
from modules.documents.models.field import SignatureField
from modules.documents.models.field_type import parse_field_type, validate_field_value
from modules.documents.repositories.field_repository import FieldRepository
from modules.documents.repositories.signatory_repository import SignatoryRepository

logger = logging.getLogger(__name__)


def _get(field, name, default=None):
    if isinstance(field, dict):
        return field.get(name, default)
    return getattr(field, name, default)


class FieldService:
    def __init__(self, session: Session):
        self.session = session
        self.repository = FieldRepository(session)

    def get_fields(self, document_id: str) -> List[SignatureField]:
        return self.repository.find_by_document(document_id)

    def replace_fields(self, document_id: str, fields: Iterable) -> List[SignatureField]:
        """
        Replace-on-save: the given list becomes the whole field set of the
        document. Delete and insert share one transaction, so a failure
        leaves the previous set in place.
        """
        if self.session.get(Document, document_id) is None:
            raise NotFoundError("Document not found")

        new_fields = [self._build(document_id, field) for field in fields]
        try:
            self.repository.delete_by_document(document_id)
            self.repository.add_all(new_fields)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Could not save fields of document %s: %s", document_id, e)
            raise PersistenceError() from e

        logger.info("Document %s now has %d fields", document_id, len(new_fields))
        return self.repository.find_by_document(document_id)

    def _build(self, document_id: str, field) -> SignatureField:
        x, y = _get(field, "x"), _get(field, "y")
        if x is None or y is None:
            raise ValidationError("Every field needs x and y coordinates")
        x, y = float(x), float(y)
        if not (0 <= x <= 100 and 0 <= y <= 100):
            raise ValidationError("Field coordinates are percentages between 0 and 100")

        page = _get(field, "page")
        page = 1 if page is None else int(page)
        if page < 1:
            raise ValidationError("Pages are numbered from 1")

        field_type = parse_field_type(_get(field, "field_type") or "signature")

        signatory_id = _get(field, "signatory_id")
        if signatory_id:
            signatory = SignatoryRepository(self.session).get(signatory_id)
            if signatory is None or signatory.document_id != document_id:
                raise ValidationError("A field can only be bound to a signatory of the same document")

        for dimension in ("width", "height"):
            value = _get(field, dimension)
            if value is not None and float(value) <= 0:
                raise ValidationError(f"Field {dimension} must be positive")

        value = _get(field, "value")
        return SignatureField(
            document_id=document_id,
            signatory_id=signatory_id or None,
            x=x,
            y=y,
            page=page,
            field_type=field_type,
            # Date fields are only pre-filled when the signer opens them
            value=validate_field_value(field_type, value) if value else None,
            width=_get(field, "width"),
            height=_get(field, "height"),
        )
