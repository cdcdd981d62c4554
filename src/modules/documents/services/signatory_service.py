import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from modules.documents.exceptions import (
    DocumentStateError, NotFoundError, PersistenceError, ValidationError,
)
from modules.documents.models.document import Document
from modules.documents.models.field_type import normalize_email
from modules.documents.models.signatory import Signatory
from modules.documents.repositories.signatory_repository import SignatoryRepository

logger = logging.getLogger(__name__)


@dataclass
class Recipient:
    email: str
    name: Optional[str] = None


def clean_recipients(recipients: Iterable) -> List[Recipient]:
    """
    Validates every address up front and drops in-batch duplicates
    (case-insensitive); the first occurrence wins.
    """
    cleaned = []
    seen = set()
    for recipient in recipients:
        if isinstance(recipient, dict):
            email, name = recipient.get("email"), recipient.get("name")
        else:
            email, name = getattr(recipient, "email", None), getattr(recipient, "name", None)
        if not email or not str(email).strip():
            raise ValidationError("Every recipient needs an email address")
        email = normalize_email(str(email).strip())
        if email.lower() in seen:
            continue
        seen.add(email.lower())
        cleaned.append(Recipient(email=email, name=(name or "").strip() or None))
    return cleaned


class SignatoryService:
    def __init__(self, session: Session):
        self.session = session
        self.repository = SignatoryRepository(session)

    def get_signatories(self, document_id: str) -> List[Signatory]:
        return self.repository.find_by_document(document_id)

    def get_signatory(self, document_id: str, signatory_id: str) -> Signatory:
        signatory = self.repository.get(signatory_id)
        if signatory is None or signatory.document_id != document_id:
            raise NotFoundError("Signatory not found")
        return signatory

    def add_signatories(self, document: Document, recipients: Iterable) -> List[Signatory]:
        """
        Adds the recipients not yet on the document and returns only the
        new rows. Known emails are skipped silently.
        """
        cleaned = clean_recipients(recipients)
        if document.is_completed:
            raise DocumentStateError("Signatories cannot be added to a completed document")

        existing = self.repository.existing_email_keys(document.id)
        try:
            added = [
                self.repository.add(document.id, recipient.email, recipient.name)
                for recipient in cleaned
                if recipient.email.lower() not in existing
            ]
            if added:
                self.sync_counts(document)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Could not add signatories to document %s: %s", document.id, e)
            raise PersistenceError() from e

        if added:
            logger.info("%d signatories added to document %s", len(added), document.id)
        return added

    def resolve_or_create(self, document: Document, recipient: Recipient) -> Signatory:
        signatory = self.repository.find_by_email(document.id, recipient.email)
        if signatory is not None:
            return signatory
        return self.add_signatories(document, [recipient])[0]

    def sync_counts(self, document: Document) -> tuple:
        """Full recount of both aggregates, written onto the document row."""
        self.session.flush()
        total, signed = self.repository.counts(document.id)
        document.signatories_count = total
        document.signed_count = signed
        return total, signed
