import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from modules.common.clock import utcnow
from modules.documents.exceptions import (
    AlreadySigned, DocumentExpired, DocumentStateError, PersistenceError, SigningError,
    TokenExpired, TokenNotFound, ValidationError,
)
from modules.documents.models.document import Document, DocumentStatus
from modules.documents.models.field import SignatureField
from modules.documents.models.field_type import (
    IMAGE_DATA_URI, FieldType, default_value, validate_field_value,
)
from modules.documents.models.signatory import Signatory
from modules.documents.models.signature import Signature, SignatureType
from modules.documents.models.signing_token import SigningToken
from modules.documents.models.user import User
from modules.documents.repositories.activity_repository import ActivityRepository
from modules.documents.repositories.signatory_repository import SignatoryRepository
from modules.documents.services.document_service import DocumentService
from modules.documents.services.field_service import FieldService
from modules.documents.services.signatory_service import SignatoryService, clean_recipients
from modules.documents.services.signing_token_service import SigningTokenService
from modules.notifications.repositories.notification_repository import NotificationRepository
from modules.notifications.services.email_service import EmailSender
from modules.notifications.services.email_templates import completion_email, signature_request_email
from modules.notifications.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

MAX_TYPED_SIGNATURE_LENGTH = 200


@dataclass
class SigningLink:
    email: str
    name: Optional[str]
    link: str


@dataclass
class SigningSession:
    """Everything the public signing page needs after a token check."""
    document: Document
    signatory: Signatory
    token: SigningToken
    fields: List[SignatureField]
    already_signed: bool
    defaults: Dict[str, str] = field(default_factory=dict)


class SigningWorkflowService:
    """
    Drives a document from draft to completed: signatories, signing
    requests, the public signing page, the signature commit and the owner
    notice.
    """

    def __init__(
        self,
        session: Session,
        email_sender: EmailSender,
        origin: str = None,
        token_service: SigningTokenService = None,
        notification_service: NotificationService = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.email_sender = email_sender
        self.origin = (origin or settings.APP_ORIGIN).rstrip("/")
        self.clock = clock
        self.tokens = token_service or SigningTokenService(
            session, validity=timedelta(days=settings.SIGNING_TOKEN_VALIDITY_DAYS), clock=clock
        )
        self.notifications = notification_service or NotificationService(NotificationRepository(session))
        self.signatories = SignatoryService(session)
        self.fields = FieldService(session)
        self.activity = ActivityRepository(session)

    # --- Links -------------------------------------------------------------

    def signing_link(self, document_id: str, raw_token: str) -> str:
        return f"{self.origin}/sign/{document_id}/{raw_token}"

    def document_link(self, document_id: str) -> str:
        return f"{self.origin}/document/{document_id}"

    # --- Owner side --------------------------------------------------------

    def add_signatories(self, document_id: str, recipients: Iterable) -> List[Signatory]:
        document = DocumentService.get_document(self.session, document_id)
        return self.signatories.add_signatories(document, recipients)

    def dispatch_signing_requests(self, document_id: str, recipients: Iterable,
                                  message: Optional[str] = None) -> List[SigningLink]:
        """
        Sends one signing request per recipient. A recipient that fails is
        logged and left out of the result; the others still go out.
        """
        document = self._get_signable_document(document_id)
        links = []
        for recipient in clean_recipients(recipients):
            try:
                signatory = self.signatories.resolve_or_create(document, recipient)
                if signatory.signed:
                    logger.info("Signatory %s already signed document %s, request skipped",
                                signatory.id, document_id)
                    continue
                link = self._send_request(document, signatory, message)
                self.activity.add_share(document.id, signatory.email, message, shared_at=self.clock())
                self.session.commit()
                links.append(link)
            except Exception as e:  # one recipient must not abort the batch
                self.session.rollback()
                logger.error("Error sending request to %s for document %s: %s",
                             recipient.email, document_id, e)
        logger.info("Signing requests for document %s: %d sent", document_id, len(links))
        return links

    def send_reminders(self, document_id: str, signatory_ids: Optional[Iterable[str]] = None,
                       message: Optional[str] = None) -> List[SigningLink]:
        """
        Re-sends a request, with a brand new token, to every selected
        signatory that has not signed yet. Older links keep working.
        """
        document = self._get_signable_document(document_id)
        pending = [s for s in self.signatories.get_signatories(document_id) if not s.signed]
        if signatory_ids is not None:
            selected = set(signatory_ids)
            if not selected:
                raise ValidationError("Please select at least one recipient")
            pending = [s for s in pending if s.id in selected]

        links = []
        for signatory in pending:
            try:
                link = self._send_request(document, signatory, message, reminder=True)
                signatory.last_reminded_at = self.clock()
                self.session.commit()
                links.append(link)
            except Exception as e:  # one recipient must not abort the batch
                self.session.rollback()
                logger.error("Error sending reminder to %s for document %s: %s",
                             signatory.email, document_id, e)
        return links

    def _send_request(self, document: Document, signatory: Signatory,
                      message: Optional[str], reminder: bool = False) -> SigningLink:
        """
        The token is only flushed here; the caller commits it once the email
        went out, and a failed send rolls it back with the rest of the
        recipient's work.
        """
        token = self.tokens.mint_token(document.id, signatory.id)
        link = self.signing_link(document.id, token.token)
        html = signature_request_email(
            document_name=document.title,
            signing_link=link,
            signatory_name=signatory.name,
            message=message,
            validity_days=self.tokens.validity.days,
        )
        subject = f"Signature Required: {document.title}"
        if reminder:
            subject = f"Reminder: {subject}"
        self.email_sender.send_email(signatory.email, subject, html)
        return SigningLink(email=signatory.email, name=signatory.name, link=link)

    def _get_signable_document(self, document_id: str) -> Document:
        document = DocumentService.get_document(self.session, document_id)
        if document.is_completed:
            raise DocumentStateError("This document has already been signed by all parties")
        if document.is_expired(self.clock()):
            raise DocumentExpired()
        return document

    # --- Signer side -------------------------------------------------------

    def open_signing_session(self, document_id: str, raw_token: str,
                             password: Optional[str] = None) -> SigningSession:
        token = self.tokens.validate_token(document_id, raw_token)
        document = DocumentService.get_document(self.session, document_id)
        if document.is_expired(self.clock()):
            raise DocumentExpired()
        DocumentService.verify_document_password(document, password)
        signatory = self.signatories.get_signatory(document_id, token.signatory_id)

        self.activity.add_view(document.id, signatory.email, viewed_at=self.clock())
        DocumentService.commit(self.session)

        fields = self.fields.get_fields(document_id)
        today = self.clock().date()
        defaults = {}
        for signature_field in fields:
            value = None if signature_field.value else default_value(signature_field.field_type, today)
            if value is not None:
                defaults[signature_field.id] = value
        return SigningSession(
            document=document,
            signatory=signatory,
            token=token,
            fields=fields,
            already_signed=signatory.signed,
            defaults=defaults,
        )

    def open_document_file(self, document_id: str, raw_token: str,
                           password: Optional[str] = None) -> Document:
        """Token-gated access to the stored PDF, behind the same checks as the signing page."""
        self.tokens.validate_token(document_id, raw_token)
        document = DocumentService.get_document(self.session, document_id)
        if document.is_expired(self.clock()):
            raise DocumentExpired()
        DocumentService.verify_document_password(document, password)
        return DocumentService.get_document_file(self.session, document_id)

    def sign_with_token(self, document_id: str, raw_token: str, signature_data: str,
                        signature_type, field_values: Optional[Dict[str, str]] = None,
                        password: Optional[str] = None) -> int:
        token = self.tokens.validate_token(document_id, raw_token)
        document = DocumentService.get_document(self.session, document_id)
        DocumentService.verify_document_password(document, password)
        return self.record_signature(
            document_id, token.signatory_id, token.id, signature_data, signature_type, field_values
        )

    def record_signature(self, document_id: str, signatory_id: str, token_id: str,
                         signature_data: str, signature_type,
                         field_values: Optional[Dict[str, str]] = None) -> int:
        """
        Commit step of a signing: signature row, signatory flag, token
        consumption, recount and status all land in one transaction or not
        at all. Returns the recounted signed_count.
        """
        now = self.clock()
        document = DocumentService.get_document(self.session, document_id)
        if document.is_expired(now):
            raise DocumentExpired()

        signature_type = self._parse_signature_type(signature_type)
        signature_data = self._validate_signature_data(signature_data, signature_type)

        token = self.tokens.repository.get(token_id)
        if token is None or token.document_id != document_id or token.signatory_id != signatory_id:
            raise TokenNotFound()
        if token.is_expired(now):
            raise TokenExpired()

        signatory = self.signatories.get_signatory(document_id, signatory_id)
        filled = self._resolve_field_values(document_id, signatory_id, field_values or {}, now)

        try:
            document = DocumentService.lock_document(self.session, document_id)
            self.session.add(Signature(
                document_id=document_id,
                signatory_id=signatory_id,
                signature_data=signature_data,
                signature_type=signature_type,
                created_at=now,
            ))
            self.session.flush()

            if not SignatoryRepository(self.session).mark_signed(signatory_id, document_id, now):
                raise AlreadySigned()

            self.tokens.consume_token(token_id)

            for signature_field, value in filled:
                signature_field.value = value
            if signature_type is SignatureType.DRAW:
                self._stamp_signature_fields(document_id, signatory_id, signature_data)

            total, signed = self.signatories.sync_counts(document)
            became_completed = self._update_status(document, total, signed, now)
            self.session.commit()
        except SigningError:
            self.session.rollback()
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Could not record signature of %s on document %s: %s", signatory_id, document_id, e)
            raise PersistenceError() from e

        logger.info("Document %s signed by %s (%d/%d)", document_id, signatory_id, signed, total)
        self._notify_owner_of_signature(document, signatory, signed, total)
        if became_completed:
            logger.info("Document %s completed", document_id)
            self.send_completion_notice(document)
        return signed

    def _update_status(self, document: Document, total: int, signed: int, now: datetime) -> bool:
        """
        Returns True only for the call that moved the document to completed;
        the status compare-and-set makes that claim unique.
        """
        if total > 0 and signed == total:
            self.session.flush()
            result = self.session.execute(
                update(Document)
                .where(Document.id == document.id, Document.status != DocumentStatus.COMPLETED)
                .values(status=DocumentStatus.COMPLETED, completed_at=now)
                .execution_options(synchronize_session="fetch")
            )
            return result.rowcount == 1
        if document.status != DocumentStatus.COMPLETED:
            document.status = DocumentStatus.PENDING
        return False

    @staticmethod
    def _parse_signature_type(signature_type) -> SignatureType:
        try:
            return SignatureType(signature_type)
        except ValueError:
            raise ValidationError(f"Unknown signature type '{signature_type}'")

    @staticmethod
    def _validate_signature_data(signature_data: Optional[str], signature_type: SignatureType) -> str:
        if not signature_data or not signature_data.strip():
            raise ValidationError("Please provide a signature")
        signature_data = signature_data.strip()
        if signature_type is SignatureType.DRAW and not IMAGE_DATA_URI.match(signature_data):
            raise ValidationError("A drawn signature must be an image data URI")
        if signature_type is SignatureType.TYPE and len(signature_data) > MAX_TYPED_SIGNATURE_LENGTH:
            raise ValidationError("The typed signature is too long")
        return signature_data

    def _resolve_field_values(self, document_id: str, signatory_id: str,
                              field_values: Dict[str, str], now: datetime) -> list:
        """Validated (field, value) pairs; nothing is written here."""
        if not field_values:
            return []
        by_id = {f.id: f for f in self.fields.get_fields(document_id)}
        resolved = []
        for field_id, value in field_values.items():
            signature_field = by_id.get(field_id)
            if signature_field is None:
                raise ValidationError(f"Field {field_id} does not belong to this document")
            if signature_field.signatory_id and signature_field.signatory_id != signatory_id:
                raise ValidationError(f"Field {field_id} is assigned to another signatory")
            resolved.append((signature_field, validate_field_value(signature_field.field_type, value, now.date())))
        return resolved

    def _stamp_signature_fields(self, document_id: str, signatory_id: str, signature_data: str):
        for signature_field in self.fields.get_fields(document_id):
            if (signature_field.signatory_id == signatory_id
                    and signature_field.field_type is FieldType.SIGNATURE
                    and not signature_field.value):
                signature_field.value = signature_data

    # --- Notices -----------------------------------------------------------

    def _notify_owner_of_signature(self, document: Document, signatory: Signatory, signed: int, total: int):
        try:
            self.notifications.create_signature_received_notification(
                user_id=document.user_id,
                document_title=document.title,
                signer=signatory.display_name,
                signed_count=signed,
                signatories_count=total,
            )
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Could not store signature notification for document %s: %s", document.id, e)

    def send_completion_notice(self, document: Document) -> bool:
        """
        Emails the owner and leaves an in-app notification. Failures are
        logged; the signature that triggered the notice stays recorded.
        """
        owner = self.session.get(User, document.user_id)
        if owner is None:
            logger.error("Owner %s of document %s not found, no completion notice", document.user_id, document.id)
            return False

        delivered = True
        try:
            self.notifications.create_document_completed_notification(owner.id, document.title)
        except SQLAlchemyError as e:
            self.session.rollback()
            delivered = False
            logger.error("Could not store completion notification for document %s: %s", document.id, e)

        try:
            html = completion_email(
                document_name=document.title,
                document_link=self.document_link(document.id),
                owner_name=owner.name or owner.email.split("@")[0],
            )
            self.email_sender.send_email(owner.email, f"Document Fully Signed: {document.title}", html)
        except Exception as e:  # the signature is already committed
            delivered = False
            logger.error("Error sending completion notification for document %s: %s", document.id, e)
        return delivered
