import io
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Optional

from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from modules.auth.services.auth_service import AuthService
from modules.common.clock import utcnow
from modules.documents.exceptions import (
    AccessDenied, DocumentStateError, NotFoundError, PersistenceError, ValidationError,
)
from modules.documents.models.document import Document, DocumentStatus
from modules.documents.models.user import User
from modules.documents.repositories.activity_repository import ActivityRepository

logger = logging.getLogger(__name__)


class DocumentService:

    @staticmethod
    def get_documents_by_user(session: Session, user_id: str) -> list[Document]:
        """
        Documents owned by a user, newest first
        """
        return (
            session.query(Document)
            .filter(Document.user_id == user_id)
            .order_by(Document.created_at.desc())
            .all()
        )

    @staticmethod
    def get_document(session: Session, document_id: str) -> Document:
        document = session.get(Document, document_id)
        if not document:
            raise NotFoundError("Document not found")
        return document

    @staticmethod
    def get_owned_document(session: Session, document_id: str, user_id: str) -> Document:
        """Another owner's document is reported as missing, not forbidden."""
        document = DocumentService.get_document(session, document_id)
        if document.user_id != user_id:
            raise NotFoundError("Document not found")
        return document

    @staticmethod
    def get_document_with_details(session: Session, document_id: str) -> Document:
        document = (
            session.query(Document)
            .options(
                selectinload(Document.signatories),
                selectinload(Document.fields),
                selectinload(Document.user),
            )
            .filter(Document.id == document_id)
            .first()
        )
        if not document:
            raise NotFoundError("Document not found")
        return document

    @staticmethod
    def locked_document_query(session: Session, document_id: str):
        return (
            session.query(Document)
            .filter(Document.id == document_id)
            .with_for_update()
            .populate_existing()
        )

    @staticmethod
    def lock_document(session: Session, document_id: str) -> Document:
        """
        SELECT ... FOR UPDATE on the document row, held until the caller's
        transaction ends. Concurrent signings of one document queue here, so
        each recount sees the signatures committed before it.
        """
        document = DocumentService.locked_document_query(session, document_id).first()
        if not document:
            raise NotFoundError("Document not found")
        return document

    @staticmethod
    def get_document_file(session: Session, document_id: str) -> Document:
        """The document, once its stored PDF is confirmed to exist on disk."""
        document = DocumentService.get_document(session, document_id)
        if not document.file_path or not os.path.isfile(document.file_path):
            logger.error("File of document %s missing at %s", document_id, document.file_path)
            raise NotFoundError("Document file not found")
        return document

    @staticmethod
    def create_document(session: Session, user_id: str, title: str, file_path: str) -> Document:
        """New record for an already stored file: pending, no signatories (draft)."""
        if not title or not title.strip():
            raise ValidationError("A document title is required")
        if session.get(User, user_id) is None:
            raise NotFoundError("User not found")

        document = Document(
            title=title.strip(),
            file_path=file_path,
            user_id=user_id,
            status=DocumentStatus.PENDING,
            signatories_count=0,
            signed_count=0,
        )
        try:
            session.add(document)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError() from e

        logger.info("Document %s created for user %s", document.id, user_id)
        return document

    @staticmethod
    def upload_document(
        session: Session,
        user_id: str,
        file_contents: bytes,
        filename: str,
        content_type: str,
        upload_dir: str,
        max_file_size: int = 10 * 1024 * 1024,  # 10 MB
        title: Optional[str] = None,
    ) -> Document:
        """
        Validates, stores and registers an uploaded PDF:
        - validates the file
        - writes it to disk under an opaque name
        - creates the database row
        """
        # 1) Validation
        DocumentService._validate_file(file_contents, filename, content_type, max_file_size)

        # 2) Store the file
        user_dir = os.path.join(upload_dir, str(user_id))
        os.makedirs(user_dir, exist_ok=True)
        file_path = os.path.join(user_dir, f"{uuid.uuid4()}.pdf")
        with open(file_path, "wb") as f:
            f.write(file_contents)

        # 3) Create the row
        if not title:
            title = os.path.splitext(os.path.basename(filename))[0]
        try:
            return DocumentService.create_document(session, user_id, title, file_path)
        except Exception:
            os.remove(file_path)
            raise

    @staticmethod
    def _validate_file(file_contents: bytes, filename: str, content_type: str, max_file_size: int):
        """Type, extension, size and a parse of the first page"""

        if content_type != "application/pdf":
            raise ValidationError("The file must be a PDF")

        if not filename or not filename.lower().endswith(".pdf"):
            raise ValidationError("The file extension must be .pdf")

        if len(file_contents) > max_file_size:
            raise ValidationError(f"The maximum size is {max_file_size // (1024 * 1024)} MB")

        try:
            reader = PdfReader(io.BytesIO(file_contents))
            _ = reader.pages[0]
        except (PdfReadError, ValueError, IndexError, KeyError, TypeError):
            raise ValidationError("Invalid or damaged PDF")

    @staticmethod
    def is_fully_signed(session: Session, document_id: str) -> bool:
        document = DocumentService.get_document(session, document_id)
        return document.signatories_count > 0 and document.signatories_count == document.signed_count

    @staticmethod
    def set_expiration(session: Session, document_id: str, expires_at: Optional[datetime],
                       now: Optional[datetime] = None) -> Document:
        """None clears the expiry. Completed documents keep whatever they had."""
        document = DocumentService.get_document(session, document_id)
        if document.is_completed:
            raise DocumentStateError("A completed document cannot change its expiration")
        if expires_at is not None:
            if expires_at.tzinfo is not None:
                expires_at = expires_at.astimezone(timezone.utc).replace(tzinfo=None)
            if expires_at <= (now or utcnow()):
                raise ValidationError("The expiration date must be in the future")

        document.expires_at = expires_at
        DocumentService.commit(session)
        logger.info("Document %s expiration set to %s", document_id, expires_at)
        return document

    @staticmethod
    def set_access_control(session: Session, document_id: str, password_protected: bool,
                           password: Optional[str] = None,
                           publicly_viewable: bool = False) -> Document:
        """
        Without a new password an already protected document keeps its
        current one.
        """
        document = DocumentService.get_document(session, document_id)
        if password_protected:
            if password:
                document.password_hash = AuthService.get_password_hash(password)
            elif not document.password_hash:
                raise ValidationError("Please enter a password")
        else:
            document.password_hash = None
        document.password_protected = password_protected
        document.publicly_viewable = publicly_viewable
        DocumentService.commit(session)
        return document

    @staticmethod
    def verify_document_password(document: Document, password: Optional[str]) -> None:
        if not document.password_protected:
            return
        if not password or not AuthService.verify_password(password, document.password_hash):
            raise AccessDenied()

    @staticmethod
    def get_public_document(session: Session, document_id: str,
                            viewer_email: Optional[str] = None) -> Document:
        """Publicly viewable documents only; every access lands in the view log."""
        document = DocumentService.get_document(session, document_id)
        if not document.publicly_viewable:
            raise NotFoundError("Document not found")
        ActivityRepository(session).add_view(document.id, viewer_email)
        DocumentService.commit(session)
        return document

    @staticmethod
    def commit(session: Session):
        try:
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError() from e
