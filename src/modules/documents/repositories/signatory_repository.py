from typing import List, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from modules.documents.models.signatory import Signatory


class SignatoryRepository:
    def __init__(self, db_session: Session):
        self.db = db_session

    def get(self, signatory_id: str) -> Optional[Signatory]:
        return self.db.get(Signatory, signatory_id)

    def find_by_document(self, document_id: str) -> List[Signatory]:
        return (
            self.db
            .query(Signatory)
            .filter(Signatory.document_id == document_id)
            .order_by(Signatory.created_at)
            .all()
        )

    def find_by_email(self, document_id: str, email: str) -> Optional[Signatory]:
        return (
            self.db
            .query(Signatory)
            .filter(Signatory.document_id == document_id, Signatory.email_key == email.lower())
            .first()
        )

    def existing_email_keys(self, document_id: str) -> set:
        rows = self.db.query(Signatory.email_key).filter(Signatory.document_id == document_id).all()
        return {row[0] for row in rows}

    def add(self, document_id: str, email: str, name: Optional[str] = None) -> Signatory:
        signatory = Signatory(
            document_id=document_id,
            email=email,
            email_key=email.lower(),
            name=name or None,
            signed=False,
        )
        self.db.add(signatory)
        self.db.flush()
        return signatory

    def mark_signed(self, signatory_id: str, document_id: str, signed_at) -> bool:
        """One-way false -> true; returns False when the row was already signed."""
        result = self.db.execute(
            update(Signatory)
            .where(
                Signatory.id == signatory_id,
                Signatory.document_id == document_id,
                Signatory.signed.is_(False),
            )
            .values(signed=True, signed_at=signed_at)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    def counts(self, document_id: str) -> Tuple[int, int]:
        """(signatories, signed) for a document, always a full recount."""
        query = self.db.query(func.count(Signatory.id)).filter(Signatory.document_id == document_id)
        total = query.scalar() or 0
        signed = query.filter(Signatory.signed.is_(True)).scalar() or 0
        return total, signed
