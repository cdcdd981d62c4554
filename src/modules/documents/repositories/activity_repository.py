from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from modules.documents.models.activity import DocumentView, DocumentShare
from modules.documents.models.signature import Signature


class ActivityRepository:
    """Event logs read back by the audit trail."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def add_view(self, document_id: str, viewer_email: Optional[str] = None, viewed_at=None) -> DocumentView:
        view = DocumentView(document_id=document_id, viewer_email=viewer_email)
        if viewed_at is not None:
            view.viewed_at = viewed_at
        self.db.add(view)
        self.db.flush()
        return view

    def add_share(self, document_id: str, recipient_email: str, message: Optional[str] = None,
                  shared_at=None) -> DocumentShare:
        share = DocumentShare(document_id=document_id, recipient_email=recipient_email, message=message)
        if shared_at is not None:
            share.shared_at = shared_at
        self.db.add(share)
        self.db.flush()
        return share

    def find_views(self, document_id: str) -> List[DocumentView]:
        return (
            self.db
            .query(DocumentView)
            .filter(DocumentView.document_id == document_id)
            .order_by(DocumentView.viewed_at)
            .all()
        )

    def find_shares(self, document_id: str) -> List[DocumentShare]:
        return (
            self.db
            .query(DocumentShare)
            .filter(DocumentShare.document_id == document_id)
            .order_by(DocumentShare.shared_at)
            .all()
        )

    def find_signatures(self, document_id: str) -> List[Signature]:
        return (
            self.db
            .query(Signature)
            .options(joinedload(Signature.signatory))
            .filter(Signature.document_id == document_id)
            .order_by(Signature.created_at)
            .all()
        )
