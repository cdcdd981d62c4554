import csv
import io
from dataclasses import dataclass
from datetime import datetime
from typing import List

from sqlalchemy.orm import Session

from modules.documents.repositories.activity_repository import ActivityRepository
from modules.documents.services.document_service import DocumentService

DOCUMENT_CREATED = "Document Created"
DOCUMENT_SIGNED = "Document Signed"
DOCUMENT_VIEWED = "Document Viewed"
DOCUMENT_SENT = "Document Sent"


@dataclass
class AuditEvent:
    event: str
    timestamp: datetime
    user: str
    details: str


class AuditTrailService:
    """Read-only timeline merged from the document row and its event logs."""

    def __init__(self, session: Session):
        self.session = session
        self.activity = ActivityRepository(session)

    def build_audit_trail(self, document_id: str) -> List[AuditEvent]:
        document = DocumentService.get_document(self.session, document_id)

        events = [AuditEvent(
            event=DOCUMENT_CREATED,
            timestamp=document.created_at,
            user="Owner",
            details=f'Document "{document.title}" was created',
        )]
        for signature in self.activity.find_signatures(document_id):
            signer = signature.signatory.display_name if signature.signatory else "Unknown signer"
            events.append(AuditEvent(DOCUMENT_SIGNED, signature.created_at, signer, f"Signed by {signer}"))
        for view in self.activity.find_views(document_id):
            viewer = view.viewer_email or "Anonymous"
            events.append(AuditEvent(DOCUMENT_VIEWED, view.viewed_at, viewer, f"Viewed by {viewer}"))
        for share in self.activity.find_shares(document_id):
            events.append(AuditEvent(
                DOCUMENT_SENT, share.shared_at, "Owner", f"Sent to {share.recipient_email} for signature"
            ))

        # sorted() is stable: equal timestamps keep the source order above
        return sorted(events, key=lambda e: e.timestamp)


def audit_trail_to_csv(events: List[AuditEvent]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["Event", "Timestamp", "User", "Details"])
    for event in events:
        writer.writerow([event.event, event.timestamp.isoformat(), event.user, event.details])
    return buffer.getvalue()
