from datetime import datetime, timedelta

import pytest

from conftest import DRAWN_SIGNATURE
from modules.documents.exceptions import NotFoundError
from modules.documents.models.signature import Signature, SignatureType
from modules.documents.repositories.activity_repository import ActivityRepository
from modules.documents.services.audit_trail_service import (
    DOCUMENT_CREATED, DOCUMENT_SENT, DOCUMENT_SIGNED, DOCUMENT_VIEWED,
    AuditEvent, AuditTrailService, audit_trail_to_csv,
)
from modules.documents.services.signatory_service import SignatoryService


def _sign_at(session, document, signatory, when):
    session.add(Signature(
        document_id=document.id,
        signatory_id=signatory.id,
        signature_data=DRAWN_SIGNATURE,
        signature_type=SignatureType.DRAW,
        created_at=when,
    ))
    session.commit()


def test_new_document_only_has_its_creation(session, document):
    trail = AuditTrailService(session).build_audit_trail(document.id)

    assert [e.event for e in trail] == [DOCUMENT_CREATED]
    assert trail[0].timestamp == document.created_at
    assert trail[0].details == 'Document "Contract" was created'


def test_events_are_merged_in_time_order(session, document, clock):
    ana = SignatoryService(session).add_signatories(document, [{"email": "ana@example.com", "name": "Ana"}])[0]
    activity = ActivityRepository(session)
    _sign_at(session, document, ana, clock.now + timedelta(hours=2))
    activity.add_view(document.id, "ana@example.com", viewed_at=clock.now + timedelta(hours=1))
    activity.add_share(document.id, "ana@example.com", shared_at=clock.now)
    session.commit()

    trail = AuditTrailService(session).build_audit_trail(document.id)

    assert [e.event for e in trail] == [DOCUMENT_CREATED, DOCUMENT_SENT, DOCUMENT_VIEWED, DOCUMENT_SIGNED]
    assert [e.user for e in trail] == ["Owner", "Owner", "ana@example.com", "Ana"]
    assert trail[1].details == "Sent to ana@example.com for signature"
    assert trail[3].details == "Signed by Ana"
    assert trail == sorted(trail, key=lambda e: e.timestamp)


def test_anonymous_public_view(session, document, clock):
    ActivityRepository(session).add_view(document.id, viewed_at=clock.now)
    session.commit()

    trail = AuditTrailService(session).build_audit_trail(document.id)

    assert trail[-1].user == "Anonymous"


def test_creation_stays_first_on_equal_timestamps(session, document):
    ActivityRepository(session).add_view(document.id, "early@example.com", viewed_at=document.created_at)
    session.commit()

    trail = AuditTrailService(session).build_audit_trail(document.id)

    assert [e.event for e in trail] == [DOCUMENT_CREATED, DOCUMENT_VIEWED]


def test_unknown_document(session):
    with pytest.raises(NotFoundError):
        AuditTrailService(session).build_audit_trail("missing")


def test_csv_export():
    events = [
        AuditEvent(DOCUMENT_CREATED, datetime(2024, 5, 1, 9, 30), "Owner", 'Document "Lease, 2024" was created'),
        AuditEvent(DOCUMENT_SIGNED, datetime(2024, 5, 2, 10, 0), "Ana", "Signed by Ana"),
    ]

    lines = audit_trail_to_csv(events).splitlines()

    assert lines == [
        "Event,Timestamp,User,Details",
        'Document Created,2024-05-01T09:30:00,Owner,"Document ""Lease, 2024"" was created"',
        "Document Signed,2024-05-02T10:00:00,Ana,Signed by Ana",
    ]


def test_csv_export_of_an_empty_trail():
    assert audit_trail_to_csv([]) == "Event,Timestamp,User,Details\n"
