import pytest
from datetime import timedelta

from sqlalchemy.dialects import postgresql

from conftest import DRAWN_SIGNATURE, ORIGIN, FakeEmailSender, TestingSessionLocal
from modules.documents.exceptions import (
    AccessDenied, AlreadyConsumed, AlreadySigned, DocumentExpired, DocumentStateError,
    TokenExpired, TokenNotFound, ValidationError,
)
from modules.documents.models.activity import DocumentShare, DocumentView
from modules.documents.models.document import DocumentStatus
from modules.documents.models.signatory import Signatory
from modules.documents.models.signature import Signature
from modules.documents.models.signing_token import SigningToken
from modules.documents.repositories.signatory_repository import SignatoryRepository
from modules.documents.services.document_service import DocumentService
from modules.documents.services.field_service import FieldService
from modules.documents.services.signing_workflow_service import SigningWorkflowService
from modules.notifications.models.notification import Notification

RECIPIENTS = [
    {"email": "ana@example.com", "name": "Ana"},
    {"email": "bob@example.com", "name": "Bob"},
]


def _token(link):
    return link.rsplit("/", 1)[1]


def _sign(workflow, document, link, data=DRAWN_SIGNATURE, kind="draw", **kwargs):
    return workflow.sign_with_token(document.id, _token(link), data, kind, **kwargs)


def _signatory(session, document, email):
    return session.query(Signatory).filter_by(document_id=document.id, email_key=email.lower()).one()


# --- Dispatch ---------------------------------------------------------------

def test_dispatch_creates_signatories_tokens_and_links(session, workflow, document, email_sender):
    links = workflow.dispatch_signing_requests(document.id, RECIPIENTS, "Please sign by Friday")

    assert [l.email for l in links] == ["ana@example.com", "bob@example.com"]
    for link in links:
        assert link.link.startswith(f"{ORIGIN}/sign/{document.id}/")
        token = session.query(SigningToken).filter_by(token=_token(link.link)).one()
        assert token.signatory.email == link.email

    mail = email_sender.sent_to("ana@example.com")[0]
    assert mail["subject"] == "Signature Required: Contract"
    assert links[0].link in mail["html"]
    assert "Please sign by Friday" in mail["html"]

    session.refresh(document)
    assert document.signatories_count == 2
    assert session.query(DocumentShare).filter_by(document_id=document.id).count() == 2


def test_one_failing_recipient_does_not_abort_the_batch(session, document, clock, token_service):
    sender = FakeEmailSender(fail_for=["b@example.com"])
    workflow = SigningWorkflowService(session, sender, origin=ORIGIN, token_service=token_service, clock=clock)

    links = workflow.dispatch_signing_requests(
        document.id,
        [{"email": "a@example.com"}, {"email": "b@example.com"}, {"email": "c@example.com"}],
    )

    assert [l.email for l in links] == ["a@example.com", "c@example.com"]
    assert [m["to"] for m in sender.sent] == ["a@example.com", "c@example.com"]
    shared_with = {s.recipient_email for s in session.query(DocumentShare).all()}
    assert shared_with == {"a@example.com", "c@example.com"}
    b = _signatory(session, document, "b@example.com")
    assert session.query(SigningToken).filter_by(signatory_id=b.id).count() == 0


def test_dispatch_rejects_malformed_recipients_up_front(session, workflow, document, email_sender):
    with pytest.raises(ValidationError):
        workflow.dispatch_signing_requests(document.id, [{"email": "ok@example.com"}, {"email": "nope"}])

    assert email_sender.sent == []
    assert session.query(Signatory).count() == 0


def test_dispatch_reuses_existing_signatory(session, workflow, document):
    workflow.add_signatories(document.id, [{"email": "ana@example.com", "name": "Ana"}])

    links = workflow.dispatch_signing_requests(document.id, [{"email": "Ana@Example.com"}])

    assert len(links) == 1
    assert session.query(Signatory).count() == 1


def test_dispatch_on_completed_document(session, workflow, document):
    document.status = DocumentStatus.COMPLETED
    session.commit()

    with pytest.raises(DocumentStateError):
        workflow.dispatch_signing_requests(document.id, RECIPIENTS)


# --- Lifecycle --------------------------------------------------------------

def test_two_signer_lifecycle(session, workflow, document, owner, email_sender):
    assert document.status == DocumentStatus.PENDING
    assert (document.signatories_count, document.signed_count) == (0, 0)
    assert not DocumentService.is_fully_signed(session, document.id)

    workflow.add_signatories(document.id, RECIPIENTS)
    session.refresh(document)
    assert document.signatories_count == 2

    ana_link, bob_link = workflow.dispatch_signing_requests(document.id, RECIPIENTS)

    assert _sign(workflow, document, ana_link.link) == 1
    session.refresh(document)
    assert document.signed_count == 1
    assert document.status == DocumentStatus.PENDING
    assert email_sender.sent_to(owner.email) == []

    assert _sign(workflow, document, bob_link.link, data="Bob Builder", kind="type") == 2
    session.refresh(document)
    assert document.signed_count == 2
    assert document.status == DocumentStatus.COMPLETED
    assert document.completed_at is not None
    assert DocumentService.is_fully_signed(session, document.id)

    notices = email_sender.sent_to(owner.email)
    assert len(notices) == 1
    assert notices[0]["subject"] == "Document Fully Signed: Contract"
    assert f"{ORIGIN}/document/{document.id}" in notices[0]["html"]

    titles = [n.title for n in session.query(Notification).filter_by(user_id=owner.id).all()]
    assert titles.count("Document signed") == 2
    assert titles.count("Document fully signed") == 1


def test_aggregates_always_match_the_registry(session, workflow, document):
    recipients = RECIPIENTS + [{"email": "cy@example.com"}]
    links = workflow.dispatch_signing_requests(document.id, recipients)

    for link in links[:2]:
        _sign(workflow, document, link.link)
        session.refresh(document)
        signed = session.query(Signatory).filter_by(document_id=document.id, signed=True).count()
        assert document.signed_count == signed
        assert document.signatories_count == 3
        assert document.status == DocumentStatus.PENDING


def test_signature_artifact_is_recorded(session, workflow, document):
    link = workflow.dispatch_signing_requests(document.id, RECIPIENTS[:1])[0]
    _sign(workflow, document, link.link, data="Ana Pérez", kind="type")

    signature = session.query(Signature).one()
    assert signature.signature_data == "Ana Pérez"
    assert signature.signature_type.value == "type"
    assert signature.signatory.email == "ana@example.com"
    assert _signatory(session, document, "ana@example.com").signed_at is not None


def test_consumed_token_rolls_back_the_whole_signature(session, workflow, document, token_service):
    workflow.add_signatories(document.id, RECIPIENTS[:1])
    ana = _signatory(session, document, "ana@example.com")
    token = token_service.issue_token(document.id, ana.id)
    token_service.consume_token(token.id)
    session.commit()

    with pytest.raises(AlreadyConsumed):
        workflow.record_signature(document.id, ana.id, token.id, DRAWN_SIGNATURE, "draw")

    session.refresh(ana)
    session.refresh(document)
    assert ana.signed is False
    assert session.query(Signature).count() == 0
    assert document.signed_count == 0


def test_second_link_cannot_sign_again(session, workflow, document):
    first, _ = workflow.dispatch_signing_requests(document.id, RECIPIENTS)
    reminder = next(l for l in workflow.send_reminders(document.id) if l.email == first.email)

    _sign(workflow, document, first.link)

    with pytest.raises(AlreadySigned):
        _sign(workflow, document, reminder.link)

    assert session.query(Signature).count() == 1
    leftover = session.query(SigningToken).filter_by(token=_token(reminder.link)).one()
    assert leftover.used_at is None
    session.refresh(document)
    assert document.signed_count == 1


def test_token_must_match_signatory(session, workflow, document):
    workflow.add_signatories(document.id, RECIPIENTS)
    ana = _signatory(session, document, "ana@example.com")
    bob = _signatory(session, document, "bob@example.com")
    token = workflow.tokens.issue_token(document.id, ana.id)

    with pytest.raises(TokenNotFound):
        workflow.record_signature(document.id, bob.id, token.id, DRAWN_SIGNATURE, "draw")


def test_expired_link_cannot_sign(session, workflow, document, clock):
    link = workflow.dispatch_signing_requests(document.id, RECIPIENTS[:1])[0]
    clock.advance(days=8)

    with pytest.raises(TokenExpired):
        _sign(workflow, document, link.link)


def test_empty_or_malformed_signature_changes_nothing(session, workflow, document):
    link = workflow.dispatch_signing_requests(document.id, RECIPIENTS[:1])[0]

    with pytest.raises(ValidationError):
        _sign(workflow, document, link.link, data="   ")
    with pytest.raises(ValidationError):
        _sign(workflow, document, link.link, data="not an image", kind="draw")
    with pytest.raises(ValidationError):
        _sign(workflow, document, link.link, data="Ana", kind="stamp")

    token = session.query(SigningToken).one()
    assert token.used_at is None
    assert session.query(Signature).count() == 0


# --- Document expiry --------------------------------------------------------

def test_expired_document_blocks_signing(session, workflow, document, clock):
    link = workflow.dispatch_signing_requests(document.id, RECIPIENTS[:1])[0]
    document.expires_at = clock.now + timedelta(days=1)
    session.commit()
    clock.advance(days=2)

    with pytest.raises(DocumentExpired):
        workflow.open_signing_session(document.id, _token(link.link))
    with pytest.raises(DocumentExpired):
        _sign(workflow, document, link.link)

    session.refresh(document)
    assert document.status == DocumentStatus.PENDING
    assert document.effective_status(clock.now) == DocumentStatus.EXPIRED


def test_completed_document_never_reads_as_expired(session, workflow, document, clock):
    link = workflow.dispatch_signing_requests(document.id, RECIPIENTS[:1])[0]
    document.expires_at = clock.now + timedelta(days=1)
    session.commit()
    _sign(workflow, document, link.link)
    clock.advance(days=30)

    session.refresh(document)
    assert document.effective_status(clock.now) == DocumentStatus.COMPLETED


# --- Signing page -----------------------------------------------------------

def test_signing_session_logs_a_view_and_prefills_dates(session, workflow, document, clock):
    link = workflow.dispatch_signing_requests(document.id, RECIPIENTS[:1])[0]
    FieldService(session).replace_fields(document.id, [
        {"x": 10, "y": 10, "field_type": "signature"},
        {"x": 40, "y": 10, "field_type": "date"},
    ])

    signing = workflow.open_signing_session(document.id, _token(link.link))

    assert signing.signatory.email == "ana@example.com"
    assert signing.already_signed is False
    assert len(signing.fields) == 2
    assert list(signing.defaults.values()) == [clock.now.date().isoformat()]
    view = session.query(DocumentView).one()
    assert view.viewer_email == "ana@example.com"
    assert view.viewed_at == clock.now


def test_signing_session_reports_already_signed(session, workflow, document):
    link = workflow.dispatch_signing_requests(document.id, RECIPIENTS[:1])[0]
    _sign(workflow, document, link.link)
    ana = _signatory(session, document, "ana@example.com")
    extra = workflow.tokens.issue_token(document.id, ana.id)

    signing = workflow.open_signing_session(document.id, extra.token)

    assert signing.already_signed is True


def test_password_protected_document(session, workflow, document):
    link = workflow.dispatch_signing_requests(document.id, RECIPIENTS[:1])[0]
    DocumentService.set_access_control(session, document.id, True, "s3cret-pass")

    with pytest.raises(AccessDenied):
        workflow.open_signing_session(document.id, _token(link.link))
    with pytest.raises(AccessDenied):
        workflow.open_signing_session(document.id, _token(link.link), password="wrong")

    signing = workflow.open_signing_session(document.id, _token(link.link), password="s3cret-pass")
    assert signing.document.id == document.id


def test_field_values_are_saved_with_the_signature(session, workflow, document, clock):
    workflow.add_signatories(document.id, RECIPIENTS)
    ana = _signatory(session, document, "ana@example.com")
    bob = _signatory(session, document, "bob@example.com")
    fields = FieldService(session).replace_fields(document.id, [
        {"x": 10, "y": 10, "field_type": "signature", "signatory_id": ana.id},
        {"x": 10, "y": 20, "field_type": "name", "signatory_id": ana.id},
        {"x": 10, "y": 30, "field_type": "date", "signatory_id": ana.id},
        {"x": 60, "y": 10, "field_type": "company", "signatory_id": bob.id},
    ])
    by_type = {f.field_type.value: f.id for f in fields}
    token = workflow.tokens.issue_token(document.id, ana.id)

    with pytest.raises(ValidationError):
        workflow.record_signature(
            document.id, ana.id, token.id, DRAWN_SIGNATURE, "draw",
            field_values={by_type["company"]: "ACME"},
        )

    workflow.record_signature(
        document.id, ana.id, token.id, DRAWN_SIGNATURE, "draw",
        field_values={by_type["name"]: "Ana Pérez", by_type["date"]: ""},
    )

    values = {f.field_type.value: f.value for f in FieldService(session).get_fields(document.id)}
    assert values["name"] == "Ana Pérez"
    assert values["date"] == clock.now.date().isoformat()
    assert values["signature"] == DRAWN_SIGNATURE
    assert values["company"] is None


# --- Reminders --------------------------------------------------------------

def test_reminder_mints_a_new_token_and_keeps_the_old_one(session, workflow, document, email_sender, clock):
    original = workflow.dispatch_signing_requests(document.id, RECIPIENTS[:1])[0]
    clock.advance(days=1)

    reminders = workflow.send_reminders(document.id, message="Friendly reminder")

    assert len(reminders) == 1
    assert _token(reminders[0].link) != _token(original.link)
    assert email_sender.sent[-1]["subject"] == "Reminder: Signature Required: Contract"
    assert _signatory(session, document, "ana@example.com").last_reminded_at == clock.now
    for link in (original, reminders[0]):
        assert workflow.tokens.validate_token(document.id, _token(link.link))


def test_reminders_skip_signed_and_unselected(session, workflow, document):
    ana_link, _ = workflow.dispatch_signing_requests(document.id, RECIPIENTS)
    _sign(workflow, document, ana_link.link)
    bob = _signatory(session, document, "bob@example.com")

    assert [l.email for l in workflow.send_reminders(document.id)] == ["bob@example.com"]
    assert workflow.send_reminders(document.id, ["unknown-id"]) == []
    assert [l.email for l in workflow.send_reminders(document.id, [bob.id])] == ["bob@example.com"]
    with pytest.raises(ValidationError):
        workflow.send_reminders(document.id, [])


# --- Completion notice ------------------------------------------------------

def test_completion_email_failure_keeps_the_signature(session, document, owner, clock, token_service):
    sender = FakeEmailSender(fail_for=[owner.email])
    workflow = SigningWorkflowService(session, sender, origin=ORIGIN, token_service=token_service, clock=clock)
    link = workflow.dispatch_signing_requests(document.id, RECIPIENTS[:1])[0]

    assert _sign(workflow, document, link.link) == 1

    session.refresh(document)
    assert document.status == DocumentStatus.COMPLETED
    assert session.query(Notification).filter_by(title="Document fully signed").count() == 1


# --- Concurrency ------------------------------------------------------------

def test_document_row_is_locked_before_the_recount(session, workflow, document, monkeypatch):
    link = workflow.dispatch_signing_requests(document.id, RECIPIENTS[:1])[0]
    calls = []
    lock_document = DocumentService.lock_document
    counts = SignatoryRepository.counts

    def recording_lock(db, document_id):
        calls.append("lock")
        return lock_document(db, document_id)

    def recording_counts(repository, document_id):
        calls.append("recount")
        return counts(repository, document_id)

    monkeypatch.setattr(DocumentService, "lock_document", staticmethod(recording_lock))
    monkeypatch.setattr(SignatoryRepository, "counts", recording_counts)

    _sign(workflow, document, link.link)

    assert calls == ["lock", "recount"]


def test_lock_is_a_select_for_update(session, document):
    query = DocumentService.locked_document_query(session, document.id)

    sql = str(query.statement.compile(dialect=postgresql.dialect()))

    assert "FOR UPDATE" in sql


def test_same_link_used_from_two_sessions_signs_once(session, workflow, document, email_sender, clock):
    link = workflow.dispatch_signing_requests(document.id, RECIPIENTS)[0]
    other_session = TestingSessionLocal()
    other = SigningWorkflowService(other_session, email_sender, origin=ORIGIN, clock=clock)
    try:
        # Both requests passed validation before either one committed
        first = workflow.tokens.validate_token(document.id, _token(link.link))
        second = other.tokens.validate_token(document.id, _token(link.link))

        workflow.record_signature(document.id, first.signatory_id, first.id, DRAWN_SIGNATURE, "draw")
        with pytest.raises((AlreadySigned, AlreadyConsumed)):
            other.record_signature(document.id, second.signatory_id, second.id, DRAWN_SIGNATURE, "draw")
    finally:
        other_session.close()

    session.refresh(document)
    assert session.query(Signature).count() == 1
    assert document.signed_count == 1
    assert document.status == DocumentStatus.PENDING


# --- Document file ----------------------------------------------------------

def test_document_file_behind_the_signing_link(session, workflow, document, tmp_path):
    pdf = tmp_path / "contract.pdf"
    pdf.write_bytes(b"%PDF-1.4")
    document.file_path = str(pdf)
    session.commit()
    link = workflow.dispatch_signing_requests(document.id, RECIPIENTS[:1])[0]

    assert workflow.open_document_file(document.id, _token(link.link)).file_path == str(pdf)

    DocumentService.set_access_control(session, document.id, True, "s3cret-pass")
    with pytest.raises(AccessDenied):
        workflow.open_document_file(document.id, _token(link.link))
    assert workflow.open_document_file(document.id, _token(link.link), password="s3cret-pass")
    with pytest.raises(TokenNotFound):
        workflow.open_document_file(document.id, "forged")
