import io
import os
from datetime import timedelta

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from reportlab.pdfgen import canvas
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import create_tables  # noqa: F401  registers every model
from database import Base
from modules.auth.services.auth_service import AuthService
from modules.common.clock import utcnow
from modules.documents.models.document import Document, DocumentStatus
from modules.documents.models.user import User
from modules.documents.services.signing_token_service import SigningTokenService
from modules.documents.services.signing_workflow_service import SigningWorkflowService
from modules.notifications.services.email_service import EmailDeliveryError

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

ORIGIN = "https://sign.example.com"
DRAWN_SIGNATURE = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mP8z8BQDwAEhQGAhKmMIQAAAABJRU5ErkJggg=="


def make_pdf(text="Hello"):
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer)
    pdf.drawString(100, 750, text)
    pdf.showPage()
    pdf.save()
    return buffer.getvalue()


class FakeEmailSender:
    """Records every message; addresses in fail_for raise like a broken transport."""

    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = {email.lower() for email in fail_for}

    def send_email(self, to, subject, html):
        if to.lower() in self.fail_for:
            raise EmailDeliveryError(f"Failed to send email to {to}")
        self.sent.append({"to": to, "subject": subject, "html": html})

    def sent_to(self, email):
        return [m for m in self.sent if m["to"].lower() == email.lower()]


class FakeClock:
    def __init__(self, start=None):
        # One minute ahead so clock-stamped events sort after real created_at values
        self.now = start or utcnow() + timedelta(minutes=1)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def clean_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session():
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def email_sender():
    return FakeEmailSender()


def create_dummy_user(session, email="owner@example.com", name="Olivia Owner", password="owner-pass-123"):
    user = User(name=name, email=email, password_hash=AuthService.get_password_hash(password), is_active=True)
    session.add(user)
    session.commit()
    return user


def create_dummy_document(session, user, title="Contract"):
    document = Document(
        title=title,
        file_path=f"{user.id}/{title}.pdf",
        user_id=user.id,
        status=DocumentStatus.PENDING,
        signatories_count=0,
        signed_count=0,
    )
    session.add(document)
    session.commit()
    return document


@pytest.fixture
def owner(session):
    return create_dummy_user(session)


@pytest.fixture
def document(session, owner):
    return create_dummy_document(session, owner)


@pytest.fixture
def token_service(session, clock):
    return SigningTokenService(session, clock=clock)


@pytest.fixture
def workflow(session, email_sender, clock, token_service):
    return SigningWorkflowService(
        session, email_sender, origin=ORIGIN, token_service=token_service, clock=clock
    )
