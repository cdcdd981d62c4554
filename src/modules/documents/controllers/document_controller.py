from typing import List

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from config import settings
from database import get_db
from modules.auth.controllers.auth_controller import get_current_user
from modules.documents.models.user import User
from modules.documents.schemas import (
    AccessControlRequest, AuditEventResponse, DocumentDetailResponse, DocumentResponse,
    ExpirationRequest, FieldIn, FieldResponse, ReminderRequest, SendRequest, SendResponse,
    SignatoryIn, SignatoryResponse, SigningLinkResponse,
)
from modules.documents.services import (
    AuditTrailService, DocumentService, FieldService, SignatoryService, SigningWorkflowService,
    audit_trail_to_csv,
)
from modules.notifications.services.email_service import EmailSender, get_email_sender

router = APIRouter(
    prefix="/documents",
    tags=["documents"]
)


def get_workflow_service(
    db: Session = Depends(get_db),
    email_sender: EmailSender = Depends(get_email_sender),
) -> SigningWorkflowService:
    return SigningWorkflowService(db, email_sender)


def _detail(db: Session, document_id: str) -> DocumentDetailResponse:
    document = DocumentService.get_document_with_details(db, document_id)
    summary = DocumentResponse.from_document(document)
    return DocumentDetailResponse(
        **summary.model_dump(),
        signatories=[SignatoryResponse.model_validate(s) for s in document.signatories],
        fields=[FieldResponse.from_field(f) for f in FieldService(db).get_fields(document_id)],
    )


@router.post("/upload", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def upload_document(
    file: UploadFile = File(...),
    title: str = Form(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    contents = await file.read()
    document = DocumentService.upload_document(
        db, current_user.id, contents, file.filename, file.content_type,
        settings.UPLOAD_DIR, settings.MAX_FILE_SIZE, title=title,
    )
    return DocumentResponse.from_document(document)


@router.get("", response_model=List[DocumentResponse])
def list_documents(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return [DocumentResponse.from_document(d) for d in DocumentService.get_documents_by_user(db, current_user.id)]


@router.get("/{document_id}", response_model=DocumentDetailResponse)
def get_document(document_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    DocumentService.get_owned_document(db, document_id, current_user.id)
    return _detail(db, document_id)


@router.get("/{document_id}/file")
def download_document(document_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    DocumentService.get_owned_document(db, document_id, current_user.id)
    document = DocumentService.get_document_file(db, document_id)
    return FileResponse(document.file_path, media_type="application/pdf", filename=f"{document.title}.pdf")


@router.get("/{document_id}/public", response_model=DocumentResponse)
def get_public_document(document_id: str, db: Session = Depends(get_db)):
    """Only documents marked as publicly viewable."""
    return DocumentResponse.from_document(DocumentService.get_public_document(db, document_id))


@router.get("/{document_id}/fields", response_model=List[FieldResponse])
def list_fields(document_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    DocumentService.get_owned_document(db, document_id, current_user.id)
    return [FieldResponse.from_field(f) for f in FieldService(db).get_fields(document_id)]


@router.put("/{document_id}/fields", response_model=List[FieldResponse])
def save_fields(
    document_id: str,
    fields: List[FieldIn],
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Replace-on-save: the body is the complete field list."""
    DocumentService.get_owned_document(db, document_id, current_user.id)
    saved = FieldService(db).replace_fields(document_id, [f.model_dump() for f in fields])
    return [FieldResponse.from_field(f) for f in saved]


@router.get("/{document_id}/signatories", response_model=List[SignatoryResponse])
def list_signatories(document_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    DocumentService.get_owned_document(db, document_id, current_user.id)
    return SignatoryService(db).get_signatories(document_id)


@router.post("/{document_id}/signatories", response_model=List[SignatoryResponse], status_code=status.HTTP_201_CREATED)
def add_signatories(
    document_id: str,
    signatories: List[SignatoryIn],
    current_user: User = Depends(get_current_user),
    workflow: SigningWorkflowService = Depends(get_workflow_service),
):
    DocumentService.get_owned_document(workflow.session, document_id, current_user.id)
    return workflow.add_signatories(document_id, [s.model_dump() for s in signatories])


@router.post("/{document_id}/send", response_model=SendResponse)
def send_document(
    document_id: str,
    payload: SendRequest,
    current_user: User = Depends(get_current_user),
    workflow: SigningWorkflowService = Depends(get_workflow_service),
):
    DocumentService.get_owned_document(workflow.session, document_id, current_user.id)
    links = workflow.dispatch_signing_requests(
        document_id, [r.model_dump() for r in payload.recipients], payload.message
    )
    return SendResponse(
        requested=len(payload.recipients),
        sent=[SigningLinkResponse(email=l.email, name=l.name, link=l.link) for l in links],
    )


@router.post("/{document_id}/reminders", response_model=SendResponse)
def send_reminders(
    document_id: str,
    payload: ReminderRequest,
    current_user: User = Depends(get_current_user),
    workflow: SigningWorkflowService = Depends(get_workflow_service),
):
    DocumentService.get_owned_document(workflow.session, document_id, current_user.id)
    links = workflow.send_reminders(document_id, payload.signatory_ids, payload.message)
    requested = len(payload.signatory_ids) if payload.signatory_ids is not None else len(links)
    return SendResponse(
        requested=requested,
        sent=[SigningLinkResponse(email=l.email, name=l.name, link=l.link) for l in links],
    )


@router.put("/{document_id}/expiration", response_model=DocumentResponse)
def set_expiration(
    document_id: str,
    payload: ExpirationRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    DocumentService.get_owned_document(db, document_id, current_user.id)
    return DocumentResponse.from_document(DocumentService.set_expiration(db, document_id, payload.expires_at))


@router.put("/{document_id}/access", response_model=DocumentResponse)
def set_access_control(
    document_id: str,
    payload: AccessControlRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    DocumentService.get_owned_document(db, document_id, current_user.id)
    document = DocumentService.set_access_control(
        db, document_id, payload.password_protected, payload.password, payload.publicly_viewable
    )
    return DocumentResponse.from_document(document)


@router.get("/{document_id}/audit-trail", response_model=List[AuditEventResponse])
def get_audit_trail(document_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    DocumentService.get_owned_document(db, document_id, current_user.id)
    return AuditTrailService(db).build_audit_trail(document_id)


@router.get("/{document_id}/audit-trail.csv")
def download_audit_trail(document_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    DocumentService.get_owned_document(db, document_id, current_user.id)
    events = AuditTrailService(db).build_audit_trail(document_id)
    return Response(
        content=audit_trail_to_csv(events),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="audit-trail-{document_id}.csv"'},
    )
