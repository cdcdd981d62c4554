from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import FileResponse

from modules.documents.controllers.document_controller import get_workflow_service
from modules.documents.schemas import (
    FieldResponse, SignatoryResponse, SigningPageResponse, SignRequest, SignResponse,
)
from modules.documents.services import SigningWorkflowService, DocumentService

# Public routes: the token in the path is the signer's only credential
router = APIRouter(
    prefix="/sign",
    tags=["signing"]
)


@router.get("/{document_id}/{token}", response_model=SigningPageResponse)
def open_signing_page(
    document_id: str,
    token: str,
    x_document_password: Optional[str] = Header(None),
    workflow: SigningWorkflowService = Depends(get_workflow_service),
):
    session = workflow.open_signing_session(document_id, token, password=x_document_password)
    return SigningPageResponse(
        document_id=session.document.id,
        document_title=session.document.title,
        status=session.document.effective_status(),
        signatory=SignatoryResponse.model_validate(session.signatory),
        already_signed=session.already_signed,
        fields=[FieldResponse.from_field(f, session.defaults.get(f.id)) for f in session.fields],
    )


@router.get("/{document_id}/{token}/file")
def download_document_for_signing(
    document_id: str,
    token: str,
    x_document_password: Optional[str] = Header(None),
    workflow: SigningWorkflowService = Depends(get_workflow_service),
):
    document = workflow.open_document_file(document_id, token, password=x_document_password)
    return FileResponse(document.file_path, media_type="application/pdf", filename=f"{document.title}.pdf")


@router.post("/{document_id}/{token}", response_model=SignResponse)
def sign_document(
    document_id: str,
    token: str,
    payload: SignRequest,
    workflow: SigningWorkflowService = Depends(get_workflow_service),
):
    signed_count = workflow.sign_with_token(
        document_id,
        token,
        payload.signature_data,
        payload.signature_type,
        field_values=payload.field_values,
        password=payload.password,
    )
    document = DocumentService.get_document(workflow.session, document_id)
    return SignResponse(
        message="Thank you! You have successfully signed this document.",
        signed_count=signed_count,
        signatories_count=document.signatories_count,
        status=document.effective_status(),
    )
