from typing import List

from sqlalchemy.orm import Session

from modules.documents.models.field import SignatureField


class FieldRepository:
    def __init__(self, db_session: Session):
        self.db = db_session

    def find_by_document(self, document_id: str) -> List[SignatureField]:
        return (
            self.db
            .query(SignatureField)
            .filter(SignatureField.document_id == document_id)
            .order_by(SignatureField.page, SignatureField.y, SignatureField.x)
            .all()
        )

    def delete_by_document(self, document_id: str) -> int:
        return (
            self.db
            .query(SignatureField)
            .filter(SignatureField.document_id == document_id)
            .delete(synchronize_session=False)
        )

    def add_all(self, fields: List[SignatureField]) -> List[SignatureField]:
        self.db.add_all(fields)
        self.db.flush()
        return fields
