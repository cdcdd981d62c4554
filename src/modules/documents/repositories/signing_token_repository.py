from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from modules.documents.models.signing_token import SigningToken


class SigningTokenRepository:
    def __init__(self, db_session: Session):
        self.db = db_session

    def save(self, token: SigningToken) -> SigningToken:
        self.db.add(token)
        self.db.flush()
        return token

    def get(self, token_id: str) -> Optional[SigningToken]:
        return self.db.get(SigningToken, token_id)

    def find_by_token(self, document_id: str, raw_token: str) -> Optional[SigningToken]:
        return (
            self.db
            .query(SigningToken)
            .filter(SigningToken.token == raw_token, SigningToken.document_id == document_id)
            .first()
        )

    def mark_used(self, token_id: str, used_at: datetime) -> bool:
        """Compare-and-set on used_at; only one caller can ever get True."""
        result = self.db.execute(
            update(SigningToken)
            .where(SigningToken.id == token_id, SigningToken.used_at.is_(None))
            .values(used_at=used_at)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1
