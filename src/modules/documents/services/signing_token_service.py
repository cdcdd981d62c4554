import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from modules.common.clock import utcnow
from modules.documents.exceptions import (
    AlreadyConsumed, PersistenceError, TokenAlreadyUsed, TokenExpired, TokenNotFound,
)
from modules.documents.models.signing_token import SigningToken
from modules.documents.repositories.signing_token_repository import SigningTokenRepository

logger = logging.getLogger(__name__)

TOKEN_VALIDITY = timedelta(days=7)


class SigningTokenService:
    """
    Single-use, time-limited links that let one signatory sign one document.
    """

    def __init__(self, session: Session, validity: timedelta = TOKEN_VALIDITY,
                 clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.repository = SigningTokenRepository(session)
        self.validity = validity
        self.clock = clock

    @staticmethod
    def generate_token() -> str:
        return secrets.token_urlsafe(32)

    def mint_token(self, document_id: str, signatory_id: str) -> SigningToken:
        """
        Adds a new token to the caller's transaction without committing, so
        it only becomes live together with whatever the caller commits.
        """
        now = self.clock()
        token = SigningToken(
            token=self.generate_token(),
            document_id=document_id,
            signatory_id=signatory_id,
            created_at=now,
            expires_at=now + self.validity,
            used_at=None,
        )
        return self.repository.save(token)

    def issue_token(self, document_id: str, signatory_id: str) -> SigningToken:
        """
        Mints and commits a new token. Earlier tokens of the same signatory
        are left untouched and stay usable until they expire or are consumed.
        """
        try:
            token = self.mint_token(document_id, signatory_id)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Could not store signing token for signatory %s: %s", signatory_id, e)
            raise PersistenceError() from e

        logger.info("Signing token %s issued for signatory %s on document %s",
                    token.id, signatory_id, document_id)
        return token

    def validate_token(self, document_id: str, raw_token: str) -> SigningToken:
        token = self.repository.find_by_token(document_id, raw_token)
        if token is None:
            raise TokenNotFound()
        if token.is_expired(self.clock()):
            raise TokenExpired()
        if token.is_used:
            raise TokenAlreadyUsed()
        return token

    def consume_token(self, token_id: str) -> datetime:
        """
        Marks the token used inside the caller's transaction; committing is
        left to the caller so the consumption lands together with the
        signature it authorizes.
        """
        used_at = self.clock()
        if not self.repository.mark_used(token_id, used_at):
            if self.repository.get(token_id) is None:
                raise TokenNotFound()
            raise AlreadyConsumed()
        return used_at
