# create_tables.py
import logging

from database import engine, Base
# Every model must be imported so it is registered on Base
from modules.documents.models import (  # noqa: F401
    User, Document, Signatory, SignatureField, SigningToken, Signature, DocumentView, DocumentShare,
)
from modules.notifications.models.notification import Notification  # noqa: F401

logger = logging.getLogger(__name__)


def create_all_tables(bind=engine):
    """Creates every table in the configured database"""
    logger.info("Tables: %s", list(Base.metadata.tables.keys()))
    Base.metadata.create_all(bind=bind)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    create_all_tables()
