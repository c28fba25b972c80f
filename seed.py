import logging

from database import Base, engine, SessionLocal
from models import SystemSettings, User, UserRole
from schemas import DEFAULT_VOCABULARIES
from settings import settings
from sqlalchemy.orm import Session
from utils_auth import hash_password

logger = logging.getLogger(__name__)

def seed_vocabularies(session: Session):
    if session.get(SystemSettings, "default") is None:
        session.add(SystemSettings(
            id="default",
            account_types=list(DEFAULT_VOCABULARIES.account_types),
            account_categories=list(DEFAULT_VOCABULARIES.account_categories),
            account_statuses=list(DEFAULT_VOCABULARIES.account_statuses),
        ))
        logger.info("Seeded default vocabularies")

def seed_admin(session: Session):
    # Only on first run: an empty users table gets the configured administrator
    if session.query(User).first() is None:
        session.add(User(
            username=settings.ADMIN_USERNAME,
            full_name="Administrator",
            email=settings.ADMIN_EMAIL,
            password_hash=hash_password(settings.ADMIN_PASSWORD),
            role=UserRole.ADMIN,
        ))
        logger.info("Seeded administrator %s", settings.ADMIN_USERNAME)

def init_db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        seed_vocabularies(session)
        seed_admin(session)
        session.commit()
    finally:
        session.close()

if __name__ == "__main__":
    from logging_utils import configure_logging

    configure_logging()
    init_db()
