import logging
from typing import Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from models import Account, Attachment, SystemSettings, Theme, User
from schemas import (
    DEFAULT_VOCABULARIES,
    VOCABULARY_FIELDS,
    AccountIn,
    AttachmentIn,
    UserCreate,
    UserUpdate,
    Vocabularies,
)
from utils_auth import check_password_policy, hash_password

logger = logging.getLogger(__name__)


class VocabularyError(ValueError):
    pass


class DuplicateUserError(ValueError):
    pass


class UnknownUserError(ValueError):
    pass


# ---------------------- Accounts ----------------------
def list_accounts(db: Session) -> List[Account]:
    return (
        db.query(Account)
        .options(selectinload(Account.attachments))
        .order_by(Account.id)
        .all()
    )


def get_account(db: Session, account_id: int) -> Optional[Account]:
    return db.get(Account, account_id)


def insert_one(db: Session, data: AccountIn, attachments: Iterable[AttachmentIn] = ()) -> Account:
    account = Account(**data.model_dump())
    for attachment in attachments:
        account.attachments.append(Attachment(**attachment.model_dump()))
    db.add(account)
    db.commit()
    db.refresh(account)
    logger.info("Created account %s (%s, %s)", account.id, account.supplier, account.amount)
    return account


def insert_many(db: Session, records: Iterable[AccountIn]) -> List[Account]:
    accounts = [Account(**record.model_dump()) for record in records]
    db.add_all(accounts)
    db.commit()
    for account in accounts:
        db.refresh(account)
    logger.info("Created %d accounts in one batch", len(accounts))
    return accounts


def update_one(db: Session, account: Account, data: AccountIn) -> Account:
    for key, value in data.model_dump().items():
        setattr(account, key, value)
    db.commit()
    db.refresh(account)
    logger.info("Updated account %s", account.id)
    return account


def delete_many(db: Session, ids: Iterable[int]) -> List[str]:
    """Delete accounts and return the storage keys of their attachments."""

    ids = list(ids)
    if not ids:
        return []
    accounts = db.query(Account).filter(Account.id.in_(ids)).all()
    storage_keys = [attachment.storage_key for account in accounts for attachment in account.attachments]
    for account in accounts:
        db.delete(account)
    db.commit()
    logger.info("Deleted %d accounts", len(accounts))
    return storage_keys


def update_status_many(db: Session, ids: Iterable[int], status: str) -> int:
    ids = list(ids)
    if not ids:
        return 0
    updated = (
        db.query(Account)
        .filter(Account.id.in_(ids))
        .update({Account.status: status}, synchronize_session="fetch")
    )
    db.commit()
    logger.info("Set status %s on %d accounts", status, updated)
    return updated


def add_attachments(db: Session, account: Account, attachments: Iterable[AttachmentIn]) -> Account:
    for attachment in attachments:
        account.attachments.append(Attachment(**attachment.model_dump()))
    db.commit()
    db.refresh(account)
    return account


def remove_attachment(db: Session, account: Account, attachment_id: int) -> Optional[str]:
    for attachment in account.attachments:
        if attachment.id == attachment_id:
            storage_key = attachment.storage_key
            account.attachments.remove(attachment)
            db.commit()
            return storage_key
    return None


# ---------------------- Users ----------------------
def list_users(db: Session) -> List[User]:
    return db.query(User).order_by(User.full_name, User.username).all()


def get_user_by_username(db: Session, username: str) -> Optional[User]:
    return db.query(User).filter(User.username == username.strip()).first()


def _ensure_unique(db: Session, username: str, email: str, exclude_id: Optional[int] = None) -> None:
    q = db.query(User).filter(or_(User.username == username, User.email == email))
    if exclude_id is not None:
        q = q.filter(User.id != exclude_id)
    if q.first():
        raise DuplicateUserError("Username or e-mail already registered.")


def create_user(db: Session, data: UserCreate) -> User:
    check_password_policy(data.password)
    username = data.username.strip()
    email = data.email.strip().lower()
    _ensure_unique(db, username, email)

    user = User(
        username=username,
        full_name=data.full_name.strip(),
        email=email,
        password_hash=hash_password(data.password),
        role=data.role,
        preferred_theme=Theme.SYSTEM,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created user %s (%s)", user.username, user.role.value)
    return user


def update_user(db: Session, user: User, data: UserUpdate) -> User:
    username = data.username.strip()
    email = data.email.strip().lower()
    _ensure_unique(db, username, email, exclude_id=user.id)

    if data.password:
        check_password_policy(data.password)
        user.password_hash = hash_password(data.password)
    user.username = username
    user.full_name = data.full_name.strip()
    user.email = email
    user.role = data.role
    db.commit()
    db.refresh(user)
    logger.info("Updated user %s", user.username)
    return user


def delete_user(db: Session, user: User) -> None:
    username = user.username
    db.delete(user)
    db.commit()
    logger.info("Deleted user %s", username)


def reset_password(db: Session, username: str, email: str, new_password: str) -> User:
    user = (
        db.query(User)
        .filter(User.username == username.strip(), User.email == email.strip().lower())
        .first()
    )
    if not user:
        raise UnknownUserError("User or e-mail not found.")
    check_password_policy(new_password)
    user.password_hash = hash_password(new_password)
    db.commit()
    logger.info("Password reset for user %s", user.username)
    return user


def update_theme(db: Session, user: User, theme: Theme) -> User:
    user.preferred_theme = theme
    db.commit()
    db.refresh(user)
    return user


# ---------------------- Vocabularies ----------------------
def get_vocabularies(db: Session) -> Vocabularies:
    row = db.get(SystemSettings, "default")
    if row is None:
        return DEFAULT_VOCABULARIES.model_copy(deep=True)
    return Vocabularies(
        account_types=row.account_types or DEFAULT_VOCABULARIES.account_types,
        account_categories=row.account_categories or DEFAULT_VOCABULARIES.account_categories,
        account_statuses=row.account_statuses or DEFAULT_VOCABULARIES.account_statuses,
    )


def save_vocabularies(db: Session, vocabularies: Vocabularies) -> Vocabularies:
    row = db.get(SystemSettings, "default")
    if row is None:
        row = SystemSettings(id="default")
        db.add(row)
    # New list objects so the JSON columns are flagged as changed
    row.account_types = list(vocabularies.account_types)
    row.account_categories = list(vocabularies.account_categories)
    row.account_statuses = list(vocabularies.account_statuses)
    db.commit()
    return vocabularies


def _vocabulary_attr(kind: str) -> str:
    try:
        return VOCABULARY_FIELDS[kind]
    except KeyError:
        raise VocabularyError(f"Unknown vocabulary {kind!r}.") from None


def _clean_value(value: str) -> str:
    value = (value or "").strip().upper()
    if not value:
        raise VocabularyError("Value cannot be empty.")
    return value


def add_vocabulary_value(db: Session, kind: str, value: str) -> Vocabularies:
    attr = _vocabulary_attr(kind)
    value = _clean_value(value)
    vocabularies = get_vocabularies(db)
    values = list(getattr(vocabularies, attr))
    if value in values:
        raise VocabularyError(f"{value} already exists.")
    values.append(value)
    logger.info("Added %s to %s", value, attr)
    return save_vocabularies(db, vocabularies.model_copy(update={attr: values}))


def rename_vocabulary_value(db: Session, kind: str, index: int, value: str) -> Vocabularies:
    attr = _vocabulary_attr(kind)
    value = _clean_value(value)
    vocabularies = get_vocabularies(db)
    values = list(getattr(vocabularies, attr))
    if not 0 <= index < len(values):
        raise VocabularyError(f"No {kind} value at position {index}.")
    if value in values and values.index(value) != index:
        raise VocabularyError(f"{value} already exists.")
    logger.info("Renamed %s in %s to %s", values[index], attr, value)
    values[index] = value
    return save_vocabularies(db, vocabularies.model_copy(update={attr: values}))
