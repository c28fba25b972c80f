from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from installments import MAX_AMOUNT, ValueMode, round2
from models import Theme, UserRole

# ----------------------
# Accounts
# ----------------------
def parse_amount(value) -> Decimal:
    """Non-negative money value; anything unparseable becomes 0."""
    amount = round2(value)
    if amount > MAX_AMOUNT:
        raise ValueError(f"amount must not exceed {MAX_AMOUNT}")
    return amount if amount > 0 else Decimal("0.00")


class AttachmentIn(BaseModel):
    name: str
    url: str
    size: int
    mime_type: str
    storage_key: str


class AttachmentOut(AttachmentIn):
    id: int

    model_config = ConfigDict(from_attributes=True)


class AccountIn(BaseModel):
    movement_date: date = Field(default_factory=date.today)
    due_date: date = Field(default_factory=date.today)
    location: str = ""
    supplier: str = ""
    title: str = ""
    company: str = ""
    amount: Decimal = Decimal("0.00")
    accounting_type: str = "EXPENSE"
    category: str = "OTHER"
    status: str = "PENDING"
    note: str = ""

    @field_validator("movement_date", "due_date", mode="before")
    @classmethod
    def _blank_date_is_today(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return date.today()
        return value

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, value):
        return parse_amount(value)

    @field_validator("location", "supplier", "title", "company", "note", mode="before")
    @classmethod
    def _strip_text(cls, value):
        if value is None:
            return ""
        return value.strip() if isinstance(value, str) else value

    @field_validator("accounting_type", "category", "status", mode="before")
    @classmethod
    def _normalize_code(cls, value):
        return value.strip().upper() if isinstance(value, str) else value


class AccountOut(AccountIn):
    id: int
    created_at: Optional[datetime] = None
    attachments: List[AttachmentOut] = []

    model_config = ConfigDict(from_attributes=True)


class AccountPageOut(BaseModel):
    items: List[AccountOut]
    page: int
    total_pages: int
    total: int


# ----------------------
# Vocabularies
# ----------------------
VOCABULARY_FIELDS = {
    "types": "account_types",
    "categories": "account_categories",
    "statuses": "account_statuses",
}


class Vocabularies(BaseModel):
    account_types: List[str]
    account_categories: List[str]
    account_statuses: List[str]

    model_config = ConfigDict(from_attributes=True)

    def check(self, account: AccountIn) -> List[str]:
        """Return the fields of ``account`` that fall outside the current vocabularies."""

        issues: List[str] = []
        if account.accounting_type not in self.account_types:
            issues.append(f"unknown account type {account.accounting_type!r}")
        if account.category not in self.account_categories:
            issues.append(f"unknown category {account.category!r}")
        if account.status not in self.account_statuses:
            issues.append(f"unknown status {account.status!r}")
        return issues


DEFAULT_VOCABULARIES = Vocabularies(
    account_types=["EXPENSE", "PURCHASE"],
    account_categories=[
        "OTHER", "ENERGY", "RENT", "SALARIES", "TAXES",
        "GOODS", "MARKETING", "MAINTENANCE", "SOFTWARE",
    ],
    account_statuses=["PENDING", "PAID", "CANCELED"],
)


# ----------------------
# Installments
# ----------------------
class InstallmentConfig(BaseModel):
    count: int = Field(ge=2, le=100)
    interval_days: int = Field(default=30, ge=1)
    value_mode: ValueMode = ValueMode.TOTAL


# ----------------------
# Users & session
# ----------------------
class UserCreate(BaseModel):
    username: str
    full_name: str = ""
    email: str
    password: str
    role: UserRole = UserRole.USER


class UserUpdate(BaseModel):
    username: str
    full_name: str = ""
    email: str
    password: Optional[str] = None
    role: UserRole = UserRole.USER


class SessionUser(BaseModel):
    id: int
    username: str
    full_name: str = ""
    role: UserRole
    preferred_theme: Theme = Theme.SYSTEM

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
