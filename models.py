from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey, Numeric, Text, JSON, Enum
from sqlalchemy.orm import relationship, Mapped, mapped_column
from datetime import date, datetime
from decimal import Decimal
from database import Base
import enum

# ----------------------
# Enums
# ----------------------
class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    USER = "USER"

class Theme(str, enum.Enum):
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"

# ----------------------
# Payable accounts
# ----------------------
class Account(Base):
    __tablename__ = "accounts"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    movement_date: Mapped[date] = mapped_column(Date, index=True)
    due_date: Mapped[date] = mapped_column(Date, index=True)
    location: Mapped[str] = mapped_column(String(255), default="")
    supplier: Mapped[str] = mapped_column(String(255), default="", index=True)
    title: Mapped[str] = mapped_column(String(255), default="")
    company: Mapped[str] = mapped_column(String(255), default="")
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)

    # Open vocabularies, validated against SystemSettings at the form boundary
    accounting_type: Mapped[str] = mapped_column(String(50))
    category: Mapped[str] = mapped_column(String(50))
    status: Mapped[str] = mapped_column(String(50), index=True)

    note: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    attachments = relationship(
        "Attachment",
        back_populates="account",
        cascade="all, delete-orphan",
        order_by="Attachment.id",
    )

class Attachment(Base):
    __tablename__ = "attachments"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id", ondelete="CASCADE"))
    name: Mapped[str] = mapped_column(String(255))
    url: Mapped[str] = mapped_column(String(500))
    size: Mapped[int] = mapped_column(Integer, default=0)
    mime_type: Mapped[str] = mapped_column(String(100))
    storage_key: Mapped[str] = mapped_column(String(255), unique=True)

    account = relationship("Account", back_populates="attachments")

# ----------------------
# Admin-editable vocabularies (single row, id="default")
# ----------------------
class SystemSettings(Base):
    __tablename__ = "system_settings"
    id = Column(String(20), primary_key=True, default="default")
    account_types = Column(JSON, nullable=False)
    account_categories = Column(JSON, nullable=False)
    account_statuses = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

# ----------------------
# Users
# ----------------------
class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=False, default="")
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.USER)
    preferred_theme = Column(Enum(Theme), nullable=False, default=Theme.SYSTEM)
    created_at = Column(DateTime, default=datetime.utcnow)
