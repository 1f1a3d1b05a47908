import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, ForeignKey, Numeric, String,
    Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import false, func

from .db import Base

Money = Numeric(12, 2, asdecimal=True)

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"


def _uuid() -> str:
    return str(uuid.uuid4())


# microsecond precision; SQLite CURRENT_TIMESTAMP only has whole seconds
def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Profile(Base):
    __tablename__ = "profiles"
    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    full_name = Column(String)
    instagram_id = Column(String)
    phone_number = Column(String)
    wallet_balance = Column(Money, nullable=False, default=0, server_default="0")
    is_admin = Column(Boolean, nullable=False, default=False, server_default=false())
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now())

    __table_args__ = (
        CheckConstraint("wallet_balance >= 0", name="ck_profiles_wallet_nonnegative"),
    )


class Brand(Base):
    __tablename__ = "brands"
    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String, nullable=False, index=True)
    description = Column(Text)
    cashback_amount = Column(Money, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now())

    __table_args__ = (
        CheckConstraint("cashback_amount > 0", name="ck_brands_cashback_positive"),
    )


class Submission(Base):
    __tablename__ = "submissions"
    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    brand_id = Column(String(36), ForeignKey("brands.id"), index=True, nullable=False)
    platform = Column(String, nullable=False)                  # instagram | other
    content_url = Column(String(500), nullable=False)
    note = Column(String(500))
    cashback_amount = Column(Money, nullable=False)            # snapshot of brand at submit time
    status = Column(String, index=True, nullable=False, default=STATUS_PENDING,
                    server_default=STATUS_PENDING)             # pending|approved|rejected
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now())
    decided_at = Column(DateTime(timezone=True))

    profile = relationship("Profile", lazy="joined")
    brand = relationship("Brand", lazy="joined")


class Withdrawal(Base):
    __tablename__ = "withdrawals"
    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    amount = Column(Money, nullable=False)
    method = Column(String, nullable=False)                    # upi | bank
    upi_id = Column(String)
    bank_account_number = Column(String)
    bank_ifsc = Column(String(11))
    bank_holder_name = Column(String)
    status = Column(String, index=True, nullable=False, default=STATUS_PENDING,
                    server_default=STATUS_PENDING)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now())
    decided_at = Column(DateTime(timezone=True))

    profile = relationship("Profile", lazy="joined")

    __table_args__ = (
        CheckConstraint("amount >= 10", name="ck_withdrawals_min_amount"),
    )


class WalletEntry(Base):
    """One row per balance effect; (item_kind, item_id) is unique."""
    __tablename__ = "wallet_entries"
    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    item_kind = Column(String, nullable=False)                 # submission | withdrawal
    item_id = Column(String(36), nullable=False)
    amount = Column(Money, nullable=False)                     # signed: +credit / -debit
    balance_after = Column(Money, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("item_kind", "item_id", name="uq_wallet_entries_item"),
    )
