# cashback/intake.py
import logging
from decimal import Decimal

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from .errors import InsufficientFundsError, NotFoundError, StoreUnavailableError
from .models import Brand, Profile, Submission, Withdrawal, STATUS_PENDING
from .schemas import SubmissionCreate, WithdrawalCreate
from .wallet import current_balance

log = logging.getLogger("cashback.intake")


def save(db: Session, row):
    """Insert and commit one row; store errors become StoreUnavailableError."""
    db.add(row)
    try:
        db.commit()
    except DBAPIError as e:
        db.rollback()
        log.exception("Could not insert %s", type(row).__name__)
        raise StoreUnavailableError(f"Failed to save {type(row).__name__.lower()}. Please try again.") from e
    db.refresh(row)
    return row


def create_submission(db: Session, user: Profile, payload: SubmissionCreate) -> Submission:
    """Insert a pending submission carrying the brand's current cashback amount."""
    brand = db.get(Brand, payload.brand_id)
    if brand is None:
        raise NotFoundError(f"Brand {payload.brand_id} not found")

    sub = Submission(
        user_id=user.id,
        brand_id=brand.id,
        platform=payload.platform,
        content_url=payload.content_url,
        note=payload.note or None,
        cashback_amount=brand.cashback_amount,
        status=STATUS_PENDING,
    )
    sub = save(db, sub)
    log.info("Submission %s by %s for brand %s (%s)", sub.id, user.id, brand.name, sub.cashback_amount)
    return sub


def create_withdrawal(db: Session, user: Profile, payload: WithdrawalCreate) -> Withdrawal:
    """
    Insert a pending withdrawal. The minimum is enforced by WithdrawalCreate.
    The balance is checked, not reserved; the decision step re-checks it
    against the balance at approval time.
    """
    balance = current_balance(db, user.id)
    if payload.amount > balance:
        raise InsufficientFundsError(f"You only have ₹{balance:.2f} available")

    w = Withdrawal(
        user_id=user.id,
        amount=Decimal(payload.amount),
        method=payload.method,
        upi_id=payload.upi_id,
        bank_account_number=payload.bank_account_number,
        bank_ifsc=payload.bank_ifsc,
        bank_holder_name=payload.bank_holder_name,
        status=STATUS_PENDING,
    )
    w = save(db, w)
    log.info("Withdrawal %s by %s: %s via %s", w.id, user.id, w.amount, w.method)
    return w
