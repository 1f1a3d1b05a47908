"""
Wallet mutation workflow.

An admin decision on a submission or withdrawal is applied as one transaction:

  1. claim the item with a conditional update (status must still be pending)
  2. on approval, move the owner's balance with a store-side increment or a
     guarded decrement (never a client-side read-then-write)
  3. record the effect in wallet_entries, unique per (item_kind, item_id)

Any failure rolls back all three. The returned result carries the
notification to send once the commit is done.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from .errors import (
    CashbackError, InsufficientFundsError, InvalidInputError, NotFoundError,
    StateConflictError, StoreUnavailableError,
)
from .models import (
    Profile, Submission, Withdrawal, WalletEntry,
    STATUS_APPROVED, STATUS_PENDING, STATUS_REJECTED,
)
from .notifications import Notification

log = logging.getLogger("cashback.wallet")

SUBMISSION = "submission"
WITHDRAWAL = "withdrawal"
APPROVE = "approve"
REJECT = "reject"

WITHDRAWAL_BRAND_NAME = "Withdrawal"

_MODELS = {SUBMISSION: Submission, WITHDRAWAL: Withdrawal}
_OUTCOMES = {APPROVE: STATUS_APPROVED, REJECT: STATUS_REJECTED}


@dataclass
class DecisionResult:
    item_kind: str
    item_id: str
    status: str
    user_id: str
    wallet_balance: Decimal
    notification: Optional[Notification] = None


def decide(db: Session, item_kind: str, item_id: str, decision: str) -> DecisionResult:
    """
    Approve or reject a pending submission/withdrawal.

    Raises NotFoundError, StateConflictError (already decided, including a
    concurrent decision that won), InsufficientFundsError (withdrawal larger
    than the current balance) or StoreUnavailableError. Nothing is committed
    when any of them is raised.
    """
    model = _MODELS.get(item_kind)
    if model is None:
        raise InvalidInputError(f"Unknown item kind '{item_kind}'")
    new_status = _OUTCOMES.get(decision)
    if new_status is None:
        raise InvalidInputError(f"Unknown decision '{decision}'. Allowed: approve, reject.")

    try:
        result = _apply(db, model, item_kind, item_id, new_status)
        db.commit()
    except CashbackError as e:
        db.rollback()
        log.warning("%s of %s %s refused: %s", decision, item_kind, item_id, e.detail)
        raise
    except IntegrityError:
        # wallet_entries already holds an effect for this item
        db.rollback()
        log.warning("Duplicate balance effect for %s %s rolled back", item_kind, item_id)
        raise StateConflictError(f"{item_kind.capitalize()} {item_id} was already decided")
    except DBAPIError as e:
        db.rollback()
        log.exception("Store failure while deciding %s %s", item_kind, item_id)
        raise StoreUnavailableError("Store unavailable; decision was not committed") from e

    log.info("%s %s %s (user=%s balance=%s)",
             item_kind, item_id, result.status, result.user_id, result.wallet_balance)
    return result


def _apply(db: Session, model, item_kind: str, item_id: str, new_status: str) -> DecisionResult:
    now = datetime.now(timezone.utc)
    claimed = db.execute(
        update(model)
        .where(model.id == item_id, model.status == STATUS_PENDING)
        .values(status=new_status, decided_at=now)
        .execution_options(synchronize_session=False)
    ).rowcount

    if not claimed:
        item = db.get(model, item_id, populate_existing=True)
        if item is None:
            raise NotFoundError(f"{item_kind.capitalize()} {item_id} not found")
        raise StateConflictError(f"{item_kind.capitalize()} {item_id} is already {item.status}")

    item = db.get(model, item_id, populate_existing=True)

    if new_status == STATUS_APPROVED:
        delta = item.cashback_amount if item_kind == SUBMISSION else -item.amount
        balance = _move_balance(db, item.user_id, item_kind, item_id, Decimal(delta))
    else:
        balance = current_balance(db, item.user_id)

    if item_kind == SUBMISSION:
        notification = Notification(
            email=item.profile.email,
            status=new_status,
            brand_name=item.brand.name,
            amount=item.cashback_amount if new_status == STATUS_APPROVED else None,
        )
    else:
        notification = Notification(
            email=item.profile.email,
            status=new_status,
            brand_name=WITHDRAWAL_BRAND_NAME,
            amount=item.amount,
        )

    return DecisionResult(
        item_kind=item_kind,
        item_id=item_id,
        status=new_status,
        user_id=item.user_id,
        wallet_balance=balance,
        notification=notification,
    )


def _move_balance(db: Session, user_id: str, item_kind: str, item_id: str, delta: Decimal) -> Decimal:
    stmt = update(Profile).where(Profile.id == user_id)
    if delta < 0:
        stmt = stmt.where(Profile.wallet_balance >= -delta)
    changed = db.execute(
        stmt.values(wallet_balance=Profile.wallet_balance + delta)
        .execution_options(synchronize_session=False)
    ).rowcount

    if not changed:
        if delta < 0:
            raise InsufficientFundsError(
                f"User has insufficient balance for withdrawal of {-delta}"
            )
        raise NotFoundError(f"Profile {user_id} not found")

    balance = current_balance(db, user_id)
    db.add(WalletEntry(
        user_id=user_id,
        item_kind=item_kind,
        item_id=item_id,
        amount=delta,
        balance_after=balance,
    ))
    db.flush()
    return balance


def current_balance(db: Session, user_id: str) -> Decimal:
    value = db.scalar(select(Profile.wallet_balance).where(Profile.id == user_id))
    return Decimal(value if value is not None else 0)


def wallet_history(db: Session, user_id: str, limit: int = 50, offset: int = 0) -> List[WalletEntry]:
    stmt = (
        select(WalletEntry)
        .where(WalletEntry.user_id == user_id)
        .order_by(WalletEntry.created_at.desc(), WalletEntry.id)
        .limit(limit)
        .offset(offset)
    )
    return list(db.execute(stmt).scalars().all())
