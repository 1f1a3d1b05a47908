# withdrawals.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status as http_status
from sqlalchemy import select
from sqlalchemy.orm import Session

from .auth import require_user
from .db import get_db
from .intake import create_withdrawal
from .models import Profile, Withdrawal
from .schemas import Status, WithdrawalCreate, WithdrawalOut

router = APIRouter(prefix="/withdrawals", tags=["withdrawals"])


@router.post("", response_model=WithdrawalOut, status_code=http_status.HTTP_201_CREATED)
def request_withdrawal(
    payload: WithdrawalCreate,
    db: Session = Depends(get_db),
    user: Profile = Depends(require_user),
):
    """
    Ask to cash out via UPI or bank transfer. Amount must be at least ₹10 and
    no more than the current balance; nothing is deducted until approval.
    """
    return create_withdrawal(db, user, payload)


@router.get("", response_model=List[WithdrawalOut])
def my_withdrawals(
    status_filter: Optional[Status] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    user: Profile = Depends(require_user),
):
    stmt = select(Withdrawal).where(Withdrawal.user_id == user.id)
    if status_filter:
        stmt = stmt.where(Withdrawal.status == status_filter)
    return db.execute(stmt.order_by(Withdrawal.created_at.desc())).scalars().unique().all()


@router.get("/rules")
def withdrawal_rules():
    return {
        "minimum_amount": 10,
        "methods": [
            {"id": "upi", "name": "UPI", "fields": ["upi_id"]},
            {"id": "bank", "name": "Bank Transfer",
             "fields": ["bank_holder_name", "bank_account_number", "bank_ifsc"]},
        ],
    }
