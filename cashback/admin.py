# admin.py
from typing import List, Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from .auth import require_admin
from .db import get_db
from .models import Submission, Withdrawal
from .notifications import send_decision_notification
from .schemas import AdminSubmissionOut, AdminWithdrawalOut, DecisionOut, Status
from .submissions import to_out as submission_out
from .wallet import SUBMISSION, WITHDRAWAL, decide

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])

Decision = Literal["approve", "reject"]

# ---------- Helpers ----------

def _withdrawal_out(w: Withdrawal) -> AdminWithdrawalOut:
    out = AdminWithdrawalOut.model_validate(w)
    out.email = w.profile.email
    out.wallet_balance = w.profile.wallet_balance
    return out


def _decide(db: Session, background: BackgroundTasks, kind: str, item_id: str,
            decision: str) -> DecisionOut:
    result = decide(db, kind, item_id, decision)
    if result.notification is not None:
        # runs after the response; the decision is already committed
        background.add_task(send_decision_notification, result.notification)
    return DecisionOut(
        item_kind=result.item_kind,
        item_id=result.item_id,
        status=result.status,
        user_id=result.user_id,
        wallet_balance=result.wallet_balance,
    )

# ---------- Review lists ----------

@router.get("/submissions", response_model=List[AdminSubmissionOut])
def list_submissions(
    status_filter: Optional[Status] = Query(None, alias="status", description="pending|approved|rejected"),
    db: Session = Depends(get_db),
):
    """All submissions with owner email and brand, newest first."""
    stmt = select(Submission)
    if status_filter:
        stmt = stmt.where(Submission.status == status_filter)
    rows = db.execute(stmt.order_by(Submission.created_at.desc())).scalars().unique().all()
    out = []
    for s in rows:
        item = submission_out(s, AdminSubmissionOut)
        item.email = s.profile.email
        out.append(item)
    return out


@router.get("/withdrawals", response_model=List[AdminWithdrawalOut])
def list_withdrawals(
    status_filter: Optional[Status] = Query(None, alias="status", description="pending|approved|rejected"),
    db: Session = Depends(get_db),
):
    """All withdrawals with owner email and current wallet balance, newest first."""
    stmt = select(Withdrawal)
    if status_filter:
        stmt = stmt.where(Withdrawal.status == status_filter)
    rows = db.execute(stmt.order_by(Withdrawal.created_at.desc())).scalars().unique().all()
    return [_withdrawal_out(w) for w in rows]

# ---------- Decisions ----------

@router.post("/submissions/{submission_id}/{decision}", response_model=DecisionOut)
def decide_submission(
    submission_id: str,
    decision: Decision,
    background: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """
    Approve (credits the captured cashback) or reject a pending submission.
    409 if it was already decided.
    """
    return _decide(db, background, SUBMISSION, submission_id, decision)


@router.post("/withdrawals/{withdrawal_id}/{decision}", response_model=DecisionOut)
def decide_withdrawal(
    withdrawal_id: str,
    decision: Decision,
    background: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """
    Approve (debits the wallet) or reject a pending withdrawal.
    409 if already decided or the balance no longer covers the amount.
    """
    return _decide(db, background, WITHDRAWAL, withdrawal_id, decision)
