# profiles.py
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .auth import require_user
from .db import get_db
from .models import Profile, Submission, STATUS_APPROVED, STATUS_PENDING
from .schemas import DashboardOut, ProfileOut, WalletEntryOut
from .submissions import to_out as submission_out
from .wallet import current_balance, wallet_history

router = APIRouter(prefix="/profiles", tags=["profiles"])

RECENT_SUBMISSIONS = 10


@router.get("/me", response_model=ProfileOut)
def my_profile(db: Session = Depends(get_db), user: Profile = Depends(require_user)):
    return user


@router.get("/me/dashboard", response_model=DashboardOut)
def my_dashboard(db: Session = Depends(get_db), user: Profile = Depends(require_user)):
    """
    Wallet balance plus submission tallies for the caller.
    Counts come from the store; the recent list is newest first.
    """
    counts = dict(
        db.execute(
            select(Submission.status, func.count(Submission.id))
            .where(Submission.user_id == user.id)
            .group_by(Submission.status)
        ).all()
    )
    recent = db.execute(
        select(Submission)
        .where(Submission.user_id == user.id)
        .order_by(Submission.created_at.desc())
        .limit(RECENT_SUBMISSIONS)
    ).scalars().unique().all()

    return DashboardOut(
        wallet_balance=current_balance(db, user.id),
        total_submissions=sum(counts.values()),
        pending_count=counts.get(STATUS_PENDING, 0),
        approved_count=counts.get(STATUS_APPROVED, 0),
        recent_submissions=[submission_out(s) for s in recent],
    )


@router.get("/me/wallet", response_model=List[WalletEntryOut])
def my_wallet_history(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    user: Profile = Depends(require_user),
):
    """Credits and debits applied to the caller's balance, newest first."""
    return wallet_history(db, user.id, limit=limit, offset=offset)
