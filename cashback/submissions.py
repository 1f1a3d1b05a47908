# submissions.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status as http_status
from sqlalchemy import select
from sqlalchemy.orm import Session

from .auth import require_user
from .db import get_db
from .intake import create_submission
from .models import Profile, Submission
from .schemas import Status, SubmissionCreate, SubmissionOut

router = APIRouter(prefix="/submissions", tags=["submissions"])


def to_out(s: Submission, model=SubmissionOut):
    out = model.model_validate(s)
    out.brand_name = s.brand.name if s.brand else None
    return out


@router.post("", response_model=SubmissionOut, status_code=http_status.HTTP_201_CREATED)
def submit_content(
    payload: SubmissionCreate,
    db: Session = Depends(get_db),
    user: Profile = Depends(require_user),
):
    """Claim cashback for posted content; stays pending until an admin decides."""
    return to_out(create_submission(db, user, payload))


@router.get("", response_model=List[SubmissionOut])
def my_submissions(
    status_filter: Optional[Status] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    user: Profile = Depends(require_user),
):
    stmt = select(Submission).where(Submission.user_id == user.id)
    if status_filter:
        stmt = stmt.where(Submission.status == status_filter)
    rows = db.execute(stmt.order_by(Submission.created_at.desc())).scalars().unique().all()
    return [to_out(s) for s in rows]
