# brands.py
from typing import List

from fastapi import APIRouter, Depends, status as http_status
from sqlalchemy import select
from sqlalchemy.orm import Session

from .auth import require_admin, require_user
from .db import get_db
from .errors import NotFoundError
from .intake import save
from .models import Brand
from .schemas import BrandCreate, BrandOut

router = APIRouter(prefix="/brands", tags=["brands"])


@router.get("", response_model=List[BrandOut], dependencies=[Depends(require_user)])
def list_brands(db: Session = Depends(get_db)):
    """All brands, ordered by name. Returns [] (200) when none exist."""
    return db.execute(select(Brand).order_by(Brand.name)).scalars().all()


@router.get("/{brand_id}", response_model=BrandOut, dependencies=[Depends(require_user)])
def get_brand(brand_id: str, db: Session = Depends(get_db)):
    brand = db.get(Brand, brand_id)
    if brand is None:
        raise NotFoundError(f"Brand {brand_id} not found")
    return brand


@router.post("", response_model=BrandOut, status_code=http_status.HTTP_201_CREATED,
             dependencies=[Depends(require_admin)])
def create_brand(payload: BrandCreate, db: Session = Depends(get_db)):
    """Admin: add a sponsor brand with its per-submission cashback."""
    brand = Brand(
        name=payload.name,
        description=payload.description or None,
        cashback_amount=payload.cashback_amount,
    )
    return save(db, brand)
