# main.py
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from . import admin, brands, profiles, submissions, withdrawals
from .auth import create_token, hash_password, is_admin_email, require_user, verify_password
from .db import get_db, init_db
from .errors import CashbackError
from .models import Profile
from .schemas import LoginIn, ProfileOut, SessionOut, SignUpIn

# ---------------------------------------------------------------------------
# Env, logging & app
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger("cashback")

def _truthy(name: str) -> bool:
    v = os.getenv(name, "")
    return v not in ("", "0", "false", "False", "no", "No")

IS_PROD = (
    os.getenv("ENV", "").lower() in {"prod", "production"}
    or _truthy("FORCE_CROSS_SITE_COOKIES")
)

def cookie_kwargs() -> dict:
    if IS_PROD:
        return dict(httponly=True, samesite="none", secure=True, path="/", max_age=60 * 60 * 24 * 7)
    else:
        return dict(httponly=True, samesite="lax", secure=False, path="/", max_age=60 * 60 * 24 * 7)


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="Cashback Wallet API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url=None,
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

origins = {"http://localhost:5173", "http://localhost:3000", "http://localhost:8080"}
frontend_env = os.getenv("FRONTEND_ORIGIN")
if frontend_env and frontend_env != "*":
    origins.add(frontend_env)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------

@app.exception_handler(CashbackError)
async def cashback_error_handler(request: Request, exc: CashbackError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

@app.exception_handler(DBAPIError)
async def store_error_handler(request: Request, exc: DBAPIError):
    # nothing was committed; the session is rolled back when get_db closes it
    log.error("Store failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Store unavailable. Please try again."},
    )

# ---------------------------------------------------------------------------
# Root, health
# ---------------------------------------------------------------------------

@app.get("/", include_in_schema=False)
def index():
    return RedirectResponse(url="/docs")

@app.get("/healthz", include_in_schema=False)
def healthz():
    return {"ok": True}

# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

@app.post("/auth/signup", response_model=ProfileOut, status_code=status.HTTP_201_CREATED)
def signup(payload: SignUpIn, db: Session = Depends(get_db)):
    email = payload.email.lower()
    if db.execute(select(Profile).where(Profile.email == email)).scalar_one_or_none():
        raise HTTPException(status_code=409, detail="This email is already registered. Try logging in instead.")
    profile = Profile(
        email=email,
        password_hash=hash_password(payload.password),
        full_name=payload.full_name,
        instagram_id=payload.instagram_id,
        phone_number=payload.phone_number,
        wallet_balance=0,
        is_admin=is_admin_email(email),
    )
    db.add(profile)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="This email is already registered. Try logging in instead.")
    db.refresh(profile)
    log.info("New profile %s (admin=%s)", profile.id, profile.is_admin)
    return profile

@app.post("/auth/login", response_model=SessionOut, status_code=status.HTTP_200_OK)
def login(payload: LoginIn, resp: Response, db: Session = Depends(get_db)):
    profile = db.execute(
        select(Profile).where(Profile.email == payload.email.lower())
    ).scalar_one_or_none()
    if profile is None or not verify_password(payload.password, profile.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    token = create_token(profile.id)
    resp.set_cookie(key="session", value=token, **cookie_kwargs())
    return SessionOut(token=token, user_id=profile.id, is_admin=profile.is_admin)

@app.post("/auth/logout", status_code=status.HTTP_200_OK)
def logout(resp: Response):
    kw = cookie_kwargs()
    resp.delete_cookie(key="session", path=kw.get("path", "/"), httponly=True,
                       samesite=kw.get("samesite", "lax"), secure=kw.get("secure", False))
    return {"ok": True}

@app.get("/auth/session", response_model=ProfileOut)
def session_probe(user: Profile = Depends(require_user)):
    return user

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(brands.router)
app.include_router(submissions.router)
app.include_router(withdrawals.router)
app.include_router(profiles.router)
app.include_router(admin.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("cashback.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
