# backend/auth.py

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import models      # absolute import
import schemas     # absolute import
from config import Settings, get_settings
from db import get_db  # absolute import

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["auth"]
)

def create_access_token(data: dict, settings: Settings, expires_delta: timedelta = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)

# ─── Register endpoint ─────────────────────────────────────────────────────────
def duplicate_user_detail(db: Session, email: str, username: str):
    existing = (
        db.query(models.User)
          .filter(or_(models.User.email == email, models.User.username == username))
          .first()
    )
    if existing is None:
        return None
    return "Email already registered" if existing.email == email else "Username already taken"

@router.post("/register", status_code=201)
def register(
    user: schemas.UserCreate,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    email = user.email.lower()
    detail = duplicate_user_detail(db, email, user.username)
    if detail:
        raise HTTPException(status_code=400, detail=detail)

    new_user = models.User(username=user.username, email=email)
    new_user.set_password(user.password)
    db.add(new_user)
    try:
        db.commit()
    except IntegrityError:
        # a concurrent registration won the unique constraint
        db.rollback()
        detail = duplicate_user_detail(db, email, user.username) or "Email already registered"
        raise HTTPException(status_code=400, detail=detail)
    db.refresh(new_user)
    logger.info("Registered user %s", new_user.id)

    token = create_access_token({"user_id": new_user.id}, settings)
    return {
        "success": True,
        "message": "User registered successfully",
        "data": {"user": new_user.public_profile(), "token": token},
    }

# ─── Login endpoint ────────────────────────────────────────────────────────────
@router.post("/login")
def login(
    form_data: schemas.UserLogin,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user = db.query(models.User).filter(models.User.email == form_data.email.lower()).first()
    if not user or not user.check_password(form_data.password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    token = create_access_token({"user_id": user.id}, settings)
    return {
        "success": True,
        "message": "Login successful",
        "data": {"user": user.public_profile(), "token": token},
    }

# ─── OAuth2PasswordBearer for extracting token ─────────────────────────────────
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/auth/login")

# ─── Dependency: get_current_user ───────────────────────────────────────────────
def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> models.User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        user_id = payload.get("user_id")
        if user_id is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    user = db.query(models.User).filter(models.User.id == user_id).first()
    if user is None:
        raise credentials_exception
    return user

# ─── Profile endpoints ─────────────────────────────────────────────────────────
@router.get("/me")
def me(current_user: models.User = Depends(get_current_user)):
    return {"success": True, "data": {"user": current_user.public_profile()}}

@router.put("/preferences")
def update_preferences(
    prefs: schemas.PreferencesUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    if prefs.default_ai_provider:
        current_user.default_ai_provider = prefs.default_ai_provider
    if prefs.theme:
        current_user.theme = prefs.theme
    db.commit()
    db.refresh(current_user)
    return {
        "success": True,
        "message": "Preferences updated successfully",
        "data": {"user": current_user.public_profile()},
    }
