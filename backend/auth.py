from datetime import datetime, timedelta, timezone
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from database import get_db
from errors import Unauthenticated
from models import User

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)


def _load_jwt_secret() -> str:
    secret = os.environ.get('JWT_SECRET_KEY')
    if not secret:
        raise RuntimeError('JWT_SECRET_KEY is required and must be set in environment')
    weak_values = {
        'default_secret_key',
        'changeme',
        'change_me',
        'secret',
        'jwt_secret',
        'password',
        'admin123',
    }
    if len(secret) < 32 or secret.strip().lower() in weak_values:
        raise RuntimeError('JWT_SECRET_KEY is too weak; use a random secret with at least 32 characters')
    return secret


SECRET_KEY = _load_jwt_secret()
ALGORITHM = os.environ.get('JWT_ALGORITHM', 'HS256')
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.environ.get('ACCESS_TOKEN_EXPIRE_MINUTES', 60))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.environ.get('REFRESH_TOKEN_EXPIRE_DAYS', 7))
GOOGLE_CLIENT_ID = os.environ.get('GOOGLE_CLIENT_ID')
GOOGLE_ISSUERS = {"accounts.google.com", "https://accounts.google.com"}

optional_bearer = HTTPBearer(auto_error=False)


def admin_emails() -> set:
    raw = os.environ.get('ADMIN_EMAILS', '')
    return {item.strip().lower() for item in raw.split(',') if item.strip()}


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def create_refresh_token(data: dict) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS)
    to_encode.update({"exp": expire, "type": "refresh"})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def token_claims(user: User) -> dict:
    return {"sub": user.id, "email": user.email, "role": user.role.value}


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise Unauthenticated("Could not validate credentials")


def verify_google_credential(credential: str) -> Dict[str, Any]:
    """Validate a Google Sign-In ID token and return the identity it carries."""
    if not GOOGLE_CLIENT_ID:
        raise RuntimeError("GOOGLE_CLIENT_ID is not configured")
    try:
        idinfo = id_token.verify_oauth2_token(credential, google_requests.Request(), GOOGLE_CLIENT_ID)
    except ValueError as exc:
        logger.warning(f"Rejected Google ID token: {exc}")
        raise Unauthenticated("Invalid Google credential")

    if idinfo.get("iss") not in GOOGLE_ISSUERS:
        raise Unauthenticated("Invalid Google credential issuer")
    if not idinfo.get("email") or not idinfo.get("email_verified", False):
        raise Unauthenticated("Google account email is not verified")

    return {
        "email": str(idinfo["email"]).strip().lower(),
        "name": idinfo.get("name") or "",
        "image": idinfo.get("picture") or None,
    }


def _user_from_payload(db: Session, payload: dict) -> Optional[User]:
    if payload.get("type") != "access":
        return None
    user_id = payload.get("sub")
    if not user_id:
        return None
    return db.query(User).filter(User.id == user_id).first()


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_bearer),
    db: Session = Depends(get_db),
) -> Optional[User]:
    if not credentials:
        return None
    try:
        payload = decode_token(credentials.credentials)
    except Unauthenticated:
        return None
    return _user_from_payload(db, payload)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_bearer),
    db: Session = Depends(get_db),
) -> User:
    if not credentials:
        raise Unauthenticated()
    payload = decode_token(credentials.credentials)
    if payload.get("type") != "access":
        raise Unauthenticated("Invalid token type")
    user = _user_from_payload(db, payload)
    if user is None:
        raise Unauthenticated("User not found")
    return user
