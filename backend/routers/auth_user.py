from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth import (
    admin_emails,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_current_user,
    token_claims,
    verify_google_credential,
)
from database import get_db
from errors import Unauthenticated
from identity import sign_in_user
from models import User
from schemas import GoogleSignInRequest, RefreshTokenRequest, TokenResponse, UserResponse

router = APIRouter()


def _token_response(user: User) -> TokenResponse:
    claims = token_claims(user)
    return TokenResponse(
        access_token=create_access_token(claims),
        refresh_token=create_refresh_token(claims),
        user=UserResponse.model_validate(user)
    )


@router.post("/auth/google", response_model=TokenResponse)
def google_sign_in(payload: GoogleSignInRequest, db: Session = Depends(get_db)):
    identity = verify_google_credential(payload.credential)
    user = sign_in_user(
        db,
        identity["email"],
        identity.get("name"),
        identity.get("image"),
        is_admin=identity["email"] in admin_emails(),
    )
    return _token_response(user)


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh_tokens(request: RefreshTokenRequest, db: Session = Depends(get_db)):
    payload = decode_token(request.refresh_token)
    if payload.get("type") != "refresh":
        raise Unauthenticated("Invalid refresh token")
    user = db.query(User).filter(User.id == payload.get("sub")).first()
    if not user:
        raise Unauthenticated("User not found")
    return _token_response(user)


@router.get("/me", response_model=UserResponse)
def get_me(user: User = Depends(get_current_user)):
    return UserResponse.model_validate(user)
