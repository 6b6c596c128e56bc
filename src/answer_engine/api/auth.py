"""JWT authentication and viewer identity mapping."""

from __future__ import annotations

import time

import jwt
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from answer_engine.config.settings import Settings
from answer_engine.observability.logger import get_logger

logger = get_logger("auth")

router = APIRouter(prefix="/auth", tags=["auth"])
security = HTTPBearer()


class TokenRequest(BaseModel):
    api_key: str
    user_id: str = Field(min_length=1)
    email: str = Field(min_length=3)
    org_id: str = Field(min_length=1)
    role: str = "member"
    principals: list[str] = Field(default_factory=list)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class Viewer(BaseModel):
    user_id: str
    org_id: str
    principal_keys: list[str]


def _get_settings(request: Request) -> Settings:
    return request.app.state.settings


def principal_keys_from_claims(claims: dict) -> list[str]:
    """Map token claims to the principal keys used by document ACLs and knowledge rules."""
    keys: list[str] = []
    if claims.get("email"):
        keys.append(f"email:{claims['email'].lower()}")
    if claims.get("sub"):
        keys.append(f"user:{claims['sub']}")
    if claims.get("role"):
        keys.append(f"role:{claims['role']}")
    if claims.get("org"):
        keys.append(f"org:{claims['org']}")
    keys.extend(claims.get("principals") or [])
    return list(dict.fromkeys(keys))


@router.post("/token", response_model=TokenResponse)
async def create_token(
    body: TokenRequest,
    settings: Settings = Depends(_get_settings),
) -> TokenResponse:
    """Exchange an API key for a JWT carrying the viewer's identity claims."""
    valid_keys = [k.strip() for k in settings.api_keys.split(",") if k.strip()]

    if not valid_keys:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication not configured",
        )

    if body.api_key not in valid_keys:
        logger.warning("invalid_api_key_attempt")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )

    now = int(time.time())
    payload = {
        "sub": body.user_id,
        "email": body.email,
        "role": body.role,
        "org": body.org_id,
        "principals": body.principals,
        "iat": now,
        "exp": now + settings.jwt_expiry_minutes * 60,
    }
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)

    logger.info("token_issued", org_id=body.org_id, expiry_minutes=settings.jwt_expiry_minutes)
    return TokenResponse(
        access_token=token,
        expires_in=settings.jwt_expiry_minutes * 60,
    )


async def verify_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """FastAPI dependency: validate JWT from Authorization header."""
    settings: Settings = request.app.state.settings
    try:
        return jwt.decode(
            credentials.credentials,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )


def viewer_for_org(claims: dict, org_id: str) -> Viewer:
    if claims.get("org") != org_id:
        logger.warning("org_scope_mismatch", token_org=claims.get("org"), org_id=org_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token is not scoped to this organization",
        )
    return Viewer(
        user_id=str(claims.get("sub", "")),
        org_id=org_id,
        principal_keys=principal_keys_from_claims(claims),
    )
