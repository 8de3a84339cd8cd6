"""
API dependencies - shared across all routes.
"""
import uuid
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from pydantic import BaseModel

from lead_qualifier.config import settings
from lead_qualifier.core.security import verify_token
from lead_qualifier.core.exceptions import raise_unauthorized


# Tokens are issued by the auth service
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_PREFIX}/auth/login")


class Principal(BaseModel):
    """Caller identity taken from the access token."""
    org_id: uuid.UUID
    user_id: Optional[uuid.UUID] = None


def _parse_uuid(value) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


async def get_current_principal(token: str = Depends(oauth2_scheme)) -> Principal:
    """Get the calling organization (and user) from the JWT token."""
    payload = verify_token(token, "access")
    if not payload:
        raise_unauthorized("Could not validate credentials")

    org_id = _parse_uuid(payload.get("org_id"))
    if not org_id:
        raise_unauthorized("Token carries no organization")

    return Principal(org_id=org_id, user_id=_parse_uuid(payload.get("user_id") or payload.get("sub")))


async def get_current_org_id(principal: Principal = Depends(get_current_principal)) -> uuid.UUID:
    return principal.org_id


async def get_current_user_principal(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Principal for per-user routes; service tokens without a user are refused."""
    if not principal.user_id:
        raise_unauthorized("Token carries no user")
    return principal
