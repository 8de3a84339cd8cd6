"""
Security utilities for the Lead Qualifier API.
JWT verification for inbound calls and HMAC signing for outbound webhooks.
"""
from datetime import datetime, timedelta
from typing import Optional, Literal
import hashlib
import hmac
import uuid

import jwt

from lead_qualifier.config import settings


# Token types
TokenType = Literal["access", "refresh"]

SIGNATURE_PREFIX = "sha256="


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create an access token.

    Tokens are normally issued by the auth service; this helper exists for
    service-to-service calls and tests. The payload should include org_id.
    """
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=30))
    to_encode.update({
        "exp": expire,
        "iat": datetime.utcnow(),
        "type": "access",
        "jti": str(uuid.uuid4())
    })
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """
    Decode and validate a JWT token.

    Returns:
        Decoded payload dict or None if invalid
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return payload
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def verify_token(token: str, token_type: TokenType = "access") -> Optional[dict]:
    """
    Verify a token and check its type.

    Returns:
        Decoded payload if valid and correct type, None otherwise
    """
    payload = decode_token(token)
    if payload and payload.get("type") == token_type:
        return payload
    return None


def sign_payload(body: bytes, secret: str) -> str:
    """HMAC-SHA256 signature of a raw webhook body, as sent in the signature header."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(body: bytes, secret: str, signature: str) -> bool:
    """Constant-time check of a webhook signature header (receiver side)."""
    return hmac.compare_digest(sign_payload(body, secret), signature or "")
