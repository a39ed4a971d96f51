"""Signed agent tokens for realtime connections.

Tokens are issued by whatever authenticates agents upstream; this module only
encodes and verifies them as HS256 JWTs with ``settings.secret_key``.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from omnidesk.core.config import settings

ALGORITHM = "HS256"


@dataclass(frozen=True)
class AgentClaims:
    user_id: str
    company_id: str
    expires_at: int


def create_agent_token(
    user_id: str,
    company_id: str,
    ttl_seconds: int | None = None,
    secret: str | None = None,
) -> str:
    """Create a signed token identifying an agent of a company."""
    ttl = ttl_seconds if ttl_seconds is not None else settings.agent_token_ttl_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=ttl)
    to_encode = {"sub": user_id, "cid": company_id, "exp": expire}
    return jwt.encode(to_encode, secret or settings.secret_key, algorithm=ALGORITHM)


def verify_agent_token(token: str, secret: str | None = None) -> AgentClaims | None:
    """Return the token's claims, or None when it is malformed, forged or expired."""
    try:
        payload = jwt.decode(token, secret or settings.secret_key, algorithms=[ALGORITHM])
    except (JWTError, ValueError):
        return None

    user_id = payload.get("sub")
    company_id = payload.get("cid")
    if not user_id or not isinstance(company_id, str) or not company_id:
        return None

    return AgentClaims(user_id=user_id, company_id=company_id, expires_at=int(payload["exp"]))
