"""Tests for signed agent tokens."""

from jose import jwt

from omnidesk.core.config import settings
from omnidesk.core.security import ALGORITHM, create_agent_token, verify_agent_token


def test_token_round_trip():
    token = create_agent_token("agent-a", "acme")
    claims = verify_agent_token(token)

    assert claims is not None
    assert claims.user_id == "agent-a"
    assert claims.company_id == "acme"


def test_token_is_standard_hs256_jwt():
    token = create_agent_token("agent-a", "acme")
    payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])

    assert payload["sub"] == "agent-a"
    assert payload["cid"] == "acme"
    assert "exp" in payload


def test_tampered_token_rejected():
    token = create_agent_token("agent-a", "acme")
    forged = create_agent_token("agent-a", "globex")
    header_and_claims = forged.rsplit(".", 1)[0]
    signature = token.rsplit(".", 1)[1]

    assert verify_agent_token(f"{header_and_claims}.{signature}") is None


def test_expired_token_rejected():
    assert verify_agent_token(create_agent_token("agent-a", "acme", ttl_seconds=-1)) is None


def test_token_signed_with_other_secret_rejected():
    token = create_agent_token("agent-a", "acme", secret="another-secret")
    assert verify_agent_token(token) is None
    assert verify_agent_token(token, secret="another-secret") is not None


def test_token_without_company_rejected():
    token = jwt.encode({"sub": "agent-a", "exp": 4102444800}, settings.secret_key, algorithm=ALGORITHM)
    assert verify_agent_token(token) is None


def test_garbage_rejected():
    assert verify_agent_token("not-a-token") is None
    assert verify_agent_token("") is None
    assert verify_agent_token("a.b.c") is None


def test_non_ascii_token_rejected():
    assert verify_agent_token("héllo.wörld") is None
    assert verify_agent_token("ñ.ñ.ñ") is None
