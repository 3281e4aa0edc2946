from __future__ import annotations

import jwt
import pytest

from app.services import token_service


def test_token_round_trip() -> None:
    token = token_service.create_access_token(sub="u1", roles=["admin"])
    claims = token_service.decode_access_token(token)
    assert claims["sub"] == "u1"
    assert claims["roles"] == ["admin"]
    assert claims["aud"] == token_service.AUDIENCE


def test_default_role_is_user() -> None:
    token = token_service.create_access_token(sub="u1")
    assert token_service.decode_access_token(token)["roles"] == ["user"]


def test_expired_token_is_rejected() -> None:
    token = token_service.create_access_token(sub="u1", ttl_minutes=-1)
    with pytest.raises(jwt.ExpiredSignatureError):
        token_service.decode_access_token(token)


def test_token_for_another_audience_is_rejected() -> None:
    token = jwt.encode(
        {
            "sub": "u1",
            "aud": "billing",
            "iss": token_service.ISSUER,
            "exp": 9_999_999_999,
            "iat": 0,
        },
        token_service._private_key,
        algorithm=token_service.ALGORITHM,
    )
    with pytest.raises(jwt.InvalidAudienceError):
        token_service.decode_access_token(token)
