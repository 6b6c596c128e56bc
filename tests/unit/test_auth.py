"""Tests for JWT identity mapping, org scoping and rate limiting."""

from __future__ import annotations

import time

import jwt
import pytest
from fastapi import HTTPException

from answer_engine.api.auth import principal_keys_from_claims, viewer_for_org
from answer_engine.api.rate_limiter import SlidingWindowRateLimiter

CLAIMS = {
    "sub": "u-42",
    "email": "Ana@Company.com",
    "role": "admin",
    "org": "org_1",
    "principals": ["group:finance", "user:u-42"],
}


def test_principal_keys_from_claims():
    assert principal_keys_from_claims(CLAIMS) == [
        "email:ana@company.com",
        "user:u-42",
        "role:admin",
        "org:org_1",
        "group:finance",
    ]


def test_principal_keys_skip_missing_claims():
    assert principal_keys_from_claims({"org": "org_1"}) == ["org:org_1"]


def test_viewer_for_matching_org():
    viewer = viewer_for_org(CLAIMS, "org_1")
    assert viewer.user_id == "u-42"
    assert viewer.org_id == "org_1"
    assert "group:finance" in viewer.principal_keys


def test_viewer_for_other_org_is_forbidden():
    with pytest.raises(HTTPException) as exc_info:
        viewer_for_org(CLAIMS, "org_2")
    assert exc_info.value.status_code == 403


def test_jwt_round_trip_carries_identity():
    secret = "test-secret"
    payload = {**CLAIMS, "iat": int(time.time()), "exp": int(time.time()) + 3600}
    token = jwt.encode(payload, secret, algorithm="HS256")
    decoded = jwt.decode(token, secret, algorithms=["HS256"])
    assert decoded["org"] == "org_1"
    assert decoded["principals"] == ["group:finance", "user:u-42"]


def test_jwt_expired():
    secret = "test-secret"
    payload = {"sub": "u-42", "iat": int(time.time()) - 7200, "exp": int(time.time()) - 3600}
    token = jwt.encode(payload, secret, algorithm="HS256")
    with pytest.raises(jwt.ExpiredSignatureError):
        jwt.decode(token, secret, algorithms=["HS256"])


def test_jwt_invalid_secret():
    token = jwt.encode({"sub": "u-42"}, "test-secret", algorithm="HS256")
    with pytest.raises(jwt.InvalidSignatureError):
        jwt.decode(token, "wrong-secret", algorithms=["HS256"])


def test_rate_limiter_allows_then_blocks():
    limiter = SlidingWindowRateLimiter()
    for _ in range(5):
        assert limiter.check("org_1:u-42", max_requests=5) is True
    assert limiter.check("org_1:u-42", max_requests=5) is False


def test_rate_limiter_keys_are_independent():
    limiter = SlidingWindowRateLimiter()
    for _ in range(3):
        limiter.check("org_1:u-42", max_requests=3)
    assert limiter.check("org_1:u-42", max_requests=3) is False
    assert limiter.check("org_2:u-42", max_requests=3) is True
