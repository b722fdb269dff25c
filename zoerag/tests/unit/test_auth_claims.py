from __future__ import annotations

import pytest

from zoerag.core.errors import UnauthorizedError
from zoerag.services.auth.claims import authenticate, decode_claims, parse_bearer_token
from zoerag.tests.utils.fakes import make_token


def test_valid_token_yields_subject() -> None:
    claims = authenticate(f"Bearer {make_token(sub='user-9')}")
    assert claims.subject_id == "user-9"
    assert claims.role == "authenticated"


def test_user_role_claim_is_accepted() -> None:
    token = make_token(sub="user-2", role=None, user_role="authenticated")
    assert authenticate(f"Bearer {token}").subject_id == "user-2"


@pytest.mark.parametrize("header", [None, "", "Bearer", "Basic abc", "Bearer a b", "token"])
def test_missing_or_malformed_header(header) -> None:
    with pytest.raises(UnauthorizedError) as excinfo:
        parse_bearer_token(header)
    assert excinfo.value.status_code == 401


def test_undecodable_token() -> None:
    with pytest.raises(UnauthorizedError):
        decode_claims("not-a-jwt")


def test_wrong_role_is_rejected() -> None:
    with pytest.raises(UnauthorizedError):
        authenticate(f"Bearer {make_token(role='anon')}")


def test_missing_subject_is_rejected() -> None:
    with pytest.raises(UnauthorizedError):
        authenticate(f"Bearer {make_token(sub=None)}")
