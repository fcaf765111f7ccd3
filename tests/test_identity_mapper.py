# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_native_auth

import pytest

from coreason_native_auth.exceptions import InvalidIdTokenError
from coreason_native_auth.identity_mapper import IdentityMapper, decode_jwt_payload


@pytest.fixture
def mapper() -> IdentityMapper:
    return IdentityMapper()


def test_decode_jwt_payload(make_id_token) -> None:
    token = make_id_token({"sub": "u1", "email": "a@b.com", "exp": 1700000000})

    assert decode_jwt_payload(token) == {"sub": "u1", "email": "a@b.com", "exp": 1700000000}


def test_decode_jwt_payload_unicode(make_id_token) -> None:
    token = make_id_token({"name": "Zoë Ñúñez"})

    assert decode_jwt_payload(token)["name"] == "Zoë Ñúñez"


@pytest.mark.parametrize("token", ["", "abc", "a.b", "a.b.c.d"])
def test_decode_rejects_bad_structure(token: str) -> None:
    with pytest.raises(InvalidIdTokenError, match="structure"):
        decode_jwt_payload(token)


def test_decode_rejects_bad_payload() -> None:
    with pytest.raises(InvalidIdTokenError, match="payload"):
        decode_jwt_payload("header.!!!not-base64-json!!!.sig")


def test_decode_rejects_non_object_payload(make_id_token) -> None:
    token = make_id_token(["not", "an", "object"])  # type: ignore[arg-type]

    with pytest.raises(InvalidIdTokenError, match="not a JSON object"):
        decode_jwt_payload(token)


def test_map_claims_full(mapper: IdentityMapper) -> None:
    user = mapper.map_claims(
        {
            "sub": "u1",
            "email": "a@b.com",
            "preferred_username": "ada",
            "given_name": "Ada",
            "family_name": "Lovelace",
            "name": "Ada Lovelace",
            "tid": "tenant-1",
        }
    )

    assert user.id == "u1"
    assert user.username == "ada"
    assert user.email == "a@b.com"
    assert user.first_name == "Ada"
    assert user.last_name == "Lovelace"
    assert user.name == "Ada Lovelace"
    assert user.tenant_id == "tenant-1"


def test_map_claims_fallback_email(mapper: IdentityMapper) -> None:
    user = mapper.map_claims({"sub": "u1"}, fallback_email="a@b.com")

    assert user.username == "a@b.com"
    assert user.email == "a@b.com"
    assert user.name == "a@b.com"
    assert user.first_name == ""
    assert user.last_name == ""
    assert user.tenant_id is None


def test_map_claims_email_from_preferred_username(mapper: IdentityMapper) -> None:
    user = mapper.map_claims({"preferred_username": "ada@b.com"})

    assert user.email == "ada@b.com"
    assert user.username == "ada@b.com"
    assert user.name == "ada@b.com"


def test_map_claims_tenant_id_alias(mapper: IdentityMapper) -> None:
    assert mapper.map_claims({"tenantId": "t-2"}).tenant_id == "t-2"
    assert mapper.map_claims({"tid": "t-1", "tenantId": "t-2"}).tenant_id == "t-1"


def test_map_claims_ignores_non_string_values(mapper: IdentityMapper) -> None:
    user = mapper.map_claims({"sub": 123, "email": ["a@b.com"], "name": None, "given_name": ""}, "f@b.com")

    assert user.id is None
    assert user.email == "f@b.com"
    assert user.name == "f@b.com"
    assert user.first_name == ""


def test_map_id_token(mapper: IdentityMapper, make_id_token) -> None:
    user = mapper.map_id_token(make_id_token({"sub": "u1", "email": "a@b.com"}))

    assert user.id == "u1"
    assert user.email == "a@b.com"


def test_user_repr_redacts_pii(mapper: IdentityMapper) -> None:
    user = mapper.map_claims({"sub": "u1", "email": "secret@b.com", "name": "Secret Name"})

    assert "secret@b.com" not in repr(user)
    assert "Secret Name" not in str(user)
    assert "u1" in repr(user)
