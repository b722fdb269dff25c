from __future__ import annotations

from typing import Any

import jwt

from zoerag.core.config import Settings, get_settings
from zoerag.core.errors import UnauthorizedError
from zoerag.domain.state import AuthClaims


def parse_bearer_token(header_value: str | None) -> str:
    # Enforce Bearer token format before touching the credential.
    if not header_value:
        raise UnauthorizedError("Missing or invalid Authorization header")
    parts = header_value.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise UnauthorizedError("Missing or invalid Authorization header")
    return parts[1]


def decode_claims(token: str) -> dict[str, Any]:
    # Signatures are verified by the upstream gateway; here we only read identity claims.
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as exc:
        raise UnauthorizedError("Unauthorized") from exc
    if not isinstance(payload, dict):
        raise UnauthorizedError("Unauthorized")
    return payload


def authenticate(header_value: str | None, settings: Settings | None = None) -> AuthClaims:
    settings = settings or get_settings()
    token = parse_bearer_token(header_value)
    payload = decode_claims(token)
    role = payload.get("role") or payload.get("user_role")
    subject_id = payload.get("sub")
    if role != settings.auth_required_role or not isinstance(subject_id, str) or not subject_id:
        raise UnauthorizedError("Unauthorized")
    return AuthClaims(subject_id=subject_id, role=role, raw_payload=payload)
