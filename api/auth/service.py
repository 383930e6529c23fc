"""
Caller identity resolution.
"""

from __future__ import annotations

from fastapi import HTTPException, status

from . import security


def get_identity_from_access_token(access_token: str) -> dict:
    """
    Return `{"id": <owner id>, "email": ...}` for a valid access token.

    The id is opaque to this API: it is stored as the dataset owner and only
    ever compared for equality.
    """
    try:
        payload = security.decode_access_token(access_token)
    except security.AuthSecurityError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc

    subject = str(payload.get("sub") or "").strip()
    if not subject:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid access token subject.",
        )

    return {"id": subject, "email": payload.get("email")}
