"""Shared-secret verification for externally reachable endpoints.

Webhook senders and operators pass the secret either in the X-Webhook-Secret
header or as the ``token`` query parameter (for webhook UIs that only accept
a URL). Comparison is constant-time.
"""

from __future__ import annotations

import hmac

from fastapi import HTTPException, Request, status

SECRET_HEADER = "X-Webhook-Secret"
SECRET_QUERY_PARAM = "token"


def secret_matches(provided: str | None, expected: str) -> bool:
    """Constant-time comparison; an empty expected secret never matches."""
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def extract_secret(request: Request) -> str | None:
    return request.headers.get(SECRET_HEADER) or request.query_params.get(SECRET_QUERY_PARAM)


def verify_shared_secret(request: Request, expected: str) -> None:
    """Raise 401 unless the request carries the shared secret.

    Raises:
        HTTPException(401): Secret missing or wrong.
    """
    if not secret_matches(extract_secret(request), expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing shared secret",
        )
