"""
Bearer-token verification against Firebase Auth (or an in-process stub).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from firebase_admin import auth as firebase_auth

from archon_api.errors import Forbidden, InvalidToken, Unauthorized

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "
STUB_TOKEN_PREFIX = "stub:"


@dataclass(frozen=True)
class CallerIdentity:
    """The verified caller of one request. Never persisted."""

    id: str
    email: Optional[str] = None


class TokenVerifier(Protocol):
    """Turns a raw bearer token into a caller identity."""

    def verify(self, token: str) -> CallerIdentity:
        ...


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Pull the token out of an ``Authorization: Bearer <token>`` header."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise Unauthorized()
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise Unauthorized()
    return token


class FirebaseTokenVerifier:
    """Verifies Firebase ID tokens with the admin SDK."""

    def __init__(self, app: Any):
        self._app = app

    def verify(self, token: str) -> CallerIdentity:
        try:
            decoded = firebase_auth.verify_id_token(
                token, app=self._app, check_revoked=True
            )
        except (firebase_auth.RevokedIdTokenError, firebase_auth.UserDisabledError) as e:
            # RevokedIdTokenError subclasses InvalidIdTokenError, so it goes first.
            logger.info("Token rejected for revoked or disabled account: %s", e)
            raise Forbidden() from e
        except (firebase_auth.InvalidIdTokenError, ValueError) as e:
            logger.info("Token verification failed: %s", e)
            raise InvalidToken() from e
        return CallerIdentity(id=decoded["uid"], email=decoded.get("email"))


class StubTokenVerifier:
    """
    Accepts ``stub:<uid>`` and ``stub:<uid>:<email>`` tokens so local
    development works without an identity provider.
    """

    def verify(self, token: str) -> CallerIdentity:
        if not token.startswith(STUB_TOKEN_PREFIX):
            raise InvalidToken()
        uid, _, email = token[len(STUB_TOKEN_PREFIX):].partition(":")
        if not uid:
            raise InvalidToken()
        return CallerIdentity(id=uid, email=email or None)
