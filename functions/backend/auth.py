"""
Bearer-token identity for API requests.

Sign-in happens against the external identity service (Firebase Auth); the
API only verifies the ID token it issues.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from firebase_admin import auth as firebase_auth

logger = logging.getLogger(__name__)


class InvalidTokenError(Exception):
    pass


@dataclass
class CurrentUser:
    uid: str
    email: Optional[str] = None


class IdentityVerifier(Protocol):
    def verify(self, token: str) -> CurrentUser:
        ...


class FirebaseIdentityVerifier:
    """Verifies Firebase ID tokens with the firebase_admin SDK."""

    def __init__(self, app=None, check_revoked: bool = False):
        self.app = app
        self.check_revoked = check_revoked

    def verify(self, token: str) -> CurrentUser:
        try:
            claims = firebase_auth.verify_id_token(
                token, app=self.app, check_revoked=self.check_revoked
            )
        except firebase_auth.ExpiredIdTokenError as e:
            raise InvalidTokenError("Token expired") from e
        except firebase_auth.RevokedIdTokenError as e:
            raise InvalidTokenError("Token revoked") from e
        except (ValueError, firebase_auth.InvalidIdTokenError) as e:
            raise InvalidTokenError(str(e)) from e
        return CurrentUser(uid=claims["uid"], email=claims.get("email"))


class StaticIdentityVerifier:
    """Development verifier: the token is the uid."""

    def verify(self, token: str) -> CurrentUser:
        uid = token.strip()
        if not uid:
            raise InvalidTokenError("Empty token")
        return CurrentUser(uid=uid)
