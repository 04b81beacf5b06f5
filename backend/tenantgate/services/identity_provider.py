# backend/tenantgate/services/identity_provider.py
#
# Federated sign-in collaborator. The identity flows only see a verified
# profile; checking the provider's ID token happens here.

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional, Protocol

from google.auth.exceptions import GoogleAuthError
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from tenantgate.core.config import settings
from tenantgate.core.errors import AuthenticationFailure

_GOOGLE_ISSUERS = {"accounts.google.com", "https://accounts.google.com"}


@dataclass(frozen=True)
class FederatedProfile:
    provider: str
    email: str
    name: Optional[str] = None


class IdTokenVerifier(Protocol):
    async def verify(self, token: str) -> FederatedProfile: ...


class GoogleIdTokenVerifier:
    def __init__(self, client_id: str) -> None:
        self.client_id = client_id
        self._transport = google_requests.Request()

    def _verify_sync(self, token: str) -> dict:
        return id_token.verify_oauth2_token(token, self._transport, self.client_id)

    async def verify(self, token: str) -> FederatedProfile:
        if not self.client_id:
            raise AuthenticationFailure(reason="federated_disabled")

        try:
            # fetches Google's signing certs; keep it off the event loop
            claims = await asyncio.to_thread(self._verify_sync, token)
        except (ValueError, GoogleAuthError):
            raise AuthenticationFailure(reason="federated_token_invalid")

        if claims.get("iss") not in _GOOGLE_ISSUERS:
            raise AuthenticationFailure(reason="federated_wrong_issuer")

        email = claims.get("email")
        if not email or not claims.get("email_verified"):
            raise AuthenticationFailure(reason="federated_email_unverified")

        return FederatedProfile(
            provider="google",
            email=email,
            name=claims.get("name"),
        )


_default_verifier: Optional[IdTokenVerifier] = None


def get_id_token_verifier() -> IdTokenVerifier:
    """FastAPI dependency; tests override it with a fixed profile table."""
    global _default_verifier
    if _default_verifier is None:
        _default_verifier = GoogleIdTokenVerifier(settings.GOOGLE_CLIENT_ID)
    return _default_verifier
