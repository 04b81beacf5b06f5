# tests/test_federated.py
from __future__ import annotations

import pytest
from sqlalchemy import func, select

from tenantgate.core import global_sessions, tenant_sessions
from tenantgate.core.errors import AuthenticationFailure, OnboardingIncomplete
from tenantgate.models.identity import Identity
from tenantgate.models.membership import Membership
from tenantgate.services.email import EmailKind
from tenantgate.services.identity_provider import FederatedProfile, get_id_token_verifier

from tests.helpers import create_membership, create_tenant

API = "/api/v1"


def google_profile(email: str, name: str = "Gina Google") -> FederatedProfile:
    return FederatedProfile(provider="google", email=email, name=name)


class FixedVerifier:
    """Accepts only the ID tokens it was given."""

    def __init__(self) -> None:
        self.profiles: dict[str, FederatedProfile] = {}

    async def verify(self, token: str) -> FederatedProfile:
        profile = self.profiles.get(token)
        if profile is None:
            raise AuthenticationFailure(reason="federated_token_invalid")
        return profile


@pytest.fixture()
def google(app) -> FixedVerifier:
    verifier = FixedVerifier()
    app.dependency_overrides[get_id_token_verifier] = lambda: verifier
    return verifier


# ---------------------------------------------------------
# Core
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_first_federated_signup_creates_credential_less_membership(db, outbox):
    result = await global_sessions.federated_signup(db, outbox, google_profile("Gina@Acme.io"))

    assert result.is_new is True
    membership = await db.get(Membership, result.membership_id)
    assert membership.email == "gina@acme.io"
    assert membership.tenant_id is None
    assert membership.password_hash is None
    assert membership.is_email_verified is True

    identity = await db.get(Identity, membership.identity_id)
    assert identity.name == "Gina Google"

    assert result.auth.matched_ids == (str(membership.id),)
    assert [c.has_password for c in result.auth.candidates] == [False]
    assert outbox.last().kind == EmailKind.FEDERATED_SIGNUP

    again = await global_sessions.federated_signup(db, outbox, google_profile("gina@acme.io"))
    assert again.is_new is False
    assert again.membership_id == result.membership_id
    assert len(outbox.messages) == 1
    assert await db.scalar(select(func.count()).select_from(Membership)) == 1


@pytest.mark.asyncio
async def test_federated_signup_verifies_pending_password_membership(db, outbox):
    pending = await create_membership(db, "half@acme.io", "half-pass-1", verified=False)
    await db.commit()

    result = await global_sessions.federated_signup(db, outbox, google_profile("half@acme.io"))

    assert result.is_new is False
    assert result.membership_id == pending.id
    refreshed = await db.get(Membership, pending.id)
    assert refreshed.is_email_verified is True
    assert refreshed.password_hash
    assert outbox.messages == []


@pytest.mark.asyncio
async def test_federated_login_matches_every_membership(db):
    t1, _ = await create_tenant(db, "Alpha")
    t2, _ = await create_tenant(db, "Beta")
    with_password = await create_membership(db, "both@acme.io", "alpha-pass-1", tenant=t1)
    sso_only = await create_membership(db, "both@acme.io", None, tenant=t2)
    await db.commit()

    auth = await global_sessions.federated_login(db, google_profile("BOTH@acme.io"))
    assert set(auth.matched_ids) == {str(with_password.id), str(sso_only.id)}
    assert all(c.password_matched for c in auth.candidates)

    session = await global_sessions.create_global_session(db, auth.email, auth.matched_ids)
    opened = await tenant_sessions.finalize(db, session.id, sso_only.id)
    assert opened.claims.tenant_id == t2.id
    assert opened.claims.membership_id == sso_only.id


@pytest.mark.asyncio
async def test_federated_login_needs_an_existing_membership(db):
    with pytest.raises(AuthenticationFailure) as exc:
        await global_sessions.federated_login(db, google_profile("stranger@acme.io"))
    assert exc.value.to_detail()["code"] == "invalid_credentials"


@pytest.mark.asyncio
async def test_federated_pending_membership_still_needs_onboarding(db, outbox):
    result = await global_sessions.federated_signup(db, outbox, google_profile("new@acme.io"))
    session = await global_sessions.create_global_session(db, result.auth.email, result.auth.matched_ids)

    with pytest.raises(OnboardingIncomplete):
        await tenant_sessions.finalize(db, session.id, result.membership_id)


# ---------------------------------------------------------
# API
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_google_signup_onboard_and_login(client, outbox, google):
    google.profiles["signup-token"] = google_profile("gina@acme.io")

    r = await client.post(f"{API}/auth/google/signup", json={"id_token": "signup-token"})
    assert r.status_code == 200, r.text
    assert "global_token=" in r.headers.get("set-cookie", "")
    body = r.json()
    assert body["is_new_user"] is True
    assert body["memberships"][0]["has_password"] is False
    assert body["memberships"][0]["password_matched"] is True

    r = await client.post(f"{API}/auth/onboarding/{body['membership_id']}", json={"tenant_name": "Gina Co"})
    assert r.status_code == 201, r.text

    r = await client.post(f"{API}/auth/google/login", json={"id_token": "signup-token"})
    assert r.status_code == 200, r.text
    login = r.json()
    assert [m["tenant_name"] for m in login["memberships"]] == ["Gina Co"]

    r = await client.post(
        f"{API}/auth/select",
        json={"membership_id": login["memberships"][0]["membership_id"]},
        headers={"X-Global-Token": login["global_token"]},
    )
    assert r.status_code == 200, r.text

    r = await client.get(f"{API}/auth/session", headers={"Authorization": f"Bearer {r.json()['token']}"})
    assert r.status_code == 200
    assert r.json()["is_owner"] is True

    # no password was ever set, so password login stays closed
    r = await client.post(f"{API}/auth/login", json={"email": "gina@acme.io", "password": "anything-1"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_google_rejects_unverified_tokens(client, google):
    r = await client.post(f"{API}/auth/google/login", json={"id_token": "forged"})
    assert r.status_code == 401
    assert r.json()["detail"]["code"] == "invalid_credentials"

    r = await client.post(f"{API}/auth/google/signup", json={"id_token": "forged"})
    assert r.status_code == 401
