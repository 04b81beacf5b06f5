# backend/tenantgate/api/v1/auth.py
from __future__ import annotations

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.api.deps.auth import (
    client_meta,
    get_auth_context,
    get_global_context,
    read_global_token,
    read_tenant_token,
)
from tenantgate.auth.context import AuthContext, GlobalContext
from tenantgate.core import global_sessions, password_reset, registration, tenant_sessions
from tenantgate.core.clock import utcnow
from tenantgate.core.config import settings
from tenantgate.core.errors import SessionInvalid
from tenantgate.core.global_sessions import AuthResult, MembershipCandidate
from tenantgate.core.provisioning import provision_tenant
from tenantgate.core.registration import SignupStatus
from tenantgate.core.security import (
    TOKEN_TYPE_GLOBAL,
    TOKEN_TYPE_TENANT,
    create_global_token,
    decode_token,
)
from tenantgate.core.session_context import load_session_context
from tenantgate.db.session import get_db
from tenantgate.schemas.auth import (
    AckResponse,
    AssignedRoleOut,
    BranchOut,
    ChangePasswordRequest,
    EmailRequest,
    FederatedSignInRequest,
    FederatedSignupResponse,
    LoginRequest,
    LoginResponse,
    MembershipCandidateOut,
    OnboardingRequest,
    OnboardingResponse,
    ResetPasswordRequest,
    SelectTenantRequest,
    SessionResponse,
    SignupRequest,
    SignupResponse,
    TenantSelectionResponse,
    TenantSessionResponse,
    VerifyEmailResponse,
)
from tenantgate.services.email import EmailSender, get_email_sender
from tenantgate.services.identity_provider import IdTokenVerifier, get_id_token_verifier

router = APIRouter(prefix="/auth", tags=["auth"])

_SIGNUP_MESSAGES = {
    SignupStatus.VERIFICATION_SENT: "Registration successful! Please check your email to verify your account.",
    SignupStatus.VERIFICATION_RESENT: "Account exists but not verified. A new verification link has been sent.",
    SignupStatus.TENANT_PENDING: "Email verified. Please complete your organization setup.",
}

_GENERIC_RESEND = "If an account exists with this email, a verification link has been sent."
_GENERIC_RESET = "If an account exists with this email, a password reset link has been sent."


# ---------------------------------------------------------
# Cookies
# ---------------------------------------------------------
def _set_cookie(response: Response, name: str, value: str, expires_at: datetime) -> None:
    response.set_cookie(
        key=name,
        value=value,
        max_age=max(int((expires_at - utcnow()).total_seconds()), 0),
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite=settings.COOKIE_SAMESITE,
        path="/",
    )


def _clear_cookie(response: Response, name: str) -> None:
    response.delete_cookie(
        key=name,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite=settings.COOKIE_SAMESITE,
        path="/",
    )


def _candidate_out(c: MembershipCandidate) -> MembershipCandidateOut:
    return MembershipCandidateOut(
        membership_id=c.membership_id,
        tenant_id=c.tenant_id,
        tenant_name=c.tenant_name,
        is_owner=c.is_owner,
        is_email_verified=c.is_email_verified,
        has_password=c.has_password,
        password_matched=c.password_matched,
        roles=list(c.roles),
    )


# ---------------------------------------------------------
# Signup / verification
# ---------------------------------------------------------
@router.post("/signup", response_model=SignupResponse, status_code=201)
async def signup(
    payload: SignupRequest,
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
) -> SignupResponse:
    result = await registration.signup(db, sender, name=payload.name, email=payload.email, password=payload.password)
    return SignupResponse(
        status=result.status.value,
        email=result.email,
        membership_id=result.membership_id,
        message=_SIGNUP_MESSAGES[result.status],
    )


@router.get("/verify-email/{token}", response_model=VerifyEmailResponse)
async def verify_email(token: str, db: AsyncSession = Depends(get_db)) -> VerifyEmailResponse:
    membership = await registration.verify_email(db, token)
    return VerifyEmailResponse(membership_id=membership.id, email=membership.email)


@router.post("/resend-verification", response_model=AckResponse)
async def resend_verification(
    payload: EmailRequest,
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
) -> AckResponse:
    status = await registration.resend_verification(db, sender, payload.email)
    if status is SignupStatus.TENANT_PENDING:
        return AckResponse(status=status.value, message=_SIGNUP_MESSAGES[status])
    return AckResponse(message=_GENERIC_RESEND)


@router.post("/onboarding/{membership_id}", response_model=OnboardingResponse, status_code=201)
async def onboarding(
    membership_id: uuid.UUID,
    payload: OnboardingRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
) -> OnboardingResponse:
    ip, ua = client_meta(request)
    result = await provision_tenant(
        db,
        sender,
        membership_id,
        tenant_name=payload.tenant_name,
        hq_branch_name=payload.hq_branch_name,
        plan_id=payload.plan_id,
        ip_address=ip,
        user_agent=ua,
    )
    _set_cookie(response, settings.TENANT_COOKIE_NAME, result.opened.token, result.opened.claims.expires_at)
    return OnboardingResponse(
        tenant_id=result.tenant.id,
        tenant_name=result.tenant.name,
        branch_id=result.branch.id,
        membership_id=result.membership.id,
        email=result.membership.email,
        subscription_plan_id=result.subscription.plan_id,
        token=result.opened.token,
    )


# ---------------------------------------------------------
# Phase 1: credentials -> global session
# ---------------------------------------------------------
async def _open_global_session(
    db: AsyncSession,
    request: Request,
    response: Response,
    auth: AuthResult,
) -> LoginResponse:
    ip, ua = client_meta(request)
    session = await global_sessions.create_global_session(
        db, auth.email, auth.matched_ids, ip_address=ip, user_agent=ua
    )
    token = create_global_token(email=auth.email, global_session_id=session.id, expires_at=session.expires_at)
    _set_cookie(response, settings.GLOBAL_COOKIE_NAME, token, session.expires_at)
    return LoginResponse(
        email=auth.email,
        memberships=[_candidate_out(c) for c in auth.candidates],
        global_token=token,
        expires_at=session.expires_at,
    )


@router.post("/login", response_model=LoginResponse)
async def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    auth = await global_sessions.authenticate(db, payload.email, payload.password)
    return await _open_global_session(db, request, response, auth)


@router.post("/google/login", response_model=LoginResponse)
async def google_login(
    payload: FederatedSignInRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    verifier: IdTokenVerifier = Depends(get_id_token_verifier),
) -> LoginResponse:
    profile = await verifier.verify(payload.id_token)
    auth = await global_sessions.federated_login(db, profile)
    return await _open_global_session(db, request, response, auth)


@router.post("/google/signup", response_model=FederatedSignupResponse)
async def google_signup(
    payload: FederatedSignInRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
    verifier: IdTokenVerifier = Depends(get_id_token_verifier),
) -> FederatedSignupResponse:
    profile = await verifier.verify(payload.id_token)
    result = await global_sessions.federated_signup(db, sender, profile)
    opened = await _open_global_session(db, request, response, result.auth)
    return FederatedSignupResponse(
        **opened.model_dump(),
        membership_id=result.membership_id,
        is_new_user=result.is_new,
    )


@router.get("/tenant-select", response_model=TenantSelectionResponse)
async def tenant_selection(
    gctx: GlobalContext = Depends(get_global_context),
    db: AsyncSession = Depends(get_db),
) -> TenantSelectionResponse:
    candidates = await global_sessions.list_selectable_memberships(db, gctx.email, gctx.membership_ids)
    return TenantSelectionResponse(email=gctx.email, memberships=[_candidate_out(c) for c in candidates])


# ---------------------------------------------------------
# Phase 2: selection -> tenant session
# ---------------------------------------------------------
@router.post("/select", response_model=TenantSessionResponse)
async def select_tenant(
    payload: SelectTenantRequest,
    request: Request,
    response: Response,
    gctx: GlobalContext = Depends(get_global_context),
    db: AsyncSession = Depends(get_db),
) -> TenantSessionResponse:
    ip, ua = client_meta(request)
    opened = await tenant_sessions.finalize(
        db,
        gctx.global_session_id,
        payload.membership_id,
        ip_address=ip,
        user_agent=ua,
    )
    _set_cookie(response, settings.TENANT_COOKIE_NAME, opened.token, opened.claims.expires_at)
    return TenantSessionResponse(
        tenant_session_id=opened.claims.tenant_session_id,
        membership_id=opened.claims.membership_id,
        tenant_id=opened.claims.tenant_id,
        email=opened.claims.email,
        expires_at=opened.claims.expires_at,
        token=opened.token,
    )


@router.get("/session", response_model=SessionResponse)
async def current_session(
    ctx: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
) -> SessionResponse:
    sc = await load_session_context(db, ctx)
    return SessionResponse(
        tenant_session_id=ctx.session_id,
        membership_id=ctx.membership_id,
        tenant_id=ctx.tenant_id,
        tenant_name=sc.tenant_name,
        email=ctx.email,
        name=sc.name,
        is_owner=ctx.is_owner,
        tenant_wide=sc.tenant_wide,
        roles=[AssignedRoleOut.model_validate(r) for r in sc.roles],
        branches=[BranchOut.model_validate(b) for b in sc.branches],
    )


# ---------------------------------------------------------
# Logout (each phase clears only its own cookie)
# ---------------------------------------------------------
@router.post("/logout", response_model=AckResponse)
async def logout(
    response: Response,
    token: str | None = Depends(read_tenant_token),
    db: AsyncSession = Depends(get_db),
) -> AckResponse:
    try:
        payload = decode_token(token, TOKEN_TYPE_TENANT)
    except SessionInvalid:
        payload = {}
    await tenant_sessions.invalidate(db, payload.get("tenant_session_id"))
    _clear_cookie(response, settings.TENANT_COOKIE_NAME)
    return AckResponse(message="Logged out.")


@router.post("/logout-global", response_model=AckResponse)
async def logout_global(
    response: Response,
    token: str | None = Depends(read_global_token),
    db: AsyncSession = Depends(get_db),
) -> AckResponse:
    try:
        payload = decode_token(token, TOKEN_TYPE_GLOBAL)
    except SessionInvalid:
        payload = {}
    await global_sessions.invalidate_global_session(db, payload.get("global_session_id"))
    _clear_cookie(response, settings.GLOBAL_COOKIE_NAME)
    return AckResponse(message="Logged out of account selection.")


# ---------------------------------------------------------
# Passwords
# ---------------------------------------------------------
@router.post("/forgot-password", response_model=AckResponse)
async def forgot_password(
    payload: EmailRequest,
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
) -> AckResponse:
    await password_reset.forgot_password(db, sender, payload.email)
    return AckResponse(message=_GENERIC_RESET)


@router.post("/reset-password", response_model=AckResponse)
async def reset_password(
    payload: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
) -> AckResponse:
    await password_reset.reset_password(db, payload.token, payload.new_password, sender)
    return AckResponse(message="Password has been reset. Please login again.")


@router.post("/change-password", response_model=AckResponse)
async def change_password(
    payload: ChangePasswordRequest,
    ctx: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
) -> AckResponse:
    await password_reset.change_password(db, ctx, payload.current_password, payload.new_password, sender)
    return AckResponse(message="Password changed.")
