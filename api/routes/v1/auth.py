"""
api/routes/v1/auth.py -- Credential, token and code-workflow REST endpoints.

Routes:
  POST /api/v1/auth/register   -- create account, returns {token, user}; 201
  POST /api/v1/auth/login      -- password login with lockout, returns {token, user}
  GET  /api/v1/auth/token      -- refresh: Bearer token in, new {token} out
  POST /api/v1/auth/verify     -- consume an email verification code
  POST /api/v1/auth/forgot     -- create a password reset request
  POST /api/v1/auth/reset      -- consume a reset code and set a new password

Security:
  [H2] login and forgot are rate-limited per client IP (Settings.login_rate_limit).
  [M5] Cache-Control: no-store on every response that carries a token.
  Failures are raised as AuthError and rendered by the handler in api/main.py:
  blocked / wrong password / bad token -> 409, unknown account or code -> 404.
"""

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import credential_rate_limit, limiter
from api.models import (
    AuthResponse,
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    UserSummary,
    VerifyRequest,
    VerifyResponse,
)
from auth.dependencies import bearer_token, request_meta
from auth.models import LoginResult, RequestMeta

# Auth policy: every route here is public. /auth/token authenticates with the
# bearer token it refreshes.
router = APIRouter()


@router.post("/auth/register", response_model=AuthResponse, response_model_exclude_none=True, status_code=201)
def register(request: Request, response: Response, body: RegisterRequest) -> AuthResponse:
    """Register a new user-role account and sign it in.

    Duplicate emails fail with 422 email_already_exists.
    """
    result = request.app.state.accounts.register(body.name, body.email, body.password)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return _auth_response(result)


@router.post("/auth/login", response_model=AuthResponse, response_model_exclude_none=True)
@limiter.limit(credential_rate_limit)  # [H2]
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    meta: RequestMeta = Depends(request_meta),
) -> AuthResponse:
    """Authenticate with email and password.

    Unlike a generic bad_credentials reply, the caller is told which check
    failed: user_does_not_exist (404), wrong_password (409) or blocked_user
    (409). Wrong passwords count toward the lockout.
    """
    result = request.app.state.verifier.login(body.email, body.password, meta)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return _auth_response(result)


@router.get("/auth/token", response_model=TokenResponse)
def refresh_token(
    request: Request,
    response: Response,
    token: str = Depends(bearer_token),
    meta: RequestMeta = Depends(request_meta),
) -> TokenResponse:
    """Exchange a valid bearer token for a fresh one. No password involved."""
    new_token = request.app.state.tokens.refresh(token, meta)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return TokenResponse(token=new_token)


@router.post("/auth/verify", response_model=VerifyResponse)
def verify(request: Request, body: VerifyRequest) -> VerifyResponse:
    """Mark the account holding this code as verified.

    Already-verified accounts answer exactly like unknown codes (404
    not_found_or_already_verified).
    """
    result = request.app.state.verification.verify(body.id)
    return VerifyResponse(email=result.email, verified=result.verified)


@router.post("/auth/forgot", response_model=ForgotPasswordResponse, response_model_exclude_none=True)
@limiter.limit(credential_rate_limit)  # [H2]
def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    meta: RequestMeta = Depends(request_meta),
) -> ForgotPasswordResponse:
    """Create a reset request. The code is returned only outside production."""
    result = request.app.state.resets.request_reset(body.email, meta)
    return ForgotPasswordResponse(email=result.email, msg=result.msg, verification=result.verification)


@router.post("/auth/reset", response_model=MessageResponse)
def reset_password(
    request: Request,
    body: ResetPasswordRequest,
    meta: RequestMeta = Depends(request_meta),
) -> MessageResponse:
    """Consume a reset code and set a new password. A code works once."""
    result = request.app.state.resets.reset_password(body.id, body.password, meta)
    return MessageResponse(msg=result.msg)


def _auth_response(result: LoginResult) -> AuthResponse:
    return AuthResponse(token=result.token, user=UserSummary.from_domain(result.user))
