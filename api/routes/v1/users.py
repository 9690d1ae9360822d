"""
api/routes/v1/users.py -- Account administration (admin role only).

Routes:
  GET   /api/v1/users            -- all accounts, redacted
  GET   /api/v1/users/{id}       -- one account, redacted
  POST  /api/v1/users            -- create an account of any role; 201
  PATCH /api/v1/users/{id}       -- edit profile fields or role; a taken email is 422

Every route depends on require_roles("admin"): a missing token is 401, a bad
token 409, and a valid token for a non-admin 401 unauthorized.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import UserCreate, UserSummary, UserUpdate
from auth.dependencies import require_roles
from auth.models import Account, AccountChanges

router = APIRouter()

_require_admin = require_roles("admin")


@router.get("/users", response_model=list[UserSummary], response_model_exclude_none=True)
def list_users(request: Request, admin: Account = Depends(_require_admin)) -> list[UserSummary]:
    return [UserSummary.from_domain(s) for s in request.app.state.accounts.list_accounts()]


@router.get("/users/{account_id}", response_model=UserSummary, response_model_exclude_none=True)
def get_user(request: Request, account_id: str, admin: Account = Depends(_require_admin)) -> UserSummary:
    return UserSummary.from_domain(request.app.state.accounts.get_account(account_id))


@router.post("/users", response_model=UserSummary, response_model_exclude_none=True, status_code=201)
def create_user(request: Request, body: UserCreate, admin: Account = Depends(_require_admin)) -> UserSummary:
    """Create an account on someone's behalf. Duplicate emails are a 422."""
    summary = request.app.state.accounts.create_account(
        body.name,
        body.email,
        body.password,
        body.role.value,
        phone=body.phone,
        city=body.city,
        country=body.country,
    )
    return UserSummary.from_domain(summary)


@router.patch("/users/{account_id}", response_model=UserSummary, response_model_exclude_none=True)
def update_user(
    request: Request,
    account_id: str,
    body: UserUpdate,
    admin: Account = Depends(_require_admin),
) -> UserSummary:
    """Apply the non-null fields of the body to any account."""
    changes = AccountChanges(**body.model_dump(mode="json", exclude_none=True))
    return UserSummary.from_domain(request.app.state.accounts.update_account(account_id, changes))
