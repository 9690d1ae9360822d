"""
api/routes/v1/profile.py -- The authenticated caller's own account.

Routes:
  GET   /api/v1/profile                  -- profile fields (no credentials, no counters)
  PATCH /api/v1/profile                  -- update name/email/phone/city/country
  POST  /api/v1/profile/change-password  -- requires the current password

Role is not writable here; ProfileUpdate forbids unknown fields, so sending
"role" is a 422.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import ChangePasswordRequest, MessageResponse, ProfileResponse, ProfileUpdate
from auth.dependencies import get_current_account_id
from auth.models import ProfileChanges

router = APIRouter()


@router.get("/profile", response_model=ProfileResponse)
def get_profile(request: Request, account_id: str = Depends(get_current_account_id)) -> ProfileResponse:
    return ProfileResponse.from_domain(request.app.state.accounts.get_profile(account_id))


@router.patch("/profile", response_model=ProfileResponse)
def update_profile(
    request: Request,
    body: ProfileUpdate,
    account_id: str = Depends(get_current_account_id),
) -> ProfileResponse:
    """Apply the non-null fields of the body. A taken email is a 422."""
    changes = ProfileChanges(**body.model_dump(exclude_none=True))
    profile = request.app.state.accounts.update_profile(account_id, changes)
    return ProfileResponse.from_domain(profile)


@router.post("/profile/change-password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    account_id: str = Depends(get_current_account_id),
) -> MessageResponse:
    """Wrong current password is a 409 wrong_password and does not count toward lockout."""
    result = request.app.state.accounts.change_password(account_id, body.old_password, body.new_password)
    return MessageResponse(msg=result.msg)
