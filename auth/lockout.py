"""
auth/lockout.py -- Pure lockout decisions over an account's attempt state.

No I/O and no clock reads: callers pass `now` and the AuthPolicy so the same
inputs always give the same answer.

  is_blocked:        a block is active (block_expires is in the future).
  block_is_expired:  the account crossed the limit and the block has lapsed,
                     so its attempt budget should be reset.
  limit_exceeded:    the attempt count after a failure is over the limit.
  block_until:       the expiry to stamp when the limit is crossed.
"""

from __future__ import annotations

from datetime import datetime

from auth.models import Account
from core.config import AuthPolicy


def is_blocked(account: Account, now: datetime) -> bool:
    return account.block_expires > now


def block_is_expired(account: Account, now: datetime, policy: AuthPolicy) -> bool:
    return account.login_attempts > policy.attempt_limit and account.block_expires <= now


def limit_exceeded(attempts: int, policy: AuthPolicy) -> bool:
    return attempts > policy.attempt_limit


def block_until(now: datetime, policy: AuthPolicy) -> datetime:
    return now + policy.block_duration
