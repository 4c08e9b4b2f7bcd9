"""Domain errors and their HTTP rendering.

Every error the entitlement and billing core raises subclasses `AppError`,
which carries a stable machine-readable `code` and the HTTP status the API
answers with. Routes let these propagate; `register_error_handlers` turns them
into `{"error": {"code": ..., "message": ...}}` bodies.
"""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from starlette.requests import Request


logger = logging.getLogger(__name__)


class AppError(Exception):
    code = 'app_error'
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code


class InvalidTierError(AppError, ValueError):
    code = 'invalid_tier'
    status_code = 400

    def __init__(self, tier: object):
        super().__init__(f'Invalid subscription tier: {tier!r}')
        self.tier = tier


class UserNotFoundError(AppError, LookupError):
    code = 'user_not_found'
    status_code = 404

    def __init__(self, user_id: object):
        super().__init__(f'User not found: {user_id}')
        self.user_id = user_id


class NotFoundError(AppError, LookupError):
    code = 'not_found'
    status_code = 404


class InvalidPostError(AppError, ValueError):
    code = 'invalid_post'
    status_code = 422


class NoActiveSubscriptionError(AppError):
    code = 'no_active_subscription'
    status_code = 400

    def __init__(self, message: str = 'No active subscription found'):
        super().__init__(message)


class QuotaExceededError(AppError):
    """Monthly post allowance used up. Recoverable by upgrading the plan."""

    code = 'quota_exceeded'
    status_code = 403

    def __init__(self, reason: str, *, tier: str, used: int, allowance: int):
        super().__init__(f'{reason.capitalize()} ({used}/{allowance} on {tier}). Upgrade your plan to keep posting.')
        self.reason = reason
        self.tier = tier
        self.used = used
        self.allowance = allowance


class ConcurrentUpdateError(AppError):
    code = 'conflict'
    status_code = 409


class BillingError(AppError):
    """Base class for failures reported by the billing provider."""

    code = 'billing_error'
    status_code = 502


class BillingTransientError(BillingError):
    """Network, timeout or provider-side failure. Safe for the caller to retry."""

    code = 'billing_unavailable'
    status_code = 503

    def __init__(self, message: str = 'Billing provider is temporarily unavailable, please retry'):
        super().__init__(message)


class BillingRejectedError(BillingError):
    """Terminal rejection (card declined, invalid request). Message is shown verbatim."""

    code = 'billing_rejected'
    status_code = 402


class SocialPlatformError(AppError):
    code = 'social_platform_error'
    status_code = 502


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning('%s %s failed: %s (%s)', request.method, request.url.path, exc.message, exc.code)
        return JSONResponse(
            status_code=exc.status_code,
            content={'error': {'code': exc.code, 'message': exc.message}},
        )
