from dataclasses import asdict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from socialboost.db import get_db
from socialboost.deps import billing_provider, get_current_user
from socialboost.models import User
from socialboost.schemas import EntitlementResponse, SelectPlanRequest, SelectPlanResponse
from socialboost.services.billing import BillingProvider
from socialboost.services.subscriptions import cancel_plan, refresh_subscription_status, select_plan
from socialboost.services.usage import get_entitlement_summary


router = APIRouter(prefix='/billing', tags=['billing'])


@router.get('/entitlement', response_model=EntitlementResponse)
def entitlement(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return asdict(get_entitlement_summary(db, user.id))


@router.post('/subscription', response_model=SelectPlanResponse)
def change_plan(
    payload: SelectPlanRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    billing: BillingProvider = Depends(billing_provider),
):
    result = select_plan(db, billing, user.id, payload.tier)
    return {'outcome': result.outcome, **asdict(result)}


@router.post('/subscription/cancel')
def cancel(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    billing: BillingProvider = Depends(billing_provider),
):
    canceled = cancel_plan(db, billing, user.id)
    return {'success': True, 'subscription_id': canceled.subscription_id}


@router.post('/subscription/refresh', response_model=EntitlementResponse)
def refresh(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    billing: BillingProvider = Depends(billing_provider),
):
    refresh_subscription_status(db, billing, user.id)
    return asdict(get_entitlement_summary(db, user.id))
