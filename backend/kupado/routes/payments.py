"""
Checkout endpoint.

POST /api/create-checkout-session
"""
from fastapi import APIRouter

from kupado.core.logging import set_user_id
from kupado.models.requests import CheckoutRequest
from kupado.models.responses import CheckoutResponse
from kupado.services.payments.checkout import create_checkout_session

router = APIRouter()


# Sync handler: the Stripe client blocks, FastAPI runs it in the threadpool.
@router.post("/create-checkout-session", response_model=CheckoutResponse)
def create_checkout(body: CheckoutRequest):
    if body.user_id:
        set_user_id(body.user_id)
    session_id = create_checkout_session(body)
    return CheckoutResponse(session_id=session_id)
