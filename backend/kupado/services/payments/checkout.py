"""
Stripe hosted checkout for coin packages.

One line item per session; the webhook that credits coins after payment
lives with the storefront, not here.
"""
import os
from typing import Optional

import stripe

from kupado.core.errors import ConfigurationError, InvalidRequestError, PaymentProviderError
from kupado.core.logging import get_logger
from kupado.models.requests import CheckoutRequest

logger = get_logger(__name__)

DEFAULT_SITE_URL = "http://localhost:3000"
PRODUCT_DESCRIPTION = "Kupado coins for promoting ads"


def product_name(coins: int, bonus_coins: Optional[int]) -> str:
    name = f"{coins} coins"
    if bonus_coins and bonus_coins > 0:
        name += f" + {bonus_coins} bonus"
    return name


def validate_checkout(request: CheckoutRequest) -> None:
    if (
        not request.package_id
        or not request.user_id
        or not request.coins
        or request.coins <= 0
        or request.price is None
        or request.price < 0
    ):
        raise InvalidRequestError("Missing required fields")


def create_checkout_session(request: CheckoutRequest) -> str:
    """
    Create a Stripe Checkout session and return its id.

    Raises:
        InvalidRequestError: package, user, coins or price missing
        ConfigurationError: STRIPE_SECRET_KEY not set (checked before any Stripe call)
        PaymentProviderError: Stripe rejected the request
    """
    validate_checkout(request)

    secret_key = os.getenv("STRIPE_SECRET_KEY", "").strip()
    if not secret_key:
        raise ConfigurationError("Stripe is not configured")

    site_url = os.getenv("SITE_URL", DEFAULT_SITE_URL).rstrip("/")
    bonus_coins = request.bonus_coins or 0

    try:
        session = stripe.checkout.Session.create(
            api_key=secret_key,
            payment_method_types=["card"],
            mode="payment",
            line_items=[
                {
                    "price_data": {
                        "currency": "eur",
                        "product_data": {
                            "name": product_name(request.coins, bonus_coins),
                            "description": PRODUCT_DESCRIPTION,
                        },
                        "unit_amount": int(round(request.price * 100)),
                    },
                    "quantity": 1,
                }
            ],
            success_url=f"{site_url}/mince?success=true",
            cancel_url=f"{site_url}/mince?canceled=true",
            metadata={
                "user_id": request.user_id,
                "package_id": request.package_id,
                "coins": str(request.coins),
                "bonus_coins": str(bonus_coins),
            },
        )
    except stripe.StripeError as e:
        logger.error(
            "checkout_session_failed",
            package_id=request.package_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise PaymentProviderError(getattr(e, "user_message", None) or "Stripe session creation failed") from e

    logger.info("checkout_session_created", package_id=request.package_id, session_id=session.id)
    return session.id
