"""Stripe implementation of the payment gateway."""

from __future__ import annotations

import logging
from decimal import Decimal

import stripe

from apps.bookings.domain.errors import GatewayError
from apps.payments.gateway import ChargeResult, PaymentGateway, PaymentOutcome
from shared.domain.value_objects import Money

logger = logging.getLogger(__name__)


class StripePaymentGateway(PaymentGateway):
    """
    Customers + PaymentIntents confirmed on creation.

    PaymentIntent status mapping:
        succeeded                                   -> SUCCEEDED
        canceled                                    -> FAILED
        requires_payment_method after a failed try  -> FAILED
        anything else (processing, requires_action) -> PENDING

    A CardError raised while confirming is a decline: FAILED, carrying the
    declined intent's id when Stripe returns one.
    """

    def __init__(self, api_key: str | None, *, return_url: str | None = None):
        self._api_key = api_key
        self._return_url = return_url

    def create_payer(self, payment_method_ref: str) -> str:
        customer = self._call(
            stripe.Customer.create,
            payment_method=payment_method_ref,
            invoice_settings={"default_payment_method": payment_method_ref},
        )
        return customer["id"]

    def charge_now(
        self,
        payer_ref: str,
        payment_method_ref: str,
        amount: Decimal,
        currency: str,
    ) -> ChargeResult:
        money = Money(amount, currency)
        params = {
            "amount": money.to_minor_units(),
            "currency": money.currency.lower(),
            "customer": payer_ref,
            "payment_method": payment_method_ref,
            "confirm": True,
        }
        if self._return_url:
            params["return_url"] = self._return_url

        try:
            intent = self._call(stripe.PaymentIntent.create, raise_declines=True, **params)
        except stripe.CardError as exc:
            return self._declined(exc)
        outcome = self.outcome_for(intent)

        logger.info(f"Stripe payment intent {intent['id']} created with status {intent.get('status')}")
        return ChargeResult(
            payment_ref=intent["id"],
            outcome=outcome,
            client_secret=intent.get("client_secret"),
        )

    def get_outcome(self, payment_ref: str) -> PaymentOutcome:
        intent = self._call(stripe.PaymentIntent.retrieve, payment_ref)
        return self.outcome_for(intent)

    @staticmethod
    def outcome_for(intent) -> PaymentOutcome:
        status = intent.get("status")
        if status == "succeeded":
            return PaymentOutcome.SUCCEEDED
        if status == "canceled":
            return PaymentOutcome.FAILED
        if status == "requires_payment_method" and intent.get("last_payment_error"):
            return PaymentOutcome.FAILED
        return PaymentOutcome.PENDING

    @staticmethod
    def _declined(exc) -> ChargeResult:
        # A decline after the intent exists still leaves a charge to record
        intent = getattr(exc.error, "payment_intent", None)
        payment_ref = intent["id"] if intent else None

        logger.warning(f"Stripe declined payment intent {payment_ref}: {exc.code} {exc}")
        return ChargeResult(payment_ref=payment_ref, outcome=PaymentOutcome.FAILED)

    def _call(self, method, *args, raise_declines=False, **params):
        if not self._api_key:
            logger.error("Stripe secret key missing (STRIPE_SECRET_KEY)")
            raise GatewayError("Stripe secret key not configured")

        try:
            return method(*args, api_key=self._api_key, **params)
        except stripe.StripeError as exc:
            if raise_declines and isinstance(exc, stripe.CardError):
                raise
            name = getattr(method, "__qualname__", repr(method))
            logger.error(f"Stripe call {name} failed: {exc}", exc_info=True)
            raise GatewayError(str(exc)) from exc
