"""
Payment Gateway Contract

The booking side only ever talks to a PaymentGateway. Implementations
map their provider's vocabulary onto PaymentOutcome and raise
GatewayError when the provider cannot be reached or rejects a call.
A declined charge is not an error: it comes back as a FAILED outcome.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class PaymentOutcome(Enum):
    SUCCEEDED = 'succeeded'
    PENDING = 'pending'
    FAILED = 'failed'


@dataclass(frozen=True)
class ChargeResult:
    """
    Result of an immediate charge attempt

    ``payment_ref`` is None only for a decline that left no charge behind.
    """
    payment_ref: str | None
    outcome: PaymentOutcome
    client_secret: str | None = None


class PaymentGateway(ABC):
    """External payment processor"""

    @abstractmethod
    def create_payer(self, payment_method_ref: str) -> str:
        """Register a payer for the payment method and return the payer reference"""

    @abstractmethod
    def charge_now(
        self,
        payer_ref: str,
        payment_method_ref: str,
        amount: Decimal,
        currency: str,
    ) -> ChargeResult:
        """Create and immediately confirm a charge"""

    @abstractmethod
    def get_outcome(self, payment_ref: str) -> PaymentOutcome:
        """Current outcome of a previously created charge"""
