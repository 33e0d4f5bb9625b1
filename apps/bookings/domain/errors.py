"""Domain error codes for the bookings module."""

from dataclasses import dataclass
from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    AVAILABILITY_CONFLICT = "AVAILABILITY_CONFLICT"
    PAYMENT_NOT_SUCCESSFUL = "PAYMENT_NOT_SUCCESSFUL"
    BOOKING_NOT_FOUND = "BOOKING_NOT_FOUND"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    GATEWAY_ERROR = "GATEWAY_ERROR"


@dataclass(eq=False)
class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode
    message: str

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class BookingValidationError(DomainError):
    """Raised when a reservation request is malformed."""

    def __init__(self, errors: dict[str, str]) -> None:
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message="Invalid reservation request",
        )
        self.errors = errors


class AvailabilityConflictError(DomainError):
    """Raised when the room is already taken for the requested dates."""

    def __init__(self, resource_id: str) -> None:
        super().__init__(
            code=ErrorCode.AVAILABILITY_CONFLICT,
            message="Room is not available for the selected dates",
        )
        self.resource_id = resource_id


class PaymentNotSuccessfulError(DomainError):
    """Raised when the gateway has not (yet) reported a successful payment."""

    def __init__(self, payment_ref: str) -> None:
        super().__init__(
            code=ErrorCode.PAYMENT_NOT_SUCCESSFUL,
            message="Payment not successful",
        )
        self.payment_ref = payment_ref


class BookingNotFoundError(DomainError):
    """Raised when a booking or payment reference is unknown."""

    def __init__(self, lookup: str) -> None:
        super().__init__(
            code=ErrorCode.BOOKING_NOT_FOUND,
            message="Booking not found",
        )
        self.lookup = lookup


class InvalidTransitionError(DomainError):
    """Raised when a status change is not allowed by the booking state machine."""

    def __init__(self, current: str, target: str, reason: str = "") -> None:
        super().__init__(
            code=ErrorCode.INVALID_TRANSITION,
            message=f"Cannot move booking from {current} to {target}"
            + (f": {reason}" if reason else ""),
        )
        self.current = current
        self.target = target


class PersistenceError(DomainError):
    """Raised when the booking store fails. Details stay in the logs."""

    def __init__(self, detail: str = "") -> None:
        super().__init__(
            code=ErrorCode.PERSISTENCE_ERROR,
            message="Internal storage error",
        )
        self.detail = detail


class GatewayError(DomainError):
    """Raised when the payment gateway cannot be reached or rejects the call."""

    def __init__(self, detail: str = "") -> None:
        super().__init__(
            code=ErrorCode.GATEWAY_ERROR,
            message="Payment provider error",
        )
        self.detail = detail
