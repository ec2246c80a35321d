class BookingError(Exception):
    code = "BOOKING_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class StaleResourceError(BookingError):
    """The target resource stopped being available before the claim committed."""

    code = "STALE_RESOURCE"

    def __init__(self, resource_id: str, message: str = "Stall no longer available. Please choose another slot.") -> None:
        super().__init__(message)
        self.resource_id = resource_id


class CancellationWindowViolation(BookingError):
    code = "CANCELLATION_WINDOW"

    def __init__(self, window_hours: float, hours_remaining: float) -> None:
        super().__init__(
            f"Cannot cancel within {window_hours:g} hours of appointment "
            f"({max(0.0, hours_remaining):.1f}h remaining). Please contact support."
        )
        self.window_hours = window_hours
        self.hours_remaining = hours_remaining


class PersistenceFailure(BookingError):
    code = "PERSISTENCE_FAILURE"


class BookingNotFound(BookingError):
    code = "NOT_FOUND"


class InvalidBookingTransition(BookingError):
    code = "INVALID_TRANSITION"
