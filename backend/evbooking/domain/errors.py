class ReservationError(Exception):
    """Base class for reservation engine failures."""


class InvalidWindowError(ReservationError):
    pass


class StationNotFoundError(ReservationError):
    pass


class OverlappingBookingError(ReservationError):
    pass


class CapacityExhaustedError(ReservationError):
    pass


class ReservationNotFoundError(ReservationError):
    pass


class AlreadyTerminalError(ReservationError):
    pass


class CancellationWindowClosedError(ReservationError):
    pass


class StoreUnavailableError(ReservationError):
    """Transient record store failure. Never retried by the engine."""


class ConflictError(ReservationError):
    """Lost race on a row lock or version check; safe to re-run check-then-commit."""


class TransactionAbortedError(ConflictError):
    """The store rolled back the whole transaction (deadlock victim); retrying in place is impossible."""
