import enum


class ErrorKind(str, enum.Enum):
    SHOP_CLOSED = "shop_closed"
    SLOT_UNAVAILABLE = "slot_unavailable"
    COOLDOWN_ACTIVE = "cooldown_active"
    DUPLICATE_ACTIVE_APPOINTMENT = "duplicate_active_appointment"
    INVALID_TRANSITION = "invalid_transition"
    NOT_FOUND = "not_found"
    VALIDATION_ERROR = "validation_error"
    STORE_UNAVAILABLE = "store_unavailable"


class BookingError(ValueError):
    """Base class for every declined booking operation.

    All subclasses are recoverable: the caller reports ``kind`` back to the
    user and no entity has been modified.
    """

    kind: ErrorKind = ErrorKind.VALIDATION_ERROR
    default_message = "Operation declined"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "error": self.kind.value}


class ShopClosedError(BookingError):
    kind = ErrorKind.SHOP_CLOSED
    default_message = "The shop is not accepting bookings right now"


class SlotUnavailableError(BookingError):
    kind = ErrorKind.SLOT_UNAVAILABLE
    default_message = "The requested slot is not available"


class CooldownActiveError(BookingError):
    kind = ErrorKind.COOLDOWN_ACTIVE
    default_message = "The client completed a visit too recently to book again"


class DuplicateActiveAppointmentError(BookingError):
    kind = ErrorKind.DUPLICATE_ACTIVE_APPOINTMENT
    default_message = "The client already has an active appointment"


class InvalidTransitionError(BookingError):
    kind = ErrorKind.INVALID_TRANSITION
    default_message = "The appointment cannot change status this way"


class NotFoundError(BookingError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Not found"


class BookingValidationError(BookingError):
    kind = ErrorKind.VALIDATION_ERROR
    default_message = "Invalid input"


class StoreUnavailableError(BookingError):
    kind = ErrorKind.STORE_UNAVAILABLE
    default_message = "The appointment store is unavailable, try again"
