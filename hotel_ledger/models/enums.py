import enum


class RoomType(str, enum.Enum):
    SINGLE = "SINGLE"
    DOUBLE = "DOUBLE"
    TWIN = "TWIN"
    SUITE = "SUITE"
    DELUXE = "DELUXE"
    FAMILY = "FAMILY"


class RoomStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    OCCUPIED = "OCCUPIED"
    MAINTENANCE = "MAINTENANCE"


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"  # legacy spelling of CONFIRMED; never written by the service
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


PAID_STATUSES = frozenset({BookingStatus.PAID, BookingStatus.CONFIRMED})
# Statuses in which a booking holds its room for [check_in, check_out).
HOLDING_STATUSES = frozenset({
    BookingStatus.PENDING, BookingStatus.PAID, BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN,
})
TERMINAL_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.REFUNDED})


class PaymentMethod(str, enum.Enum):
    CARD = "CARD"  # charged through the gateway
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


# Money actually taken from the guest; a REFUNDED payment was captured first.
CAPTURED_PAYMENT_STATUSES = frozenset({PaymentStatus.COMPLETED, PaymentStatus.REFUNDED})


class RefundMethod(str, enum.Enum):
    STRIPE = "STRIPE"
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    CREDIT_TO_ACCOUNT = "CREDIT_TO_ACCOUNT"


SYNCHRONOUS_REFUND_METHODS = frozenset({
    RefundMethod.CASH, RefundMethod.BANK_TRANSFER, RefundMethod.CREDIT_TO_ACCOUNT,
})


class RefundStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


OUTSTANDING_REFUND_STATUSES = frozenset({RefundStatus.PENDING, RefundStatus.PROCESSING})


class WebhookEventStatus(str, enum.Enum):
    PROCESSED = "PROCESSED"
    IGNORED = "IGNORED"
    FAILED = "FAILED"
