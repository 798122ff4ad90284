"""Stay ledger — bookings, occupancy, income and payout reconciliation."""

from .config import Settings, load_settings
from .errors import DuplicateReferenceError, NotFoundError, PmsError, ValidationError
from .filters import BookingFilter, DateRange, build_where
from .infra import connect, init_infra
from .models import (
    Booking,
    BookingStatus,
    LedgerRow,
    NewBooking,
    PaymentMethod,
    Platform,
)
from .reconcile import MatchStatus, ReconciliationResult, reconcile, run_reconciliation
from .store import BookingStore

__all__ = [
    # Configuration
    "Settings",
    "load_settings",
    # Errors
    "PmsError",
    "ValidationError",
    "NotFoundError",
    "DuplicateReferenceError",
    # Storage
    "connect",
    "init_infra",
    "BookingStore",
    "BookingFilter",
    "DateRange",
    "build_where",
    # Models
    "Booking",
    "BookingStatus",
    "LedgerRow",
    "NewBooking",
    "PaymentMethod",
    "Platform",
    # Reconciliation
    "MatchStatus",
    "ReconciliationResult",
    "reconcile",
    "run_reconciliation",
]
