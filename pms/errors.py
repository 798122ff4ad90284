"""Error taxonomy shared by the store, the importers and the entry points.

The HTTP layer maps these to status codes (400 / 404 / 409); the CLI turns
them into ``click.ClickException``.
"""


class PmsError(Exception):
    """Base class for expected, user-facing failures."""


class ValidationError(PmsError, ValueError):
    """Raised when an input (filter, field, file) is missing or malformed."""


class NotFoundError(PmsError, LookupError):
    """Raised when a booking, property or room id does not exist."""


class DuplicateReferenceError(PmsError):
    """Raised when an active booking already holds the reservation reference."""

    def __init__(self, reference: str):
        super().__init__(f"Reservation ID already exists: {reference}")
        self.reference = reference
