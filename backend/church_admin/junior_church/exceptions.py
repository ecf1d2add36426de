class JuniorChurchError(Exception):
    """Base exception for check-in/check-out business rule violations."""
    status_code = 400


class ValidationError(JuniorChurchError):
    """Raised when input data is invalid or violates registry rules."""
    status_code = 400


class ChildNotFound(JuniorChurchError):
    """Raised when no active child owns a barcode or id."""
    status_code = 404


class AttendanceNotFound(JuniorChurchError):
    status_code = 404


class AlreadyPickedUp(JuniorChurchError):
    """Raised on a second pickup for the same child on the same day."""
    status_code = 409


class InvalidTransition(JuniorChurchError):
    """Raised when the declared action does not match the child's state for the day."""
    status_code = 409


class ConcurrencyConflict(JuniorChurchError):
    """Raised when another station wrote the same child/day between read and write."""
    status_code = 409


class OverrideNotVerified(JuniorChurchError):
    """An override reached the engine without an acting staff identity."""
    status_code = 500
