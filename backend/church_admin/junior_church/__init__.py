from .exceptions import (
    JuniorChurchError,
    ValidationError,
    ChildNotFound,
    AttendanceNotFound,
    AlreadyPickedUp,
    InvalidTransition,
    ConcurrencyConflict,
    OverrideNotVerified,
)
from .verification import (
    DropoffRequest,
    PickupRequest,
    ScanOutcome,
    ScanResult,
    parse_scan_request,
    process_scan,
    scan,
    admin_checkout,
    FamilyCheckinResult,
    checkin_children,
)
