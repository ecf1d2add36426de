"""Pickup verification for junior church scans.

A scan either drops a child off (first scan of the day) or attempts a
pickup (scan while the day's event is open). Pickups by someone not on the
child's authorized list are never silently allowed or silently refused:
the caller gets ``requires_override`` and must confirm with ``override=True``,
which is only accepted together with the acting staff member's id.
"""
import enum
import logging
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from church_admin.extensions import db
from church_admin.models import AttendanceEvent, AttendanceStatusEnum, AuditLog, Child
from utils.audit import log_event
from utils.dates import now
from . import ledger, registry
from .exceptions import (
    AlreadyPickedUp,
    ChildNotFound,
    ConcurrencyConflict,
    InvalidTransition,
    OverrideNotVerified,
    ValidationError,
)

logger = logging.getLogger(__name__)

DROPOFF = "dropoff"
PICKUP = "pickup"
ADMIN_CHECKOUT = "admin_checkout"

# Matches the width of dropoff_by and picked_up_by.
MAX_NAME_LENGTH = 160
MAX_NOTES_LENGTH = 500


@dataclass(frozen=True)
class DropoffRequest:
    barcode_id: str
    person_name: str
    action: str = field(default=DROPOFF, init=False)
    override: bool = field(default=False, init=False)


@dataclass(frozen=True)
class PickupRequest:
    barcode_id: str
    person_name: str
    override: bool = False
    action: str = field(default=PICKUP, init=False)


def parse_scan_request(data):
    """Turn a POST body into a DropoffRequest or PickupRequest."""
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    barcode_id = data.get("barcodeId")
    action = data.get("action")
    person_name = data.get("personName")

    if not barcode_id or not action or not isinstance(person_name, str) or not person_name.strip():
        raise ValidationError("Barcode ID, action, and person name are required")
    if not isinstance(barcode_id, str):
        raise ValidationError("Barcode ID must be a string")
    person_name = person_name.strip()
    if len(person_name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Person name must be at most {MAX_NAME_LENGTH} characters")

    override = data.get("override", False)
    if not isinstance(override, bool):
        raise ValidationError("override must be true or false")

    if action == DROPOFF:
        if override:
            raise ValidationError("override only applies to pickup")
        return DropoffRequest(barcode_id=barcode_id, person_name=person_name)
    if action == PICKUP:
        return PickupRequest(barcode_id=barcode_id, person_name=person_name, override=override)

    raise ValidationError('Invalid action. Must be "dropoff" or "pickup"')


class ScanOutcome(enum.Enum):
    success = "success"
    requires_override = "requires_override"


@dataclass(frozen=True)
class ScanResult:
    outcome: ScanOutcome
    action: str
    child: Child
    event: AttendanceEvent
    message: str
    authorized_persons: tuple = ()
    was_override: bool = False

    @property
    def success(self):
        return self.outcome is ScanOutcome.success

    @property
    def requires_override(self):
        return self.outcome is ScanOutcome.requires_override


def _commit():
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise


def _audit_row(staff_id, action, ip):
    db.session.add(AuditLog(user_id=staff_id, action=action[:255], ip_address=ip))


def process_scan(child, on_date, actor_name, override=False, staff_id=None, expected_action=None, ip=None):
    """
    Decide and apply the transition for one scan of ``child`` on ``on_date``.

    none -> dropped_off on the first scan, dropped_off -> picked_up on the
    next one. ``expected_action`` is the action the station declared; it must
    agree with the stored state or nothing is written.
    """
    actor = (actor_name or "").strip()
    if not actor:
        raise ValidationError("personName is required")
    if len(actor) > MAX_NAME_LENGTH:
        raise ValidationError(f"personName must be at most {MAX_NAME_LENGTH} characters")
    if override and not staff_id:
        raise OverrideNotVerified("An override requires the acting staff member's identity")
    if not child.is_active:
        raise ChildNotFound("Invalid barcode or inactive member")

    event = ledger.event_for(child.id, on_date)

    if event is None:
        if expected_action == PICKUP:
            raise InvalidTransition(f"{child.full_name} was not checked in today")

        event = ledger.record_dropoff(child, on_date, actor, now(), staff_id=staff_id)
        _commit()
        log_event("CHILD_DROPOFF", user_id=staff_id, ip=ip,
                  description=f"{child.barcode_id} dropped off by {actor}")
        return ScanResult(
            outcome=ScanOutcome.success,
            action=DROPOFF,
            child=child,
            event=event,
            message=f"{child.full_name} checked in successfully",
        )

    if event.status == AttendanceStatusEnum.no_show:
        raise InvalidTransition(f"{child.full_name} is marked as a no-show today")

    if event.status == AttendanceStatusEnum.picked_up:
        raise AlreadyPickedUp(f"{child.full_name} has already been picked up today")

    if expected_action == DROPOFF:
        raise InvalidTransition(f"{child.full_name} has already been checked in today")

    if registry.is_authorized_releaser(child, actor):
        ledger.record_pickup(event, actor, now(), override_used=False)
        _commit()
        log_event("CHILD_PICKUP", user_id=staff_id, ip=ip,
                  description=f"{child.barcode_id} picked up by {actor}")
        return ScanResult(
            outcome=ScanOutcome.success,
            action=PICKUP,
            child=child,
            event=event,
            message=f"{child.full_name} checked out successfully",
        )

    if not override:
        log_event("PICKUP_OVERRIDE_REQUIRED", user_id=staff_id, ip=ip, level="WARNING",
                  description=f"{actor} is not authorized for {child.barcode_id}")
        return ScanResult(
            outcome=ScanOutcome.requires_override,
            action=PICKUP,
            child=child,
            event=event,
            message=f"{actor} is not authorized to pick up {child.full_name}",
            authorized_persons=tuple(child.authorized_releasers or ()),
        )

    ledger.record_pickup(
        event, actor, now(),
        override_used=True,
        verified_by=staff_id,
        notes=f"OVERRIDE: Picked up by unauthorized person - {actor}"[:MAX_NOTES_LENGTH],
    )
    _audit_row(staff_id, f"PICKUP_OVERRIDE: child={child.id} event={event.id} by={actor}", ip)
    _commit()
    log_event("PICKUP_OVERRIDE", user_id=staff_id, ip=ip, level="WARNING",
              description=f"{child.barcode_id} released to unlisted person {actor}")
    return ScanResult(
        outcome=ScanOutcome.success,
        action=PICKUP,
        child=child,
        event=event,
        message=f"{child.full_name} checked out successfully",
        was_override=True,
    )


def scan(request, on_date, staff_id, ip=None, attempts=None):
    """
    Resolve the barcode and run process_scan, repeating the whole
    read-decide-write cycle when another station won a race.
    """
    if attempts is None:
        attempts = current_app.config.get("SCAN_RETRY_ATTEMPTS", 2)
    attempts = max(1, attempts)

    for attempt in range(1, attempts + 1):
        child = registry.resolve(request.barcode_id)
        try:
            return process_scan(
                child, on_date, request.person_name,
                override=request.override,
                staff_id=staff_id,
                expected_action=request.action,
                ip=ip,
            )
        except ConcurrencyConflict:
            if attempt >= attempts:
                log_event("SCAN_CONFLICT", user_id=staff_id, ip=ip, level="WARNING",
                          description=f"{request.barcode_id} conflicted {attempts} times")
                raise
            logger.info("Retrying scan of %s after a concurrent write", request.barcode_id)


def admin_checkout(event_id, picked_up_by, notes=None, staff_id=None, ip=None):
    """Close an open event by id when the barcode is not available."""
    if not staff_id:
        raise OverrideNotVerified("Admin checkout requires the acting staff member's identity")

    name = (picked_up_by or "").strip() if isinstance(picked_up_by, str) else ""
    if not name:
        raise ValidationError("Attendance ID and pickup person are required")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Pickup person must be at most {MAX_NAME_LENGTH} characters")
    if notes is not None and not isinstance(notes, str):
        raise ValidationError("notes must be text")

    event = ledger.get_event(event_id)
    if event.status == AttendanceStatusEnum.picked_up:
        raise AlreadyPickedUp("Child has already been picked up")
    if event.status != AttendanceStatusEnum.dropped_off:
        raise InvalidTransition("Only children who are checked in can be checked out")

    child = event.child
    authorized = registry.is_authorized_releaser(child, name)
    note = f"ADMIN CHECKOUT: {notes.strip()}" if notes and notes.strip() else "ADMIN CHECKOUT: Manual checkout by staff"

    ledger.record_pickup(
        event, name, now(),
        override_used=not authorized,
        verified_by=staff_id,
        notes=note[:MAX_NOTES_LENGTH],
    )
    _audit_row(staff_id, f"ADMIN_CHECKOUT: child={child.id} event={event.id} by={name}", ip)
    _commit()
    log_event("ADMIN_CHECKOUT", user_id=staff_id, ip=ip, level="WARNING",
              description=f"{child.barcode_id} checked out manually to {name}")
    return ScanResult(
        outcome=ScanOutcome.success,
        action=ADMIN_CHECKOUT,
        child=child,
        event=event,
        message=f"Manual checkout completed for {child.full_name}",
        was_override=not authorized,
    )


@dataclass(frozen=True)
class FamilyCheckinResult:
    checked_in: tuple = ()
    already_checked_in: tuple = ()
    skipped: tuple = ()

    @property
    def message(self):
        parts = []
        if self.checked_in:
            parts.append(f"Successfully checked in {len(self.checked_in)} child(ren).")
        if self.already_checked_in:
            parts.append(f"{len(self.already_checked_in)} child(ren) already checked in today.")
        return " ".join(parts) or "Check-in completed"


def _parse_child_ids(child_ids):
    if not isinstance(child_ids, list) or not child_ids:
        raise ValidationError("At least one child must be selected")
    ids = []
    for value in child_ids:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError("childrenIds must be a list of member ids")
        if value not in ids:
            ids.append(value)
    return ids


def checkin_children(parent_phone, child_ids, on_date, dropoff_by, parent_id=None, ip=None):
    """
    Drop off several children for one parent in a single request.

    Only active children registered under ``parent_phone`` are considered;
    other ids are reported as skipped. Each drop-off commits on its own so a
    child another station checked in a moment earlier lands in
    ``already_checked_in`` without undoing the rest of the batch.
    """
    phone = (parent_phone or "").strip()
    if not phone:
        raise ValidationError("A parent phone number is required for family check-in")
    actor = (dropoff_by or "").strip()[:MAX_NAME_LENGTH]
    if not actor:
        raise ValidationError("The parent's name is required for family check-in")

    ids = _parse_child_ids(child_ids)
    family = {child.id: child for child in registry.children_for_parent(phone)}

    checked_in, already, skipped = [], [], []
    for child_id in ids:
        child = family.get(child_id)
        if child is None:
            skipped.append(child_id)
            continue

        event = ledger.event_for(child.id, on_date)
        if event is None:
            try:
                event = ledger.record_dropoff(child, on_date, actor, now(), staff_id=parent_id)
                event.notes = "Daily check-in via family app"
                _commit()
            except ConcurrencyConflict:
                event = ledger.event_for(child.id, on_date)
            else:
                log_event("CHILD_DROPOFF", user_id=parent_id, ip=ip,
                          description=f"{child.barcode_id} dropped off by {actor} (family check-in)")
                checked_in.append({
                    "child": child.summary(),
                    "dropoff_time": event.dropoff_time.isoformat(),
                })
                continue

        already.append({
            "child": child.summary(),
            "status": event.status.value,
            "dropoff_time": event.dropoff_time.isoformat() if event.dropoff_time else None,
        })

    if skipped:
        logger.warning("Family check-in for %s skipped ids not registered to it: %s", phone, skipped)
    return FamilyCheckinResult(tuple(checked_in), tuple(already), tuple(skipped))
