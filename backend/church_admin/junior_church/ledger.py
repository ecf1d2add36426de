"""Attendance ledger.

Events are inserted on drop-off and closed once on pickup; nothing else
writes to an existing event. Per child per day uniqueness is enforced by
the ``uq_attendance_child_date`` constraint, and pickups are conditional
updates, so two stations scanning the same child cannot both win.
"""
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from church_admin.extensions import db
from church_admin.models import AttendanceEvent, AttendanceStatusEnum, Child
from .exceptions import AttendanceNotFound, ConcurrencyConflict, InvalidTransition

logger = logging.getLogger(__name__)


def event_for(child_id, on_date):
    return AttendanceEvent.query.filter_by(child_id=child_id, date=on_date).first()


def get_event(event_id):
    event = db.session.get(AttendanceEvent, event_id)
    if not event:
        raise AttendanceNotFound("Attendance record not found")
    return event


def events_for_date(on_date, status=None, child_id=None):
    query = AttendanceEvent.query.filter(AttendanceEvent.date == on_date)
    if status:
        query = query.filter(AttendanceEvent.status == status)
    if child_id:
        query = query.filter(AttendanceEvent.child_id == child_id)
    return query.order_by(AttendanceEvent.dropoff_time.desc(), AttendanceEvent.id.desc()).all()


def open_events_for_date(on_date):
    return events_for_date(on_date, status=AttendanceStatusEnum.dropped_off)


def events_for_child(child_id):
    return (
        AttendanceEvent.query.filter_by(child_id=child_id)
        .order_by(AttendanceEvent.date.desc())
        .all()
    )


def history(child_id, start=None, end=None):
    query = AttendanceEvent.query.filter(AttendanceEvent.child_id == child_id)
    if start:
        query = query.filter(AttendanceEvent.date >= start)
    if end:
        query = query.filter(AttendanceEvent.date <= end)
    return query.order_by(AttendanceEvent.date.desc()).all()


def daily_summary(on_date):
    counts = dict(
        db.session.query(AttendanceEvent.status, func.count(AttendanceEvent.id))
        .filter(AttendanceEvent.date == on_date)
        .group_by(AttendanceEvent.status)
        .all()
    )
    overrides = (
        AttendanceEvent.query
        .filter(AttendanceEvent.date == on_date, AttendanceEvent.override_used.is_(True))
        .count()
    )
    active_children = Child.query.filter(Child.is_active.is_(True)).count()

    dropped_off = counts.get(AttendanceStatusEnum.dropped_off, 0)
    picked_up = counts.get(AttendanceStatusEnum.picked_up, 0)
    return {
        "date": on_date.isoformat(),
        "active_children": active_children,
        "checked_in_total": dropped_off + picked_up,
        "currently_checked_in": dropped_off,
        "picked_up": picked_up,
        "no_show": counts.get(AttendanceStatusEnum.no_show, 0),
        "overrides": overrides,
    }


def record_dropoff(child, on_date, dropoff_by, dropoff_time, staff_id=None):
    """Insert the day's event. Flushes so a concurrent insert surfaces here."""
    event = AttendanceEvent(
        child_id=child.id,
        date=on_date,
        status=AttendanceStatusEnum.dropped_off,
        dropoff_time=dropoff_time,
        dropoff_by=dropoff_by,
        checked_in_by=staff_id,
        override_used=False,
    )
    db.session.add(event)
    try:
        db.session.flush()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Concurrent drop-off for child %s on %s", child.id, on_date)
        raise ConcurrencyConflict(
            f"{child.full_name} was just checked in at another station, please scan again"
        ) from exc
    return event


def record_pickup(event, picked_up_by, pickup_time, override_used=False, verified_by=None, notes=None):
    """Close an open event. Only succeeds if the event is still open in the store."""
    updated = (
        AttendanceEvent.query
        .filter(
            AttendanceEvent.id == event.id,
            AttendanceEvent.status == AttendanceStatusEnum.dropped_off,
        )
        .update(
            {
                AttendanceEvent.status: AttendanceStatusEnum.picked_up,
                AttendanceEvent.pickup_time: pickup_time,
                AttendanceEvent.picked_up_by: picked_up_by,
                AttendanceEvent.override_used: override_used,
                AttendanceEvent.verified_by: verified_by,
                AttendanceEvent.notes: notes,
            },
            synchronize_session=False,
        )
    )
    if updated != 1:
        db.session.rollback()
        logger.warning("Concurrent pickup for attendance event %s", event.id)
        raise ConcurrencyConflict("This child was just checked out at another station, please scan again")

    db.session.expire(event)
    return event


def transitions(events):
    """Flatten stored events into the ordered transitions that produced them."""
    steps = []
    for event in sorted(events, key=lambda e: (e.date, e.child_id, e.id)):
        if event.status == AttendanceStatusEnum.no_show:
            steps.append({"child_id": event.child_id, "date": event.date, "status": "no_show"})
            continue
        steps.append({
            "child_id": event.child_id,
            "date": event.date,
            "status": "dropped_off",
            "time": event.dropoff_time,
            "by": event.dropoff_by,
        })
        if event.status == AttendanceStatusEnum.picked_up:
            steps.append({
                "child_id": event.child_id,
                "date": event.date,
                "status": "picked_up",
                "time": event.pickup_time,
                "by": event.picked_up_by,
                "override_used": event.override_used,
                "verified_by": event.verified_by,
            })
    return steps


def replay(steps):
    """
    Fold transitions into the final state per (child_id, date), enforcing
    none -> dropped_off -> picked_up. Raises InvalidTransition on any skip.
    """
    state = {}
    for step in steps:
        key = (step["child_id"], step["date"])
        current = state.get(key)
        status = step["status"]

        if status == "dropped_off":
            if current is not None:
                raise InvalidTransition(f"Second drop-off for {key}")
            state[key] = {
                "status": "dropped_off",
                "dropoff_time": step.get("time"),
                "dropoff_by": step.get("by"),
                "pickup_time": None,
                "picked_up_by": None,
                "override_used": False,
                "verified_by": None,
            }
        elif status == "picked_up":
            if current is None or current["status"] != "dropped_off":
                raise InvalidTransition(f"Pickup without an open drop-off for {key}")
            if step.get("override_used") and not step.get("verified_by"):
                raise InvalidTransition(f"Override without a verifying staff member for {key}")
            current.update({
                "status": "picked_up",
                "pickup_time": step.get("time"),
                "picked_up_by": step.get("by"),
                "override_used": bool(step.get("override_used")),
                "verified_by": step.get("verified_by"),
            })
        elif status == "no_show":
            if current is not None:
                raise InvalidTransition(f"No-show recorded after attendance for {key}")
            state[key] = {"status": "no_show"}
        else:
            raise InvalidTransition(f"Unknown status '{status}'")
    return state


def family_status(children, on_date):
    """Each child's event for the day plus counts, for the parent's view."""
    events = {}
    if children:
        rows = AttendanceEvent.query.filter(
            AttendanceEvent.date == on_date,
            AttendanceEvent.child_id.in_([c.id for c in children]),
        ).all()
        events = {e.child_id: e for e in rows}

    entries = []
    for child in children:
        event = events.get(child.id)
        entry = child.summary()
        entry["attendance"] = event.to_dict() if event else None
        entries.append(entry)

    checked_in = sum(1 for e in events.values() if e.status == AttendanceStatusEnum.dropped_off)
    picked_up = sum(1 for e in events.values() if e.status == AttendanceStatusEnum.picked_up)
    return {
        "date": on_date.isoformat(),
        "children": entries,
        "summary": {
            "total": len(children),
            "checked_in": checked_in,
            "picked_up": picked_up,
            "not_checked_in": len(children) - checked_in - picked_up,
        },
    }
