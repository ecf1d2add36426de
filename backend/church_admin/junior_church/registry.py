"""Child registry: registration, explicit edits, deactivation and barcode resolution."""
import logging
from datetime import date

from sqlalchemy.exc import IntegrityError

from church_admin.extensions import db
from church_admin.models import Child, AttendanceEvent, ClassGroupEnum, AttendanceStatusEnum
from utils.dates import calculate_age, parse_iso_date, today
from .exceptions import ChildNotFound, InvalidTransition, ValidationError

logger = logging.getLogger(__name__)

BARCODE_PREFIX = "JC"
BARCODE_ATTEMPTS = 3

# Registry fields accepted on create/update, keyed by request name.
CONTACT_FIELDS = {
    "parentName": "parent_name",
    "parentPhone": "parent_phone",
    "parentEmail": "parent_email",
    "allergies": "allergies",
    "medicalNotes": "medical_notes",
}


def normalize_name(name):
    """Trimmed, case-insensitive form used for releaser matching. No fuzzy matching."""
    return (name or "").strip().casefold()


def is_authorized_releaser(child, person_name):
    wanted = normalize_name(person_name)
    if not wanted:
        return False
    return any(normalize_name(n) == wanted for n in child.authorized_releasers or [])


def parse_releasers(value):
    """Accepts a list of names or a comma separated string; keeps order, drops duplicates."""
    if isinstance(value, str):
        names = value.split(",")
    elif isinstance(value, (list, tuple)):
        names = value
    else:
        raise ValidationError("Authorized pickup persons must be a list of names")

    releasers, seen = [], set()
    for name in names:
        if not isinstance(name, str):
            raise ValidationError("Authorized pickup persons must be names")
        cleaned = name.strip()
        key = normalize_name(cleaned)
        if key and key not in seen:
            seen.add(key)
            releasers.append(cleaned)

    if not releasers:
        raise ValidationError("At least one authorized pickup person is required")
    return releasers


def determine_class(age):
    if age < 2:
        return ClassGroupEnum.nursery
    if age < 4:
        return ClassGroupEnum.toddlers
    if age < 6:
        return ClassGroupEnum.preschool
    if age < 13:
        return ClassGroupEnum.elementary
    return ClassGroupEnum.teens


def next_barcode(year=None):
    """Next barcode for the year in the JC{year}{sequence:03d} format."""
    year = year or today().year
    prefix = f"{BARCODE_PREFIX}{year}"
    issued = db.session.query(Child.barcode_id).filter(Child.barcode_id.like(f"{prefix}%")).all()

    highest = 0
    for (barcode_id,) in issued:
        suffix = barcode_id[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{prefix}{highest + 1:03d}"


def _parse_date_of_birth(value):
    if isinstance(value, date):
        dob = value
    else:
        try:
            dob = parse_iso_date(value)
        except (TypeError, ValueError):
            raise ValidationError("dateOfBirth must be a date in YYYY-MM-DD format")
    if dob > today():
        raise ValidationError("dateOfBirth cannot be in the future")
    return dob


def _parse_class(value):
    try:
        return ClassGroupEnum(value)
    except ValueError:
        raise ValidationError(f"Invalid class '{value}'")


def _required_text(data, key):
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{key} is required")
    return value.strip()


def _apply_contact_fields(child, data):
    for key, attr in CONTACT_FIELDS.items():
        if key in data:
            value = data.get(key)
            if isinstance(value, list):
                value = ", ".join(str(v) for v in value)
            setattr(child, attr, value.strip() if isinstance(value, str) else value)

    contact = data.get("emergencyContact")
    if isinstance(contact, dict):
        child.emergency_contact_name = contact.get("name")
        child.emergency_contact_phone = contact.get("phone")
        child.emergency_contact_relationship = contact.get("relationship")


def _releasers_from(data):
    for key in ("authorizedReleasers", "pickupAuthority"):
        if key in data:
            return parse_releasers(data.get(key))
    return None


def register_child(data):
    first_name = _required_text(data, "firstName")
    last_name = _required_text(data, "lastName")
    date_of_birth = _parse_date_of_birth(data.get("dateOfBirth"))

    releasers = _releasers_from(data)
    if releasers is None:
        raise ValidationError("At least one authorized pickup person is required")

    class_group = _parse_class(data["class"]) if data.get("class") else determine_class(calculate_age(date_of_birth))

    for attempt in range(1, BARCODE_ATTEMPTS + 1):
        child = Child(
            first_name=first_name,
            last_name=last_name,
            date_of_birth=date_of_birth,
            class_group=class_group,
            authorized_releasers=releasers,
            barcode_id=next_barcode(),
        )
        _apply_contact_fields(child, data)
        db.session.add(child)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.warning("Barcode collision on attempt %s, reissuing", attempt)
            continue
        logger.info("Registered child %s with barcode %s", child.id, child.barcode_id)
        return child

    raise ValidationError("Could not issue a unique barcode, please retry")


def update_child(child, data):
    """Explicit staff edit. The barcode is never changed here."""
    if "firstName" in data:
        child.first_name = _required_text(data, "firstName")
    if "lastName" in data:
        child.last_name = _required_text(data, "lastName")
    if "dateOfBirth" in data:
        child.date_of_birth = _parse_date_of_birth(data.get("dateOfBirth"))
        if not data.get("class"):
            child.class_group = determine_class(calculate_age(child.date_of_birth))
    if data.get("class"):
        child.class_group = _parse_class(data["class"])

    releasers = _releasers_from(data)
    if releasers is not None:
        child.authorized_releasers = releasers

    _apply_contact_fields(child, data)
    db.session.commit()
    return child


def deactivate_child(child, on_date=None):
    on_date = on_date or today()
    still_here = AttendanceEvent.query.filter_by(
        child_id=child.id, date=on_date, status=AttendanceStatusEnum.dropped_off
    ).first()
    if still_here:
        raise InvalidTransition(f"{child.full_name} is checked in and must be picked up first")

    child.deactivate()
    db.session.commit()
    return child


def reactivate_child(child):
    child.reactivate()
    db.session.commit()
    return child


def get_child(child_id, include_inactive=False):
    child = db.session.get(Child, child_id)
    if not child or (not include_inactive and not child.is_active):
        raise ChildNotFound("Member not found")
    return child


def resolve(token):
    """Exact, case-sensitive barcode lookup among active children."""
    if not isinstance(token, str) or not token:
        raise ChildNotFound("Invalid barcode or inactive member")

    child = Child.query.filter_by(barcode_id=token, is_active=True).first()
    if not child or child.barcode_id != token:
        raise ChildNotFound("Invalid barcode or inactive member")
    return child


def children_for_parent(parent_phone):
    """Active children registered under a parent's phone number."""
    return (
        Child.query
        .filter(Child.parent_phone == parent_phone.strip(), Child.is_active.is_(True))
        .order_by(Child.first_name, Child.last_name)
        .all()
    )
