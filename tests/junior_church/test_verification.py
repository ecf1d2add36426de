from datetime import date

import pytest

from church_admin.junior_church import ledger, verification
from church_admin.junior_church.exceptions import (
    AlreadyPickedUp,
    ChildNotFound,
    ConcurrencyConflict,
    InvalidTransition,
    OverrideNotVerified,
    ValidationError,
)
from church_admin.models import AttendanceEvent, AttendanceStatusEnum, AuditLog, Child, ClassGroupEnum

TODAY = date(2024, 6, 2)


def _event(child_id):
    return AttendanceEvent.query.filter_by(child_id=child_id, date=TODAY).one()


def test_scenario_a_dropoff_then_authorized_pickup(child, staff):
    result = verification.process_scan(child, TODAY, "Sarah Johnson", staff_id=staff.id)
    assert result.success
    assert result.action == verification.DROPOFF
    event = _event(child.id)
    assert event.status == AttendanceStatusEnum.dropped_off
    assert event.dropoff_by == "Sarah Johnson"
    assert event.checked_in_by == staff.id

    result = verification.process_scan(child, TODAY, "Mike Johnson", staff_id=staff.id)
    assert result.success
    assert result.action == verification.PICKUP
    assert not result.was_override
    event = _event(child.id)
    assert event.status == AttendanceStatusEnum.picked_up
    assert event.picked_up_by == "Mike Johnson"
    assert event.override_used is False
    assert event.pickup_time is not None


def test_scenario_b_unlisted_person_requires_override_and_changes_nothing(child, staff):
    verification.process_scan(child, TODAY, "Sarah Johnson", staff_id=staff.id)
    before = _event(child.id).to_dict()

    result = verification.process_scan(child, TODAY, "Unknown Person", staff_id=staff.id)

    assert result.requires_override
    assert not result.success
    assert result.authorized_persons == ("Sarah Johnson", "Mike Johnson")
    assert _event(child.id).to_dict() == before
    assert _event(child.id).status == AttendanceStatusEnum.dropped_off


def test_scenario_c_override_records_verifying_staff(child, staff):
    verification.process_scan(child, TODAY, "Sarah Johnson", staff_id=staff.id)
    verification.process_scan(child, TODAY, "Unknown Person", staff_id=staff.id)

    result = verification.process_scan(child, TODAY, "Unknown Person", override=True, staff_id=staff.id)

    assert result.success
    assert result.was_override
    event = _event(child.id)
    assert event.status == AttendanceStatusEnum.picked_up
    assert event.override_used is True
    assert event.verified_by == staff.id
    assert event.picked_up_by == "Unknown Person"
    assert event.notes.startswith("OVERRIDE:")
    assert AuditLog.query.filter(AuditLog.action.like("PICKUP_OVERRIDE%")).count() == 1


def test_scenario_d_third_scan_is_already_picked_up(child, staff):
    verification.process_scan(child, TODAY, "Sarah Johnson", staff_id=staff.id)
    verification.process_scan(child, TODAY, "Unknown Person", override=True, staff_id=staff.id)

    with pytest.raises(AlreadyPickedUp):
        verification.process_scan(child, TODAY, "Sarah Johnson", staff_id=staff.id)


def test_authorized_name_match_is_trimmed_and_case_insensitive(child, staff):
    verification.process_scan(child, TODAY, "Sarah Johnson", staff_id=staff.id)
    result = verification.process_scan(child, TODAY, "  mike JOHNSON ", staff_id=staff.id)
    assert result.success and not result.was_override


def test_typo_in_name_is_not_tolerated(child, staff):
    verification.process_scan(child, TODAY, "Sarah Johnson", staff_id=staff.id)
    result = verification.process_scan(child, TODAY, "Mike Johnsen", staff_id=staff.id)
    assert result.requires_override


def test_dropoff_needs_no_authorization(child, staff):
    result = verification.process_scan(child, TODAY, "Neighbour Bob", staff_id=staff.id)
    assert result.success
    assert _event(child.id).dropoff_by == "Neighbour Bob"


def test_override_without_staff_fails_closed(child, staff):
    verification.process_scan(child, TODAY, "Sarah Johnson", staff_id=staff.id)

    with pytest.raises(OverrideNotVerified):
        verification.process_scan(child, TODAY, "Unknown Person", override=True, staff_id=None)

    assert _event(child.id).status == AttendanceStatusEnum.dropped_off


def test_override_for_listed_person_is_a_normal_pickup(child, staff):
    verification.process_scan(child, TODAY, "Sarah Johnson", staff_id=staff.id)
    result = verification.process_scan(child, TODAY, "Mike Johnson", override=True, staff_id=staff.id)
    assert result.success and not result.was_override
    assert _event(child.id).override_used is False


def test_blank_actor_is_rejected(child, staff):
    with pytest.raises(ValidationError):
        verification.process_scan(child, TODAY, "   ", staff_id=staff.id)
    assert AttendanceEvent.query.count() == 0


def test_inactive_child_cannot_be_scanned(db, child, staff):
    child.deactivate()
    db.session.commit()
    with pytest.raises(ChildNotFound):
        verification.process_scan(child, TODAY, "Sarah Johnson", staff_id=staff.id)


def test_declared_pickup_without_dropoff_writes_nothing(child, staff):
    with pytest.raises(InvalidTransition):
        verification.process_scan(
            child, TODAY, "Sarah Johnson", staff_id=staff.id, expected_action=verification.PICKUP
        )
    assert AttendanceEvent.query.count() == 0


def test_declared_dropoff_while_open_is_rejected(child, staff):
    verification.process_scan(child, TODAY, "Sarah Johnson", staff_id=staff.id)
    with pytest.raises(InvalidTransition):
        verification.process_scan(
            child, TODAY, "Sarah Johnson", staff_id=staff.id, expected_action=verification.DROPOFF
        )
    assert _event(child.id).status == AttendanceStatusEnum.dropped_off


def test_no_show_blocks_scans(db, child, staff):
    db.session.add(AttendanceEvent(child_id=child.id, date=TODAY, status=AttendanceStatusEnum.no_show))
    db.session.commit()
    with pytest.raises(InvalidTransition):
        verification.process_scan(child, TODAY, "Sarah Johnson", staff_id=staff.id)


def test_concurrent_dropoff_is_reported_as_conflict(child, staff, monkeypatch):
    verification.process_scan(child, TODAY, "Sarah Johnson", staff_id=staff.id)
    # The other station's insert is not visible to this read.
    monkeypatch.setattr(ledger, "event_for", lambda child_id, on_date: None)

    with pytest.raises(ConcurrencyConflict):
        verification.process_scan(child, TODAY, "Mike Johnson", staff_id=staff.id)

    assert AttendanceEvent.query.filter_by(child_id=child.id).count() == 1


def test_concurrent_pickup_is_reported_as_conflict(db, child, staff, monkeypatch):
    verification.process_scan(child, TODAY, "Sarah Johnson", staff_id=staff.id)
    stale = _event(child.id)
    original_event_for = ledger.event_for

    def event_for_then_close(child_id, on_date):
        event = original_event_for(child_id, on_date)
        # Keep this station's stale copy while another station closes the event.
        db.session.expunge(event)
        AttendanceEvent.query.filter_by(id=event.id).update(
            {AttendanceEvent.status: AttendanceStatusEnum.picked_up, AttendanceEvent.picked_up_by: "Sarah Johnson"},
            synchronize_session=False,
        )
        db.session.commit()
        return event

    monkeypatch.setattr(ledger, "event_for", event_for_then_close)

    with pytest.raises(ConcurrencyConflict):
        verification.process_scan(child, TODAY, "Mike Johnson", staff_id=staff.id)

    db.session.expire_all()
    event = _event(child.id)
    assert event.id == stale.id
    assert event.status == AttendanceStatusEnum.picked_up
    assert event.picked_up_by == "Sarah Johnson"


def test_scan_retries_once_after_conflict(app, child, staff, monkeypatch):
    verification.process_scan(child, TODAY, "Sarah Johnson", staff_id=staff.id)
    original_record_pickup = ledger.record_pickup
    calls = {"n": 0}

    def flaky_record_pickup(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise ConcurrencyConflict("collided")
        return original_record_pickup(*args, **kwargs)

    monkeypatch.setattr(ledger, "record_pickup", flaky_record_pickup)
    request = verification.PickupRequest(barcode_id="JC2024001", person_name="Mike Johnson")

    result = verification.scan(request, TODAY, staff_id=staff.id, attempts=2)

    assert result.success
    assert calls["n"] == 2
    assert _event(child.id).status == AttendanceStatusEnum.picked_up


def test_scan_surfaces_conflict_after_last_attempt(app, child, staff, monkeypatch):
    verification.process_scan(child, TODAY, "Sarah Johnson", staff_id=staff.id)

    def always_conflict(*args, **kwargs):
        raise ConcurrencyConflict("collided")

    monkeypatch.setattr(ledger, "record_pickup", always_conflict)
    request = verification.PickupRequest(barcode_id="JC2024001", person_name="Mike Johnson")

    with pytest.raises(ConcurrencyConflict):
        verification.scan(request, TODAY, staff_id=staff.id, attempts=2)


def test_scan_with_unknown_barcode(app, staff):
    request = verification.DropoffRequest(barcode_id="JC0000000", person_name="Sarah Johnson")
    with pytest.raises(ChildNotFound):
        verification.scan(request, TODAY, staff_id=staff.id)


def test_admin_checkout_of_unlisted_person_is_an_audited_override(child, staff, admin):
    verification.process_scan(child, TODAY, "Sarah Johnson", staff_id=staff.id)
    event_id = _event(child.id).id

    result = verification.admin_checkout(event_id, "Aunt May", notes="Parent phoned ahead", staff_id=admin.id)

    assert result.success and result.was_override
    event = _event(child.id)
    assert event.status == AttendanceStatusEnum.picked_up
    assert event.override_used is True
    assert event.verified_by == admin.id
    assert event.notes == "ADMIN CHECKOUT: Parent phoned ahead"


def test_admin_checkout_default_note_and_listed_person(child, staff, admin):
    verification.process_scan(child, TODAY, "Sarah Johnson", staff_id=staff.id)
    event_id = _event(child.id).id

    result = verification.admin_checkout(event_id, "Mike Johnson", staff_id=admin.id)

    assert not result.was_override
    assert _event(child.id).notes == "ADMIN CHECKOUT: Manual checkout by staff"

    with pytest.raises(AlreadyPickedUp):
        verification.admin_checkout(event_id, "Mike Johnson", staff_id=admin.id)


def test_admin_checkout_requires_staff_identity(child, staff):
    verification.process_scan(child, TODAY, "Sarah Johnson", staff_id=staff.id)
    with pytest.raises(OverrideNotVerified):
        verification.admin_checkout(_event(child.id).id, "Mike Johnson", staff_id=None)


@pytest.mark.parametrize(
    "body",
    [
        None,
        {},
        {"barcodeId": "JC2024001", "action": "dropoff"},
        {"barcodeId": "JC2024001", "action": "wave", "personName": "Sarah Johnson"},
        {"barcodeId": "JC2024001", "action": "pickup", "personName": "Sarah Johnson", "override": "yes"},
        {"barcodeId": "JC2024001", "action": "dropoff", "personName": "Sarah Johnson", "override": True},
        {"barcodeId": 2024001, "action": "dropoff", "personName": "Sarah Johnson"},
    ],
)
def test_parse_scan_request_rejects_malformed_bodies(body):
    with pytest.raises(ValidationError):
        verification.parse_scan_request(body)


def test_parse_scan_request_builds_tagged_variants():
    dropoff = verification.parse_scan_request(
        {"barcodeId": "JC2024001", "action": "dropoff", "personName": " Sarah Johnson "}
    )
    pickup = verification.parse_scan_request(
        {"barcodeId": "JC2024001", "action": "pickup", "personName": "Bob", "override": True}
    )

    assert isinstance(dropoff, verification.DropoffRequest)
    assert dropoff.person_name == "Sarah Johnson"
    assert dropoff.override is False
    assert isinstance(pickup, verification.PickupRequest)
    assert pickup.override is True


def test_overlong_actor_name_is_rejected(child, staff):
    with pytest.raises(ValidationError):
        verification.process_scan(child, TODAY, "x" * 161, staff_id=staff.id)
    assert AttendanceEvent.query.count() == 0


def test_override_note_fits_the_notes_column(child, staff):
    verification.process_scan(child, TODAY, "Sarah Johnson", staff_id=staff.id)
    name = "Q" * 160
    verification.process_scan(child, TODAY, name, override=True, staff_id=staff.id)
    event = _event(child.id)
    assert event.picked_up_by == name
    assert len(event.notes) <= 500


def test_admin_checkout_rejects_non_text_notes(child, staff, admin):
    verification.process_scan(child, TODAY, "Sarah Johnson", staff_id=staff.id)
    with pytest.raises(ValidationError):
        verification.admin_checkout(_event(child.id).id, "Aunt May", notes=42, staff_id=admin.id)
    assert _event(child.id).status == AttendanceStatusEnum.dropped_off


@pytest.fixture
def sibling(db):
    record = Child(
        barcode_id="JC2024002",
        first_name="Leo",
        last_name="Johnson",
        date_of_birth=date(2021, 1, 9),
        class_group=ClassGroupEnum.toddlers,
        authorized_releasers=["Sarah Johnson"],
        parent_phone="555-0101",
    )
    db.session.add(record)
    db.session.commit()
    return record


def test_family_checkin_mixes_new_and_existing(child, sibling, staff, member):
    verification.process_scan(child, TODAY, "Mike Johnson", staff_id=staff.id)

    result = verification.checkin_children("555-0101", [child.id, sibling.id, child.id], TODAY,
                                           "Sarah Johnson", parent_id=member.id)

    assert [c["child"]["id"] for c in result.checked_in] == [sibling.id]
    assert [c["child"]["id"] for c in result.already_checked_in] == [child.id]
    assert result.already_checked_in[0]["status"] == "dropped_off"
    assert result.skipped == ()
    assert _event(sibling.id).dropoff_by == "Sarah Johnson"
    assert _event(child.id).dropoff_by == "Mike Johnson"


def test_family_checkin_survives_a_concurrent_dropoff(child, sibling, member, monkeypatch):
    original_event_for = ledger.event_for
    seen = set()

    def event_for_missing_first_read(child_id, on_date):
        # Another station checks Emma in between this read and the insert.
        if child_id == child.id and child_id not in seen:
            seen.add(child_id)
            verification.process_scan(child, on_date, "Mike Johnson")
            return None
        return original_event_for(child_id, on_date)

    monkeypatch.setattr(ledger, "event_for", event_for_missing_first_read)

    result = verification.checkin_children("555-0101", [child.id, sibling.id], TODAY,
                                           "Sarah Johnson", parent_id=member.id)

    assert [c["child"]["id"] for c in result.already_checked_in] == [child.id]
    assert [c["child"]["id"] for c in result.checked_in] == [sibling.id]
    assert AttendanceEvent.query.count() == 2
    assert _event(child.id).dropoff_by == "Mike Johnson"


def test_family_checkin_skips_other_families_and_inactive_children(db, child, sibling, member):
    sibling.deactivate()
    db.session.commit()

    result = verification.checkin_children("555-0101", [sibling.id, 4242], TODAY, "Sarah Johnson")

    assert result.checked_in == ()
    assert result.skipped == (sibling.id, 4242)
    assert result.message == "Check-in completed"
    assert AttendanceEvent.query.count() == 0


@pytest.mark.parametrize("phone,ids", [("", [1]), ("555-0101", []), ("555-0101", None), ("555-0101", [True])])
def test_family_checkin_validation(app, phone, ids):
    with pytest.raises(ValidationError):
        verification.checkin_children(phone, ids, TODAY, "Sarah Johnson")
