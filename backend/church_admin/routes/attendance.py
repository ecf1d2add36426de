from flask import Blueprint, request, jsonify, current_app, g
from flask_jwt_extended import jwt_required
from church_admin.extensions import db, limiter
from church_admin.models import AttendanceStatusEnum
from church_admin.junior_church import ledger, registry, verification
from church_admin.junior_church.exceptions import JuniorChurchError, ValidationError
from utils.dates import parse_iso_date, today
from utils.decorators import permission_required

attendance_bp = Blueprint("attendance", __name__)


def _error(exc):
    db.session.rollback()
    return jsonify({
        "success": False,
        "error": type(exc).__name__,
        "message": str(exc)
    }), exc.status_code


def _date_arg(name, default_today=True):
    value = request.args.get(name)
    if not value:
        return today() if default_today else None
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{name} must be in YYYY-MM-DD format")


def _status_arg():
    value = request.args.get("status")
    if not value:
        return None
    try:
        return AttendanceStatusEnum(value)
    except ValueError:
        raise ValidationError(f"Invalid status '{value}'")


def _scan_limit():
    return current_app.config["SCAN_RATE_LIMIT"]


@attendance_bp.route("", methods=["GET"])
@jwt_required()
@permission_required("junior_church.view")
def list_attendance():
    try:
        on_date = _date_arg("date")
        status = _status_arg()
    except JuniorChurchError as e:
        return _error(e)

    child_id = request.args.get("child_id", type=int)
    events = ledger.events_for_date(on_date, status=status, child_id=child_id)
    return jsonify({
        "success": True,
        "data": [e.to_dict(include_child=True) for e in events],
        "total": len(events)
    }), 200


@attendance_bp.route("", methods=["POST"])
@jwt_required()
@permission_required("junior_church.checkin")
@limiter.limit(_scan_limit)
def scan_barcode():
    staff = g.current_user
    try:
        scan_request = verification.parse_scan_request(request.get_json(silent=True))
        result = verification.scan(scan_request, today(), staff_id=staff.id, ip=request.remote_addr)
    except JuniorChurchError as e:
        return _error(e)

    if result.requires_override:
        return jsonify({
            "success": False,
            "message": result.message,
            "requiresOverride": True,
            "authorizedPersons": list(result.authorized_persons)
        }), 403

    body = {
        "success": True,
        "message": result.message,
        "data": result.event.to_dict(include_child=True)
    }
    if result.action == verification.PICKUP:
        body["wasOverride"] = result.was_override
        return jsonify(body), 200
    return jsonify(body), 201


@attendance_bp.route("", methods=["PUT"])
@jwt_required()
@permission_required("junior_church.admin_checkout")
def manual_checkout():
    data = request.get_json(silent=True) or {}
    attendance_id = data.get("attendanceId")
    if not attendance_id or not data.get("pickedUpBy"):
        return jsonify({"success": False, "message": "Attendance ID and pickup person are required"}), 400

    try:
        result = verification.admin_checkout(
            int(attendance_id),
            data.get("pickedUpBy"),
            notes=data.get("notes"),
            staff_id=g.current_user.id,
            ip=request.remote_addr,
        )
    except (TypeError, ValueError):
        return jsonify({"success": False, "message": "attendanceId must be an integer"}), 400
    except JuniorChurchError as e:
        return _error(e)

    return jsonify({
        "success": True,
        "data": result.event.to_dict(include_child=True),
        "message": result.message,
        "wasOverride": result.was_override
    }), 200


@attendance_bp.route("/open", methods=["GET"])
@jwt_required()
@permission_required("junior_church.view")
def open_attendance():
    try:
        on_date = _date_arg("date")
    except JuniorChurchError as e:
        return _error(e)

    events = ledger.open_events_for_date(on_date)
    return jsonify({
        "success": True,
        "data": [e.to_dict(include_child=True) for e in events],
        "total": len(events)
    }), 200


@attendance_bp.route("/child/<int:child_id>", methods=["GET"])
@jwt_required()
@permission_required("junior_church.view")
def child_history(child_id):
    try:
        child = registry.get_child(child_id, include_inactive=True)
        start = _date_arg("start", default_today=False)
        end = _date_arg("end", default_today=False)
    except JuniorChurchError as e:
        return _error(e)

    if start and end and start > end:
        return jsonify({"success": False, "message": "start must be on or before end"}), 400

    events = ledger.history(child.id, start, end)
    return jsonify({
        "success": True,
        "child": child.summary(),
        "data": [e.to_dict() for e in events],
        "total": len(events)
    }), 200


@attendance_bp.route("/summary", methods=["GET"])
@jwt_required()
@permission_required("junior_church.view")
def attendance_summary():
    try:
        on_date = _date_arg("date")
    except JuniorChurchError as e:
        return _error(e)

    return jsonify({"success": True, "data": ledger.daily_summary(on_date)}), 200


@attendance_bp.route("/family", methods=["GET"])
@jwt_required()
@permission_required("junior_church.family_checkin")
def family_attendance():
    parent = g.current_user
    if not parent.phone:
        return jsonify({"success": False, "message": "No phone number on this account"}), 400
    try:
        on_date = _date_arg("date")
    except JuniorChurchError as e:
        return _error(e)

    children = registry.children_for_parent(parent.phone)
    return jsonify({"success": True, "data": ledger.family_status(children, on_date)}), 200


@attendance_bp.route("/batch", methods=["POST"])
@jwt_required()
@permission_required("junior_church.family_checkin")
@limiter.limit(_scan_limit)
def family_checkin():
    parent = g.current_user
    data = request.get_json(silent=True) or {}
    try:
        result = verification.checkin_children(
            parent.phone,
            data.get("childrenIds"),
            today(),
            parent.full_name,
            parent_id=parent.id,
            ip=request.remote_addr,
        )
    except JuniorChurchError as e:
        return _error(e)

    return jsonify({
        "success": True,
        "message": result.message,
        "data": {
            "checkedInChildren": list(result.checked_in),
            "alreadyCheckedIn": list(result.already_checked_in),
            "skipped": list(result.skipped),
            "totalProcessed": len(result.checked_in) + len(result.already_checked_in) + len(result.skipped),
        }
    }), 200
