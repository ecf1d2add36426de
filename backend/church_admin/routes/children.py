from flask import Blueprint, request, jsonify, g
from flask_jwt_extended import jwt_required
from church_admin.extensions import db
from church_admin.models import Child, ClassGroupEnum
from church_admin.junior_church import registry
from church_admin.junior_church.exceptions import JuniorChurchError
from utils.audit import log_event
from utils.decorators import permission_required
from utils.pagination import apply_pagination_and_search, page_args, paginated_body

children_bp = Blueprint("children", __name__)


def _error(exc):
    db.session.rollback()
    return jsonify({"success": False, "message": str(exc)}), exc.status_code


@children_bp.route("", methods=["GET"])
@jwt_required()
@permission_required("junior_church.view")
def list_children():
    page, per_page = page_args()
    search_term = request.args.get("search", type=str)
    class_filter = request.args.get("class")
    active = request.args.get("active")

    query = Child.query
    if class_filter:
        try:
            query = query.filter(Child.class_group == ClassGroupEnum(class_filter))
        except ValueError:
            return jsonify({"success": False, "message": f"Invalid class '{class_filter}'"}), 400
    if active is not None:
        query = query.filter(Child.is_active.is_(active.lower() == "true"))

    query = query.order_by(Child.first_name, Child.last_name)
    paginated = apply_pagination_and_search(
        query,
        Child,
        search_term,
        ["first_name", "last_name", "parent_name", "barcode_id"],
        page,
        per_page
    )

    return jsonify(paginated_body(paginated, Child.to_dict)), 200


@children_bp.route("", methods=["POST"])
@jwt_required()
@permission_required("junior_church.manage")
def create_child():
    data = request.get_json(silent=True) or {}
    try:
        child = registry.register_child(data)
    except JuniorChurchError as e:
        return _error(e)

    log_event("CHILD_REGISTERED", user_id=g.current_user.id, ip=request.remote_addr,
              description=f"{child.barcode_id} registered")
    return jsonify({
        "success": True,
        "data": child.to_dict(),
        "message": "Junior member registered successfully"
    }), 201


@children_bp.route("/<int:child_id>", methods=["GET"])
@jwt_required()
@permission_required("junior_church.view")
def get_child(child_id):
    try:
        child = registry.get_child(child_id, include_inactive=True)
    except JuniorChurchError as e:
        return _error(e)
    return jsonify({"success": True, "data": child.to_dict()}), 200


@children_bp.route("/barcode/<string:barcode_id>", methods=["GET"])
@jwt_required()
@permission_required("junior_church.view")
def resolve_barcode(barcode_id):
    try:
        child = registry.resolve(barcode_id)
    except JuniorChurchError as e:
        return _error(e)
    return jsonify({"success": True, "data": child.to_dict()}), 200


@children_bp.route("/<int:child_id>", methods=["PUT"])
@jwt_required()
@permission_required("junior_church.manage")
def update_child(child_id):
    data = request.get_json(silent=True) or {}
    try:
        child = registry.get_child(child_id, include_inactive=True)
        registry.update_child(child, data)
    except JuniorChurchError as e:
        return _error(e)

    if "authorizedReleasers" in data or "pickupAuthority" in data:
        log_event("RELEASERS_UPDATED", user_id=g.current_user.id, ip=request.remote_addr,
                  description=f"{child.barcode_id}: {', '.join(child.authorized_releasers)}")
    return jsonify({
        "success": True,
        "data": child.to_dict(),
        "message": "Member updated successfully"
    }), 200


@children_bp.route("/<int:child_id>", methods=["DELETE"])
@jwt_required()
@permission_required("junior_church.manage")
def deactivate_child(child_id):
    try:
        child = registry.get_child(child_id)
        registry.deactivate_child(child)
    except JuniorChurchError as e:
        return _error(e)

    log_event("CHILD_DEACTIVATED", user_id=g.current_user.id, ip=request.remote_addr,
              description=child.barcode_id)
    return jsonify({
        "success": True,
        "data": child.to_dict(),
        "message": "Member deactivated successfully"
    }), 200


@children_bp.route("/<int:child_id>/restore", methods=["POST"])
@jwt_required()
@permission_required("junior_church.manage")
def restore_child(child_id):
    try:
        child = registry.get_child(child_id, include_inactive=True)
        registry.reactivate_child(child)
    except JuniorChurchError as e:
        return _error(e)

    return jsonify({
        "success": True,
        "data": child.to_dict(),
        "message": "Member restored successfully"
    }), 200
