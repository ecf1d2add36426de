from flask import Blueprint, jsonify
from sqlalchemy.exc import SQLAlchemyError

base_bp = Blueprint("base", __name__)

@base_bp.route("/")
def home():
    return jsonify({"message": "Church admin API"})

@base_bp.route("/api/test-db")
def test_db():
    from church_admin.models import Child
    try:
        count = Child.query.filter_by(is_active=True).count()
        return {"status": "success", "children": count}
    except SQLAlchemyError as e:
        return {"status": "error", "message": str(e)}, 500
