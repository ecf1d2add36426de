from flask import Blueprint, request, jsonify, current_app, make_response
from flask_jwt_extended import (
    create_access_token, create_refresh_token, jwt_required,
    get_jwt_identity, get_jwt
)
from church_admin.models import User, Role, TokenBlocklist
from church_admin.extensions import db, limiter
from utils.access_control import permissions_for
from utils.audit import log_event
from utils.decorators import role_required
from datetime import datetime, timezone
import re

auth_bp = Blueprint('auth', __name__)
EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def _issue_tokens(user):
    access_token = create_access_token(
        identity=str(user.id),
        additional_claims={"role": user.role_name}
    )
    refresh_token = create_refresh_token(identity=str(user.id))
    return access_token, refresh_token


def _set_token_cookies(response, access_token, refresh_token=None):
    secure_flag = current_app.config["JWT_COOKIE_SECURE"]
    same_site = current_app.config["JWT_COOKIE_SAMESITE"]
    access_ttl = int(current_app.config["JWT_ACCESS_TOKEN_EXPIRES"].total_seconds())
    refresh_ttl = int(current_app.config["JWT_REFRESH_TOKEN_EXPIRES"].total_seconds())

    response.set_cookie(
        "access_token_cookie",
        access_token,
        max_age=access_ttl,
        httponly=True,
        secure=secure_flag,
        samesite=same_site,
        path="/"
    )
    if refresh_token:
        response.set_cookie(
            "refresh_token_cookie",
            refresh_token,
            max_age=refresh_ttl,
            httponly=True,
            secure=secure_flag,
            samesite=same_site,
            path="/auth/refresh"
        )
    return response


@auth_bp.route('/register', methods=['POST'])
@jwt_required()
@role_required("super_admin")
def register():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    role_name = (data.get('role') or '').strip()

    if not email or not password or not role_name:
        return jsonify({"success": False, "message": "Email, password, and role are required"}), 400

    if not EMAIL_PATTERN.match(email):
        return jsonify({"success": False, "message": "Invalid email format"}), 400

    if User.query.filter_by(email=email).first():
        return jsonify({"success": False, "message": "Email already exists"}), 400

    role = Role.query.filter_by(name=role_name).first()
    if not role:
        return jsonify({"success": False, "message": f"Role '{role_name}' not found"}), 400

    user = User(
        email=email,
        first_name=data.get('firstName'),
        last_name=data.get('lastName'),
        phone=str(data.get('phone') or '').strip() or None,
        role_id=role.id,
    )
    user.set_password(password)

    db.session.add(user)
    db.session.commit()

    log_event("USER_CREATED", user_id=get_jwt_identity(), ip=request.remote_addr,
              description=f"{email} created with role {role_name}")
    return jsonify({
        "success": True,
        "message": "User created",
        "user": user.to_dict()
    }), 201


@auth_bp.route('/login', methods=['POST'])
@limiter.limit("5 per minute", override_defaults=False)
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    ip = request.remote_addr

    if not email or not password:
        return jsonify({"success": False, "message": "Email and password are required"}), 400

    if not EMAIL_PATTERN.match(email):
        return jsonify({"success": False, "message": "Invalid email format"}), 400

    user = User.query.filter_by(email=email).first()

    if user and user.is_active and user.check_password(password):
        access_token, refresh_token = _issue_tokens(user)
        response = make_response(jsonify({
            "success": True,
            "message": "Login successful",
            "access_token": access_token,
            "refresh_token": refresh_token,
            "user": user.to_dict(),
        }))
        _set_token_cookies(response, access_token, refresh_token)

        log_event("LOGIN_SUCCESS", user_id=user.id, ip=ip, description=f"{email} logged in")
        return response

    log_event("LOGIN_FAILED", ip=ip, level="WARNING", description=f"Failed login attempt for {email}")
    return jsonify({"success": False, "message": "Invalid email or password"}), 401


@auth_bp.route('/me', methods=['GET'])
@jwt_required()
def get_current_user():
    user = db.session.get(User, int(get_jwt_identity()))
    if not user or not user.is_active:
        return jsonify({"success": False, "message": "User not found or inactive"}), 401

    data = user.to_dict()
    data["permissions"] = permissions_for(user)
    return jsonify({"valid": True, "user": data}), 200


@auth_bp.route('/refresh', methods=['POST'])
@jwt_required(refresh=True)
def refresh_access_token():
    user = db.session.get(User, int(get_jwt_identity()))
    if not user or not user.is_active:
        return jsonify({"success": False, "message": "User not found"}), 404

    access_token = create_access_token(
        identity=str(user.id),
        additional_claims={"role": user.role_name}
    )

    response = make_response(jsonify({
        "success": True,
        "message": "Token refreshed",
        "access_token": access_token,
    }))
    _set_token_cookies(response, access_token)

    log_event("REFRESH_TOKEN", user_id=user.id, ip=request.remote_addr)
    return response


@auth_bp.route("/logout", methods=["POST"])
@jwt_required()
def logout():
    claims = get_jwt()
    user_id = int(get_jwt_identity())
    expires = datetime.fromtimestamp(claims["exp"], tz=timezone.utc).replace(tzinfo=None)

    token_block = TokenBlocklist(
        jti=claims["jti"],
        token_type=claims.get("type", "access"),
        user_id=user_id,
        expires_at=expires,
    )
    db.session.add(token_block)
    db.session.commit()

    response = make_response(jsonify({"success": True, "message": "Successfully logged out"}))
    response.delete_cookie("access_token_cookie", path="/")
    response.delete_cookie("refresh_token_cookie", path="/auth/refresh")

    log_event("LOGOUT", user_id=user_id, ip=request.remote_addr)
    return response
