from flask import Flask
from flask_cors import CORS
from .config import Config
from church_admin.routes import register_routes
from church_admin.models import TokenBlocklist
from church_admin.extensions import db, jwt, limiter, migrate


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    db.init_app(app)
    jwt.init_app(app)
    CORS(app, origins=app.config["CORS_ORIGINS"], supports_credentials=True)
    limiter.init_app(app)
    register_routes(app)
    migrate.init_app(app, db)

    @jwt.token_in_blocklist_loader
    def check_if_token_revoked(jwt_header, jwt_payload):
        jti = jwt_payload["jti"]
        token = db.session.query(TokenBlocklist).filter_by(jti=jti).first()
        return token is not None

    @jwt.unauthorized_loader
    def missing_token(reason):
        return {"success": False, "message": "Authentication required"}, 401

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return {"success": False, "message": "Invalid token"}, 401

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return {"success": False, "message": "Token has expired"}, 401

    @jwt.revoked_token_loader
    def revoked_token(jwt_header, jwt_payload):
        return {"success": False, "message": "Token has been revoked"}, 401

    with app.app_context():
        db.create_all()

    return app
