from .auth import auth_bp
from .base_route import base_bp
from .children import children_bp
from .attendance import attendance_bp


def register_routes(app):
    app.register_blueprint(base_bp)
    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(children_bp, url_prefix='/junior-church/members')
    app.register_blueprint(attendance_bp, url_prefix='/junior-church/attendance')
