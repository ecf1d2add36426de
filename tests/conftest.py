from datetime import date

import pytest
from flask_jwt_extended import create_access_token

from church_admin import create_app
from church_admin.config import TestingConfig
from church_admin.extensions import db as _db
from church_admin.models import Child, ClassGroupEnum, Role, RoleEnum, User
from church_admin.seed import seed_roles


@pytest.fixture
def app(tmp_path):
    class _Config(TestingConfig):
        AUDIT_LOG_FILE = str(tmp_path / "audit.log")

    app = create_app(_Config)
    with app.app_context():
        seed_roles()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def client(app):
    return app.test_client()


def _make_user(email, role, first_name="Test", last_name="User", phone=None):
    role_row = Role.query.filter_by(name=role.value).first()
    user = User(email=email, first_name=first_name, last_name=last_name, phone=phone, role_id=role_row.id)
    user.set_password("secret-pass")
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture
def make_user(app):
    return _make_user


@pytest.fixture
def super_admin(app):
    return _make_user("root@church.test", RoleEnum.super_admin, "Root", "Admin")


@pytest.fixture
def admin(app):
    return _make_user("office@church.test", RoleEnum.admin, "Office", "Admin")


@pytest.fixture
def staff(app):
    return _make_user("staff1@church.test", RoleEnum.junior_church_staff, "Grace", "Staff")


@pytest.fixture
def member(app):
    return _make_user("member@church.test", RoleEnum.member, "Sarah", "Johnson", phone="555-0101")


@pytest.fixture
def auth_headers(app):
    def _headers(user):
        token = create_access_token(identity=str(user.id), additional_claims={"role": user.role_name})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def child(app):
    record = Child(
        barcode_id="JC2024001",
        first_name="Emma",
        last_name="Johnson",
        date_of_birth=date(2018, 5, 14),
        class_group=ClassGroupEnum.elementary,
        authorized_releasers=["Sarah Johnson", "Mike Johnson"],
        parent_name="Sarah Johnson",
        parent_phone="555-0101",
    )
    _db.session.add(record)
    _db.session.commit()
    return record
