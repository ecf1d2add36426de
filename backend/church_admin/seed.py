import os
from datetime import date
from church_admin.models import Role, User, Child, RoleEnum, ClassGroupEnum
from church_admin.extensions import db


def seed_roles():
    for role in RoleEnum:
        if not Role.query.filter_by(name=role.value).first():
            db.session.add(Role(name=role.value))
    db.session.commit()


def get_role_id(role_name):
    role = Role.query.filter_by(name=role_name).first()
    return role.id if role else None


def seed_data():
    seed_roles()

    admin_password = os.getenv("ADMIN_PASSWORD", "change-me-now")

    users = [
        ("admin@church.local", "Church", "Admin", RoleEnum.super_admin, admin_password),
        ("office@church.local", "Office", "Admin", RoleEnum.admin, "officepass"),
        ("staff1@church.local", "Grace", "Staff", RoleEnum.junior_church_staff, "staffpass"),
    ]
    for email, first_name, last_name, role, password in users:
        if User.query.filter_by(email=email).first():
            continue
        user = User(email=email, first_name=first_name, last_name=last_name, role_id=get_role_id(role.value))
        user.set_password(password)
        db.session.add(user)
    db.session.commit()

    if not Child.query.filter_by(barcode_id="JC2024001").first():
        db.session.add(Child(
            barcode_id="JC2024001",
            first_name="Emma",
            last_name="Johnson",
            date_of_birth=date(2018, 5, 14),
            class_group=ClassGroupEnum.elementary,
            authorized_releasers=["Sarah Johnson", "Mike Johnson"],
            parent_name="Sarah Johnson",
            parent_phone="555-0101",
            allergies="Peanuts",
        ))
        db.session.commit()

    print("Seed data inserted successfully.")
